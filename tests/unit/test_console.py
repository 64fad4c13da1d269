from pathlib import Path
from unittest.mock import MagicMock
from vto.domain.events import JobCompleted, JobFailed, JobProgressUpdated
from vto.domain.models import (
    FailureDiagnostic, FailureKind, Outcome, ProgressSnapshot, TerminalResult
)
from vto.infrastructure.event_bus import EventBus
from vto.ui.console import ConsoleReporter, format_duration, format_size, summary_panel

def test_format_duration():
    assert format_duration(83.45) == "01:23"
    assert format_duration(3725) == "01:02:05"
    assert format_duration(None) == "--:--"

def test_format_size():
    assert format_size(4 * 1024 * 1024) == "4.00 MB"
    assert format_size(None) == "?"

def test_reporter_updates_progress_on_event():
    bus = EventBus()
    progress = MagicMock()
    progress.add_task.return_value = 7
    reporter = ConsoleReporter(bus, progress)
    reporter.track("job-1", "clip.mp4")

    bus.publish(JobProgressUpdated(
        job_id="job-1",
        snapshot=ProgressSnapshot(fraction=0.5, processed_ms=60000, duration_ms=120000, eta_seconds=30.0),
    ))

    kwargs = progress.update.call_args.kwargs
    assert progress.update.call_args[0][0] == 7
    assert kwargs["completed"] == 0.5
    assert kwargs["total"] == 1.0
    assert kwargs["eta"] == "00:30"
    assert kwargs["detail"] == "01:00 / 02:00"

def test_reporter_indeterminate_without_duration():
    bus = EventBus()
    progress = MagicMock()
    reporter = ConsoleReporter(bus, progress)
    reporter.track("job-1", "clip.mp4")

    bus.publish(JobProgressUpdated(job_id="job-1", snapshot=ProgressSnapshot(fraction=0.0, processed_ms=5000)))

    assert progress.update.call_args.kwargs["total"] is None

def test_reporter_ignores_untracked_jobs():
    bus = EventBus()
    progress = MagicMock()
    ConsoleReporter(bus, progress)

    bus.publish(JobProgressUpdated(job_id="other", snapshot=ProgressSnapshot(fraction=0.1)))

    assert not progress.update.called

def test_reporter_prints_summaries():
    bus = EventBus()
    progress = MagicMock()
    reporter = ConsoleReporter(bus, progress)
    reporter.track("job-1", "clip.mp4")

    success = TerminalResult(
        outcome=Outcome.SUCCESS, input_size=10_000_000, elapsed_seconds=12.0,
        output_path=Path("clip_converted.webm"), output_size=4_000_000, compression_ratio=0.6,
    )
    bus.publish(JobCompleted(job_id="job-1", result=success))
    assert progress.console.print.call_count == 1

    failure = TerminalResult(
        outcome=Outcome.FAILURE, input_size=10, elapsed_seconds=1.0,
        failure=FailureDiagnostic(kind=FailureKind.PROCESS_FAILURE, message="ffmpeg exited with code 1"),
    )
    bus.publish(JobFailed(job_id="job-1", result=failure, error_message="ffmpeg exited with code 1"))
    assert progress.console.print.call_count == 2

def test_summary_panel_content():
    result = TerminalResult(
        outcome=Outcome.SUCCESS, input_size=10_000_000, elapsed_seconds=12.0,
        output_path=Path("clip_converted.webm"), output_size=4_000_000,
        compression_ratio=0.6, speed_ratio=10.0,
    )
    panel = summary_panel(result)
    assert "Compression: 60.0%" in panel.renderable
    assert "Speed: 10.00x realtime" in panel.renderable
