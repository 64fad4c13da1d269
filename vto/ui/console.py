import threading
from typing import Dict, Optional
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskID, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from vto.domain.events import JobCancelled, JobCompleted, JobFailed, JobProgressUpdated, JobStarted
from vto.domain.models import CommandProfile, TerminalResult
from vto.infrastructure.event_bus import EventBus

def format_size(size: Optional[int]) -> str:
    if size is None:
        return "?"
    return f"{size / 1024 / 1024:.2f} MB"

def format_duration(seconds: Optional[float]) -> str:
    """mm:ss, or hh:mm:ss past the hour."""
    if seconds is None:
        return "--:--"
    total = int(round(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"

def make_progress(console: Optional[Console] = None) -> Progress:
    return Progress(
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("{task.fields[detail]}"),
        TimeElapsedColumn(),
        TextColumn("ETA {task.fields[eta]}"),
        console=console,
    )

def profiles_table(profiles: Dict[str, CommandProfile]) -> Table:
    table = Table(title="Transcode profiles")
    table.add_column("Mode")
    table.add_column("Profile")
    table.add_column("Description")
    table.add_column("Video")
    table.add_column("Audio")
    table.add_column("Container")
    for mode, profile in profiles.items():
        video = profile.video_codec
        if profile.crf is not None:
            video += f" crf={profile.crf}"
        if profile.video_bitrate is not None:
            video += f" b={profile.video_bitrate}"
        audio = profile.audio_codec + (f" {profile.audio_bitrate}" if profile.audio_bitrate else "")
        table.add_row(mode, profile.name, profile.description, video, audio, profile.container)
    return table

class ConsoleReporter:
    """Subscribes to EventBus and mirrors job events onto a rich Progress."""

    def __init__(self, bus: EventBus, progress: Progress):
        self.bus = bus
        self.progress = progress
        self._tasks: Dict[str, TaskID] = {}
        self._lock = threading.Lock()
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobProgressUpdated, self.on_job_progress)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(JobCancelled, self.on_job_cancelled)

    def track(self, job_id: str, label: str):
        with self._lock:
            self._tasks[job_id] = self.progress.add_task(label, total=1.0, detail="probing", eta="--:--")

    def _task(self, job_id: str) -> Optional[TaskID]:
        with self._lock:
            return self._tasks.get(job_id)

    def on_job_started(self, event: JobStarted):
        task = self._task(event.job_id)
        if task is not None:
            self.progress.update(task, detail=event.profile.description)

    def on_job_progress(self, event: JobProgressUpdated):
        task = self._task(event.job_id)
        if task is None:
            return
        snapshot = event.snapshot
        detail = f"{format_duration(snapshot.processed_ms / 1000)}"
        if snapshot.duration_ms:
            detail += f" / {format_duration(snapshot.duration_ms / 1000)}"
        if snapshot.size_bytes:
            detail += f", {format_size(snapshot.size_bytes)}"
        # Unknown duration renders as an indeterminate bar
        self.progress.update(
            task,
            total=1.0 if snapshot.duration_ms else None,
            completed=snapshot.fraction,
            detail=detail,
            eta=format_duration(snapshot.eta_seconds),
        )

    def on_job_completed(self, event: JobCompleted):
        task = self._task(event.job_id)
        if task is not None:
            self.progress.update(task, total=1.0, completed=1.0, detail="done", eta="00:00")
        self.progress.console.print(summary_panel(event.result))

    def on_job_failed(self, event: JobFailed):
        task = self._task(event.job_id)
        if task is not None:
            self.progress.update(task, detail="[red]failed")
        self.progress.console.print(summary_panel(event.result))

    def on_job_cancelled(self, event: JobCancelled):
        task = self._task(event.job_id)
        if task is not None:
            self.progress.update(task, detail="[yellow]cancelled")

def summary_panel(result: TerminalResult) -> Panel:
    if result.failure is not None:
        lines = [f"{result.failure.message} ({result.failure.kind.value})"]
        lines.extend(result.failure.log_tail)
        return Panel("\n".join(lines), title="Conversion failed", border_style="red")

    lines = [
        f"Output: {result.output_path}",
        f"Total time: {result.elapsed_seconds:.1f}s",
        f"Input: {format_size(result.input_size)}",
        f"Output size: {format_size(result.output_size)}",
    ]
    if result.compression_ratio is not None:
        lines.append(f"Compression: {result.compression_ratio * 100:.1f}%")
    if result.speed_ratio is not None:
        lines.append(f"Speed: {result.speed_ratio:.2f}x realtime")
    return Panel("\n".join(lines), title="Conversion completed", border_style="green")
