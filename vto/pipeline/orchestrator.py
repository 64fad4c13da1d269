import os
import threading
import time
import uuid
import logging
import concurrent.futures
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Callable, Dict, List, Optional
from vto.config.models import AppConfig
from vto.domain.errors import InvalidRequest, InvalidState, NotFound
from vto.domain.events import (
    JobCancelled, JobCompleted, JobFailed, JobProgressUpdated, JobStarted, ProbeFinished
)
from vto.domain.models import (
    CommandProfile, FailureDiagnostic, FailureKind, Job, JobState, JobStatus, Outcome,
    PlatformCapabilities, ProgressSnapshot, StatisticsSnapshot, TerminalResult,
    TranscodeRequest, compression_ratio,
)
from vto.infrastructure.capabilities import resolve_capabilities
from vto.infrastructure.event_bus import EventBus
from vto.infrastructure.ffmpeg import FFmpegAdapter, TranscodeProcess
from vto.infrastructure.ffprobe import ProbeService
from vto.infrastructure.profiles import ProfileResolver
from vto.infrastructure.telemetry import parse_log_line, parse_statistics
from vto.pipeline.progress import ProgressTracker
from vto.pipeline.stream import EventStream

class _JobRuntime:
    """A Job plus everything the orchestrator needs to drive it.

    All mutation of ``job`` happens while holding ``lock``; both telemetry
    reader threads and the worker go through it, one update at a time.
    """

    def __init__(self, job: Job):
        self.job = job
        self.lock = threading.RLock()
        self.tracker: Optional[ProgressTracker] = None
        self.process: Optional[TranscodeProcess] = None
        self.streams: List[EventStream] = []
        self.done = threading.Event()
        self.cancelled = threading.Event()
        self.launched = False
        self.header_lines = 0
        self.started_clock: Optional[float] = None
        self.last_telemetry = 0.0

class JobHandle:
    """Caller-side reference to one job."""

    def __init__(self, orchestrator: "JobOrchestrator", job_id: str):
        self._orchestrator = orchestrator
        self.job_id = job_id

    def subscribe(self, coalesce: bool = False) -> EventStream:
        return self._orchestrator.subscribe(self.job_id, coalesce=coalesce)

    def cancel(self):
        self._orchestrator.cancel(self.job_id)

    def status(self) -> JobStatus:
        return self._orchestrator.status(self.job_id)

    def wait(self, timeout: Optional[float] = None) -> Optional[TerminalResult]:
        return self._orchestrator.wait(self.job_id, timeout=timeout)

    def __repr__(self) -> str:
        return f"JobHandle(job_id={self.job_id!r})"

class JobOrchestrator:
    def __init__(
        self,
        config: Optional[AppConfig] = None,
        event_bus: Optional[EventBus] = None,
        probe_service: Optional[ProbeService] = None,
        profile_resolver: Optional[ProfileResolver] = None,
        ffmpeg_adapter: Optional[FFmpegAdapter] = None,
        capabilities: Optional[PlatformCapabilities] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or AppConfig()
        general = self.config.general
        self.event_bus = event_bus or EventBus()
        self.probe_service = probe_service or ProbeService(general.ffprobe_bin, timeout=general.probe_timeout)
        self.profile_resolver = profile_resolver or ProfileResolver()
        self.ffmpeg_adapter = ffmpeg_adapter or FFmpegAdapter(general.ffmpeg_bin, debug=general.debug)
        self.logger = logging.getLogger(__name__)

        self._capabilities = capabilities
        self._capabilities_lock = threading.Lock()
        self._clock = clock

        self._jobs: Dict[str, _JobRuntime] = {}
        self._registry_lock = threading.Lock()
        self._shutdown_requested = False
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=general.max_concurrent_jobs, thread_name_prefix="vto-job"
        )

    @property
    def capabilities(self) -> PlatformCapabilities:
        with self._capabilities_lock:
            if self._capabilities is None:
                self._capabilities = resolve_capabilities(self.config.platform, self.config.general.ffmpeg_bin)
            return self._capabilities

    # Public API

    def create(self, request: TranscodeRequest) -> JobHandle:
        """Registers an IDLE job after validating its input synchronously."""
        input_size = self._validate(request)
        job = Job(id=uuid.uuid4().hex, request=request, input_size=input_size)
        with self._registry_lock:
            if self._shutdown_requested:
                raise InvalidState("Orchestrator is shut down")
            self._jobs[job.id] = _JobRuntime(job)
        self.logger.info(f"JOB_CREATED: {job.id} input={request.input_path} mode={self._mode_name(request)}")
        return JobHandle(self, job.id)

    def launch(self, job_id: str) -> JobHandle:
        """Starts an IDLE job on a worker thread."""
        runtime = self._get(job_id)
        with runtime.lock:
            if runtime.launched or runtime.job.state != JobState.IDLE:
                raise InvalidState(f"Job {job_id} already started (state {runtime.job.state.value})")
            with self._registry_lock:
                if self._shutdown_requested:
                    raise InvalidState("Orchestrator is shut down")
                # Stays IDLE until a worker picks it up
                runtime.launched = True
                self._executor.submit(self._run_job, runtime)
        return JobHandle(self, job_id)

    def start(self, request: TranscodeRequest) -> JobHandle:
        """Validates, registers and launches a job. Raises InvalidRequest on bad input."""
        handle = self.create(request)
        return self.launch(handle.job_id)

    def subscribe(self, job_id: str, coalesce: bool = False) -> EventStream:
        """Stream of snapshots ending with the terminal result.

        Late subscribers first get the most recent snapshot; a finished job
        yields its last snapshot and its result.
        """
        runtime = self._get(job_id)
        stream = EventStream(job_id, coalesce=coalesce)
        with runtime.lock:
            if runtime.job.progress is not None:
                stream.push(runtime.job.progress)
            if runtime.job.result is not None:
                stream.push(runtime.job.result)
            else:
                runtime.streams.append(stream)
        return stream

    def cancel(self, job_id: str):
        """Cancels a live job; a no-op for jobs already in a terminal state.

        Returns right away: the CANCELLED result is recorded immediately and the
        process is torn down on a background thread.
        """
        runtime = self._get(job_id)
        with runtime.lock:
            job = runtime.job
            if job.state.is_terminal:
                self.logger.debug(f"JOB_CANCEL: {job_id} already {job.state.value}, ignoring")
                return
            result = TerminalResult(
                outcome=Outcome.CANCELLED,
                input_size=job.input_size,
                elapsed_seconds=self._elapsed(runtime),
            )
            self._finish(runtime, result)
            runtime.cancelled.set()
            process = runtime.process

        if process is not None:
            threading.Thread(
                target=self._teardown, args=(process,), name=f"vto-cancel-{job_id[:8]}", daemon=True
            ).start()

    def status(self, job_id: str) -> JobStatus:
        runtime = self._get(job_id)
        with runtime.lock:
            return self._status_of(runtime.job)

    def jobs(self) -> List[JobStatus]:
        with self._registry_lock:
            runtimes = list(self._jobs.values())
        statuses = []
        for runtime in runtimes:
            with runtime.lock:
                statuses.append(self._status_of(runtime.job))
        return statuses

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[TerminalResult]:
        """Blocks until the job is terminal; None if timeout expires first."""
        runtime = self._get(job_id)
        if not runtime.done.wait(timeout=timeout):
            return None
        return runtime.job.result

    def forget(self, job_id: str):
        """Drops a finished job from the registry. Live jobs raise InvalidState."""
        runtime = self._get(job_id)
        with runtime.lock:
            if not runtime.job.state.is_terminal:
                raise InvalidState(f"Job {job_id} is still {runtime.job.state.value}")
        with self._registry_lock:
            self._jobs.pop(job_id, None)

    def shutdown(self, cancel_running: bool = True, wait: bool = True):
        with self._registry_lock:
            self._shutdown_requested = True
            job_ids = list(self._jobs.keys())
        if cancel_running:
            for job_id in job_ids:
                self.cancel(job_id)
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    # Worker

    def _run_job(self, runtime: _JobRuntime):
        try:
            self._execute(runtime)
        except Exception as e:
            self.logger.exception(f"Exception processing job {runtime.job.id}")
            if runtime.process is not None:
                runtime.process.kill()
            self._finish(runtime, self._failure(runtime, FailureKind.PROCESS_FAILURE, f"Exception: {e}"))

    def _execute(self, runtime: _JobRuntime):
        job = runtime.job
        general = self.config.general

        with runtime.lock:
            if job.state.is_terminal:
                return
            runtime.started_clock = self._clock()
            job.started_at = datetime.now()
            self._set_state(runtime, JobState.PROBING)

        # 1. Probe (failure only disables duration-relative progress)
        duration_ms = self.probe_service.probe(job.request.input_path, cancel_event=runtime.cancelled)
        with runtime.lock:
            if job.state.is_terminal:
                return
            job.duration_ms = duration_ms
            self.event_bus.publish(ProbeFinished(job_id=job.id, duration_ms=duration_ms))

        # 2. Profile & command
        profile = self.profile_resolver.resolve(job.request.mode, self.capabilities)
        output_path = self._output_path(job.request, profile)
        cmd = self.ffmpeg_adapter.build_command(profile, job.request.input_path, output_path)

        # 3. Spawn
        with runtime.lock:
            if job.state.is_terminal:
                return
            job.profile = profile
            job.output_path = output_path
            self._append_log(runtime, f"Mode: {profile.description}")
            self._append_log(runtime, f"Input: {job.request.input_path.name}")
            self._append_log(runtime, f"Output: {output_path.name}")
            if duration_ms is not None:
                self._append_log(runtime, f"Duration: {duration_ms / 1000:.2f}s")
            self._append_log(runtime, f"Command: {' '.join(cmd)}")
            runtime.header_lines = len(job.log)

            output_path.parent.mkdir(parents=True, exist_ok=True)
            if output_path.exists():
                output_path.unlink()

            runtime.tracker = ProgressTracker(
                duration_ms,
                eta_threshold=general.eta_threshold,
                prefer_statistics=general.prefer_statistics,
                clock=self._clock,
            )
            runtime.last_telemetry = self._clock()
            try:
                runtime.process = self.ffmpeg_adapter.spawn(
                    cmd, partial(self._on_log_line, runtime), partial(self._on_statistics, runtime)
                )
            except OSError as e:
                self.logger.error(f"FFMPEG_SPAWN_FAILED: {job.id}: {e}")
                self._finish(runtime, self._failure(runtime, FailureKind.SPAWN_FAILURE, f"Could not start ffmpeg: {e}"))
                return

            self._set_state(runtime, JobState.RUNNING)
            self.event_bus.publish(JobStarted(job_id=job.id, profile=profile))
            self._publish_snapshot(runtime, runtime.tracker.snapshot())

        # 4. Monitor until exit
        self._monitor(runtime)

    def _monitor(self, runtime: _JobRuntime):
        job = runtime.job
        process = runtime.process
        general = self.config.general

        while True:
            returncode = process.wait(timeout=general.poll_interval)
            if returncode is not None:
                break
            with runtime.lock:
                if job.state.is_terminal:
                    # Cancelled; the teardown thread stops the process
                    continue
                idle = self._clock() - runtime.last_telemetry
                if idle <= general.stall_timeout:
                    continue
                self.logger.warning(f"JOB_STALLED: {job.id} no telemetry for {idle:.1f}s, killing pid={process.pid}")
                process.kill()
                result = self._failure(
                    runtime, FailureKind.STALL_TIMEOUT,
                    f"No telemetry received for {idle:.0f}s", exit_code=process.returncode,
                )
                self._finish(runtime, result)

        self.logger.info(f"FFMPEG_END: {job.id} pid={process.pid} returncode={returncode}")
        # Output is only inspected once both channels are drained
        process.join_readers(timeout=general.stall_timeout)
        process.close()
        self._complete(runtime, returncode)

    def _complete(self, runtime: _JobRuntime, returncode: int):
        job = runtime.job
        with runtime.lock:
            if job.state.is_terminal:
                return
            output_path = job.output_path
            output_size = output_path.stat().st_size if output_path and output_path.exists() else None

            if returncode == 0 and output_size:
                elapsed = self._elapsed(runtime)
                speed_ratio = None
                if job.duration_ms and elapsed > 0:
                    speed_ratio = (job.duration_ms / 1000) / elapsed
                result = TerminalResult(
                    outcome=Outcome.SUCCESS,
                    input_size=job.input_size,
                    elapsed_seconds=elapsed,
                    output_path=output_path,
                    output_size=output_size,
                    compression_ratio=compression_ratio(job.input_size, output_size),
                    speed_ratio=speed_ratio,
                )
            elif returncode != 0:
                if returncode < 0:
                    message = f"ffmpeg terminated by signal {-returncode}"
                else:
                    message = f"ffmpeg exited with code {returncode}"
                result = self._failure(runtime, FailureKind.PROCESS_FAILURE, message, exit_code=returncode)
            elif output_size is None:
                result = self._failure(runtime, FailureKind.PROCESS_FAILURE, "ffmpeg succeeded but output file not found", exit_code=0)
            else:
                result = self._failure(runtime, FailureKind.PROCESS_FAILURE, "ffmpeg succeeded but output file is empty", exit_code=0)
            self._finish(runtime, result)

    def _teardown(self, process: TranscodeProcess):
        try:
            process.terminate(grace_period=self.config.general.cancel_grace_period)
        except OSError as e:
            self.logger.warning(f"FFMPEG_TEARDOWN: pid={process.pid} failed: {e}")

    # Telemetry (reader threads)

    def _on_log_line(self, runtime: _JobRuntime, line: str):
        with runtime.lock:
            runtime.last_telemetry = self._clock()
            self._append_log(runtime, line)
            if runtime.job.state != JobState.RUNNING:
                return
            marker = parse_log_line(line)
            if marker is None or runtime.tracker.ignores(marker):
                return
            self._publish_snapshot(runtime, runtime.tracker.update(marker))

    def _on_statistics(self, runtime: _JobRuntime, snapshot: StatisticsSnapshot):
        with runtime.lock:
            runtime.last_telemetry = self._clock()
            if runtime.job.state != JobState.RUNNING:
                return
            marker = parse_statistics(snapshot)
            if marker is None:
                return
            self._publish_snapshot(runtime, runtime.tracker.update(marker))

    # Helpers (callers hold runtime.lock where state is touched)

    def _publish_snapshot(self, runtime: _JobRuntime, snapshot: ProgressSnapshot):
        runtime.job.progress = snapshot
        for stream in runtime.streams:
            stream.push(snapshot)
        self.event_bus.publish(JobProgressUpdated(job_id=runtime.job.id, snapshot=snapshot))

    def _finish(self, runtime: _JobRuntime, result: TerminalResult) -> bool:
        """Records the one and only terminal result of a job."""
        with runtime.lock:
            job = runtime.job
            if job.state.is_terminal:
                return False
            job.result = result
            job.finished_at = datetime.now()
            if result.outcome == Outcome.SUCCESS:
                self._set_state(runtime, JobState.COMPLETED)
            elif result.outcome == Outcome.CANCELLED:
                self._set_state(runtime, JobState.CANCELLED)
            else:
                self._set_state(runtime, JobState.FAILED)

            for stream in runtime.streams:
                stream.push(result)
            runtime.streams.clear()
            runtime.done.set()

            if result.outcome == Outcome.SUCCESS:
                self.logger.info(
                    f"JOB_END: {job.id} status=completed elapsed={result.elapsed_seconds:.2f}s "
                    f"input={result.input_size} output={result.output_size} ratio={result.compression_ratio:.3f}"
                )
                self.event_bus.publish(JobCompleted(job_id=job.id, result=result))
            elif result.outcome == Outcome.CANCELLED:
                self.logger.info(f"JOB_END: {job.id} status=cancelled elapsed={result.elapsed_seconds:.2f}s")
                self.event_bus.publish(JobCancelled(job_id=job.id, result=result))
            else:
                self.logger.error(f"JOB_END: {job.id} status=failed kind={result.failure.kind.value} {result.failure.message}")
                self.event_bus.publish(JobFailed(job_id=job.id, result=result, error_message=result.failure.message))
            return True

    def _failure(self, runtime: _JobRuntime, kind: FailureKind, message: str, exit_code: Optional[int] = None) -> TerminalResult:
        with runtime.lock:
            job = runtime.job
            tail = tuple(job.log[-self.config.general.log_tail_lines:])
            return TerminalResult(
                outcome=Outcome.FAILURE,
                input_size=job.input_size,
                elapsed_seconds=self._elapsed(runtime),
                failure=FailureDiagnostic(
                    kind=kind,
                    message=message,
                    exit_code=exit_code,
                    signal=-exit_code if exit_code is not None and exit_code < 0 else None,
                    log_tail=tail,
                ),
            )

    def _set_state(self, runtime: _JobRuntime, state: JobState):
        old = runtime.job.state
        runtime.job.state = state
        self.logger.info(f"JOB_STATE: {runtime.job.id} {old.value} -> {state.value}")

    def _append_log(self, runtime: _JobRuntime, line: str):
        log = runtime.job.log
        log.append(line)
        # Header lines are kept; only the ffmpeg output after them is bounded
        excess = len(log) - runtime.header_lines - self.config.general.max_log_lines
        if runtime.header_lines and excess > 0:
            del log[runtime.header_lines:runtime.header_lines + excess]
        if self.config.general.debug:
            self.logger.debug(f"FFMPEG[{runtime.job.id[:8]}]: {line}")

    def _elapsed(self, runtime: _JobRuntime) -> float:
        if runtime.started_clock is None:
            return 0.0
        return max(self._clock() - runtime.started_clock, 0.0)

    def _get(self, job_id: str) -> _JobRuntime:
        with self._registry_lock:
            runtime = self._jobs.get(job_id)
        if runtime is None:
            raise NotFound(job_id)
        return runtime

    def _validate(self, request: TranscodeRequest) -> int:
        path = request.input_path
        if not path.exists():
            raise InvalidRequest(f"Input file not found: {path}")
        if not path.is_file():
            raise InvalidRequest(f"Input is not a regular file: {path}")
        if not os.access(path, os.R_OK):
            raise InvalidRequest(f"Input file is not readable: {path}")
        if request.output_path is not None and request.output_path.resolve() == path.resolve():
            raise InvalidRequest(f"Output path must differ from input: {path}")
        return path.stat().st_size

    def _output_path(self, request: TranscodeRequest, profile: CommandProfile) -> Path:
        if request.output_path is not None:
            return request.output_path
        output_dir = self.config.general.output_dir or request.input_path.parent
        return output_dir / f"{request.input_path.stem}_converted.{profile.extension}"

    @staticmethod
    def _mode_name(request: TranscodeRequest) -> str:
        mode = request.mode
        return mode.value if hasattr(mode, "value") else str(mode)

    def _status_of(self, job: Job) -> JobStatus:
        return JobStatus(
            id=job.id,
            state=job.state,
            input_path=job.request.input_path,
            mode=self._mode_name(job.request),
            profile=job.profile.name if job.profile else None,
            output_path=job.output_path,
            duration_ms=job.duration_ms,
            progress=job.progress,
            result=job.result,
        )
