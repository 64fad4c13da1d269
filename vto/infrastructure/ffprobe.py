import logging
import subprocess
import threading
import time
from pathlib import Path
from typing import Optional
from vto.infrastructure.telemetry import parse_duration

class ProbeService:
    """Wrapper around an inspection-only ffprobe run to extract media duration."""

    def __init__(self, ffprobe_bin: str = "ffprobe", timeout: float = 10.0, poll_interval: float = 0.1):
        self.ffprobe_bin = ffprobe_bin
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.logger = logging.getLogger(__name__)

    def _build_command(self, file_path: Path):
        return [self.ffprobe_bin, "-hide_banner", str(file_path)]

    def probe(self, file_path: Path, cancel_event: Optional[threading.Event] = None) -> Optional[int]:
        """Duration in milliseconds, or None when it cannot be determined.

        Failure to probe never raises: the job continues with indeterminate
        progress. The exit status is ignored, only the Duration token counts.
        Setting ``cancel_event`` kills ffprobe and returns None.
        """
        cmd = self._build_command(file_path)
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except OSError as e:
            self.logger.warning(f"PROBE: {file_path.name} could not run {self.ffprobe_bin}: {e}")
            return None

        deadline = time.monotonic() + self.timeout
        output = None
        try:
            while output is None:
                if cancel_event is not None and cancel_event.is_set():
                    self.logger.info(f"PROBE: {file_path.name} cancelled")
                    return None
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self.logger.warning(f"PROBE: {file_path.name} timed out after {self.timeout}s")
                    return None
                try:
                    output, _ = process.communicate(timeout=min(self.poll_interval, remaining))
                except subprocess.TimeoutExpired:
                    continue
        finally:
            if process.poll() is None:
                process.kill()
                process.communicate()

        duration_ms = parse_duration(output or "")
        if duration_ms is None:
            self.logger.warning(f"PROBE: {file_path.name} no duration found (exit code {process.returncode})")
        else:
            self.logger.info(f"PROBE: {file_path.name} duration={duration_ms}ms")
        return duration_ms
