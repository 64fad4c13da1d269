import subprocess
import threading
import logging
from pathlib import Path
from typing import Callable, IO, List, Optional
from vto.domain.models import CommandProfile, StatisticsSnapshot
from vto.infrastructure.telemetry import ProgressBlockParser

LogLineCallback = Callable[[str], None]
StatisticsCallback = Callable[[StatisticsSnapshot], None]

class TranscodeProcess:
    """Handle on a running ffmpeg process and its two reader threads."""

    def __init__(self, popen: subprocess.Popen, readers: List[threading.Thread]):
        self._popen = popen
        self._readers = readers
        self.logger = logging.getLogger(__name__)

    @property
    def pid(self) -> int:
        return self._popen.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._popen.returncode

    def poll(self) -> Optional[int]:
        return self._popen.poll()

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Exit code, or None if the process is still running after timeout."""
        try:
            return self._popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def join_readers(self, timeout: Optional[float] = None):
        """Waits until both telemetry channels have been drained."""
        for reader in self._readers:
            reader.join(timeout=timeout)

    def terminate(self, grace_period: float = 3.0):
        """Asks the process to stop, killing it if it outlives the grace period."""
        if self._popen.poll() is not None:
            return
        self.logger.info(f"FFMPEG_TERMINATE: pid={self.pid}")
        try:
            self._popen.terminate()
            self._popen.wait(timeout=grace_period)
        except subprocess.TimeoutExpired:
            self.logger.warning(f"FFMPEG_KILL: pid={self.pid} ignored terminate for {grace_period}s")
            self._popen.kill()
            self._popen.wait()
        except ProcessLookupError:
            pass

    def kill(self):
        if self._popen.poll() is None:
            self.logger.info(f"FFMPEG_KILL: pid={self.pid}")
            self._popen.kill()
            self._popen.wait()

    def close(self):
        """Closes the pipe handles once readers are done with them."""
        for stream in (self._popen.stdout, self._popen.stderr):
            if stream is not None:
                try:
                    stream.close()
                except OSError:
                    pass

class FFmpegAdapter:
    """Wrapper around ffmpeg for profile-driven transcoding."""

    def __init__(self, ffmpeg_bin: str = "ffmpeg", debug: bool = False):
        self.ffmpeg_bin = ffmpeg_bin
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def build_command(self, profile: CommandProfile, input_path: Path, output_path: Path) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        cmd = [
            self.ffmpeg_bin,
            "-hide_banner",
            "-nostdin",
            "-y" if profile.overwrite else "-n",
        ]
        cmd.extend(profile.input_arguments)
        cmd.extend(["-i", str(input_path)])
        cmd.extend(profile.arguments)
        # Structured statistics on stdout, free-text log on stderr
        cmd.extend(["-progress", "pipe:1"])
        cmd.append(str(output_path))
        return cmd

    def spawn(self, cmd: List[str], on_log_line: LogLineCallback, on_statistics: StatisticsCallback) -> TranscodeProcess:
        """Starts ffmpeg and one reader thread per telemetry channel.

        Raises OSError if the executable cannot be started.
        """
        if self.debug:
            self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        process = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            universal_newlines=True,
            errors="replace",
            bufsize=1,
        )
        self.logger.info(f"FFMPEG_START: pid={process.pid}")

        parser = ProgressBlockParser()

        def _on_progress_line(line: str):
            snapshot = parser.feed(line)
            if snapshot is not None:
                on_statistics(snapshot)

        readers = [
            threading.Thread(
                target=self._pump, args=(process.stderr, on_log_line), name=f"ffmpeg-log-{process.pid}", daemon=True
            ),
            threading.Thread(
                target=self._pump, args=(process.stdout, _on_progress_line), name=f"ffmpeg-stats-{process.pid}", daemon=True
            ),
        ]
        for reader in readers:
            reader.start()
        return TranscodeProcess(process, readers)

    def _pump(self, stream: Optional[IO[str]], callback: Callable[[str], None]):
        """Drains one pipe until EOF so ffmpeg never blocks on a full buffer."""
        if stream is None:
            return
        try:
            for raw in stream:
                line = raw.rstrip("\r\n")
                if not line:
                    continue
                try:
                    callback(line)
                except Exception:
                    self.logger.exception(f"Telemetry handler failed for line: {line!r}")
        except ValueError:
            # Pipe closed during teardown
            pass
