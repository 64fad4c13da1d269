"""Parsing of the two ffmpeg telemetry channels.

The free-text log channel (stderr) carries ``time=HH:MM:SS.cc`` on its
periodic status lines. The structured channel (stdout, ``-progress pipe:1``)
carries blocks of ``key=value`` lines closed by ``progress=continue|end``.
Neither parser orders observations across channels; that is left to the
progress tracker.
"""
import re
from typing import Dict, Optional
from vto.domain.models import StatisticsSnapshot, TelemetrySource, TimeMarker

TIME_REGEX = re.compile(r"time=(\d+):(\d{2}):(\d{2})\.(\d{2})")
DURATION_REGEX = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2})\.(\d{2})")

def timestamp_to_ms(hours: str, minutes: str, seconds: str, centis: str) -> int:
    """HH, MM, SS and hundredths of a second to milliseconds."""
    return (int(hours) * 3600 + int(minutes) * 60 + int(seconds)) * 1000 + int(centis) * 10

def parse_duration(output: str) -> Optional[int]:
    """Finds the first ``Duration: HH:MM:SS.cc`` token, in milliseconds."""
    if not output:
        return None
    match = DURATION_REGEX.search(output)
    if not match:
        return None
    return timestamp_to_ms(*match.groups())

def parse_log_line(line: str) -> Optional[TimeMarker]:
    """Time marker from a log line; most lines have none."""
    if not line:
        return None
    match = TIME_REGEX.search(line)
    if not match:
        return None
    return TimeMarker(elapsed_ms=timestamp_to_ms(*match.groups()), source=TelemetrySource.LOG)

def parse_statistics(snapshot: StatisticsSnapshot) -> Optional[TimeMarker]:
    """Time marker from a statistics snapshot, only when time has advanced past zero."""
    if snapshot.time_ms <= 0:
        return None
    return TimeMarker(
        elapsed_ms=snapshot.time_ms,
        source=TelemetrySource.STATISTICS,
        size_bytes=max(snapshot.size_bytes, 0),
    )

def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None

def _to_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value.strip())
    except ValueError:
        return None

class ProgressBlockParser:
    """Accumulates ``-progress`` key/value lines into StatisticsSnapshots.

    One instance per process; fed from a single reader thread.
    """

    def __init__(self):
        self._fields: Dict[str, str] = {}

    def feed(self, line: str) -> Optional[StatisticsSnapshot]:
        line = line.strip()
        if "=" not in line:
            return None
        key, value = line.split("=", 1)
        key = key.strip()
        if key != "progress":
            self._fields[key] = value.strip()
            return None

        fields, self._fields = self._fields, {}
        # out_time_ms is reported in microseconds by ffmpeg as well
        time_us = _to_int(fields.get("out_time_us"))
        if time_us is None:
            time_us = _to_int(fields.get("out_time_ms"))
        return StatisticsSnapshot(
            time_ms=(time_us or 0) // 1000,
            size_bytes=_to_int(fields.get("total_size")) or 0,
            frame=_to_int(fields.get("frame")),
            fps=_to_float(fields.get("fps")),
            bitrate=fields.get("bitrate"),
            speed=fields.get("speed"),
        )
