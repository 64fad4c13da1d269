from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import FrozenSet, List, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field

class TranscodeMode(str, Enum):
    FAST = "fast"
    STANDARD = "standard"
    COMPRESSED = "compressed"
    HARDWARE = "hardware"

class JobState(str, Enum):
    IDLE = "IDLE"
    PROBING = "PROBING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED)

class Outcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    CANCELLED = "CANCELLED"

class FailureKind(str, Enum):
    PROCESS_FAILURE = "PROCESS_FAILURE"
    STALL_TIMEOUT = "STALL_TIMEOUT"
    SPAWN_FAILURE = "SPAWN_FAILURE"

class TelemetrySource(str, Enum):
    LOG = "log"
    STATISTICS = "statistics"

class TranscodeRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_path: Path
    mode: Union[TranscodeMode, str] = TranscodeMode.STANDARD
    output_path: Optional[Path] = None

class PlatformCapabilities(BaseModel):
    """Hardware encoder families the local ffmpeg can drive."""
    model_config = ConfigDict(frozen=True)

    hardware_encoders: FrozenSet[str] = Field(default_factory=frozenset)

    def has(self, family: str) -> bool:
        return family in self.hardware_encoders

class CommandProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    arguments: Tuple[str, ...]
    extension: str
    container: str
    video_codec: str
    audio_codec: str
    crf: Optional[int] = None
    video_bitrate: Optional[str] = None
    audio_bitrate: Optional[str] = None
    preset: Optional[str] = None
    threads: Optional[int] = None
    video_filter: Optional[str] = None
    # Placed before -i; some hardware encoders need a device opened up front
    input_arguments: Tuple[str, ...] = ()
    overwrite: bool = True
    hardware: bool = False

class TimeMarker(BaseModel):
    """A single elapsed-media-time observation from either telemetry channel."""
    model_config = ConfigDict(frozen=True)

    elapsed_ms: int = Field(ge=0)
    source: TelemetrySource
    size_bytes: Optional[int] = None

class StatisticsSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    time_ms: int
    size_bytes: int = 0
    frame: Optional[int] = None
    fps: Optional[float] = None
    bitrate: Optional[str] = None
    speed: Optional[str] = None

class ProgressSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    fraction: float = Field(ge=0.0, le=1.0)
    processed_ms: int = 0
    duration_ms: Optional[int] = None
    eta_seconds: Optional[float] = None
    size_bytes: Optional[int] = None
    elapsed_seconds: float = 0.0

    @property
    def percent(self) -> float:
        return self.fraction * 100.0

class FailureDiagnostic(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: FailureKind
    message: str
    exit_code: Optional[int] = None
    signal: Optional[int] = None
    log_tail: Tuple[str, ...] = ()

class TerminalResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome: Outcome
    input_size: int
    elapsed_seconds: float
    output_path: Optional[Path] = None
    output_size: Optional[int] = None
    compression_ratio: Optional[float] = None
    speed_ratio: Optional[float] = None
    failure: Optional[FailureDiagnostic] = None

class Job(BaseModel):
    """The unit of work. Mutated only by the orchestrator under the job lock."""

    id: str
    request: TranscodeRequest
    state: JobState = JobState.IDLE
    profile: Optional[CommandProfile] = None
    duration_ms: Optional[int] = None
    output_path: Optional[Path] = None
    input_size: int = 0
    log: List[str] = Field(default_factory=list)
    progress: Optional[ProgressSnapshot] = None
    result: Optional[TerminalResult] = None
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

class JobStatus(BaseModel):
    """Read-only lifecycle snapshot handed out by the orchestrator."""
    model_config = ConfigDict(frozen=True)

    id: str
    state: JobState
    input_path: Path
    mode: str
    profile: Optional[str] = None
    output_path: Optional[Path] = None
    duration_ms: Optional[int] = None
    progress: Optional[ProgressSnapshot] = None
    result: Optional[TerminalResult] = None

def compression_ratio(input_size: int, output_size: int) -> float:
    """Share of the input size saved by the output, e.g. 0.6 for 10 MB -> 4 MB."""
    if input_size <= 0:
        return 0.0
    return (input_size - output_size) / input_size
