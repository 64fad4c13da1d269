from typing import Optional
from pydantic import BaseModel
from .models import CommandProfile, ProgressSnapshot, TerminalResult

class Event(BaseModel):
    """Base class for all domain events."""
    pass

class JobEvent(Event):
    job_id: str

class ProbeFinished(JobEvent):
    duration_ms: Optional[int] = None

class JobStarted(JobEvent):
    profile: CommandProfile

class JobProgressUpdated(JobEvent):
    snapshot: ProgressSnapshot

class JobCompleted(JobEvent):
    result: TerminalResult

class JobFailed(JobEvent):
    result: TerminalResult
    error_message: str

class JobCancelled(JobEvent):
    result: TerminalResult
