class TranscodeError(Exception):
    """Base class for errors raised at the orchestrator API boundary."""

class InvalidRequest(TranscodeError):
    """The request cannot be accepted (missing or unreadable input)."""

class InvalidState(TranscodeError):
    """The job is not in a state that allows the requested operation."""

class NotFound(TranscodeError):
    """No job is registered under the given id."""

    def __init__(self, job_id: str):
        super().__init__(f"Unknown job id: {job_id}")
        self.job_id = job_id
