import pytest
from pathlib import Path
from pydantic import ValidationError
from vto.domain.models import (
    JobState, ProgressSnapshot, TranscodeMode, TranscodeRequest, compression_ratio
)

def test_compression_ratio():
    assert compression_ratio(10_000_000, 4_000_000) == pytest.approx(0.6)

def test_compression_ratio_growth_is_negative():
    assert compression_ratio(1000, 1500) == pytest.approx(-0.5)

def test_compression_ratio_empty_input():
    assert compression_ratio(0, 100) == 0.0

def test_request_is_immutable():
    request = TranscodeRequest(input_path=Path("clip.mp4"), mode=TranscodeMode.FAST)
    with pytest.raises(ValidationError):
        request.mode = TranscodeMode.STANDARD

def test_request_accepts_unknown_mode_string():
    request = TranscodeRequest(input_path="clip.mp4", mode="whatever")
    assert request.mode == "whatever"
    assert request.input_path == Path("clip.mp4")

@pytest.mark.parametrize("state,terminal", [
    (JobState.IDLE, False),
    (JobState.PROBING, False),
    (JobState.RUNNING, False),
    (JobState.COMPLETED, True),
    (JobState.FAILED, True),
    (JobState.CANCELLED, True),
])
def test_terminal_states(state, terminal):
    assert state.is_terminal is terminal

def test_progress_fraction_bounds():
    with pytest.raises(ValidationError):
        ProgressSnapshot(fraction=1.2)
    assert ProgressSnapshot(fraction=0.5).percent == 50.0
