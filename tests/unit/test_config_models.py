import pytest
from pathlib import Path
from pydantic import ValidationError
from vto.config.loader import load_config
from vto.config.models import AppConfig, GeneralConfig, PlatformConfig

def test_valid_config():
    data = {
        "general": {
            "ffmpeg_bin": "ffmpeg",
            "probe_timeout": 5,
            "stall_timeout": 45,
            "max_concurrent_jobs": 3,
            "output_dir": "/tmp/out",
        },
        "platform": {
            "detect_hardware": False,
            "hardware_encoders": ["videotoolbox"],
        }
    }
    config = AppConfig(**data)
    assert config.general.max_concurrent_jobs == 3
    assert config.general.output_dir == Path("/tmp/out")
    assert config.platform.hardware_encoders == ["videotoolbox"]

def test_config_defaults():
    config = AppConfig()
    assert config.general.probe_timeout == 10.0
    assert config.general.stall_timeout == 60.0
    assert config.general.eta_threshold == 0.05
    assert config.general.prefer_statistics is True
    assert config.general.max_log_lines == 1000
    assert config.platform.detect_hardware is True

@pytest.mark.parametrize("field,value", [
    ("probe_timeout", 0),
    ("stall_timeout", -1),
    ("max_concurrent_jobs", 0),
    ("eta_threshold", 1.5),
    ("log_tail_lines", 0),
    ("max_log_lines", 0),
])
def test_invalid_general_values(field, value):
    with pytest.raises(ValidationError):
        GeneralConfig(**{field: value})

def test_invalid_hardware_family():
    with pytest.raises(ValidationError):
        PlatformConfig(hardware_encoders=["quicksync"])

def test_load_config(vto_yaml):
    config = load_config(vto_yaml)
    assert config.general.ffmpeg_bin == "/opt/ffmpeg/bin/ffmpeg"
    assert config.general.stall_timeout == 30
    assert config.general.max_concurrent_jobs == 4
    assert config.platform.hardware_encoders == ["nvenc"]

def test_load_config_missing_file(tmp_path):
    config = load_config(tmp_path / "nope.yaml")
    assert config == AppConfig()

def test_load_config_empty_file(tmp_path):
    f = tmp_path / "empty.yaml"
    f.write_text("")
    assert load_config(f) == AppConfig()

def test_load_config_rejects_non_mapping(tmp_path):
    f = tmp_path / "list.yaml"
    f.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_config(f)
