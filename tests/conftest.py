import threading
import pytest
import yaml
from pathlib import Path
from typing import Optional
from vto.config.models import AppConfig, GeneralConfig
from vto.infrastructure.ffmpeg import FFmpegAdapter

class FakeProcess:
    """Stands in for TranscodeProcess; the test decides when it exits."""

    def __init__(self, pid: int = 4242):
        self.pid = pid
        self.returncode: Optional[int] = None
        self.terminated = threading.Event()
        self.killed = False
        self.closed = False
        self._exited = threading.Event()

    def exit(self, code: int):
        if self.returncode is None:
            self.returncode = code
        self._exited.set()

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        if self._exited.wait(timeout):
            return self.returncode
        return None

    def join_readers(self, timeout=None):
        pass

    def terminate(self, grace_period=3.0):
        self.terminated.set()
        self.exit(-15)

    def kill(self):
        self.killed = True
        self.exit(-9)

    def close(self):
        self.closed = True

class FakeFFmpeg:
    """Stands in for FFmpegAdapter and exposes the telemetry callbacks to the test."""

    def __init__(self, spawn_error: Optional[Exception] = None):
        self.spawn_error = spawn_error
        self.process = FakeProcess()
        self.spawned = threading.Event()
        self.output_path: Optional[Path] = None
        self.command = None
        self.on_log_line = None
        self.on_statistics = None
        self._builder = FFmpegAdapter("ffmpeg")

    def build_command(self, profile, input_path, output_path):
        self.output_path = output_path
        self.command = self._builder.build_command(profile, input_path, output_path)
        return self.command

    def spawn(self, cmd, on_log_line, on_statistics):
        if self.spawn_error is not None:
            raise self.spawn_error
        self.on_log_line = on_log_line
        self.on_statistics = on_statistics
        self.spawned.set()
        return self.process

@pytest.fixture
def input_file(tmp_path):
    """A 1000-byte stand-in for a source video."""
    f = tmp_path / "clip.mp4"
    f.write_bytes(b"\0" * 1000)
    return f

@pytest.fixture
def app_config(tmp_path):
    return AppConfig(general=GeneralConfig(poll_interval=0.02, cancel_grace_period=0.1, log_tail_lines=3))

@pytest.fixture
def fake_ffmpeg():
    return FakeFFmpeg()

@pytest.fixture
def vto_yaml(tmp_path):
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "vto.yaml"

    content = {
        'general': {
            'ffmpeg_bin': '/opt/ffmpeg/bin/ffmpeg',
            'probe_timeout': 5,
            'stall_timeout': 30,
            'max_concurrent_jobs': 4,
        },
        'platform': {
            'detect_hardware': False,
            'hardware_encoders': ['nvenc'],
        }
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file
