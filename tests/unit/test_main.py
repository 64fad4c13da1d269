import yaml
from typer.testing import CliRunner
from vto.main import app

runner = CliRunner()

def write_config(tmp_path, content):
    conf_file = tmp_path / "vto.yaml"
    with open(conf_file, 'w') as f:
        yaml.dump(content, f)
    return conf_file

def test_profiles_with_declared_hardware(tmp_path):
    conf_file = write_config(tmp_path, {'platform': {'detect_hardware': False}})

    result = runner.invoke(app, ["profiles", "--config", str(conf_file), "--hw", "nvenc"])

    assert result.exit_code == 0
    assert "Hardware encoders: nvenc" in result.output

def test_profiles_invalid_config(tmp_path):
    conf_file = write_config(tmp_path, {'general': {'probe_timeout': 0}})

    result = runner.invoke(app, ["profiles", "--config", str(conf_file)])

    assert result.exit_code == 2

def test_transcode_invalid_config(tmp_path):
    conf_file = write_config(tmp_path, {'platform': {'hardware_encoders': ['quicksync']}})
    clip = tmp_path / "clip.mp4"
    clip.write_bytes(b"\0" * 10)

    result = runner.invoke(app, ["transcode", str(clip), "--config", str(conf_file)])

    assert result.exit_code == 2
