import logging
from pathlib import Path
from typing import Optional
import yaml
from vto.config.models import AppConfig

logger = logging.getLogger(__name__)

def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Loads AppConfig from a YAML file; a missing file yields defaults."""
    if config_path is None or not Path(config_path).exists():
        logger.debug(f"Config file {config_path} not found, using defaults")
        return AppConfig()

    with open(config_path, "r") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping, got {type(data).__name__}")

    return AppConfig(**data)
