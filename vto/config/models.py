from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

KNOWN_HARDWARE_ENCODERS = ("mediacodec", "videotoolbox", "nvenc", "vaapi")

class GeneralConfig(BaseModel):
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    probe_timeout: float = Field(default=10.0, gt=0)
    stall_timeout: float = Field(default=60.0, gt=0)
    cancel_grace_period: float = Field(default=3.0, ge=0)
    poll_interval: float = Field(default=0.5, gt=0)
    eta_threshold: float = Field(default=0.05, ge=0.0, lt=1.0)
    prefer_statistics: bool = True
    log_tail_lines: int = Field(default=20, ge=1)
    max_log_lines: int = Field(default=1000, ge=1)
    max_concurrent_jobs: int = Field(default=2, ge=1)
    output_dir: Optional[Path] = None
    log_dir: Optional[Path] = None
    debug: bool = False

class PlatformConfig(BaseModel):
    detect_hardware: bool = True
    hardware_encoders: List[str] = Field(default_factory=list)

    @field_validator('hardware_encoders')
    @classmethod
    def validate_encoders(cls, v: List[str]) -> List[str]:
        for family in v:
            if family not in KNOWN_HARDWARE_ENCODERS:
                raise ValueError(f"Unknown hardware encoder family {family}. Must be one of: {', '.join(KNOWN_HARDWARE_ENCODERS)}.")
        return v

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    platform: PlatformConfig = Field(default_factory=PlatformConfig)
