import logging
import re
import subprocess
from typing import Any, Dict, List, Set
from vto.config.models import PlatformConfig
from vto.domain.models import PlatformCapabilities
from vto.infrastructure.profiles import HARDWARE_VARIANTS

logger = logging.getLogger(__name__)

# Encoder name suffix -> capability family
_ENCODER_FAMILIES = {
    "_mediacodec": "mediacodec",
    "_videotoolbox": "videotoolbox",
    "_nvenc": "nvenc",
    "_vaapi": "vaapi",
}

_ENCODER_LINE = re.compile(r"^\s*V[\w.]{5}\s+(\S+)")

# One tiny synthetic frame is enough to find out whether the device answers
TEST_SOURCE = "color=s=64x64:d=0.1"

def parse_encoder_list(output: str) -> Set[str]:
    """Extracts hardware families from `ffmpeg -encoders` output (H.264 encoders only).

    This only says what ffmpeg was built with; see verify_encoder.
    """
    families: Set[str] = set()
    for line in output.splitlines():
        match = _ENCODER_LINE.match(line)
        if not match:
            continue
        name = match.group(1)
        if not name.startswith("h264_"):
            continue
        for suffix, family in _ENCODER_FAMILIES.items():
            if name.endswith(suffix):
                families.add(family)
    return families

def _variant_for(family: str) -> Dict[str, Any]:
    for variant in HARDWARE_VARIANTS["hardware"]:
        if variant["capability"] == family:
            return variant
    raise KeyError(family)

def build_test_encode(ffmpeg_bin: str, family: str) -> List[str]:
    """One-frame encode to a null muxer with the same encoder setup a job would use."""
    variant = _variant_for(family)
    cmd = [ffmpeg_bin, "-hide_banner", "-nostdin"]
    cmd.extend(variant.get("input_arguments", ()))
    cmd.extend(["-f", "lavfi", "-i", TEST_SOURCE, "-frames:v", "1"])
    if variant.get("video_filter"):
        cmd.extend(["-vf", variant["video_filter"]])
    cmd.extend(["-c:v", variant["video_codec"], "-f", "null", "-"])
    return cmd

def verify_encoder(ffmpeg_bin: str, family: str, timeout: float = 10.0) -> bool:
    """True when a test encode with the family's encoder exits 0."""
    cmd = build_test_encode(ffmpeg_bin, family)
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Test encode for {family} failed: {e}")
        return False
    if result.returncode != 0:
        last_line = (result.stderr or "").strip().splitlines()[-1:] or [""]
        logger.info(f"Hardware encoder {family} is built in but unusable (exit code {result.returncode}): {last_line[0]}")
        return False
    return True

def detect_capabilities(ffmpeg_bin: str = "ffmpeg", timeout: float = 10.0) -> PlatformCapabilities:
    """Finds hardware families that are both built into ffmpeg and able to encode here.

    Any failure means no hardware.
    """
    try:
        result = subprocess.run(
            [ffmpeg_bin, "-hide_banner", "-encoders"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Capability detection failed: {e}")
        return PlatformCapabilities()

    listed = parse_encoder_list(result.stdout)
    families = {family for family in sorted(listed) if verify_encoder(ffmpeg_bin, family, timeout)}
    logger.info(f"Detected hardware encoders: {sorted(families) or 'none'} (built in: {sorted(listed) or 'none'})")
    return PlatformCapabilities(hardware_encoders=frozenset(families))

def resolve_capabilities(platform: PlatformConfig, ffmpeg_bin: str = "ffmpeg") -> PlatformCapabilities:
    """Explicit configuration wins over detection."""
    if platform.hardware_encoders:
        return PlatformCapabilities(hardware_encoders=frozenset(platform.hardware_encoders))
    if platform.detect_hardware:
        return detect_capabilities(ffmpeg_bin)
    return PlatformCapabilities()
