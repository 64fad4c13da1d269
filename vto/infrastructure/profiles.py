"""Declarative transcoding profiles and the pure resolver over them.

Each mode maps to a row of encoder parameters. Modes that can use a hardware
encoder list their variants in preference order, keyed by the capability
flag that enables them, and name a software fallback row used when none of
the flags is present.
"""
from typing import Any, Dict, List, Optional, Union
from vto.domain.models import CommandProfile, PlatformCapabilities, TranscodeMode

DEFAULT_PROFILE = "default"

PROFILE_TABLE: Dict[str, Dict[str, Any]] = {
    "fast": {
        "description": "Fast WebM (VP8 + Vorbis, Optimized)",
        "video_codec": "libvpx",
        "crf": 30,
        "video_bitrate": "1M",
        "audio_codec": "libvorbis",
        "preset": "ultrafast",
        "threads": 0,
        "container": "webm",
    },
    "standard": {
        "description": "Standard WebM (VP9 + Opus)",
        "video_codec": "libvpx-vp9",
        "crf": 30,
        "video_bitrate": "0",
        "audio_codec": "libopus",
        "audio_bitrate": "128k",
        "container": "webm",
    },
    "compressed": {
        "description": "Compressed WebM (High compression)",
        "video_codec": "libvpx-vp9",
        "crf": 40,
        "video_bitrate": "0",
        "audio_codec": "libopus",
        "audio_bitrate": "96k",
        "preset": "slower",
        "container": "webm",
    },
    "software_fallback": {
        "description": "Fast WebM (Software fallback)",
        "video_codec": "libvpx",
        "crf": 30,
        "video_bitrate": "1M",
        "audio_codec": "libvorbis",
        "preset": "ultrafast",
        "threads": 0,
        "container": "webm",
    },
    DEFAULT_PROFILE: {
        "description": "Default WebM conversion",
        "video_codec": "libvpx-vp9",
        "crf": 30,
        "video_bitrate": "0",
        "audio_codec": "libopus",
        "audio_bitrate": "128k",
        "container": "webm",
    },
}

VAAPI_DEVICE = "/dev/dri/renderD128"

# H.264 hardware encoders cannot be muxed into WebM, so they target mp4
HARDWARE_VARIANTS: Dict[str, List[Dict[str, Any]]] = {
    "hardware": [
        {
            "capability": "mediacodec",
            "description": "Hardware H.264 (Android MediaCodec)",
            "video_codec": "h264_mediacodec",
            "video_bitrate": "2M",
            "audio_codec": "aac",
            "container": "mp4",
        },
        {
            "capability": "videotoolbox",
            "description": "Hardware H.264 (VideoToolbox)",
            "video_codec": "h264_videotoolbox",
            "video_bitrate": "2M",
            "audio_codec": "aac",
            "container": "mp4",
        },
        {
            "capability": "nvenc",
            "description": "Hardware H.264 (NVIDIA NVENC)",
            "video_codec": "h264_nvenc",
            "video_bitrate": "2M",
            "audio_codec": "aac",
            "container": "mp4",
        },
        {
            "capability": "vaapi",
            "description": "Hardware H.264 (VA-API)",
            "video_codec": "h264_vaapi",
            "input_arguments": ["-vaapi_device", VAAPI_DEVICE],
            "video_filter": "format=nv12,hwupload",
            "video_bitrate": "2M",
            "audio_codec": "aac",
            "container": "mp4",
        },
    ],
}

SOFTWARE_FALLBACKS: Dict[str, str] = {
    "hardware": "software_fallback",
}

def _normalize_mode(mode: Union[TranscodeMode, str, None]) -> Optional[str]:
    if isinstance(mode, TranscodeMode):
        return mode.value
    if isinstance(mode, str):
        key = mode.strip().lower()
        if key in {m.value for m in TranscodeMode}:
            return key
    return None

def _render_arguments(row: Dict[str, Any]) -> List[str]:
    """Turns a table row into ffmpeg arguments (everything between input and output)."""
    args = ["-c:v", row["video_codec"]]
    if row.get("crf") is not None:
        args.extend(["-crf", str(row["crf"])])
    if row.get("video_bitrate") is not None:
        args.extend(["-b:v", row["video_bitrate"]])
    if row.get("audio_bitrate") is not None:
        args.extend(["-b:a", row["audio_bitrate"]])
    args.extend(["-c:a", row["audio_codec"]])
    if row.get("preset") is not None:
        args.extend(["-preset", row["preset"]])
    if row.get("threads") is not None:
        args.extend(["-threads", str(row["threads"])])
    if row.get("video_filter") is not None:
        args.extend(["-vf", row["video_filter"]])
    args.extend(["-f", row["container"]])
    return args

def _build_profile(name: str, row: Dict[str, Any], hardware: bool = False) -> CommandProfile:
    return CommandProfile(
        name=name,
        description=row["description"],
        arguments=tuple(_render_arguments(row)),
        extension=row["container"],
        container=row["container"],
        video_codec=row["video_codec"],
        audio_codec=row["audio_codec"],
        crf=row.get("crf"),
        video_bitrate=row.get("video_bitrate"),
        audio_bitrate=row.get("audio_bitrate"),
        preset=row.get("preset"),
        threads=row.get("threads"),
        video_filter=row.get("video_filter"),
        input_arguments=tuple(row.get("input_arguments", ())),
        overwrite=True,
        hardware=hardware,
    )

class ProfileResolver:
    """Maps a requested mode and platform capabilities to a CommandProfile.

    Total: unknown modes resolve to the ``default`` profile, hardware modes
    without a matching capability resolve to their software fallback.
    """

    def resolve(self, mode: Union[TranscodeMode, str, None], capabilities: Optional[PlatformCapabilities] = None) -> CommandProfile:
        capabilities = capabilities or PlatformCapabilities()
        key = _normalize_mode(mode)
        if key is None:
            return _build_profile(DEFAULT_PROFILE, PROFILE_TABLE[DEFAULT_PROFILE])

        if key in HARDWARE_VARIANTS:
            for variant in HARDWARE_VARIANTS[key]:
                if capabilities.has(variant["capability"]):
                    return _build_profile(f"{key}:{variant['capability']}", variant, hardware=True)
            fallback = SOFTWARE_FALLBACKS[key]
            return _build_profile(fallback, PROFILE_TABLE[fallback])

        return _build_profile(key, PROFILE_TABLE[key])

    def available_profiles(self, capabilities: Optional[PlatformCapabilities] = None) -> Dict[str, CommandProfile]:
        """Resolved profile for every enumerated mode, in declaration order."""
        return {mode.value: self.resolve(mode, capabilities) for mode in TranscodeMode}
