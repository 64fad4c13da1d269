import pytest
from vto.domain.models import PlatformCapabilities, TranscodeMode
from vto.infrastructure.profiles import ProfileResolver

NO_HW = PlatformCapabilities()

@pytest.fixture
def resolver():
    return ProfileResolver()

@pytest.mark.parametrize("mode", list(TranscodeMode) + ["unknown-mode", "", None])
def test_resolver_is_total(resolver, mode):
    profile = resolver.resolve(mode, NO_HW)
    assert profile is not None
    assert profile.arguments
    assert profile.description
    assert profile.overwrite is True

def test_unknown_mode_uses_default_profile(resolver):
    profile = resolver.resolve("turbo", NO_HW)
    assert profile.name == "default"
    assert profile.description == "Default WebM conversion"
    assert profile.video_codec == "libvpx-vp9"
    assert profile.extension == "webm"

def test_mode_strings_are_case_insensitive(resolver):
    assert resolver.resolve("Compressed", NO_HW).name == "compressed"

def test_standard_profile_arguments(resolver):
    profile = resolver.resolve(TranscodeMode.STANDARD, NO_HW)
    args = list(profile.arguments)
    assert args[args.index("-c:v") + 1] == "libvpx-vp9"
    assert args[args.index("-crf") + 1] == "30"
    assert args[args.index("-b:v") + 1] == "0"
    assert args[args.index("-b:a") + 1] == "128k"
    assert args[args.index("-c:a") + 1] == "libopus"
    assert args[args.index("-f") + 1] == "webm"

def test_compressed_profile(resolver):
    profile = resolver.resolve(TranscodeMode.COMPRESSED, NO_HW)
    assert profile.crf == 40
    assert profile.audio_bitrate == "96k"
    assert profile.preset == "slower"

def test_fast_profile_thread_hint(resolver):
    profile = resolver.resolve(TranscodeMode.FAST, NO_HW)
    assert profile.video_codec == "libvpx"
    assert profile.threads == 0
    assert "-threads" in profile.arguments

class TestHardwareVariants:
    """Hardware mode selection by platform capability."""

    def test_no_capability_falls_back_to_software(self, resolver):
        profile = resolver.resolve(TranscodeMode.HARDWARE, NO_HW)
        assert profile.name == "software_fallback"
        assert profile.description == "Fast WebM (Software fallback)"
        assert profile.hardware is False

    def test_mediacodec(self, resolver):
        caps = PlatformCapabilities(hardware_encoders=frozenset({"mediacodec"}))
        profile = resolver.resolve("hardware", caps)
        assert profile.video_codec == "h264_mediacodec"
        assert profile.hardware is True
        assert profile.extension == "mp4"
        assert profile.audio_codec == "aac"

    def test_preference_order(self, resolver):
        caps = PlatformCapabilities(hardware_encoders=frozenset({"vaapi", "videotoolbox"}))
        profile = resolver.resolve(TranscodeMode.HARDWARE, caps)
        assert profile.video_codec == "h264_videotoolbox"

    def test_vaapi_opens_device_and_uploads_frames(self, resolver):
        caps = PlatformCapabilities(hardware_encoders=frozenset({"vaapi"}))
        profile = resolver.resolve(TranscodeMode.HARDWARE, caps)
        assert profile.input_arguments == ("-vaapi_device", "/dev/dri/renderD128")
        args = list(profile.arguments)
        assert args[args.index("-vf") + 1] == "format=nv12,hwupload"
        assert args[-2:] == ["-f", "mp4"]

    def test_capabilities_ignored_for_software_modes(self, resolver):
        caps = PlatformCapabilities(hardware_encoders=frozenset({"nvenc"}))
        assert resolver.resolve(TranscodeMode.STANDARD, caps) == resolver.resolve(TranscodeMode.STANDARD, NO_HW)

def test_resolve_is_deterministic(resolver):
    assert resolver.resolve("fast") == resolver.resolve("fast")

def test_available_profiles_lists_every_mode(resolver):
    profiles = resolver.available_profiles(NO_HW)
    assert list(profiles) == [m.value for m in TranscodeMode]
