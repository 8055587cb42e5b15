from pathlib import Path
from unittest.mock import patch

import ffmpeg
import numpy as np
import pytest

from transcribefree.config import settings
from transcribefree.services import conversion
from transcribefree.services.conversion import ConversionErrorType, ProcessingOptions

MIB = 1024 * 1024
IPHONE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15"
DESKTOP_UA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"


@pytest.fixture
def avi_file(tmp_path: Path) -> Path:
    path = tmp_path / "lecture.avi"
    path.write_bytes(b"RIFF" + b"\x00" * 4092)
    return path


def _pcm(values) -> bytes:
    return np.asarray(values, dtype=np.float32).tobytes()


def test_small_desktop_upload_uses_normal_mode():
    options = conversion.get_processing_options(2 * MIB, DESKTOP_UA)
    assert options.fast_mode is False
    assert options.sample_rate == 44100
    assert options.audio_bitrate == "128k"
    assert options.noise_reduction is True
    assert options.timeout == settings.CONVERSION_TIMEOUT


def test_large_upload_uses_fast_mode():
    options = conversion.get_processing_options(11 * MIB, DESKTOP_UA)
    assert options.fast_mode is True
    assert options.sample_rate == 22050
    assert options.audio_bitrate == "64k"
    assert options.noise_reduction is False
    assert options.timeout == settings.CONVERSION_TIMEOUT_FAST


def test_mobile_user_agent_uses_fast_mode():
    assert conversion.get_processing_options(1 * MIB, IPHONE_UA).fast_mode is True
    assert conversion.is_mobile_user_agent("Opera Mini/8.0")
    assert not conversion.is_mobile_user_agent(None)


def test_local_processing_preflight():
    with patch.object(conversion, "ffmpeg_available", return_value=True):
        assert conversion.can_process_locally(50 * MIB) == (True, None)
        ok, reason = conversion.can_process_locally(50 * MIB + 1)
        assert ok is False and "max 50MB" in reason
    with patch.object(conversion, "ffmpeg_available", return_value=False):
        ok, reason = conversion.can_process_locally(1024)
        assert ok is False and "not available" in reason


def test_pass_through_tags_mov_without_reencoding(uploaded_factory):
    uploaded = uploaded_factory("clip.mov", "video/quicktime")
    result = conversion.create_pass_through(uploaded)
    assert result.success is True
    assert result.media.filename == "clip_converted.mov"
    assert result.media.needs_server_conversion is True
    assert result.media.api_override_type == "video/mp4"
    assert result.media.path == uploaded.path
    assert result.media.converted is False
    assert result.fallback_used is True


def test_prepare_passes_quicktime_through_when_probe_is_inconclusive(uploaded_factory):
    uploaded = uploaded_factory("clip.mov", "video/quicktime")
    with patch.object(conversion, "check_playback_compatibility", return_value=None), \
         patch.object(conversion, "run_bounded") as mock_run:
        result = conversion.prepare_for_transcription(uploaded)
    mock_run.assert_not_called()
    assert result.success is True
    assert result.media.needs_server_conversion is True


def test_prepare_rejects_quicktime_without_audio(uploaded_factory):
    uploaded = uploaded_factory("screen.mov", "video/quicktime")
    with patch.object(conversion, "check_playback_compatibility", return_value=False):
        result = conversion.prepare_for_transcription(uploaded)
    assert result.success is False
    assert result.error_type is ConversionErrorType.CODEC


def test_prepare_hands_supported_files_over_unchanged(uploaded_factory):
    uploaded = uploaded_factory("meeting.mp3", "audio/mpeg")
    result = conversion.prepare_for_transcription(uploaded)
    assert result.success is True
    assert result.media.path == uploaded.path
    assert result.media.declared_type == "audio/mpeg"
    assert result.media.needs_server_conversion is False


def test_playback_probe_detects_audio_stream(tmp_path):
    path = tmp_path / "clip.mov"
    path.write_bytes(b"\x00" * 200)
    with patch.object(conversion, "probe_media", return_value={"streams": [{"codec_type": "video"}, {"codec_type": "audio"}]}):
        assert conversion.check_playback_compatibility(path) is True
    with patch.object(conversion, "probe_media", return_value={"streams": [{"codec_type": "video"}]}):
        assert conversion.check_playback_compatibility(path) is False
    with patch.object(conversion, "probe_media", side_effect=FileNotFoundError("ffprobe")):
        assert conversion.check_playback_compatibility(path) is None


def test_normalize_peak_scales_to_target():
    samples = np.array([0.1, -0.4, 0.2], dtype=np.float32)
    normalized = conversion.normalize_peak(samples)
    assert float(np.max(np.abs(normalized))) == pytest.approx(0.8)
    assert normalized[1] == pytest.approx(-0.8)


def test_normalize_peak_leaves_silence_alone():
    silence = np.zeros(8, dtype=np.float32)
    assert np.array_equal(conversion.normalize_peak(silence), silence)


def test_convert_audio_format_normalizes_and_encodes(avi_file, staging_dirs):
    _, converted_dir = staging_dirs
    decoded = _pcm([0.0, 0.25, -0.5, 0.1])
    with patch.object(conversion, "ffmpeg_available", return_value=True), \
         patch.object(conversion, "run_bounded", side_effect=[(decoded, b"", False), (b"", b"", False)]) as mock_run:
        result = conversion.convert_audio_format(avi_file, "lecture.avi", "video/x-msvideo", ProcessingOptions())

    assert result.success is True
    assert result.media.filename == "lecture_converted.mp3"
    assert result.media.declared_type == "audio/mpeg"
    assert result.media.converted is True
    assert result.media.truncated is False
    assert result.media.path.parent == converted_dir

    encoded_input = mock_run.call_args_list[1].kwargs["input_bytes"]
    samples = np.frombuffer(encoded_input, dtype=np.float32)
    assert float(np.max(np.abs(samples))) == pytest.approx(0.8)


def test_decode_timeout_keeps_partial_audio(avi_file, staging_dirs):
    options = conversion.get_processing_options(11 * MIB)
    with patch.object(conversion, "ffmpeg_available", return_value=True), \
         patch.object(conversion, "run_bounded", side_effect=[(_pcm([0.2] * 16) + b"\x01\x02", b"", True), (b"", b"", False)]) as mock_run:
        result = conversion.convert_audio_format(avi_file, "lecture.avi", "video/x-msvideo", options)

    assert result.success is True
    assert result.media.truncated is True
    assert result.optimized_for_speed is True
    assert mock_run.call_args_list[0].kwargs["timeout"] == settings.CONVERSION_TIMEOUT_FAST
    assert len(mock_run.call_args_list[1].kwargs["input_bytes"]) == 16 * 4
    assert mock_run.call_args_list[1].kwargs["timeout"] == settings.CONVERSION_TIMEOUT_FAST


def test_encode_timeout_fails_and_discards_output(avi_file, staging_dirs):
    _, converted_dir = staging_dirs
    with patch.object(conversion, "ffmpeg_available", return_value=True), \
         patch.object(conversion, "run_bounded", side_effect=[(_pcm([0.2] * 16), b"", False), (b"", b"", True)]) as mock_run:
        result = conversion.convert_audio_format(avi_file, "lecture.avi", "video/x-msvideo", ProcessingOptions(timeout=4))

    assert result.success is False
    assert result.media is None
    assert result.error_type is ConversionErrorType.UNKNOWN
    assert "4 seconds" in result.error
    assert mock_run.call_args_list[1].kwargs["timeout"] == 4
    assert list(converted_dir.iterdir()) == []


def test_nothing_decoded_is_reported_as_corruption(avi_file, staging_dirs):
    with patch.object(conversion, "ffmpeg_available", return_value=True), \
         patch.object(conversion, "run_bounded", return_value=(b"", b"", True)):
        result = conversion.convert_audio_format(avi_file, "lecture.avi", "video/x-msvideo")
    assert result.success is False
    assert result.error_type is ConversionErrorType.CORRUPTION


def test_ffmpeg_failure_is_classified(avi_file, staging_dirs):
    error = ffmpeg.Error("ffmpeg", b"", b"Decoder (codec none) not found for input stream #0:1")
    with patch.object(conversion, "ffmpeg_available", return_value=True), \
         patch.object(conversion, "run_bounded", side_effect=error):
        result = conversion.convert_audio_format(avi_file, "lecture.avi", "video/x-msvideo")
    assert result.success is False
    assert result.error_type is ConversionErrorType.CODEC
    assert avi_file.exists()


def test_memory_error_is_classified(avi_file, staging_dirs):
    with patch.object(conversion, "ffmpeg_available", return_value=True), \
         patch.object(conversion, "run_bounded", side_effect=MemoryError()):
        result = conversion.convert_audio_format(avi_file, "lecture.avi", "video/x-msvideo")
    assert result.error_type is ConversionErrorType.MEMORY


def test_conversion_refused_without_ffmpeg(avi_file):
    with patch.object(conversion, "ffmpeg_available", return_value=False):
        result = conversion.convert_audio_format(avi_file, "lecture.avi", "video/x-msvideo")
    assert result.success is False
    assert result.error_type is ConversionErrorType.CODEC


@pytest.mark.parametrize(
    "message,expected",
    [
        ("moov atom not found", ConversionErrorType.CORRUPTION),
        ("Invalid data found when processing input", ConversionErrorType.CODEC),
        ("Cannot allocate memory", ConversionErrorType.MEMORY),
        ("Connection refused", ConversionErrorType.NETWORK),
        ("something odd happened", ConversionErrorType.UNKNOWN),
    ],
)
def test_classify_conversion_error(message, expected):
    assert conversion.classify_conversion_error(message) is expected


def test_guidance_has_dedicated_mov_codec_text():
    mov = conversion.conversion_guidance(ConversionErrorType.CODEC, "clip.mov")
    other = conversion.conversion_guidance(ConversionErrorType.CODEC, "clip.avi")
    assert "MP4" in mov and "QuickTime" in mov
    assert mov != other
