import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import ffmpeg
import pytest

from transcribefree.models.upload import DurationSource
from transcribefree.services import duration
from transcribefree.utils.ffmpeg import ProbeTimeoutError, probe_media

MIB = 1024 * 1024


@pytest.fixture
def media_path(tmp_path: Path) -> Path:
    path = tmp_path / "clip.mov"
    path.write_bytes(b"\x00" * 2048)
    return path


def test_probe_duration_rounds_up_and_keeps_seconds(media_path):
    with patch.object(duration, "probe_media", return_value={"format": {"duration": "5.0"}}) as mock_probe:
        estimate = duration.estimate_duration(media_path, "video/quicktime", 5 * MIB)
    mock_probe.assert_called_once()
    assert estimate.minutes == 1
    assert estimate.seconds == pytest.approx(5.0)
    assert estimate.source is DurationSource.PROBE


def test_stream_duration_used_when_format_has_none(media_path):
    metadata = {"format": {}, "streams": [{"codec_type": "audio", "duration": "125.4"}]}
    with patch.object(duration, "probe_media", return_value=metadata):
        estimate = duration.estimate_duration(media_path, "audio/mpeg", 1000)
    assert estimate.minutes == 3


@pytest.mark.parametrize("value", ["N/A", "inf", "0", None])
def test_unusable_probe_duration_falls_back(media_path, value):
    with patch.object(duration, "probe_media", return_value={"format": {"duration": value}}):
        estimate = duration.estimate_duration(media_path, "audio/mpeg", 5 * MIB)
    assert estimate.source is DurationSource.HEURISTIC
    assert estimate.minutes == 40


@pytest.mark.parametrize(
    "error",
    [
        ffmpeg.Error("ffprobe", b"", b"moov atom not found"),
        ProbeTimeoutError("ffprobe timed out"),
        FileNotFoundError("ffprobe"),
    ],
)
def test_probe_failures_fall_back_to_heuristic(media_path, error):
    with patch.object(duration, "probe_media", side_effect=error):
        estimate = duration.estimate_duration(media_path, "video/quicktime", 4 * MIB)
    assert estimate.source is DurationSource.HEURISTIC
    assert estimate.minutes == 2  # 2 MiB per minute of video


def test_unknown_types_are_not_probed(media_path):
    with patch.object(duration, "probe_media") as mock_probe:
        estimate = duration.estimate_duration(media_path, "application/octet-stream", 256 * 1024)
    mock_probe.assert_not_called()
    assert estimate.minutes == 2  # audio rate


def test_heuristic_never_below_one_minute():
    assert duration.estimate_from_size(100, "audio/mpeg").minutes == 1
    assert duration.estimate_from_size(5 * MIB, "audio/mpeg").minutes == 40


def test_probe_media_kills_hung_ffprobe(media_path):
    process = MagicMock()
    process.communicate.side_effect = [subprocess.TimeoutExpired("ffprobe", 1), (b"", b"")]
    with patch("subprocess.Popen", return_value=process):
        with pytest.raises(ProbeTimeoutError):
            probe_media(media_path, timeout=1)
    process.kill.assert_called_once()


def test_probe_media_raises_ffmpeg_error_on_failure(media_path):
    process = MagicMock()
    process.communicate.return_value = (b"", b"Invalid data found when processing input")
    process.returncode = 1
    with patch("subprocess.Popen", return_value=process):
        with pytest.raises(ffmpeg.Error) as excinfo:
            probe_media(media_path, timeout=1)
    assert b"Invalid data" in excinfo.value.stderr


def test_probe_media_parses_json(media_path):
    process = MagicMock()
    process.communicate.return_value = (b'{"format": {"duration": "12.5"}}', b"")
    process.returncode = 0
    with patch("subprocess.Popen", return_value=process):
        assert probe_media(media_path, timeout=1) == {"format": {"duration": "12.5"}}
