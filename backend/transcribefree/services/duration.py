"""Media duration estimation: ``ffprobe`` first, file-size heuristic second."""

from __future__ import annotations

import logging
import math
from pathlib import Path

import ffmpeg

from ..config import settings
from ..models.upload import DurationEstimate, DurationSource
from ..utils.ffmpeg import ProbeTimeoutError, probe_media, stderr_text

logger = logging.getLogger(__name__)

AUDIO_BYTES_PER_MINUTE = 128 * 1024
VIDEO_BYTES_PER_MINUTE = 2 * 1024 * 1024


def estimate_from_size(size: int, content_type: str | None) -> DurationEstimate:
    """Byte-size heuristic; unknown types use the audio rate. Never below one minute."""
    rate = VIDEO_BYTES_PER_MINUTE if (content_type or "").startswith("video/") else AUDIO_BYTES_PER_MINUTE
    minutes = max(1, round(size / rate))
    return DurationEstimate(minutes=minutes, seconds=None, source=DurationSource.HEURISTIC)


def _probed_seconds(metadata: dict) -> float | None:
    candidates = [metadata.get("format", {}).get("duration")]
    candidates.extend(stream.get("duration") for stream in metadata.get("streams", []))
    for value in candidates:
        try:
            seconds = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(seconds) and seconds > 0:
            return seconds
    return None


def estimate_duration(
    path: Path,
    content_type: str | None,
    size: int,
    timeout: float | None = None,
) -> DurationEstimate:
    """Estimate the duration of a staged media file.

    Audio and video files are probed with ``ffprobe``; a finite, positive
    duration is rounded up to whole minutes while the exact seconds are kept.
    Any probe failure (error, timeout, missing binary, unusable duration)
    falls back to :func:`estimate_from_size`. This function never raises for
    a bad file.
    """
    content_type = (content_type or "").lower()
    timeout = settings.PROBE_TIMEOUT if timeout is None else timeout

    if not (content_type.startswith("audio/") or content_type.startswith("video/")):
        estimate = estimate_from_size(size, content_type)
        logger.info("Unknown media type '%s' for %s, size-based estimate: %d min", content_type, path.name, estimate.minutes)
        return estimate

    try:
        metadata = probe_media(path, timeout=timeout)
    except ffmpeg.Error as exc:
        logger.warning("ffprobe failed for %s: %s", path.name, stderr_text(exc).strip())
    except ProbeTimeoutError as exc:
        logger.warning("%s", exc)
    except (FileNotFoundError, OSError) as exc:
        logger.error("Could not run ffprobe for %s: %s", path.name, exc)
    except ValueError as exc:
        logger.warning("ffprobe returned unreadable metadata for %s: %s", path.name, exc)
    else:
        seconds = _probed_seconds(metadata)
        if seconds is not None:
            minutes = max(1, math.ceil(seconds / 60))
            logger.info("Probed duration of %s: %.2f seconds = %d minutes", path.name, seconds, minutes)
            return DurationEstimate(minutes=minutes, seconds=seconds, source=DurationSource.PROBE)
        logger.warning("ffprobe reported no usable duration for %s", path.name)

    estimate = estimate_from_size(size, content_type)
    logger.info("Using fallback duration estimate for %s: %d minutes", path.name, estimate.minutes)
    return estimate
