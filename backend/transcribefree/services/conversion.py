"""Format conversion shim run before transcription.

Three outcomes for a staged upload:

* QuickTime ``.mov`` files pass through untouched; the transcription request
  tells the server to treat them as ``video/mp4``.
* Other conversion-required types are decoded locally by FFmpeg into float32
  PCM, peak-normalised with numpy and re-encoded. Decoding is bounded by a
  timeout; when it expires the decoder is killed and the audio decoded so far
  is kept.
* Directly supported files are handed over as they are.

Nothing here raises for a bad file: every path ends in a
:class:`ConversionResult`, and the original upload is never modified.
"""

from __future__ import annotations

import logging
import re
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import ffmpeg
import numpy as np
from pydantic import BaseModel

from ..config import settings
from ..models.upload import PreparedMedia, UploadedFile
from ..utils import storage
from ..utils.ffmpeg import (
    ProbeTimeoutError,
    ffmpeg_available,
    probe_media,
    run_bounded,
    stderr_text,
)
from . import validation

logger = logging.getLogger(__name__)

MOBILE_USER_AGENT = re.compile(r"Android|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.IGNORECASE)

PEAK_TARGET = 0.8
HIGHPASS_CUTOFF_HZ = 100
PCM_FORMAT = "f32le"

# target format -> (encoder, content type)
ENCODERS = {
    "mp3": ("libmp3lame", "audio/mpeg"),
    "wav": ("pcm_s16le", "audio/wav"),
}

ProgressCallback = Callable[[str], None]


class ConversionErrorType(str, Enum):
    CODEC = "codec"
    MEMORY = "memory"
    CORRUPTION = "corruption"
    NETWORK = "network"
    UNKNOWN = "unknown"


class ProcessingOptions(BaseModel):
    fast_mode: bool = False
    sample_rate: int = 44100
    audio_bitrate: str = "128k"
    noise_reduction: bool = True
    volume_normalization: bool = True
    target_format: str = "mp3"
    timeout: float = 10.0


class ConversionResult(BaseModel):
    success: bool
    media: Optional[PreparedMedia] = None
    original_format: str
    target_format: str
    processing_time: int = 0  # milliseconds
    error: Optional[str] = None
    error_type: Optional[ConversionErrorType] = None
    optimized_for_speed: bool = False
    fallback_used: bool = False


def is_mobile_user_agent(user_agent: str | None) -> bool:
    return bool(user_agent and MOBILE_USER_AGENT.search(user_agent))


def get_processing_options(size: int, user_agent: str | None = None) -> ProcessingOptions:
    """Pick conversion settings for a file of ``size`` bytes.

    Large files and mobile clients get fast mode: a lower sample rate and
    bitrate, no noise suppression and a shorter decode window.
    """
    if size > settings.FAST_MODE_THRESHOLD_BYTES or is_mobile_user_agent(user_agent):
        return ProcessingOptions(
            fast_mode=True,
            sample_rate=22050,
            audio_bitrate="64k",
            noise_reduction=False,
            timeout=settings.CONVERSION_TIMEOUT_FAST,
        )
    return ProcessingOptions(timeout=settings.CONVERSION_TIMEOUT)


def can_process_locally(size: int) -> tuple[bool, str | None]:
    """Preflight for local re-encoding: FFmpeg must exist and the file must fit."""
    if not ffmpeg_available():
        return False, "Audio conversion is not available on this server"
    if size > settings.LOCAL_CONVERSION_MAX_BYTES:
        limit_mb = settings.LOCAL_CONVERSION_MAX_BYTES // (1024 * 1024)
        return False, f"File too large for local processing (max {limit_mb}MB)"
    return True, None


def converted_name(filename: str, extension: str) -> str:
    return f"{Path(filename).stem}_converted.{extension}"


def check_playback_compatibility(path: Path, timeout: float | None = None) -> bool | None:
    """Quick probe for a decodable audio track.

    ``True``/``False`` when ffprobe answered, ``None`` when it could not tell
    (timeout, missing binary, unreadable container).
    """
    timeout = settings.PLAYBACK_PROBE_TIMEOUT if timeout is None else timeout
    try:
        metadata = probe_media(path, timeout=timeout)
    except (ffmpeg.Error, ProbeTimeoutError, OSError, ValueError) as exc:
        logger.debug("Playback probe inconclusive for %s: %s", path.name, exc)
        return None
    return any(stream.get("codec_type") == "audio" for stream in metadata.get("streams", []))


def create_pass_through(uploaded: UploadedFile) -> ConversionResult:
    """Tag a QuickTime file for server-side handling without re-encoding it."""
    media = PreparedMedia(
        path=uploaded.path,
        filename=converted_name(uploaded.name, "mov"),
        declared_type=uploaded.content_type,
        api_override_type="video/mp4",
        needs_server_conversion=True,
    )
    logger.info("Passing %s through for server-side conversion as %s", uploaded.name, media.filename)
    return ConversionResult(
        success=True,
        media=media,
        original_format=uploaded.content_type,
        target_format=uploaded.content_type,
        optimized_for_speed=True,
        fallback_used=True,
    )


def normalize_peak(samples: np.ndarray, target: float = PEAK_TARGET) -> np.ndarray:
    """Scale ``samples`` so the loudest one sits at ``target``. Silence is left alone."""
    if samples.size == 0:
        return samples
    peak = float(np.max(np.abs(samples)))
    if peak <= 0 or not np.isfinite(peak):
        return samples
    return (samples * (target / peak)).astype(np.float32)


_CORRUPTION_MARKERS = ("moov atom not found", "corrupt", "truncat", "invalid frame", "end of file", "error while decoding")
_CODEC_MARKERS = ("codec", "decoder", "invalid data found", "could not find", "does not contain any stream", "unknown format", "not supported")
_MEMORY_MARKERS = ("cannot allocate memory", "out of memory")
_NETWORK_MARKERS = ("connection refused", "connection reset", "network is unreachable")


def classify_conversion_error(message: str) -> ConversionErrorType:
    """Map FFmpeg diagnostics onto a :class:`ConversionErrorType`."""
    text = (message or "").lower()
    if any(marker in text for marker in _MEMORY_MARKERS):
        return ConversionErrorType.MEMORY
    if any(marker in text for marker in _NETWORK_MARKERS):
        return ConversionErrorType.NETWORK
    if any(marker in text for marker in _CORRUPTION_MARKERS):
        return ConversionErrorType.CORRUPTION
    if any(marker in text for marker in _CODEC_MARKERS):
        return ConversionErrorType.CODEC
    return ConversionErrorType.UNKNOWN


def conversion_guidance(error_type: ConversionErrorType | None, filename: str) -> str:
    """User-facing advice for a failed conversion."""
    is_mov = filename.lower().endswith(".mov")
    if error_type is ConversionErrorType.CODEC:
        if is_mov:
            return (
                "This MOV file uses a codec we cannot read. Export it as MP4 "
                "(QuickTime: File > Export As) or extract the audio as MP3, then upload again."
            )
        return "This file uses an unsupported codec. Convert it to MP3, WAV or MP4 and upload again."
    if error_type is ConversionErrorType.MEMORY:
        return "The file is too large to process. Compress it or upload a shorter recording."
    if error_type is ConversionErrorType.CORRUPTION:
        return "The file appears to be damaged. Check that it plays in other apps, then upload it again."
    if error_type is ConversionErrorType.NETWORK:
        return "A connection problem interrupted processing. Please try again."
    return "Something went wrong while preparing your file. Try a different format such as MP3, WAV or MP4."


def _failure(
    content_type: str,
    target_format: str,
    started: float,
    error: str,
    error_type: ConversionErrorType,
    options: ProcessingOptions | None = None,
) -> ConversionResult:
    return ConversionResult(
        success=False,
        original_format=content_type,
        target_format=target_format,
        processing_time=round((time.monotonic() - started) * 1000),
        error=error,
        error_type=error_type,
        optimized_for_speed=bool(options and options.fast_mode),
    )


def _decode_stream(path: Path, options: ProcessingOptions):
    audio = ffmpeg.input(str(path)).audio
    if options.noise_reduction:
        # single-pole high-pass to remove rumble below speech
        audio = audio.filter("highpass", f=HIGHPASS_CUTOFF_HZ, p=1)
    return ffmpeg.output(audio, "pipe:", format=PCM_FORMAT, acodec="pcm_f32le", ac=1, ar=options.sample_rate)


def _encode_stream(target: Path, options: ProcessingOptions, encoder: str):
    kwargs = {"acodec": encoder, "ar": options.sample_rate}
    if encoder == "libmp3lame":
        kwargs["audio_bitrate"] = options.audio_bitrate
    pcm = ffmpeg.input("pipe:", format=PCM_FORMAT, ac=1, ar=options.sample_rate)
    return ffmpeg.output(pcm, str(target), **kwargs)


def convert_audio_format(
    path: Path,
    filename: str,
    content_type: str,
    options: ProcessingOptions | None = None,
    on_progress: ProgressCallback | None = None,
) -> ConversionResult:
    """Re-encode ``path`` into a format the transcriber accepts.

    The decoded signal is written to a new file under the converted-media
    directory; the caller owns that file (``media.converted`` is set).
    """
    options = options or ProcessingOptions()
    started = time.monotonic()
    target_format = options.target_format
    progress = on_progress or (lambda message: None)

    if target_format not in ENCODERS:
        return _failure(content_type, target_format, started, f"Unsupported target format '{target_format}'", ConversionErrorType.CODEC, options)
    encoder, target_type = ENCODERS[target_format]

    size = path.stat().st_size
    ok, reason = can_process_locally(size)
    if not ok:
        logger.warning("Local conversion refused for %s: %s", filename, reason)
        return _failure(content_type, target_format, started, reason, ConversionErrorType.CODEC, options)

    target: Path | None = None
    try:
        progress("Decoding audio...")
        pcm, _, truncated = run_bounded(_decode_stream(path, options), timeout=options.timeout)
        usable = len(pcm) - len(pcm) % 4
        samples = np.frombuffer(pcm[:usable], dtype=np.float32)
        if samples.size == 0:
            return _failure(content_type, target_format, started, "No audio could be decoded from the file", ConversionErrorType.CORRUPTION, options)
        if truncated:
            logger.warning(
                "Decoding %s was stopped after %.1fs; keeping %.1fs of audio",
                filename, options.timeout, samples.size / options.sample_rate,
            )

        progress("Processing (fast mode)..." if options.fast_mode else "Processing audio...")
        if options.volume_normalization:
            samples = normalize_peak(samples)

        progress("Encoding final audio...")
        target = storage.staging_path_for(f"{Path(filename).stem}.{target_format}", storage.CONVERTED_DIR)
        _, _, encode_timed_out = run_bounded(
            _encode_stream(target, options, encoder),
            input_bytes=samples.astype(np.float32).tobytes(),
            timeout=options.timeout,
        )
        if encode_timed_out:
            # a killed encoder leaves an unterminated file
            storage.release_path(target)
            logger.error("Encoding %s did not finish within %.1fs", filename, options.timeout)
            return _failure(
                content_type, target_format, started,
                f"Encoding did not finish within {options.timeout:g} seconds",
                ConversionErrorType.UNKNOWN, options,
            )
    except MemoryError:
        storage.release_path(target)
        logger.error("Ran out of memory converting %s", filename)
        return _failure(content_type, target_format, started, "Not enough memory to process this file", ConversionErrorType.MEMORY, options)
    except ffmpeg.Error as exc:
        storage.release_path(target)
        details = stderr_text(exc).strip()
        logger.error("FFmpeg failed converting %s: %s", filename, details)
        error_type = classify_conversion_error(details)
        return _failure(content_type, target_format, started, details or "Audio conversion failed", error_type, options)
    except OSError as exc:
        storage.release_path(target)
        logger.error("Could not run FFmpeg for %s: %s", filename, exc, exc_info=True)
        return _failure(content_type, target_format, started, str(exc), classify_conversion_error(str(exc)), options)
    except Exception as exc:
        storage.release_path(target)
        logger.error("Unexpected error converting %s: %s", filename, exc, exc_info=True)
        return _failure(content_type, target_format, started, str(exc) or "Unknown processing error", ConversionErrorType.UNKNOWN, options)

    media = PreparedMedia(
        path=target,
        filename=converted_name(filename, target_format),
        declared_type=target_type,
        converted=True,
        truncated=truncated,
    )
    elapsed = round((time.monotonic() - started) * 1000)
    logger.info("Converted %s to %s in %d ms (truncated=%s)", filename, media.filename, elapsed, truncated)
    return ConversionResult(
        success=True,
        media=media,
        original_format=content_type,
        target_format=target_format,
        processing_time=elapsed,
        optimized_for_speed=options.fast_mode,
    )


def prepare_for_transcription(
    uploaded: UploadedFile,
    options: ProcessingOptions | None = None,
    on_progress: ProgressCallback | None = None,
) -> ConversionResult:
    """Turn an accepted upload into the payload sent to the transcriber."""
    if validation.should_pass_through(uploaded.name, uploaded.content_type):
        if check_playback_compatibility(uploaded.path) is False:
            started = time.monotonic()
            return _failure(uploaded.content_type, "video/mp4", started, "The file has no audio track to transcribe", ConversionErrorType.CODEC)
        return create_pass_through(uploaded)

    if validation.needs_conversion(uploaded.content_type):
        options = options or get_processing_options(uploaded.size)
        return convert_audio_format(uploaded.path, uploaded.name, uploaded.content_type, options, on_progress)

    return ConversionResult(
        success=True,
        media=PreparedMedia.from_upload(uploaded),
        original_format=uploaded.content_type,
        target_format=uploaded.content_type,
    )
