"""Client for the remote transcription endpoint.

Failures are classified once, at the HTTP boundary, into exactly one
:class:`ErrorKind`. What happens next depends on the context:

=========  ==================  =========================
kind       preview             full (paid)
=========  ==================  =========================
AUTH       demo transcript     raise, not retryable
NETWORK    demo transcript     raise, retryable
TIMEOUT    demo transcript     raise, retryable
UNKNOWN    demo transcript     raise, retryable
FORMAT     raise               raise, not retryable
=========  ==================  =========================

A preview must never dead-end on ops problems, but a format rejection is the
user's to fix, so it is surfaced everywhere.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError

from ..config import settings
from ..models.transcript import PreviewTranscript, Segment, SpeakerLine, TranscriptionResult
from ..models.upload import PreparedMedia
from ..utils.formatting import format_clock, truncate_words
from . import analytics as analytics_events
from . import validation
from .analytics import AnalyticsClient
from .demo import generate_demo_transcription

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

SUPPORTED_FORMATS_HINT = "MP3, WAV, M4A, AAC, FLAC, MP4, WEBM"

MOV_CODEC_GUIDANCE = (
    "This MOV file uses a codec the transcription service cannot process. This is common with "
    "iPhone/Mac screen recordings, HEVC/H.265 encoded video and proprietary audio codecs. "
    "Try converting it to MP4 with QuickTime or another app, or extract the audio as MP3/WAV."
)
UNSUPPORTED_GUIDANCE = (
    "The transcription service cannot process this file. It may use an unsupported codec, "
    "have no audio track, or be damaged. Try converting it to MP3, WAV or MP4 first."
)
CONVERSION_GUIDANCE = (
    "This format has to be converted before it can be transcribed. "
    f"Convert it to one of {SUPPORTED_FORMATS_HINT} and upload it again."
)

_CREDENTIAL_MARKERS = (
    "api key",
    "api configuration error",
    "authentication",
    "credential",
    "unauthorized",
)


class ErrorKind(str, Enum):
    AUTH = "auth"
    NETWORK = "network"
    FORMAT = "format"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class TranscriptionError(Exception):
    """Base class of the closed family of transcription failures."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    default_retryable: bool = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.status_code = status_code
        self.retryable = self.default_retryable if retryable is None else retryable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "details": self.details,
            "error_type": self.kind.value,
            "retryable": self.retryable,
        }


class AuthError(TranscriptionError):
    kind = ErrorKind.AUTH
    default_retryable = False


class NetworkError(TranscriptionError):
    kind = ErrorKind.NETWORK


class RequestTimeoutError(TranscriptionError):
    kind = ErrorKind.TIMEOUT


class UnknownTranscriptionError(TranscriptionError):
    kind = ErrorKind.UNKNOWN


class FormatError(TranscriptionError):
    kind = ErrorKind.FORMAT
    default_retryable = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        status_code: Optional[int] = None,
        needs_conversion: bool = False,
        is_mov: bool = False,
    ) -> None:
        super().__init__(message, details=details, status_code=status_code)
        self.needs_conversion = needs_conversion
        self.is_mov = is_mov

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(needs_conversion=self.needs_conversion, is_mov=self.is_mov, supported_formats=SUPPORTED_FORMATS_HINT)
        return data


# Every kind must appear here: True falls back to a demo transcript in preview
PREVIEW_FALLBACK: Dict[ErrorKind, bool] = {
    ErrorKind.AUTH: True,
    ErrorKind.NETWORK: True,
    ErrorKind.TIMEOUT: True,
    ErrorKind.UNKNOWN: True,
    ErrorKind.FORMAT: False,
}


def _looks_like_credentials(text: str) -> bool:
    text = text.lower()
    return any(marker in text for marker in _CREDENTIAL_MARKERS)


def _is_mov(media: PreparedMedia) -> bool:
    return media.filename.lower().endswith(".mov") or media.declared_type == "video/quicktime"


def _format_error(message: str, details: Optional[str], status_code: int, body: Dict[str, Any], media: PreparedMedia) -> FormatError:
    needs_conversion = bool(body.get("needsConversion")) or (
        validation.needs_conversion(media.declared_type) and not media.needs_server_conversion
    )
    is_mov = _is_mov(media)
    text = f"{message} {details or ''}".lower()
    if needs_conversion:
        guidance = CONVERSION_GUIDANCE
    elif is_mov and ("codec" in text or "format" in text):
        guidance = MOV_CODEC_GUIDANCE
    else:
        guidance = details or UNSUPPORTED_GUIDANCE
    return FormatError(message, details=guidance, status_code=status_code, needs_conversion=needs_conversion, is_mov=is_mov)


def _classify_response(response: httpx.Response, media: PreparedMedia) -> TranscriptionError:
    """Turn a non-2xx response into exactly one error variant."""
    status_code = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("error") or response.reason_phrase or f"HTTP {status_code}"
    details = body.get("details")
    credential_text = _looks_like_credentials(f"{message} {details or ''}")

    if status_code in (401, 403):
        return AuthError(message, details=details, status_code=status_code)
    if status_code >= 500 and credential_text:
        return AuthError(message, details=details, status_code=status_code)
    if status_code == 408:
        return RequestTimeoutError(message, details=details, status_code=status_code)
    if status_code == 429:
        return NetworkError(message, details=details or "The service is busy. Please wait a few seconds and try again.", status_code=status_code)
    if 400 <= status_code < 500:
        return _format_error(message, details, status_code, body, media)
    return UnknownTranscriptionError(message, details=details, status_code=status_code)


def _classify_exception(exc: Exception) -> TranscriptionError:
    if isinstance(exc, TranscriptionError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return RequestTimeoutError("Request timeout", details="The transcription service did not answer in time.")
    if isinstance(exc, httpx.TransportError):
        return NetworkError("Network connection failed", details=str(exc) or None)
    if isinstance(exc, (ValidationError, ValueError, KeyError, TypeError)):
        return UnknownTranscriptionError("Malformed response from transcription service", details=str(exc))
    return UnknownTranscriptionError(str(exc) or "Unknown transcription error occurred")


def _parse_result(body: Any, is_preview: bool) -> TranscriptionResult:
    if not isinstance(body, dict) or "transcript" not in body:
        raise ValueError("response has no transcript")
    segments = [Segment(**segment) for segment in body.get("segments") or []]
    result = TranscriptionResult(
        transcript=body["transcript"],
        confidence=body.get("confidence") or 0.0,
        processing_time=body.get("processingTime") or 0.0,
        duration=body.get("duration") or 0.0,
        language=body.get("language") or "en",
        segments=segments,
        speaker_count=body.get("speakerCount"),
    )
    if is_preview:
        result = truncate_for_preview(result)
    return result


def truncate_for_preview(result: TranscriptionResult) -> TranscriptionResult:
    """Cut a result to the preview word limit and window."""
    window = settings.PREVIEW_WINDOW_SECONDS
    return result.model_copy(update={
        "transcript": truncate_words(result.transcript, settings.PREVIEW_WORD_LIMIT),
        "segments": [segment for segment in result.segments if segment.start <= window],
    })


def _resolve_failure(
    error: TranscriptionError,
    media: PreparedMedia,
    is_preview: bool,
    rng: Optional[random.Random],
    progress: ProgressCallback,
) -> TranscriptionResult:
    if is_preview and PREVIEW_FALLBACK[error.kind]:
        logger.warning("Preview of %s failed (%s: %s); serving demo transcript", media.filename, error.kind.value, error.message)
        progress(60, "Switching to demo mode...")
        result = generate_demo_transcription(media.filename, is_preview=True, rng=rng)
        progress(100, "Demo transcription complete!")
        return result
    logger.error("Transcription of %s failed (%s, retryable=%s): %s", media.filename, error.kind.value, error.retryable, error.message)
    raise error


def _multipart_fields(media: PreparedMedia, is_preview: bool) -> Dict[str, str]:
    fields = {"isPreview": "true" if is_preview else "false"}
    if media.needs_server_conversion:
        fields["needsMimeConversion"] = "true"
    if media.api_override_type:
        fields["apiMimeType"] = media.api_override_type
    return fields


async def _request_transcription(media: PreparedMedia, is_preview: bool) -> Any:
    if not settings.TRANSCRIBE_URL:
        raise AuthError("API configuration error", details="No transcription service is configured.")

    size = media.size
    if size > settings.MAX_TRANSCRIPTION_SIZE_BYTES:
        check = validation.validate_for_transcription(media.filename, media.declared_type, size)
        raise FormatError("File too large for processing", details=check.error, status_code=413)

    headers = {}
    if settings.TRANSCRIBE_API_KEY:
        headers["Authorization"] = f"Bearer {settings.TRANSCRIBE_API_KEY}"
    timeout = settings.TRANSCRIBE_PREVIEW_TIMEOUT if is_preview else settings.TRANSCRIBE_FULL_TIMEOUT
    payload = await asyncio.to_thread(media.path.read_bytes)
    files = {"file": (media.filename, payload, media.declared_type)}

    async with httpx.AsyncClient(timeout=timeout) as client:
        logger.info("Submitting %s (%d bytes, preview=%s) to %s", media.filename, size, is_preview, settings.TRANSCRIBE_URL)
        response = await client.post(
            settings.TRANSCRIBE_URL,
            files=files,
            data=_multipart_fields(media, is_preview),
            headers=headers,
        )
    if response.is_error:
        raise _classify_response(response, media)
    return response.json()


async def transcribe_audio(
    media: PreparedMedia,
    is_preview: bool = False,
    on_progress: Optional[ProgressCallback] = None,
    rng: Optional[random.Random] = None,
    analytics: Optional[AnalyticsClient] = None,
) -> TranscriptionResult:
    """Transcribe ``media``, applying the preview/full failure policy.

    Raises
    ------
    TranscriptionError
        One of its variants; see the module docstring for when.
    """
    analytics = analytics or analytics_events.analytics
    progress = on_progress or (lambda value, status: None)
    started = time.monotonic()

    analytics.emit(
        analytics_events.TRANSCRIPTION_STARTED,
        file_name=media.filename,
        file_size=media.size,
        is_preview=is_preview,
    )
    progress(10, "Preparing file for transcription...")
    try:
        progress(25, "Uploading to transcription service...")
        body = await _request_transcription(media, is_preview)
        progress(80, "Finalizing transcript...")
        result = _parse_result(body, is_preview)
    except Exception as exc:
        error = _classify_exception(exc)
        analytics.emit(
            analytics_events.TRANSCRIPTION_FAILED,
            file_name=media.filename,
            is_preview=is_preview,
            error_type=error.kind.value,
            error=error.message,
        )
        if error is not exc:
            logger.debug("Classified %s as %s", type(exc).__name__, error.kind.value, exc_info=True)
        return _resolve_failure(error, media, is_preview, rng, progress)

    progress(100, "Transcription complete!")
    analytics.emit(
        analytics_events.TRANSCRIPTION_COMPLETED,
        file_name=media.filename,
        is_preview=is_preview,
        duration=result.duration,
        word_count=result.word_count,
        elapsed_ms=round((time.monotonic() - started) * 1000),
    )
    return result


async def generate_preview_transcript(media: PreparedMedia, **kwargs: Any) -> TranscriptionResult:
    return await transcribe_audio(media, is_preview=True, **kwargs)


async def generate_full_transcript(media: PreparedMedia, **kwargs: Any) -> TranscriptionResult:
    return await transcribe_audio(media, is_preview=False, **kwargs)


def to_preview_transcript(result: TranscriptionResult) -> PreviewTranscript:
    """Project a result for the preview card: percent confidence and speaker lines."""
    if result.segments:
        speakers: List[SpeakerLine] = [
            SpeakerLine(speaker="Speaker 1", text=segment.text.strip(), timestamp=format_clock(segment.start))
            for segment in result.segments
        ]
    else:
        speakers = [SpeakerLine(speaker="Speaker 1", text=result.transcript, timestamp="00:00")]
    return PreviewTranscript(
        text=result.transcript,
        confidence=round(result.confidence * 100),
        speakers=speakers,
        is_demo=result.is_demo,
    )


def format_transcript_with_timestamps(result: TranscriptionResult) -> str:
    """``[MM:SS - MM:SS] text`` blocks, or the bare transcript without segments."""
    if not result.segments:
        return result.transcript
    blocks = [
        f"[{_clock_with_hours(segment.start)} - {_clock_with_hours(segment.end)}] {segment.text.strip()}"
        for segment in result.segments
    ]
    return "\n\n".join(blocks) + "\n"


def _clock_with_hours(seconds: float) -> str:
    total = int(max(0.0, seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"
