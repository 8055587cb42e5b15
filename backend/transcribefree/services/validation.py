"""File-acceptability checks.

The tables below are configuration, not protocol: extending them does not
change any pipeline logic. Every check returns a :class:`ValidationResult`;
nothing in this module raises for a bad file.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..config import settings
from ..models.upload import FileClass, ValidationReason, ValidationResult

logger = logging.getLogger(__name__)

SUPPORTED_AUDIO_TYPES = frozenset({
    "audio/mpeg",  # MP3
    "audio/mp3",
    "audio/wav",
    "audio/wave",
    "audio/x-wav",
    "audio/mp4",
    "audio/m4a",
    "audio/aac",
    "audio/ogg",
    "audio/webm",
    "audio/flac",
    "audio/x-flac",
})

# Video containers the transcriber ingests directly
SUPPORTED_VIDEO_TYPES = frozenset({
    "video/mp4",
    "video/mpeg",
    "video/webm",
    "video/ogg",
})

CONVERSION_REQUIRED_VIDEO_TYPES = frozenset({
    "video/quicktime",  # .mov
    "video/x-msvideo",  # .avi
    "video/x-ms-wmv",  # .wmv
})

CONVERSION_REQUIRED_AUDIO_TYPES = frozenset({
    "audio/x-aiff",  # .aiff
    "audio/aiff",
    "audio/x-ms-wma",  # .wma
})

DIRECTLY_SUPPORTED_TYPES = SUPPORTED_AUDIO_TYPES | SUPPORTED_VIDEO_TYPES
CONVERSION_REQUIRED_TYPES = CONVERSION_REQUIRED_VIDEO_TYPES | CONVERSION_REQUIRED_AUDIO_TYPES
ALL_SUPPORTED_TYPES = DIRECTLY_SUPPORTED_TYPES | CONVERSION_REQUIRED_TYPES

SUPPORTED_EXTENSIONS = frozenset({
    ".mp3", ".wav", ".m4a", ".aac", ".ogg", ".webm", ".flac",
    ".mp4", ".mov", ".avi",
})

# Documents and code: always a user mistake, never a format limitation
FORBIDDEN_EXTENSIONS = frozenset({
    ".json", ".txt", ".js", ".html", ".css", ".md", ".pdf", ".doc", ".docx",
})

FORMAT_HINT = "Please upload audio files (MP3, WAV, M4A, AAC, FLAC) or video files (MP4, MOV, AVI)."


def file_extension(filename: str) -> str:
    return Path(filename).suffix.lower()


def _size_mb(size: int) -> int:
    return round(size / (1024 * 1024))


def validate_file(
    filename: str,
    content_type: str | None,
    size: int,
    max_size: int | None = None,
) -> ValidationResult:
    """Check an uploaded file's metadata against the supported-format tables.

    Rules, in order of precedence: forbidden extension, too small, too large,
    supported content type or extension.
    """
    content_type = (content_type or "").lower()
    max_size = settings.MAX_UPLOAD_SIZE_BYTES if max_size is None else max_size
    ext = file_extension(filename)

    if ext in FORBIDDEN_EXTENSIONS:
        return ValidationResult.reject(
            ValidationReason.FORBIDDEN,
            f'Cannot transcribe "{ext}" files. This appears to be a document or code file. '
            "Please upload audio or video files only.",
        )

    if size < settings.MIN_FILE_SIZE_BYTES:
        return ValidationResult.reject(
            ValidationReason.TOO_SMALL,
            f"File is too small ({size} bytes). It appears to be empty or corrupted. "
            "Please upload a valid audio or video file.",
        )

    if size > max_size:
        limit = "2GB" if max_size >= 1024 ** 3 else f"{_size_mb(max_size)}MB"
        return ValidationResult.reject(
            ValidationReason.TOO_LARGE,
            f"File size ({_size_mb(size)}MB) exceeds the {limit} limit. "
            "Please compress your file or upload a smaller one.",
        )

    if content_type not in ALL_SUPPORTED_TYPES and ext not in SUPPORTED_EXTENSIONS:
        label = ext or "(no extension)"
        return ValidationResult.reject(
            ValidationReason.UNSUPPORTED,
            f'Unsupported file format "{label}". {FORMAT_HINT}',
        )

    return ValidationResult.ok()


def validate_for_transcription(filename: str, content_type: str | None, size: int) -> ValidationResult:
    """Same rules with the stricter ceiling applied before handoff to the transcriber."""
    result = validate_file(filename, content_type, size, max_size=settings.MAX_TRANSCRIPTION_SIZE_BYTES)
    if result.reason is ValidationReason.TOO_LARGE:
        return ValidationResult.reject(
            ValidationReason.TOO_LARGE,
            f"File too large ({_size_mb(size)}MB). The transcription service has a 25MB limit. "
            "Please compress your file or trim it to a shorter duration.",
        )
    return result


EXTENSION_TYPES = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",  # m4a is an mp4 container
    ".aac": "audio/aac",
    ".ogg": "audio/ogg",
    ".webm": "audio/webm",
    ".flac": "audio/flac",
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
}


def effective_content_type(filename: str, content_type: str | None) -> str:
    """Declared type when recognised, otherwise the type implied by the extension.

    Browsers often send ``application/octet-stream`` (or nothing) for media
    they cannot identify.
    """
    declared = (content_type or "").lower()
    if declared in ALL_SUPPORTED_TYPES:
        return declared
    return EXTENSION_TYPES.get(file_extension(filename), declared or "application/octet-stream")


def needs_conversion(content_type: str | None) -> bool:
    return (content_type or "").lower() in CONVERSION_REQUIRED_TYPES


def should_pass_through(filename: str, content_type: str | None) -> bool:
    """QuickTime ``.mov`` files are usually already acceptable; defer to the server."""
    return (content_type or "").lower() == "video/quicktime" and file_extension(filename) == ".mov"


def classify_file(filename: str, content_type: str | None, size: int) -> FileClass:
    result = validate_file(filename, content_type, size)
    if not result.is_valid:
        return FileClass(result.reason.value)
    if needs_conversion(content_type):
        return FileClass.NEEDS_CONVERSION
    return FileClass.DIRECTLY_SUPPORTED
