"""Pydantic models for files accepted into the pipeline."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ..config import settings


class ValidationReason(str, Enum):
    """Structured reason codes attached to a rejected file."""

    FORBIDDEN = "forbidden"
    TOO_SMALL = "too_small"
    TOO_LARGE = "too_large"
    UNSUPPORTED = "unsupported"


class FileClass(str, Enum):
    """Coarse classification of an incoming file."""

    DIRECTLY_SUPPORTED = "directly_supported"
    NEEDS_CONVERSION = "needs_conversion"
    FORBIDDEN = "forbidden"
    TOO_SMALL = "too_small"
    TOO_LARGE = "too_large"
    UNSUPPORTED = "unsupported"


class ValidationResult(BaseModel):
    """Outcome of the file-acceptability checks.

    A rejected file always carries a human-readable ``error``.
    """

    is_valid: bool
    error: Optional[str] = None
    reason: Optional[ValidationReason] = None

    @model_validator(mode="after")
    def _error_required_when_invalid(self) -> "ValidationResult":
        if not self.is_valid and not self.error:
            raise ValueError("an invalid ValidationResult must carry an error message")
        return self

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def reject(cls, reason: ValidationReason, error: str) -> "ValidationResult":
        return cls(is_valid=False, error=error, reason=reason)


class DurationSource(str, Enum):
    PROBE = "probe"
    HEURISTIC = "heuristic"


class DurationEstimate(BaseModel):
    """Estimated media length.

    ``minutes`` is always a whole number rounded up (display and ETA), while
    ``seconds`` keeps the probed fractional value when one is available.
    """

    minutes: int = Field(ge=1)
    seconds: Optional[float] = None
    source: DurationSource = DurationSource.HEURISTIC


class UploadedFile(BaseModel):
    """A file accepted into the pipeline together with its derived fields."""

    id: str
    path: Path
    name: str
    size: int
    content_type: str
    duration_minutes: int = Field(ge=1)
    duration_seconds: Optional[float] = None
    duration_source: DurationSource = DurationSource.HEURISTIC
    cost: float
    preview_url: Optional[str] = None

    @model_validator(mode="after")
    def _cost_not_below_minimum(self) -> "UploadedFile":
        if self.cost < settings.MINIMUM_CHARGE:
            raise ValueError(f"cost {self.cost} is below the minimum charge of {settings.MINIMUM_CHARGE}")
        return self

    @property
    def is_video(self) -> bool:
        return self.content_type.startswith("video/")

    @property
    def extension(self) -> str:
        return Path(self.name).suffix.lower()

    def public_dict(self) -> dict:
        """JSON-safe projection without the server-side staging path."""
        return self.model_dump(mode="json", exclude={"path"})


class PreparedMedia(BaseModel):
    """The payload handed to the transcription client.

    Carries the hints the transcription endpoint needs explicitly instead of
    tagging the file object: when ``needs_server_conversion`` is set, the
    server presents the payload to the transcriber as ``api_override_type``.
    """

    path: Path
    filename: str
    declared_type: str
    api_override_type: Optional[str] = None
    needs_server_conversion: bool = False
    converted: bool = False  # a new file produced by local re-encoding
    truncated: bool = False  # re-encode was force-stopped and kept partial audio

    @property
    def size(self) -> int:
        return self.path.stat().st_size

    @classmethod
    def from_upload(cls, uploaded: "UploadedFile") -> "PreparedMedia":
        return cls(path=uploaded.path, filename=uploaded.name, declared_type=uploaded.content_type)
