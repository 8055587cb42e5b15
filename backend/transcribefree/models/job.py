"""Pydantic model for one transcription attempt's progress.

A job is created when the Processing step begins, ticks forward on a
simulated cadence while the full transcription is in flight, and becomes
terminal once it is completed or failed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    """Enum representing the lifecycle of a processing job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProcessingJob(BaseModel):
    """Progress record of a single full transcription."""

    id: str
    file_id: str
    status: JobStatus = JobStatus.PENDING
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    estimated_time_remaining: int = 0
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def mark_completed(self) -> "ProcessingJob":
        return self.model_copy(update={
            "status": JobStatus.COMPLETED,
            "progress": 100.0,
            "estimated_time_remaining": 0,
            "completed_at": _utcnow(),
        })

    def mark_failed(self, error_message: str) -> "ProcessingJob":
        # Progress is kept as-is; a failed job is terminal regardless.
        return self.model_copy(update={
            "status": JobStatus.FAILED,
            "estimated_time_remaining": 0,
            "completed_at": _utcnow(),
            "error_message": error_message[:500],
        })
