# Namespace for the pipeline's Pydantic models.
from .job import JobStatus, ProcessingJob
from .transcript import PreviewTranscript, Segment, SpeakerLine, TranscriptionResult
from .upload import (
    DurationEstimate,
    DurationSource,
    FileClass,
    PreparedMedia,
    UploadedFile,
    ValidationReason,
    ValidationResult,
)

__all__ = [
    "DurationEstimate",
    "DurationSource",
    "FileClass",
    "PreparedMedia",
    "JobStatus",
    "PreviewTranscript",
    "ProcessingJob",
    "Segment",
    "SpeakerLine",
    "TranscriptionResult",
    "UploadedFile",
    "ValidationReason",
    "ValidationResult",
]
