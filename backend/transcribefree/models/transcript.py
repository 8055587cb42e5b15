"""Pydantic models for transcripts and their UI-facing projections."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class Segment(BaseModel):
    """A timed piece of transcript text, in seconds."""

    start: float = Field(ge=0.0)
    end: float = Field(ge=0.0)
    text: str

    @model_validator(mode="after")
    def _start_not_after_end(self) -> "Segment":
        if self.start > self.end:
            raise ValueError(f"segment start {self.start} is after end {self.end}")
        return self


class TranscriptionResult(BaseModel):
    """A transcript and its metadata as returned by the transcription endpoint."""

    transcript: str
    confidence: float = Field(ge=0.0, le=1.0)
    processing_time: float = 0.0  # milliseconds
    duration: float = 0.0  # seconds of media
    language: str = "en"
    segments: List[Segment] = Field(default_factory=list)
    speaker_count: Optional[int] = None
    is_demo: bool = False

    @field_validator("segments")
    @classmethod
    def _segments_ordered(cls, segments: List[Segment]) -> List[Segment]:
        return sorted(segments, key=lambda s: s.start)

    @property
    def word_count(self) -> int:
        return len(self.transcript.split())


class SpeakerLine(BaseModel):
    speaker: str
    text: str
    timestamp: str


class PreviewTranscript(BaseModel):
    """Lightweight projection of a preview result shown before payment."""

    text: str
    confidence: int  # percent
    speakers: List[SpeakerLine] = Field(default_factory=list)
    is_demo: bool = False
