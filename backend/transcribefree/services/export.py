"""Render a transcription result as a downloadable file."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from ..models.transcript import Segment, TranscriptionResult
from ..models.upload import UploadedFile
from ..utils.formatting import format_clock, format_duration, format_file_size

DEFAULT_EXPORT_SPAN_SECONDS = 300.0
EXPORT_FORMATS = ("txt", "srt", "vtt", "json", "report")


class UnknownExportFormat(ValueError):
    pass


def _split_timestamp(seconds: float) -> Tuple[int, int, int, int]:
    if seconds < 0:
        raise ValueError(f"non-negative timestamp expected, got {seconds}")
    milliseconds = round(seconds * 1000.0)

    hours = milliseconds // 3_600_000
    milliseconds -= hours * 3_600_000

    minutes = milliseconds // 60_000
    milliseconds -= minutes * 60_000

    secs = milliseconds // 1_000
    milliseconds -= secs * 1_000
    return hours, minutes, secs, milliseconds


def format_timestamp_srt(seconds: float) -> str:
    """Seconds as SRT time (``HH:MM:SS,mmm``)."""
    hours, minutes, secs, millis = _split_timestamp(seconds)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def format_timestamp_vtt(seconds: float) -> str:
    """Seconds as WebVTT time (``HH:MM:SS.mmm``)."""
    hours, minutes, secs, millis = _split_timestamp(seconds)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


def export_segments(result: TranscriptionResult, known_duration: Optional[float] = None) -> List[Segment]:
    """Segments to render as cues.

    A result without segments still exports: one cue spans the whole known
    duration, or five minutes when nothing is known.
    """
    if result.segments:
        return result.segments
    span = known_duration or result.duration or DEFAULT_EXPORT_SPAN_SECONDS
    return [Segment(start=0.0, end=span, text=result.transcript.strip())]


def generate_txt(result: TranscriptionResult) -> str:
    return result.transcript


def generate_srt(result: TranscriptionResult, known_duration: Optional[float] = None) -> str:
    blocks = []
    for index, segment in enumerate(export_segments(result, known_duration), start=1):
        blocks.append(
            f"{index}\n"
            f"{format_timestamp_srt(segment.start)} --> {format_timestamp_srt(segment.end)}\n"
            f"{segment.text.strip()}\n"
        )
    return "\n".join(blocks)


def generate_vtt(result: TranscriptionResult, known_duration: Optional[float] = None) -> str:
    cues = [
        f"{format_timestamp_vtt(segment.start)} --> {format_timestamp_vtt(segment.end)}\n{segment.text.strip()}\n"
        for segment in export_segments(result, known_duration)
    ]
    return "WEBVTT\n\n" + "\n".join(cues)


def generate_json(
    result: TranscriptionResult,
    uploaded: Optional[UploadedFile] = None,
    exported_at: Optional[datetime] = None,
) -> str:
    exported_at = exported_at or datetime.now(timezone.utc)
    document = {
        "metadata": {
            "filename": uploaded.name if uploaded else None,
            "fileSize": uploaded.size if uploaded else None,
            "duration": uploaded.duration_minutes if uploaded else None,
            "confidence": result.confidence,
            "speakerCount": result.speaker_count,
            "language": result.language,
            "isDemo": result.is_demo,
            "exportedAt": exported_at.isoformat(),
            "version": "1.0",
        },
        "transcript": {
            "fullText": result.transcript,
            "segments": [segment.model_dump() for segment in result.segments],
            "wordCount": result.word_count,
        },
    }
    return json.dumps(document, indent=2, ensure_ascii=False)


def generate_report(
    result: TranscriptionResult,
    uploaded: Optional[UploadedFile] = None,
    generated_at: Optional[datetime] = None,
) -> str:
    """Plain-text report: file facts, transcription facts, full text, then segments."""
    generated_at = generated_at or datetime.now(timezone.utc)
    accuracy = f"{result.confidence * 100:.1f}%" if result.confidence else "Unknown"
    lines = [
        "TRANSCRIPTION REPORT",
        "===================",
        "",
        "File Information:",
        f"- Name: {uploaded.name if uploaded else 'Unknown'}",
        f"- Size: {format_file_size(uploaded.size) if uploaded else 'Unknown'}",
        f"- Duration: {format_duration(uploaded.duration_minutes) if uploaded else 'Unknown'}",
        f"- Type: {uploaded.content_type if uploaded else 'Unknown'}",
        "",
        "Transcription Details:",
        f"- Accuracy: {accuracy}",
        f"- Speakers Detected: {result.speaker_count or 'Unknown'}",
        f"- Word Count: {result.word_count}",
        f"- Generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
        "",
        "TRANSCRIPT:",
        "-----------",
        "",
        result.transcript or "No transcript available",
    ]
    if result.segments:
        lines += ["", "TIMESTAMPED SEGMENTS:", "---------------------", ""]
        lines += [
            f"[{format_clock(segment.start)} - {format_clock(segment.end)}] {segment.text.strip()}"
            for segment in result.segments
        ]
    if result.is_demo:
        lines += ["", "Note: this is a demo transcript, not a transcription of your audio."]
    lines += ["", "---", "Generated by TranscribeFree", ""]
    return "\n".join(lines)


_SRT_TIME = re.compile(r"(\d+):(\d{2}):(\d{2})[,.](\d{3})")


def _parse_timestamp(value: str) -> float:
    match = _SRT_TIME.fullmatch(value.strip())
    if not match:
        raise ValueError(f"invalid SRT timestamp: {value!r}")
    hours, minutes, secs, millis = (int(part) for part in match.groups())
    return hours * 3600 + minutes * 60 + secs + millis / 1000


def parse_srt(text: str) -> List[Segment]:
    """Read SRT cues back into segments."""
    segments = []
    for block in re.split(r"\n\s*\n", text.strip()):
        lines = [line for line in block.splitlines() if line.strip()]
        if len(lines) < 2:
            continue
        timing_index = 1 if "-->" not in lines[0] else 0
        start_text, end_text = lines[timing_index].split("-->")
        segments.append(Segment(
            start=_parse_timestamp(start_text),
            end=_parse_timestamp(end_text),
            text="\n".join(lines[timing_index + 1:]),
        ))
    return segments


def render_export(
    fmt: str,
    result: TranscriptionResult,
    uploaded: Optional[UploadedFile] = None,
) -> Tuple[str, str, str]:
    """Return ``(body, media_type, filename)`` for a download."""
    stem = Path(uploaded.name).stem if uploaded else "transcript"
    known_duration = None
    if uploaded:
        known_duration = uploaded.duration_seconds or uploaded.duration_minutes * 60
    if fmt == "txt":
        return generate_txt(result), "text/plain", f"{stem}.txt"
    if fmt == "srt":
        return generate_srt(result, known_duration), "application/x-subrip", f"{stem}.srt"
    if fmt == "vtt":
        return generate_vtt(result, known_duration), "text/vtt", f"{stem}.vtt"
    if fmt == "json":
        return generate_json(result, uploaded), "application/json", f"{stem}.json"
    if fmt == "report":
        return generate_report(result, uploaded), "text/plain", f"{stem}_report.txt"
    raise UnknownExportFormat(f"Unknown export format '{fmt}'. Choose one of: {', '.join(EXPORT_FORMATS)}")
