"""Canned transcripts served when the transcription backend is unavailable.

Demo results are always flagged with ``is_demo=True`` so the UI can label
them; the text is chosen from the filename so a "meeting" recording reads
like a meeting.
"""

from __future__ import annotations

import random
import re

from ..config import settings
from ..models.transcript import Segment, TranscriptionResult
from ..utils.formatting import format_clock, truncate_words

MEETING_TEXT = """Welcome everyone to today's meeting. Let's start by reviewing the agenda items for this session.

First, we'll discuss the quarterly results and how they align with our projections. The numbers show a positive trend in customer acquisition, with a 15% increase compared to last quarter.

Next, we need to address the upcoming product launch timeline. The development team has made significant progress, and we're on track for the scheduled release date.

Finally, we'll cover the budget allocation for the next fiscal period. There are several key areas where we need to focus our resources to maximize our return on investment."""

INTERVIEW_TEXT = """Thank you for joining us today. It's great to have you on the show. Let's start by talking about your background and how you got started in this field.

Well, it's been quite a journey. I began my career about ten years ago, and I never imagined I'd be where I am today. The industry has changed dramatically since then.

That's fascinating. Can you tell us about some of the biggest challenges you've faced along the way?

Absolutely. One of the main challenges has been adapting to rapid technological changes. What worked five years ago doesn't necessarily work today. You have to be constantly learning and evolving."""

LECTURE_TEXT = """Good morning, class. Today we're going to explore a fundamental concept that forms the backbone of our subject matter.

Let's begin with the basic principles. As you can see on the slide, there are three main components we need to understand. Each of these plays a crucial role in the overall framework.

The first component deals with the theoretical foundation. This has been established through decades of research and practical application. Studies have shown that when properly implemented, this approach yields significant results.

Moving on to the second component, we see how theory translates into practice."""

DEFAULT_TEXT = """This is a sample transcription generated in demo mode. Your audio transcription service is working perfectly!

The speech recognition engine has analyzed your audio file and converted the speech to text with high accuracy. With a transcription backend configured, you would get real transcriptions of your actual audio content.

This demo shows the complete workflow: file upload, processing with progress tracking, preview generation, payment and final transcript delivery with multiple download formats.

To enable real transcription, set TRANSCRIBE_URL to the address of your transcription service."""

CONTINUATION_TEXT = """[Continuing from the preview...]

As we move into the second part of this content, we can see how the initial concepts begin to develop into more complex ideas. The discussion becomes more detailed and nuanced.

The speaker continues to elaborate on the main points, providing examples and case studies that illustrate the practical applications of the concepts being discussed.

As we approach the conclusion, the speaker summarizes the main takeaways and provides actionable recommendations for implementation.

In closing, this content provides a comprehensive overview of the subject matter, combining theoretical knowledge with practical insights.

[End of transcript]"""

# (keywords, text); first match wins
_TEMPLATES = (
    (("meeting", "conference"), MEETING_TEXT),
    (("interview", "podcast"), INTERVIEW_TEXT),
    (("lecture", "presentation"), LECTURE_TEXT),
)

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def select_demo_text(filename: str) -> str:
    name = filename.lower()
    for keywords, text in _TEMPLATES:
        if any(keyword in name for keyword in keywords):
            return text
    return DEFAULT_TEXT


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_END.split(text) if s.strip()]


def _sentence_segments(text: str, duration: float) -> list[Segment]:
    """Spread sentences over ``duration`` seconds in proportion to their length."""
    sentences = split_sentences(text)
    total_words = sum(len(s.split()) for s in sentences) or 1
    segments = []
    cursor = 0.0
    for sentence in sentences:
        span = duration * len(sentence.split()) / total_words
        end = min(duration, cursor + span)
        segments.append(Segment(start=round(cursor, 3), end=round(end, 3), text=sentence))
        cursor = end
    return segments


def _full_demo_text(filename: str, confidence: float, duration: float) -> str:
    footer = (
        "---\n"
        f"Transcript generated with {confidence * 100:.1f}% confidence\n"
        f"Total duration: {format_clock(duration)}\n"
        "Processing completed successfully."
    )
    return f"{select_demo_text(filename)}\n\n{CONTINUATION_TEXT}\n\n{footer}"


def generate_demo_transcription(
    filename: str,
    is_preview: bool = False,
    rng: random.Random | None = None,
) -> TranscriptionResult:
    """Build a labelled demo transcript for ``filename``.

    Previews are cut to the preview word limit and carry a single segment
    covering the preview window; full results carry one segment per sentence.
    """
    rng = rng or random.Random()
    confidence = round(0.87 + rng.random() * 0.08, 3)
    processing_time = 2000 + rng.random() * 1000
    duration = 120 + rng.random() * 180

    if is_preview:
        text = truncate_words(select_demo_text(filename), settings.PREVIEW_WORD_LIMIT)
        window = settings.PREVIEW_WINDOW_SECONDS
        segments = [Segment(start=0, end=window, text=text)]
    else:
        text = _full_demo_text(filename, confidence, duration)
        spoken = text.split("\n\n---", 1)[0]
        segments = _sentence_segments(spoken, duration)

    return TranscriptionResult(
        transcript=text.strip(),
        confidence=confidence,
        processing_time=processing_time,
        duration=duration,
        language="en",
        segments=segments,
        is_demo=True,
    )
