import random

from transcribefree.config import settings
from transcribefree.services import demo


def test_template_chosen_from_filename():
    assert demo.select_demo_text("Team_MEETING_2024.mp3") is demo.MEETING_TEXT
    assert demo.select_demo_text("podcast-ep4.wav") is demo.INTERVIEW_TEXT
    assert demo.select_demo_text("lecture01.m4a") is demo.LECTURE_TEXT
    assert demo.select_demo_text("recording.mp3") is demo.DEFAULT_TEXT


def test_preview_demo_is_short_and_labelled():
    result = demo.generate_demo_transcription("interview.mp3", is_preview=True, rng=random.Random(7))

    assert result.is_demo is True
    assert len(result.transcript.split()) <= settings.PREVIEW_WORD_LIMIT
    assert len(result.segments) == 1
    assert result.segments[0].start == 0
    assert result.segments[0].end == settings.PREVIEW_WINDOW_SECONDS
    assert 0.87 <= result.confidence <= 0.95


def test_full_demo_has_sentence_segments_within_duration():
    result = demo.generate_demo_transcription("lecture.mp3", rng=random.Random(7))

    assert result.is_demo is True
    assert 120 <= result.duration <= 300
    assert "[End of transcript]" in result.transcript
    assert "confidence" in result.transcript
    assert len(result.segments) > 5
    assert result.segments[0].start == 0
    assert result.segments[-1].end <= result.duration + 0.001
    for previous, current in zip(result.segments, result.segments[1:]):
        assert previous.end <= current.start + 0.001


def test_seeded_rng_is_reproducible():
    first = demo.generate_demo_transcription("a.mp3", rng=random.Random(42))
    second = demo.generate_demo_transcription("a.mp3", rng=random.Random(42))
    assert first == second


def test_split_sentences():
    assert demo.split_sentences("One. Two? Three!  ") == ["One.", "Two?", "Three!"]
