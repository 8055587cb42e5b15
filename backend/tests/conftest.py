import random
from pathlib import Path

import httpx
import pytest

from transcribefree.config import settings
from transcribefree.models.upload import DurationSource, PreparedMedia, UploadedFile
from transcribefree.utils import storage

TRANSCRIBE_URL = "http://transcriber.test/api/transcribe"
PAYMENT_URL = "http://payments.test/create-payment-intent"
ANALYTICS_URL = "http://analytics.test/events"


def make_response(status_code: int, json=None, url: str = TRANSCRIBE_URL, text: str | None = None) -> httpx.Response:
    """An ``httpx.Response`` bound to a request, so ``raise_for_status`` works."""
    request = httpx.Request("POST", url)
    if text is not None:
        return httpx.Response(status_code, text=text, request=request)
    return httpx.Response(status_code, json=json, request=request)


@pytest.fixture
def staging_dirs(tmp_path: Path, monkeypatch):
    uploads = tmp_path / "uploads"
    converted = tmp_path / "converted"
    monkeypatch.setattr(storage, "UPLOAD_DIR", uploads)
    monkeypatch.setattr(storage, "CONVERTED_DIR", converted)
    return uploads, converted


@pytest.fixture
def transcriber(monkeypatch):
    """Point the client at a (mocked) transcription endpoint."""
    monkeypatch.setattr(settings, "TRANSCRIBE_URL", TRANSCRIBE_URL)
    monkeypatch.setattr(settings, "TRANSCRIBE_API_KEY", "")
    return TRANSCRIBE_URL


@pytest.fixture
def no_transcriber(monkeypatch):
    monkeypatch.setattr(settings, "TRANSCRIBE_URL", "")


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def mp3_file(tmp_path: Path) -> Path:
    path = tmp_path / "meeting_notes.mp3"
    path.write_bytes(b"\xff\xfb" + b"\x00" * 4094)
    return path


@pytest.fixture
def mp3_media(mp3_file: Path) -> PreparedMedia:
    return PreparedMedia(path=mp3_file, filename="meeting_notes.mp3", declared_type="audio/mpeg")


@pytest.fixture
def uploaded_factory(tmp_path: Path):
    def _make(name: str = "meeting_notes.mp3", content_type: str = "audio/mpeg", size: int = 4096, minutes: int = 1):
        path = tmp_path / f"staged-{name}"
        path.write_bytes(b"\x00" * size)
        return UploadedFile(
            id=f"file-{name}",
            path=path,
            name=name,
            size=size,
            content_type=content_type,
            duration_minutes=minutes,
            duration_source=DurationSource.HEURISTIC,
            cost=max(settings.MINIMUM_CHARGE, round(minutes * settings.PRICE_PER_MINUTE, 2)),
        )

    return _make
