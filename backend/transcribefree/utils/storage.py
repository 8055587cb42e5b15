"""Filesystem helpers for staged uploads.

A staged upload is the server-side stand-in for the browser's object URL:
one temporary file per uploaded media, owned by exactly one session, and
removed when that session drops the file.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from fastapi import UploadFile

from transcribefree.config import settings

logger = logging.getLogger(__name__)

DATA_ROOT = Path(settings.DATA_ROOT)
UPLOAD_DIR = DATA_ROOT / "uploads"
CONVERTED_DIR = DATA_ROOT / "converted"

CHUNK_SIZE = 1024 * 1024


class UploadTooLargeError(Exception):
    """Raised while streaming an upload that crosses the size ceiling."""

    def __init__(self, filename: str, limit: int) -> None:
        super().__init__(f"File '{filename}' exceeds the maximum allowed size of {limit} bytes.")
        self.filename = filename
        self.limit = limit


def ensure_dir_exists(path: Path) -> Path:
    """Ensure that the given directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def staging_path_for(filename: str, directory: Path = UPLOAD_DIR) -> Path:
    """Return a collision-free path that keeps the original extension."""
    suffix = Path(filename).suffix.lower()
    return ensure_dir_exists(directory) / f"{uuid.uuid4().hex}{suffix}"


def release_path(path: Path | None) -> None:
    """Remove a staged file; missing files are not an error."""
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
        logger.debug("Released staged file %s", path)
    except OSError as exc:
        logger.error("Could not remove staged file %s: %s", path, exc, exc_info=True)


@contextmanager
def staged_file(path: Path) -> Iterator[Path]:
    """Yield ``path`` and remove it on every exit path (success or error)."""
    try:
        yield path
    finally:
        release_path(path)


async def save_upload_stream(upload: UploadFile, max_bytes: int, directory: Path = UPLOAD_DIR) -> tuple[Path, int]:
    """Stream an upload to a staged file in chunks, enforcing ``max_bytes``.

    Returns the staged path and the number of bytes written. The partial file
    is removed if the limit is exceeded or the write fails.
    """
    filename = upload.filename or "upload"
    target = staging_path_for(filename, directory)
    written = 0
    try:
        with open(target, "wb") as fh:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if max_bytes and written > max_bytes:
                    logger.warning("Upload '%s' exceeded max size of %d bytes", filename, max_bytes)
                    raise UploadTooLargeError(filename, max_bytes)
                fh.write(chunk)
    except BaseException:
        release_path(target)
        raise
    logger.info("Staged upload '%s' (%d bytes) at %s", filename, written, target)
    return target, written
