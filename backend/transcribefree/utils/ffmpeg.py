"""Thin wrappers around the ``ffmpeg``/``ffprobe`` binaries with hard time bounds.

Probes and decodes can hang indefinitely on corrupt or exotic codecs, so every
call here takes a timeout and kills the child process once it expires.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Any

import ffmpeg

from ..config import settings

logger = logging.getLogger(__name__)

GLOBAL_ARGS = ("-hide_banner", "-loglevel", "error")


class ProbeTimeoutError(Exception):
    """Raised when ``ffprobe`` does not answer within the allotted time."""


def ffmpeg_available() -> bool:
    return shutil.which(settings.FFMPEG_PATH) is not None


def ffprobe_available() -> bool:
    return shutil.which(settings.FFPROBE_PATH) is not None


def probe_media(path: Path, timeout: float | None = None) -> dict[str, Any]:
    """Return ``ffprobe`` JSON metadata for ``path``.

    Raises
    ------
    ffmpeg.Error
        ffprobe exited with a non-zero status (corrupt or unknown container).
    ProbeTimeoutError
        ffprobe did not finish within ``timeout`` seconds; the process is killed.
    FileNotFoundError
        ffprobe itself is not installed.
    """

    cmd = [settings.FFPROBE_PATH, "-show_format", "-show_streams", "-of", "json", str(path)]
    process = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    try:
        out, err = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        process.kill()
        process.communicate()
        raise ProbeTimeoutError(f"ffprobe timed out after {timeout}s for {path.name}")
    if process.returncode != 0:
        raise ffmpeg.Error("ffprobe", out, err)
    return json.loads(out.decode("utf-8"))


def run_bounded(stream, input_bytes: bytes | None = None, timeout: float | None = None) -> tuple[bytes, bytes, bool]:
    """Run an ``ffmpeg-python`` output stream, force-stopping it after ``timeout``.

    Returns ``(stdout, stderr, timed_out)``. Whatever the process produced
    before being killed is still returned, so callers can keep a partial
    result. A non-zero exit that was not caused by the timeout raises
    :class:`ffmpeg.Error`.
    """

    process = ffmpeg.run_async(
        stream.global_args(*GLOBAL_ARGS),
        cmd=settings.FFMPEG_PATH,
        pipe_stdin=input_bytes is not None,
        pipe_stdout=True,
        pipe_stderr=True,
        overwrite_output=True,
    )
    try:
        out, err = process.communicate(input=input_bytes, timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.warning("ffmpeg exceeded %.1fs, stopping it and keeping partial output", timeout)
        process.kill()
        out, err = process.communicate()
        return out or b"", err or b"", True
    if process.returncode != 0:
        raise ffmpeg.Error("ffmpeg", out, err)
    return out or b"", err or b"", False


def stderr_text(exc: ffmpeg.Error) -> str:
    return exc.stderr.decode("utf8", errors="replace") if exc.stderr else str(exc)
