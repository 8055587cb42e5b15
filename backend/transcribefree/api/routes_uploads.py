"""Upload endpoint: stage, validate, measure and price a file, then open a session."""

import asyncio
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, UploadFile, status

from ..config import settings
from ..errors import UploadRejected
from ..models.upload import UploadedFile
from ..services.duration import estimate_duration
from ..services.pricing import cost_for_estimate
from ..services.validation import effective_content_type, validate_file
from ..services.workflow import SessionNotFound, SessionRegistry, TranscriptionSession
from ..utils import storage
from .deps import get_registry

router = APIRouter()
logger = logging.getLogger(__name__)


async def _describe_upload(path, filename: str, declared_type: Optional[str], size: int, session_id: str) -> UploadedFile:
    validation = validate_file(filename, declared_type, size)
    if not validation.is_valid:
        logger.warning("Rejected '%s': %s", filename, validation.error)
        raise UploadRejected(validation.error, validation.reason.value)

    content_type = effective_content_type(filename, declared_type)
    estimate = await asyncio.to_thread(estimate_duration, path, content_type, size)
    return UploadedFile(
        id=uuid.uuid4().hex,
        path=path,
        name=filename,
        size=size,
        content_type=content_type,
        duration_minutes=estimate.minutes,
        duration_seconds=estimate.seconds,
        duration_source=estimate.source,
        cost=cost_for_estimate(estimate),
        preview_url=f"/api/sessions/{session_id}/media",
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    session_id: Optional[str] = Form(None),
    user_agent: Optional[str] = Header(None),
    registry: SessionRegistry = Depends(get_registry),
):
    """Accept one media file.

    Without ``session_id`` a new session is opened; with it, the file goes to
    an existing session whose previous file was removed.
    """
    filename = file.filename or "upload"
    logger.info("Receiving upload '%s' (%s)", filename, file.content_type)

    existing: Optional[TranscriptionSession] = None
    if session_id is not None:
        try:
            existing = registry.get(session_id)
        except SessionNotFound:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session '{session_id}' not found.")

    try:
        path, size = await storage.save_upload_stream(file, settings.MAX_UPLOAD_SIZE_BYTES, storage.UPLOAD_DIR)
    except storage.UploadTooLargeError as exc:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(exc))

    target_id = session_id or uuid.uuid4().hex
    # until a session owns the staged file, every failure releases it
    try:
        uploaded = await _describe_upload(path, filename, file.content_type, size, target_id)
        if existing is None:
            session = registry.create(uploaded, user_agent=user_agent, session_id=target_id)
        else:
            existing.attach_file(uploaded)
            session = existing
    except BaseException:
        storage.release_path(path)
        raise

    logger.info(
        "Session %s: '%s' %d bytes, %d min (%s), $%.2f",
        session.id, filename, size, uploaded.duration_minutes, uploaded.duration_source.value, uploaded.cost,
    )
    return session.snapshot()
