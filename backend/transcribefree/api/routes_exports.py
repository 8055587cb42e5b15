"""Transcript downloads."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from ..services.export import EXPORT_FORMATS, UnknownExportFormat, render_export
from ..services.workflow import TranscriptionSession
from .deps import get_session

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/{session_id}/download/{fmt}")
async def download_transcript(fmt: str, session: TranscriptionSession = Depends(get_session)):
    if session.result is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="The transcript is not ready yet.")
    try:
        body, media_type, filename = render_export(fmt, session.result, session.uploaded)
    except UnknownExportFormat:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown export format '{fmt}'. Choose one of: {', '.join(EXPORT_FORMATS)}.",
        )
    logger.info("Session %s: serving %s export (%d chars)", session.id, fmt, len(body))
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
