"""Workflow endpoints for one upload session."""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.responses import FileResponse
from pydantic import BaseModel

from ..services.payment import PaymentError, create_payment_intent
from ..services.transcription import to_preview_transcript
from ..services.workflow import TranscriptionSession, WorkflowStep
from .deps import get_session

router = APIRouter()
logger = logging.getLogger(__name__)


class PaymentConfirmation(BaseModel):
    payment_intent_id: Optional[str] = None


@router.get("/{session_id}")
async def get_session_state(session: TranscriptionSession = Depends(get_session)):
    return session.snapshot()


@router.delete("/{session_id}/file")
async def remove_file(session: TranscriptionSession = Depends(get_session)):
    session.remove_file()
    return session.snapshot()


@router.get("/{session_id}/media")
async def get_media(session: TranscriptionSession = Depends(get_session)):
    """Stream the staged upload for in-page playback."""
    uploaded = session.uploaded
    if uploaded is None or not uploaded.path.exists():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No file in this session.")
    return FileResponse(path=uploaded.path, media_type=uploaded.content_type, filename=uploaded.name)


@router.post("/{session_id}/preview")
async def create_preview(session: TranscriptionSession = Depends(get_session)):
    outcome = await session.generate_preview()
    if not outcome.success:
        logger.warning("Session %s: preview failed (%s): %s", session.id, outcome.error_type, outcome.error)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=outcome.model_dump(exclude={"result", "success"}),
        )
    return {
        "preview": to_preview_transcript(outcome.result).model_dump(),
        "result": outcome.result.model_dump(),
        "session": session.snapshot(),
    }


@router.post("/{session_id}/continue")
async def continue_to_payment(session: TranscriptionSession = Depends(get_session)):
    session.workflow.continue_to_payment()
    return session.snapshot()


@router.post("/{session_id}/payment-intent")
async def create_session_payment_intent(session: TranscriptionSession = Depends(get_session)):
    session.workflow.require(WorkflowStep.PAYMENT, "create a payment intent")
    uploaded = session.uploaded
    metadata = {
        "fileName": uploaded.name,
        "duration": uploaded.duration_minutes,
        "fileSize": uploaded.size,
        "sessionId": session.id,
    }
    try:
        intent = await create_payment_intent(uploaded.cost, metadata)
    except PaymentError as exc:
        code = status.HTTP_400_BAD_REQUEST if exc.status_code is None or exc.status_code < 500 else status.HTTP_502_BAD_GATEWAY
        raise HTTPException(status_code=code, detail={"error": exc.message, "details": exc.details})
    session.payment_intent_id = intent.payment_intent_id
    return intent.model_dump()


@router.post("/{session_id}/payment-confirmed", status_code=status.HTTP_202_ACCEPTED)
async def payment_confirmed(
    background_tasks: BackgroundTasks,
    confirmation: Optional[PaymentConfirmation] = None,
    session: TranscriptionSession = Depends(get_session),
):
    """Payment succeeded for this session's intent: move to Processing and transcribe in the background."""
    session.confirm_payment(confirmation.payment_intent_id if confirmation else None)
    background_tasks.add_task(session.run_processing)
    logger.info("Session %s: payment confirmed, transcription scheduled", session.id)
    return session.snapshot()
