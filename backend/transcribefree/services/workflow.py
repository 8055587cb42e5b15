"""The five-step upload-to-download workflow and the per-file session around it.

``TranscriptionWorkflow`` is a pure state machine. ``TranscriptionSession``
binds it to one uploaded file, owns that file's staged resources through an
``ExitStack`` and runs the preview and full-transcription stages.
``SessionRegistry`` is the in-memory store of live sessions, one per
application instance.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from contextlib import ExitStack
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from ..config import settings
from ..models.job import JobStatus, ProcessingJob
from ..models.transcript import TranscriptionResult
from ..models.upload import PreparedMedia, UploadedFile
from ..utils.formatting import format_duration, format_eta, format_file_size
from ..utils.storage import release_path, staged_file
from .conversion import ProcessingOptions, conversion_guidance, get_processing_options, prepare_for_transcription
from .pricing import estimate_processing_eta, eta_category
from .validation import needs_conversion
from .transcription import TranscriptionError, UnknownTranscriptionError, to_preview_transcript, transcribe_audio

logger = logging.getLogger(__name__)

SIMULATED_PROGRESS_CAP = 95.0
SIMULATED_ETA_TICK_SECONDS = 5


class WorkflowStep(str, Enum):
    UPLOAD = "upload"
    PREVIEW = "preview"
    PAYMENT = "payment"
    PROCESSING = "processing"
    DOWNLOAD = "download"


STEP_ORDER: List[WorkflowStep] = list(WorkflowStep)


class StepStatus(str, Enum):
    PENDING = "pending"
    CURRENT = "current"
    COMPLETED = "completed"


class WorkflowError(Exception):
    """An event arrived in a step that does not accept it."""


class TranscriptionWorkflow:
    """Linear Upload -> Preview -> Payment -> Processing -> Download machine.

    The only way back is :meth:`remove_file`, which resets to Upload. A failed
    processing run stays in Processing and accepts nothing but a reset.
    """

    def __init__(self) -> None:
        self.current_step = WorkflowStep.UPLOAD
        self.completed_steps: set[WorkflowStep] = set()
        self.preview_ready = False
        self.processing_failed_flag = False

    def require(self, step: WorkflowStep, event: str) -> None:
        if self.current_step is not step:
            raise WorkflowError(f"Cannot {event} while in the {self.current_step.value} step")

    def _advance(self) -> None:
        index = STEP_ORDER.index(self.current_step)
        self.completed_steps.add(self.current_step)
        self.current_step = STEP_ORDER[index + 1]
        logger.debug("Workflow advanced to %s", self.current_step.value)

    def file_uploaded(self) -> None:
        self.require(WorkflowStep.UPLOAD, "accept a file")
        self._advance()

    def preview_generated(self) -> None:
        self.require(WorkflowStep.PREVIEW, "record a preview")
        self.preview_ready = True

    def continue_to_payment(self) -> None:
        self.require(WorkflowStep.PREVIEW, "continue to payment")
        self._advance()

    def payment_completed(self) -> None:
        self.require(WorkflowStep.PAYMENT, "confirm payment")
        self._advance()

    def processing_started(self) -> None:
        self.require(WorkflowStep.PROCESSING, "start processing")
        if self.processing_failed_flag:
            raise WorkflowError("Processing failed; remove the file and upload it again")

    def processing_completed(self) -> None:
        self.processing_started()
        self._advance()

    def processing_failed(self) -> None:
        self.require(WorkflowStep.PROCESSING, "fail processing")
        self.processing_failed_flag = True

    def remove_file(self) -> None:
        self.current_step = WorkflowStep.UPLOAD
        self.completed_steps.clear()
        self.preview_ready = False
        self.processing_failed_flag = False

    def step_status(self, step: WorkflowStep) -> StepStatus:
        if step in self.completed_steps:
            return StepStatus.COMPLETED
        if step is self.current_step:
            return StepStatus.CURRENT
        return StepStatus.PENDING

    def overall_progress(self) -> float:
        return len(self.completed_steps) / len(STEP_ORDER) * 100

    def steps(self) -> List[Dict[str, str]]:
        return [{"step": step.value, "status": self.step_status(step).value} for step in STEP_ORDER]


def advance_progress(previous: float, incoming: float) -> float:
    """Progress never moves backwards."""
    return max(previous, incoming)


def simulated_progress_step(job: ProcessingJob, rng: Optional[random.Random] = None) -> ProcessingJob:
    """One tick of the reassurance bar: +2..10%, capped below completion."""
    if job.is_terminal:
        return job
    rng = rng or random
    candidate = min(job.progress + rng.uniform(2, 10), SIMULATED_PROGRESS_CAP)
    return job.model_copy(update={
        "progress": advance_progress(job.progress, candidate),
        "estimated_time_remaining": max(0, job.estimated_time_remaining - SIMULATED_ETA_TICK_SECONDS),
    })


class StageOutcome(BaseModel):
    """Result of a network-bound stage; failures never escape as exceptions."""

    success: bool
    result: Optional[Any] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    details: Optional[str] = None
    retryable: bool = False

    @classmethod
    def from_error(cls, error: TranscriptionError) -> "StageOutcome":
        return cls(
            success=False,
            error=error.message,
            error_type=error.kind.value,
            details=error.details,
            retryable=error.retryable,
        )


class TranscriptionSession:
    def __init__(
        self,
        uploaded: UploadedFile,
        user_agent: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex
        self.workflow = TranscriptionWorkflow()
        self.user_agent = user_agent
        self.uploaded: Optional[UploadedFile] = None
        self.options: ProcessingOptions = ProcessingOptions()
        self.preview: Optional[TranscriptionResult] = None
        self.job: Optional[ProcessingJob] = None
        self.result: Optional[TranscriptionResult] = None
        self.failure: Optional[StageOutcome] = None
        self.payment_intent_id: Optional[str] = None
        self._prepared: Optional[PreparedMedia] = None
        self._resources = ExitStack()
        self._preview_lock = asyncio.Lock()
        self._ticker: Optional[asyncio.Task] = None
        self.attach_file(uploaded)

    def attach_file(self, uploaded: UploadedFile) -> None:
        """Take ownership of a staged upload and move past the Upload step."""
        self.workflow.file_uploaded()
        self._resources.enter_context(staged_file(uploaded.path))
        self.uploaded = uploaded
        self.options = get_processing_options(uploaded.size, self.user_agent)
        logger.info("Session %s owns %s (%s)", self.id, uploaded.name, uploaded.id)

    def _require_file(self) -> UploadedFile:
        if self.uploaded is None:
            raise WorkflowError("No file has been uploaded")
        return self.uploaded

    def _owns(self, file_id: str) -> bool:
        """Whether ``file_id`` is still this session's file."""
        return self.uploaded is not None and self.uploaded.id == file_id

    def _stale(self, stage: str) -> StageOutcome:
        logger.info("Session %s: file removed during %s, dropping the result", self.id, stage)
        return StageOutcome(success=False, error=f"The file was removed before the {stage} finished")

    async def _prepared_media(self) -> StageOutcome:
        if self._prepared is not None:
            return StageOutcome(success=True, result=self._prepared)
        uploaded = self._require_file()
        conversion = await asyncio.to_thread(prepare_for_transcription, uploaded, self.options)
        if not self._owns(uploaded.id):
            if conversion.success and conversion.media.converted:
                release_path(conversion.media.path)
            return self._stale("conversion")
        if not conversion.success:
            return StageOutcome(
                success=False,
                error=conversion.error,
                error_type=conversion.error_type.value if conversion.error_type else None,
                details=conversion_guidance(conversion.error_type, uploaded.name),
            )
        media = conversion.media
        if media.converted:
            self._resources.enter_context(staged_file(media.path))
        self._prepared = media
        return StageOutcome(success=True, result=media)

    async def generate_preview(self, rng: Optional[random.Random] = None) -> StageOutcome:
        """Produce (or reuse) the free preview transcript."""
        async with self._preview_lock:
            if self.preview is not None:
                return StageOutcome(success=True, result=self.preview)
            self.workflow.require(WorkflowStep.PREVIEW, "generate a preview")
            file_id = self._require_file().id
            try:
                prepared = await self._prepared_media()
                if not prepared.success:
                    return prepared
                result = await transcribe_audio(prepared.result, is_preview=True, rng=rng)
            except TranscriptionError as exc:
                outcome = StageOutcome.from_error(exc)
            except Exception as exc:
                logger.error("Unexpected error generating preview for session %s: %s", self.id, exc, exc_info=True)
                outcome = StageOutcome.from_error(UnknownTranscriptionError(str(exc) or "Preview failed"))
            else:
                outcome = StageOutcome(success=True, result=result)
            if not self._owns(file_id):
                return self._stale("preview")
            if outcome.success:
                self.preview = outcome.result
                self.workflow.preview_generated()
            return outcome

    def confirm_payment(self, payment_intent_id: Optional[str] = None) -> ProcessingJob:
        """Payment -> Processing, creating the job the ticker will advance.

        Only the intent created for this session's current file confirms it.
        """
        uploaded = self._require_file()
        self.workflow.require(WorkflowStep.PAYMENT, "confirm payment")
        if not self.payment_intent_id:
            raise WorkflowError("No payment intent has been created for this session")
        if payment_intent_id != self.payment_intent_id:
            raise WorkflowError("Payment confirmation does not match this session's payment intent")
        self.workflow.payment_completed()
        self.job = ProcessingJob(
            id=uuid.uuid4().hex,
            file_id=uploaded.id,
            status=JobStatus.PROCESSING,
            estimated_time_remaining=estimate_processing_eta(uploaded.duration_minutes, uploaded.content_type, uploaded.size),
        )
        return self.job

    def _update_job_progress(self, value: int, status: str) -> None:
        if self.job is None or self.job.is_terminal:
            return
        capped = min(float(value), SIMULATED_PROGRESS_CAP)
        self.job = self.job.model_copy(update={"progress": advance_progress(self.job.progress, capped)})
        logger.debug("Session %s: %s (%d%%)", self.id, status, value)

    async def _tick(self, rng: Optional[random.Random]) -> None:
        while self.job is not None and not self.job.is_terminal:
            await asyncio.sleep(settings.PROGRESS_TICK_SECONDS)
            if self.job is None:
                return
            self.job = simulated_progress_step(self.job, rng)

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    async def run_processing(self, rng: Optional[random.Random] = None) -> StageOutcome:
        """Run the full transcription; the outcome is also kept on the session."""
        self.workflow.processing_started()
        if self.job is None:
            raise WorkflowError("Payment has not been confirmed")
        file_id = self.job.file_id
        ticker = asyncio.create_task(self._tick(rng))
        self._ticker = ticker
        try:
            prepared = await self._prepared_media()
            if prepared.success:
                result = await transcribe_audio(prepared.result, is_preview=False, on_progress=self._update_job_progress)
                outcome = StageOutcome(success=True, result=result)
            else:
                outcome = prepared
        except TranscriptionError as exc:
            outcome = StageOutcome.from_error(exc)
        except Exception as exc:
            logger.error("Unexpected error processing session %s: %s", self.id, exc, exc_info=True)
            outcome = StageOutcome.from_error(UnknownTranscriptionError(str(exc) or "Transcription failed"))
        finally:
            ticker.cancel()
            if self._ticker is ticker:
                self._ticker = None

        if not self._owns(file_id) or self.job is None or self.job.file_id != file_id:
            return self._stale("transcription")
        if outcome.success:
            self.result = outcome.result
            self.job = self.job.mark_completed()
            self.workflow.processing_completed()
            logger.info("Session %s: transcription completed", self.id)
        else:
            self.failure = outcome
            self.job = self.job.mark_failed(outcome.error or "Transcription failed")
            self.workflow.processing_failed()
            logger.warning("Session %s: transcription failed (%s): %s", self.id, outcome.error_type, outcome.error)
        return outcome

    def remove_file(self) -> None:
        """Release everything tied to the current file and go back to Upload."""
        self._stop_ticker()
        self._resources.close()
        self._resources = ExitStack()
        self.uploaded = None
        self._prepared = None
        self.preview = None
        self.job = None
        self.result = None
        self.failure = None
        self.payment_intent_id = None
        self.workflow.remove_file()
        logger.info("Session %s: file removed, back to upload", self.id)

    def close(self) -> None:
        self._stop_ticker()
        self._resources.close()

    def _file_dict(self) -> Optional[Dict[str, Any]]:
        if self.uploaded is None:
            return None
        data = self.uploaded.public_dict()
        data.update(
            size_display=format_file_size(self.uploaded.size),
            duration_display=format_duration(self.uploaded.duration_minutes),
            needs_conversion=needs_conversion(self.uploaded.content_type),
        )
        return data

    def snapshot(self) -> Dict[str, Any]:
        job = None
        if self.job is not None:
            job = self.job.model_dump(mode="json")
            job["eta_text"] = format_eta(self.job.estimated_time_remaining)
            job.update(eta_category(self.job.estimated_time_remaining))
        return {
            "id": self.id,
            "current_step": self.workflow.current_step.value,
            "steps": self.workflow.steps(),
            "overall_progress": self.workflow.overall_progress(),
            "file": self._file_dict(),
            "preview": to_preview_transcript(self.preview).model_dump() if self.preview else None,
            "job": job,
            "result": self.result.model_dump() if self.result else None,
            "error": self.failure.model_dump(exclude={"result"}) if self.failure else None,
            "fast_mode": self.options.fast_mode,
        }


class SessionNotFound(KeyError):
    pass


class SessionRegistry:
    """In-memory session store; its lifetime is the application's."""

    def __init__(self) -> None:
        self._sessions: Dict[str, TranscriptionSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(
        self,
        uploaded: UploadedFile,
        user_agent: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> TranscriptionSession:
        session = TranscriptionSession(uploaded, user_agent=user_agent, session_id=session_id)
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> TranscriptionSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None

    def discard(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        for session in list(self._sessions.values()):
            session.close()
        logger.info("Released %d session(s)", len(self._sessions))
        self._sessions.clear()
