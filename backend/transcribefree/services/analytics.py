"""Fire-and-forget analytics events.

Emission never blocks or fails the pipeline: every error is logged and
dropped.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Set

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

TRANSCRIPTION_STARTED = "transcription_started"
TRANSCRIPTION_COMPLETED = "transcription_completed"
TRANSCRIPTION_FAILED = "transcription_failed"


class AnalyticsClient:
    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self._url = url
        self._timeout = timeout
        self._pending: Set[asyncio.Task] = set()

    @property
    def url(self) -> str:
        return self._url if self._url is not None else settings.ANALYTICS_URL

    @property
    def timeout(self) -> float:
        return self._timeout if self._timeout is not None else settings.ANALYTICS_TIMEOUT

    async def track(self, event: str, **fields: Any) -> bool:
        """POST one event. Returns whether it was accepted; never raises."""
        if not self.url:
            logger.debug("Analytics disabled, dropping event '%s'", event)
            return False
        payload = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat(), **fields}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("Analytics endpoint rejected '%s': HTTP %s", event, exc.response.status_code)
            return False
        except httpx.RequestError as exc:
            logger.warning("Analytics event '%s' not delivered: %s", event, exc)
            return False
        except Exception as exc:
            logger.warning("Unexpected error sending analytics event '%s': %s", event, exc, exc_info=True)
            return False
        logger.debug("Analytics event '%s' delivered", event)
        return True

    def emit(self, event: str, **fields: Any) -> None:
        """Schedule :meth:`track` without waiting for it."""
        if not self.url:
            return
        try:
            task = asyncio.get_running_loop().create_task(self.track(event, **fields))
        except RuntimeError:
            logger.debug("No running event loop, dropping analytics event '%s'", event)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for in-flight events (used on shutdown)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


analytics = AnalyticsClient()
