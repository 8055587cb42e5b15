"""Pricing and processing-time estimates."""

from __future__ import annotations

import math
import random

from ..config import settings
from ..models.upload import DurationEstimate

BILLING_INCREMENT_MINUTES = 0.1


def billable_minutes(minutes: float) -> float:
    """Round a duration up to the next 0.1-minute (6-second) increment."""
    if minutes is None or math.isnan(minutes) or minutes < 0:
        raise ValueError(f"duration must be a non-negative number, got {minutes!r}")
    # round() strips float noise so that e.g. 0.3 * 10 does not ceil to 4
    tenths = math.ceil(round(minutes * 10, 6))
    return tenths / 10


def calculate_cost(
    minutes: float,
    rate: float | None = None,
    minimum: float | None = None,
) -> float:
    """``max(minimum, ceil(minutes * 10) / 10 * rate)`` rounded to cents."""
    rate = settings.PRICE_PER_MINUTE if rate is None else rate
    minimum = settings.MINIMUM_CHARGE if minimum is None else minimum
    return round(max(minimum, billable_minutes(minutes) * rate), 2)


def cost_for_estimate(estimate: DurationEstimate) -> float:
    """Price a duration estimate, billing exact seconds when they are known."""
    minutes = estimate.seconds / 60 if estimate.seconds is not None else estimate.minutes
    return calculate_cost(minutes)


def estimate_processing_eta(
    minutes: int,
    content_type: str,
    size: int,
    rng: random.Random | None = None,
) -> int:
    """Seconds a full transcription is expected to take.

    About 30 seconds per minute of media, 20% more for video, 10% more for
    files above 100 MB, plus 30-90 seconds of server-load variance.
    """
    rng = rng or random
    base = minutes * 30
    if content_type.startswith("video/"):
        base *= 1.2
    if size / (1024 * 1024) > 100:
        base *= 1.1
    return round(base + rng.uniform(30, 90))


def eta_category(seconds: int) -> dict[str, str]:
    if seconds <= 60:
        return {"category": "quick", "message": "Almost done!"}
    if seconds <= 180:
        return {"category": "medium", "message": "A few more minutes"}
    if seconds <= 600:
        return {"category": "long", "message": "This will take a while"}
    return {"category": "very_long", "message": "This is a long transcription"}
