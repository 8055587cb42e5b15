"""Client for the payment-intent collaborator."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

from ..config import settings

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """Raised when a payment intent cannot be created."""

    def __init__(self, message: str, details: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.status_code = status_code


class PaymentIntent(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount: float
    currency: str


async def create_payment_intent(
    amount: float,
    metadata: Optional[Dict[str, Any]] = None,
    currency: Optional[str] = None,
) -> PaymentIntent:
    """Ask the payment collaborator for a client secret covering ``amount`` dollars.

    Metadata values are sent as strings; ``fileName``, ``duration`` and
    ``fileSize`` always exist in the payload.

    Raises
    ------
    PaymentError
        Amount below the minimum charge, collaborator not configured, HTTP
        failure or a malformed response.
    """
    currency = currency or settings.CURRENCY
    if amount is None or math.isnan(amount) or amount < settings.MINIMUM_CHARGE:
        raise PaymentError(f"Invalid amount. Minimum charge is ${settings.MINIMUM_CHARGE:.2f}.")
    if not settings.PAYMENT_INTENT_URL:
        logger.error("PAYMENT_INTENT_URL is not configured. Cannot create payment intent.")
        raise PaymentError("Payment service is not configured.")

    merged = {"fileName": "unknown", "duration": "0", "fileSize": "0"}
    merged.update({key: str(value) for key, value in (metadata or {}).items()})
    payload = {"amount": round(amount, 2), "currency": currency, "metadata": merged}

    async with httpx.AsyncClient(timeout=settings.PAYMENT_TIMEOUT) as client:
        try:
            logger.info("Requesting payment intent for %.2f %s (%s)", amount, currency, merged["fileName"])
            response = await client.post(settings.PAYMENT_INTENT_URL, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            try:
                error_body = exc.response.json()
            except ValueError:
                error_body = {}
            logger.error("Payment service returned HTTP %s: %s", exc.response.status_code, exc.response.text)
            raise PaymentError(
                error_body.get("error") or "Payment setup failed",
                details=error_body.get("details"),
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            logger.error("Could not reach payment service: %s", exc)
            raise PaymentError("Payment service unavailable", details=str(exc)) from exc
        except ValueError as exc:
            logger.error("Payment service returned a non-JSON body: %s", exc)
            raise PaymentError("Payment setup failed", details="Malformed response from payment service") from exc

    try:
        return PaymentIntent(
            client_secret=body["clientSecret"],
            payment_intent_id=body["paymentIntentId"],
            amount=round(amount, 2),
            currency=currency,
        )
    except (KeyError, TypeError, ValueError) as exc:
        logger.error("Payment service response is missing fields: %s", body)
        raise PaymentError("Payment setup failed", details="Malformed response from payment service") from exc
