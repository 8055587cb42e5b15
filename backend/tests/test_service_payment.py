from unittest.mock import AsyncMock, patch

import httpx
import pytest

from transcribefree.config import settings
from transcribefree.services.payment import PaymentError, create_payment_intent

from .conftest import PAYMENT_URL, make_response


@pytest.fixture
def payments(monkeypatch):
    monkeypatch.setattr(settings, "PAYMENT_INTENT_URL", PAYMENT_URL)
    return PAYMENT_URL


@pytest.mark.asyncio
@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_create_payment_intent(mock_post, payments):
    mock_post.return_value = make_response(200, {"clientSecret": "cs_1", "paymentIntentId": "pi_1"}, url=PAYMENT_URL)

    intent = await create_payment_intent(0.9, {"fileName": "a.mp3", "duration": 5})

    assert intent.client_secret == "cs_1"
    assert intent.payment_intent_id == "pi_1"
    assert intent.currency == "usd"
    payload = mock_post.call_args.kwargs["json"]
    assert payload["amount"] == 0.9
    assert payload["metadata"] == {"fileName": "a.mp3", "duration": "5", "fileSize": "0"}


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0.49, 0.0, float("nan")])
@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_amount_below_minimum_is_rejected(mock_post, amount, payments):
    with pytest.raises(PaymentError, match=r"Minimum charge is \$0.50"):
        await create_payment_intent(amount)
    mock_post.assert_not_called()


@pytest.mark.asyncio
async def test_unconfigured_service(monkeypatch):
    monkeypatch.setattr(settings, "PAYMENT_INTENT_URL", "")
    with pytest.raises(PaymentError, match="not configured"):
        await create_payment_intent(1.0)


@pytest.mark.asyncio
@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_collaborator_error_is_surfaced(mock_post, payments):
    mock_post.return_value = make_response(400, {"error": "Invalid amount", "details": "too small"}, url=PAYMENT_URL)

    with pytest.raises(PaymentError) as excinfo:
        await create_payment_intent(1.0)

    assert excinfo.value.message == "Invalid amount"
    assert excinfo.value.details == "too small"
    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_unreachable_service(mock_post, payments):
    mock_post.side_effect = httpx.ConnectError("refused")
    with pytest.raises(PaymentError, match="unavailable"):
        await create_payment_intent(1.0)


@pytest.mark.asyncio
@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_malformed_response(mock_post, payments):
    mock_post.return_value = make_response(200, {"clientSecret": "cs_1"}, url=PAYMENT_URL)
    with pytest.raises(PaymentError, match="Payment setup failed"):
        await create_payment_intent(1.0)
