"""
Tests for the Monobank client error contract, using httpx.MockTransport.

Run: pytest astroline/tests/test_gateway.py -v
"""
import json

import httpx
import pytest

from astroline.agents.payment_agent.gateway import (
    GatewayUnavailableError,
    GatewayValidationError,
)
from astroline.agents.payment_agent.plans import build_reference, get_plan, parse_reference
from astroline.agents.payment_agent.schemas import PaymentStatus
from astroline.tests.helpers import mock_gateway

REFERENCE = "ASTRO-abcd1234-1700000000000"


def _respond(status_code: int, body=None):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=body if body is not None else {})
    return handler


async def _create(client):
    return await client.create_invoice(
        amount=4200,
        reference=REFERENCE,
        destination="Astroline — 1-Week Trial",
        redirect_url="https://api.astroline.test/api/payments/success?reportId=abcd1234",
        webhook_url="https://api.astroline.test/api/payments/webhook",
        validity=3600,
        basket=[{"name": "1-Week Trial", "qty": 1, "sum": 4200, "code": "trial_1w"}],
    )


class TestPlans:

    def test_reference_format(self):
        assert build_reference("abcd1234", now_ms=1700000000000) == REFERENCE

    @pytest.mark.parametrize("reference,expected", [
        (REFERENCE, "abcd1234"),
        ("ASTRO-abcd1234-notdigits", None),
        ("ORDER-abcd1234-1700000000000", None),
        ("ASTRO--1700000000000", None),
        ("", None),
        (None, None),
    ])
    def test_parse_reference(self, reference, expected):
        assert parse_reference(reference) == expected

    def test_price_plans(self):
        assert get_plan("trial_1w").amount == 4200
        assert get_plan("trial_2w").amount == 22900
        assert get_plan("trial_4w").amount == 41900
        assert get_plan("lifetime") is None


class TestCreateInvoice:

    @pytest.mark.asyncio
    async def test_request_body_and_headers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["token"] = request.headers["X-Token"]
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"invoiceId": "inv-1", "pageUrl": "https://pay.mbnk.biz/inv-1"})

        created = await _create(mock_gateway(handler))

        assert created.invoice_id == "inv-1"
        assert created.page_url == "https://pay.mbnk.biz/inv-1"
        assert seen["token"] == "test-token"
        assert seen["path"] == "/api/merchant/invoice/create"
        body = seen["body"]
        assert body["amount"] == 4200
        assert body["ccy"] == 980
        assert body["merchantPaymInfo"]["reference"] == REFERENCE
        assert body["merchantPaymInfo"]["basketOrder"][0]["sum"] == 4200
        assert body["webHookUrl"].endswith("/api/payments/webhook")
        assert body["paymentType"] == "debit"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [400, 404, 422])
    async def test_rejections_are_validation_errors(self, status_code):
        with pytest.raises(GatewayValidationError) as exc_info:
            await _create(mock_gateway(_respond(status_code, {"errText": "bad amount"})))
        assert exc_info.value.status_code == status_code

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403, 429, 500, 502])
    async def test_other_failures_are_unavailable(self, status_code):
        with pytest.raises(GatewayUnavailableError):
            await _create(mock_gateway(_respond(status_code)))

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(GatewayUnavailableError):
            await _create(mock_gateway(handler))

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(GatewayUnavailableError):
            await _create(mock_gateway(handler))

    @pytest.mark.asyncio
    async def test_missing_token_never_calls_gateway(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={})

        client = mock_gateway(handler, token="")
        assert client.is_configured is False
        with pytest.raises(GatewayUnavailableError):
            await _create(client)
        assert calls == []

    @pytest.mark.asyncio
    async def test_incomplete_response_is_unavailable(self):
        with pytest.raises(GatewayUnavailableError):
            await _create(mock_gateway(_respond(200, {"invoiceId": "inv-1"})))


class TestInvoiceStatus:

    @pytest.mark.asyncio
    async def test_known_status(self):
        client = mock_gateway(_respond(200, {
            "invoiceId": "inv-1", "status": "success", "amount": 4200, "ccy": 980, "reference": REFERENCE,
        }))
        status = await client.get_invoice_status("inv-1")
        assert status.status == PaymentStatus.success
        assert status.amount == 4200
        assert status.reference == REFERENCE

    @pytest.mark.asyncio
    async def test_unknown_status_is_none(self):
        client = mock_gateway(_respond(200, {"invoiceId": "inv-1", "status": "mystery"}))
        status = await client.get_invoice_status("inv-1")
        assert status.status is None
        assert status.raw_status == "mystery"

    @pytest.mark.asyncio
    async def test_cancel_invoice(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"status": "processing"})

        result = await mock_gateway(handler).cancel_invoice("inv-1", ext_ref=REFERENCE, amount=4200)
        assert result["status"] == "processing"
        assert seen["body"] == {"invoiceId": "inv-1", "extRef": REFERENCE, "amount": 4200}
