"""
Tests for report delivery email (Resend over httpx.MockTransport) and the
reconciler's post-unlock hook.

Run: pytest astroline/tests/test_email_service.py -v
"""
import base64
import json

import httpx
import pytest

from astroline.agents.delivery_agent.email_service import (
    EmailDeliveryError,
    EmailNotConfiguredError,
    make_unlock_callback,
)
from astroline.agents.payment_agent.reconciler import FulfillmentReconciler
from astroline.agents.payment_agent.schemas import PaymentStatus
from astroline.store import InMemoryPaymentStore, InMemoryReportStore
from astroline.tests.helpers import email_service, make_report


def _recording_resend(sent: list):
    def handler(request: httpx.Request) -> httpx.Response:
        sent.append({"auth": request.headers["Authorization"], "body": json.loads(request.content)})
        return httpx.Response(200, json={"id": f"msg_{len(sent)}"})
    return handler


@pytest.mark.asyncio
async def test_send_report_attaches_pdf() -> None:
    sent: list = []
    service = email_service(api_key="re_test", handler=_recording_resend(sent))

    result = await service.send_report(make_report("abcd1234"))

    assert result.message_id == "msg_1"
    assert result.recipient == "olena@example.com"
    request = sent[0]
    assert request["auth"] == "Bearer re_test"
    assert request["body"]["reply_to"] == "support@astroline.test"
    assert "Leo" in request["body"]["subject"]
    assert "https://astroline.test/report/abcd1234" in request["body"]["html"]
    pdf = base64.b64decode(request["body"]["attachments"][0]["content"])
    assert pdf.startswith(b"%PDF")


@pytest.mark.asyncio
async def test_send_report_without_key_raises() -> None:
    with pytest.raises(EmailNotConfiguredError):
        await email_service().send_report(make_report())


@pytest.mark.asyncio
async def test_send_report_provider_error_raises() -> None:
    def rejecting(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"message": "invalid from address"})

    with pytest.raises(EmailDeliveryError):
        await email_service(api_key="re_test", handler=rejecting).send_report(make_report())


@pytest.mark.asyncio
async def test_unlock_sends_exactly_one_email() -> None:
    sent: list = []
    reports = InMemoryReportStore()
    await reports.save("abcd1234", "olena@example.com", make_report("abcd1234"))
    service = email_service(api_key="re_test", handler=_recording_resend(sent))
    reconciler = FulfillmentReconciler(
        InMemoryPaymentStore(), reports, on_unlock=make_unlock_callback(reports, service)
    )

    reference = "ASTRO-abcd1234-1700000000000"
    await reconciler.apply_status(reference, PaymentStatus.success)
    await reconciler.apply_status(reference, PaymentStatus.success)
    await reconciler.handle_redirect("abcd1234", None)

    assert len(sent) == 1
    assert sent[0]["body"]["to"] == ["olena@example.com"]


@pytest.mark.asyncio
async def test_unlock_callback_skips_when_not_configured() -> None:
    reports = InMemoryReportStore()
    await reports.save("abcd1234", None, make_report("abcd1234"))
    deliver = make_unlock_callback(reports, email_service())
    # No API key: returns quietly instead of raising
    await deliver("abcd1234")
