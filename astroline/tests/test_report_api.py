"""
API tests for /api/reports — creation, redaction, paid flag, PDF and email.

Generator is the static provider only; stores are in-memory (see conftest.py).
Run: pytest astroline/tests/test_report_api.py -v
"""
import json

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from astroline.store import InMemoryReportStore, StoreError, StoreResult
from astroline.tests.helpers import USER_PAYLOAD, email_service, make_report


async def _create(client: AsyncClient, **overrides) -> dict:
    response = await client.post("/api/reports", json={**USER_PAYLOAD, **overrides})
    assert response.status_code in (200, 201), response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_report_returns_locked_view(client: AsyncClient) -> None:
    response = await client.post("/api/reports", json=USER_PAYLOAD)
    assert response.status_code == 201, response.text
    body = response.json()

    assert body["success"] is True
    assert body["provider"] == "static"
    assert body["persisted"] is True
    assert len(body["report_id"]) == 16

    report = body["report"]
    assert report["is_paid"] is False
    assert report["natal_chart"]["sun_sign"]["name"] == "Leo"
    assert report["numerology"]["life_path_number"] == 33
    assert report["user_data"]["email"] == "olena@example.com"
    for section in ("forecast", "love", "career", "lucky"):
        assert report[section] is None
        assert section in report["locked_sections"]


@pytest.mark.asyncio
async def test_missing_email_is_422(client: AsyncClient) -> None:
    payload = {k: v for k, v in USER_PAYLOAD.items() if k != "email"}
    response = await client.post("/api/reports", json=payload)
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert any(d["field"] == "email" for d in error["details"])


@pytest.mark.asyncio
@pytest.mark.parametrize("field,value", [
    ("sun_sign", "ophiuchus"),
    ("birth_time", "25:99"),
    ("birth_date", "15/08/1990"),
    ("email", "not-an-email"),
])
async def test_invalid_input_is_422(client: AsyncClient, field: str, value: str) -> None:
    response = await client.post("/api/reports", json={**USER_PAYLOAD, field: value})
    assert response.status_code == 422, response.text


@pytest.mark.asyncio
async def test_ukrainian_sign_name_is_accepted(client: AsyncClient) -> None:
    body = await _create(client, sun_sign="Лев", language="uk")
    assert body["report"]["natal_chart"]["sun_sign"]["symbol"] == "♌"
    assert body["report"]["language"] == "uk"


@pytest.mark.asyncio
async def test_extra_quiz_answers_are_tolerated(client: AsyncClient) -> None:
    body = await _create(client, modality="fixed", polarity="yang")
    assert body["success"] is True


@pytest.mark.asyncio
async def test_get_report_and_unlock_via_patch(client: AsyncClient) -> None:
    report_id = (await _create(client))["report_id"]

    response = await client.get(f"/api/reports/{report_id}")
    assert response.status_code == 200
    assert response.json()["forecast"] is None

    response = await client.patch(f"/api/reports/{report_id}", json={"is_paid": True})
    assert response.status_code == 200
    assert response.json() == {"success": True, "report_id": report_id, "is_paid": True}

    response = await client.get(f"/api/reports/{report_id}")
    body = response.json()
    assert body["is_paid"] is True
    assert len(body["forecast"]) == 4
    assert body["love"]["top_matches"][0]["percentage"] == 95
    assert body["locked_sections"] == []


@pytest.mark.asyncio
async def test_patch_is_idempotent(client: AsyncClient) -> None:
    report_id = (await _create(client))["report_id"]
    for _ in range(2):
        response = await client.patch(f"/api/reports/{report_id}", json={"is_paid": True})
        assert response.status_code == 200
    assert (await client.get(f"/api/reports/{report_id}")).json()["is_paid"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"is_paid": "true"},
    {"is_paid": 1},
    {"is_paid": None},
    {},
    {"is_paid": True, "extra": 1},
])
async def test_patch_requires_strict_boolean(client: AsyncClient, body: dict) -> None:
    report_id = (await _create(client))["report_id"]
    response = await client.patch(f"/api/reports/{report_id}", json=body)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_report_is_404(client: AsyncClient) -> None:
    assert (await client.get("/api/reports/ffffffffffffffff")).status_code == 404
    response = await client.patch("/api/reports/ffffffffffffffff", json={"is_paid": True})
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_session_reuse_returns_stored_report(client: AsyncClient) -> None:
    session_id = (await client.post("/api/quiz/sessions")).json()["session_id"]

    first = await client.post("/api/reports", json={**USER_PAYLOAD, "session_id": session_id})
    assert first.status_code == 201
    report_id = first.json()["report_id"]

    quiz = (await client.get(f"/api/quiz/sessions/{session_id}")).json()
    assert quiz["report_id"] == report_id

    second = await client.post("/api/reports", json={**USER_PAYLOAD, "session_id": session_id})
    assert second.status_code == 200
    assert second.json()["provider"] == "stored"
    assert second.json()["report_id"] == report_id


@pytest.mark.asyncio
async def test_session_lookup_outage_still_generates_report(client: AsyncClient, app_state) -> None:
    session_id = (await client.post("/api/quiz/sessions")).json()["session_id"]
    first = await client.post("/api/reports", json={**USER_PAYLOAD, "session_id": session_id})
    assert first.status_code == 201

    class DownReportStore(InMemoryReportStore):
        async def get(self, report_id):
            raise OperationalError("SELECT reports", {}, ConnectionRefusedError("db down"))

        async def save(self, report_id, email, report):
            return StoreResult(success=False, error="db down")

    app_state(report_store=DownReportStore())
    second = await client.post("/api/reports", json={**USER_PAYLOAD, "session_id": session_id})

    assert second.status_code == 201, second.text
    body = second.json()
    assert body["persisted"] is False
    assert body["provider"] == "static"
    assert body["report_id"] != first.json()["report_id"]


@pytest.mark.asyncio
async def test_report_read_outage_is_503(client: AsyncClient, app_state) -> None:
    class DownReportStore(InMemoryReportStore):
        async def get(self, report_id):
            raise StoreError("db down")

    app_state(report_store=DownReportStore())
    response = await client.get("/api/reports/abcd1234")

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "SERVICE_UNAVAILABLE"


@pytest.mark.asyncio
async def test_failed_save_still_returns_report(client: AsyncClient, app_state) -> None:
    class BrokenReportStore(InMemoryReportStore):
        async def save(self, report_id, email, report):
            return StoreResult(success=False, error="database unreachable")

    app_state(report_store=BrokenReportStore())
    response = await client.post("/api/reports", json=USER_PAYLOAD)
    assert response.status_code == 201
    assert response.json()["persisted"] is False
    assert response.json()["report"]["natal_chart"]["sun_sign"]["name"] == "Leo"


@pytest.mark.asyncio
async def test_pdf_requires_payment(client: AsyncClient, report_store) -> None:
    await report_store.save("abcd1234", "olena@example.com", make_report("abcd1234"))

    response = await client.get("/api/reports/abcd1234/pdf")
    assert response.status_code == 402
    assert response.json()["error"]["code"] == "PAYMENT_REQUIRED"

    await report_store.set_paid("abcd1234", True)
    response = await client.get("/api/reports/abcd1234/pdf")
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.content.startswith(b"%PDF")


@pytest.mark.asyncio
async def test_send_email_not_configured_is_503(client: AsyncClient, report_store) -> None:
    await report_store.save("abcd1234", "olena@example.com", make_report("abcd1234"))
    await report_store.set_paid("abcd1234", True)

    response = await client.post("/api/reports/abcd1234/send")
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_send_email_posts_pdf_to_resend(client: AsyncClient, app_state, report_store) -> None:
    sent = {}

    def resend(request: httpx.Request) -> httpx.Response:
        sent["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "msg_123"})

    app_state(email_service=email_service(api_key="re_test", handler=resend))
    await report_store.save("abcd1234", "olena@example.com", make_report("abcd1234"))
    await report_store.set_paid("abcd1234", True)

    response = await client.post("/api/reports/abcd1234/send")
    assert response.status_code == 200
    assert response.json() == {"success": True, "message_id": "msg_123"}
    assert sent["body"]["to"] == ["olena@example.com"]
    assert sent["body"]["attachments"][0]["filename"] == "astroline-report-abcd1234.pdf"


@pytest.mark.asyncio
async def test_send_email_provider_error_is_502(client: AsyncClient, app_state, report_store) -> None:
    def resend_down(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "internal"})

    app_state(email_service=email_service(api_key="re_test", handler=resend_down))
    await report_store.save("abcd1234", "olena@example.com", make_report("abcd1234"))
    await report_store.set_paid("abcd1234", True)

    response = await client.post("/api/reports/abcd1234/send")
    assert response.status_code == 502
