"""
Shared test data and doubles for Astroline tests.

  - FakeRedis        — dict-backed stand-in for redis.asyncio (get/setex/delete)
  - make_user()      — a validated UserInput for a Leo born 1990-08-15
  - make_report()    — the static report for that user
  - mock_gateway()   — MonobankClient over httpx.MockTransport
"""
from typing import Any, Optional

import httpx

from astroline.agents.delivery_agent.email_service import EmailService
from astroline.agents.payment_agent.gateway import MonobankClient
from astroline.agents.report_agent.generator import ReportGenerator
from astroline.agents.report_agent.providers import StaticProvider
from astroline.agents.report_agent.schemas import FullReport, Language, UserInput
from astroline.agents.report_agent.static_report import build_static_report

FORECAST_YEAR = 2026

USER_PAYLOAD: dict[str, Any] = {
    "email": "Olena@Example.com",
    "gender": "female",
    "birth_date": "1990-08-15",
    "birth_time": "14:30",
    "birth_place": "Kyiv, Ukraine",
    "birth_lat": 50.45,
    "birth_lng": 30.52,
    "sun_sign": "leo",
    "moon_sign": "cancer",
    "rising_sign": "virgo",
    "goals": ["love", "career"],
    "relationship_status": "single",
    "favorite_color": "gold",
    "element": "fire",
}


class FakeRedis:
    """Minimal async Redis double: only the calls cache.py makes."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, key: str) -> int:
        self.ttls.pop(key, None)
        return 1 if self.data.pop(key, None) is not None else 0

    async def aclose(self) -> None:
        pass


def make_user(**overrides: Any) -> UserInput:
    """Overrides set to None drop the field entirely."""
    payload = {**USER_PAYLOAD, **overrides}
    return UserInput.model_validate({k: v for k, v in payload.items() if v is not None})


def make_report(report_id: str = "abcd1234", **overrides: Any) -> FullReport:
    return build_static_report(
        report_id, make_user(**overrides), None, False, Language.en, FORECAST_YEAR
    )


def mock_gateway(handler=None, token: str = "test-token") -> MonobankClient:
    """MonobankClient over httpx.MockTransport; the default handler answers 500."""
    if handler is None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"errText": "unexpected call"})
    return MonobankClient(
        token=token,
        base_url="https://mono.test/api/merchant",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


def email_service(api_key: str = "", handler=None) -> EmailService:
    return EmailService(
        api_key=api_key,
        base_url="https://resend.test",
        sender="Astroline <noreply@astroline.test>",
        reply_to="support@astroline.test",
        public_base_url="https://astroline.test",
        timeout=5.0,
        transport=httpx.MockTransport(handler) if handler else None,
    )


def static_generator() -> ReportGenerator:
    return ReportGenerator([StaticProvider()], timeout_seconds=5.0, forecast_year=FORECAST_YEAR)
