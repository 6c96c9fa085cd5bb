"""
Test configuration for Astroline tests.

sys.path is configured so 'from astroline...' resolves whether pytest is run
from the project root or from astroline/.

The FastAPI lifespan does not run under ASGITransport, so API tests wire
app.state through main.configure_app_state() with in-memory stores, a
dict-backed Redis and a mocked gateway (see helpers.py).
"""
import sys
from pathlib import Path
from typing import Any

import httpx
import pytest
import pytest_asyncio

_package_dir = Path(__file__).parent.parent       # .../astroline/
_project_root = _package_dir.parent              # .../

if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from astroline.store import InMemoryPaymentStore, InMemoryReportStore  # noqa: E402
from astroline.tests.helpers import (  # noqa: E402
    FakeRedis,
    email_service,
    mock_gateway,
    static_generator,
)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def report_store() -> InMemoryReportStore:
    return InMemoryReportStore()


@pytest.fixture
def payment_store() -> InMemoryPaymentStore:
    return InMemoryPaymentStore()


@pytest.fixture
def app_state(fake_redis, report_store, payment_store):
    """
    Wire app.state with in-memory collaborators. Returns a function that
    re-wires with overrides (gateway, test_mode, stores) for a single test.
    """
    from astroline.main import app, configure_app_state

    def configure(**overrides: Any):
        kwargs = {
            "redis": fake_redis,
            "report_store": report_store,
            "payment_store": payment_store,
            "gateway": mock_gateway(),
            "email_service": email_service(),
            "generator": static_generator(),
            "test_mode": False,
        }
        kwargs.update(overrides)
        configure_app_state(app, **kwargs)
        return app.state

    configure()
    return configure


@pytest_asyncio.fixture
async def client(app_state):
    """Async httpx client using ASGI transport — no live server needed."""
    from astroline.main import app

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
