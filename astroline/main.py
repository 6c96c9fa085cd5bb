"""
main.py — Astroline FastAPI application entry point.

Start with: uvicorn astroline.main:app --reload --port 8000
(run from the project root)
"""
import logging
import os
import subprocess
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from astroline.agents.delivery_agent.email_service import EmailService, make_unlock_callback
from astroline.agents.palm_agent.validator import PalmValidator
from astroline.agents.payment_agent.gateway import (
    GatewayUnavailableError,
    GatewayValidationError,
    MonobankClient,
)
from astroline.agents.payment_agent.reconciler import FulfillmentReconciler
from astroline.agents.report_agent.generator import ReportGenerator
from astroline.agents.report_agent.providers import GroqProvider, MistralProvider, StaticProvider
from astroline.config import settings
from astroline.store import PaymentStore, ReportStore, StoreError, build_stores

# ---------------------------------------------------------------------------
# Logging: configured before anything else
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Service wiring: shared by the lifespan and the test suite
# ---------------------------------------------------------------------------
def configure_app_state(
    app: FastAPI,
    *,
    redis: Any,
    report_store: ReportStore,
    payment_store: PaymentStore,
    mistral_client: Any = None,
    gateway: Optional[MonobankClient] = None,
    email_service: Optional[EmailService] = None,
    generator: Optional[ReportGenerator] = None,
    palm_validator: Optional[PalmValidator] = None,
    test_mode: Optional[bool] = None,
) -> None:
    """Attach every request-scoped collaborator to app.state."""
    state = app.state
    state.redis = redis
    state.mistral = mistral_client
    state.report_store = report_store
    state.payment_store = payment_store

    state.generator = generator or ReportGenerator(
        providers=[
            MistralProvider(mistral_client),
            GroqProvider(
                api_key=settings.groq_api_key,
                base_url=settings.groq_api_url,
                timeout=settings.ai_timeout_seconds,
            ),
            StaticProvider(),
        ],
        timeout_seconds=settings.ai_timeout_seconds,
        forecast_year=settings.forecast_year,
    )
    state.palm_validator = palm_validator or PalmValidator(
        mistral_client,
        model=settings.palm_vision_model,
        timeout_seconds=settings.ai_timeout_seconds,
    )
    state.gateway = gateway or MonobankClient(
        token=settings.monobank_token,
        base_url=settings.monobank_api_url,
        timeout=settings.gateway_timeout_seconds,
    )
    state.email_service = email_service or EmailService(
        api_key=settings.resend_api_key,
        base_url=settings.resend_api_url,
        sender=settings.email_from,
        reply_to=settings.email_reply_to,
        public_base_url=settings.public_base_url,
        timeout=settings.email_timeout_seconds,
    )
    state.reconciler = FulfillmentReconciler(
        payment_store=payment_store,
        report_store=report_store,
        gateway=state.gateway,
        on_unlock=make_unlock_callback(report_store, state.email_service),
        test_mode=settings.payment_test_mode if test_mode is None else test_mode,
    )


# ---------------------------------------------------------------------------
# Lifespan: startup & shutdown hooks
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      1. Run Alembic migrations (sql backend only)
      2. Initialize Redis connection pool (quiz sessions)
      3. Mistral client — singleton for HTTP connection pool reuse
      4. Stores, generator, gateway, email, reconciler → app.state
    Shutdown:
      1. Close Redis pool
      2. Dispose the SQL engine
    """
    # --- 1. Database: run Alembic migrations ---
    if settings.storage_backend == "sql":
        package_dir = os.path.dirname(os.path.abspath(__file__))
        result = subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            capture_output=True,
            text=True,
            cwd=package_dir,
        )
        if result.returncode != 0:
            logger.error("Alembic migration failed:\n%s", result.stderr)
            raise RuntimeError(f"Alembic migration failed: {result.stderr}")
        msg = result.stdout.strip() or "No pending migrations"
        logger.info("Alembic: %s", msg)

    # --- 2. Redis ---
    from astroline.cache import create_redis_pool
    redis = await create_redis_pool()

    # --- 3. Mistral client (optional: unconfigured provider is skipped) ---
    mistral_client = None
    if settings.mistral_api_key:
        from mistralai import Mistral
        mistral_client = Mistral(api_key=settings.mistral_api_key)
        logger.info("Mistral client initialized")
    else:
        logger.warning("MISTRAL_API_KEY not set, mistral provider and palm validation disabled")

    # --- 4. Services ---
    report_store, payment_store = build_stores(settings.storage_backend)
    configure_app_state(
        app,
        redis=redis,
        report_store=report_store,
        payment_store=payment_store,
        mistral_client=mistral_client,
    )
    if settings.payment_test_mode:
        logger.warning("PAYMENT_TEST_MODE is on, every checkout succeeds without the gateway")
    if not app.state.gateway.is_configured:
        logger.warning("MONOBANK_TOKEN not set, POST /api/payments will return 503")
    logger.info("Report providers: %s", ", ".join(app.state.generator.provider_names))

    logger.info("Astroline v%s starting up (storage=%s)", settings.app_version, settings.storage_backend)
    yield

    # --- Shutdown ---
    await redis.aclose()
    logger.info("Redis connection pool closed")
    if settings.storage_backend == "sql":
        from astroline.database import async_engine
        await async_engine.dispose()
    logger.info("Astroline shutting down")


# ---------------------------------------------------------------------------
# FastAPI application instance
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Astroline API",
    version=settings.app_version,
    description=(
        "Astrology lead-funnel backend: quiz sessions, personalized report generation, "
        "Monobank checkout and webhook/redirect payment reconciliation."
    ),
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# ---------------------------------------------------------------------------
# CORS middleware: restricted to frontend origins from settings
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error response helper
# ---------------------------------------------------------------------------
def _make_error_response(
    code: str,
    message: str,
    details: list[dict[str, Any]] | None = None,
    status_code: int = 500,
) -> JSONResponse:
    """Build a standard {error: {code, message, details}} response."""
    body = {
        "error": {
            "code": code,
            "message": message,
            "details": details or [],
        }
    }
    return JSONResponse(status_code=status_code, content=body)


# ---------------------------------------------------------------------------
# Global exception handlers: registered BEFORE routers
# ---------------------------------------------------------------------------
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return ALL field violations in one 422 response."""
    details = []
    for error in exc.errors():
        # Dot-notation field path without the top-level 'body'/'query' loc
        field = ".".join(str(loc) for loc in error["loc"] if loc not in ("body", "query"))
        details.append({"field": field or None, "issue": error["msg"]})
    return _make_error_response(
        code="VALIDATION_ERROR",
        message="Request validation failed",
        details=details,
        status_code=422,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Converts HTTPException to the standard error format with a semantic code."""
    code_map = {
        400: "BAD_REQUEST",
        402: "PAYMENT_REQUIRED",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        409: "CONFLICT",
        422: "VALIDATION_ERROR",
        429: "RATE_LIMITED",
        502: "BAD_GATEWAY",
        503: "SERVICE_UNAVAILABLE",
    }
    code = code_map.get(exc.status_code, f"HTTP_{exc.status_code}")
    return _make_error_response(
        code=code,
        message=str(exc.detail),
        status_code=exc.status_code,
    )


@app.exception_handler(GatewayUnavailableError)
async def gateway_unavailable_handler(
    request: Request, exc: GatewayUnavailableError
) -> JSONResponse:
    """Gateway down, timing out or not configured — the user sees a plain 'unavailable'."""
    logger.error("Payment gateway unavailable on %s: %s", request.url.path, exc)
    return _make_error_response(
        code="SERVICE_UNAVAILABLE",
        message="Payment system unavailable",
        status_code=503,
    )


@app.exception_handler(GatewayValidationError)
async def gateway_validation_handler(
    request: Request, exc: GatewayValidationError
) -> JSONResponse:
    """The gateway rejected our request — a bug or bad configuration on our side."""
    logger.error("Payment gateway rejected request on %s: %s", request.url.path, exc)
    details = [{"issue": str(exc)}] if settings.debug else []
    return _make_error_response(
        code="GATEWAY_REJECTED",
        message="Payment gateway rejected the request",
        details=details,
        status_code=502,
    )


@app.exception_handler(StoreError)
async def store_error_handler(
    request: Request, exc: StoreError
) -> JSONResponse:
    """Database unreachable on a read the request cannot do without."""
    logger.error("Store unavailable on %s: %s", request.url.path, exc)
    return _make_error_response(
        code="SERVICE_UNAVAILABLE",
        message="Storage temporarily unavailable",
        status_code=503,
    )


@app.exception_handler(ValueError)
async def value_error_handler(
    request: Request, exc: ValueError
) -> JSONResponse:
    """Explicit ValueError raises from business logic surface as 422."""
    return _make_error_response(
        code="VALIDATION_ERROR",
        message=str(exc),
        status_code=422,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Catch-all for unexpected errors.
    DEBUG=true  → includes exception type & message in details (dev only).
    DEBUG=false → generic message; full traceback logged server-side only.
    """
    logger.error(
        "Unhandled exception on %s %s",
        request.method,
        request.url.path,
        exc_info=True,
    )
    if settings.debug:
        details = [{"issue": f"{type(exc).__name__}: {exc}"}]
        message = "An unexpected error occurred (debug details included)"
    else:
        details = []
        message = "An unexpected error occurred"
    return _make_error_response(
        code="INTERNAL_ERROR",
        message=message,
        details=details,
        status_code=500,
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------
@app.get("/api/health", tags=["System"])
async def health_check(request: Request) -> dict:
    """Service health plus which optional integrations are configured."""
    state = request.app.state
    generator = getattr(state, "generator", None)
    gateway = getattr(state, "gateway", None)
    email_service = getattr(state, "email_service", None)
    palm_validator = getattr(state, "palm_validator", None)
    return {
        "status": "ok",
        "version": settings.app_version,
        "storage": settings.storage_backend,
        "providers": generator.provider_names if generator else [],
        "payments_configured": bool(gateway and gateway.is_configured),
        "payment_test_mode": settings.payment_test_mode,
        "email_configured": bool(email_service and email_service.enabled),
        "palm_validation_configured": bool(palm_validator and palm_validator.enabled),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ---------------------------------------------------------------------------
# Agent routers
# ---------------------------------------------------------------------------
from astroline.agents.quiz_agent.routes import router as quiz_agent_router  # noqa: E402
from astroline.agents.report_agent.routes import router as report_agent_router  # noqa: E402
from astroline.agents.payment_agent.routes import router as payment_agent_router  # noqa: E402
from astroline.agents.palm_agent.routes import router as palm_agent_router  # noqa: E402

app.include_router(quiz_agent_router)
app.include_router(report_agent_router)
app.include_router(payment_agent_router)
app.include_router(palm_agent_router)
