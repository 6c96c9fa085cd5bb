"""
ReportAgent HTTP routes — POST  /api/reports
                          GET   /api/reports/{report_id}
                          PATCH /api/reports/{report_id}
                          GET   /api/reports/{report_id}/pdf
                          POST  /api/reports/{report_id}/send

Report creation is idempotent per quiz session: when session_id already owns
a stored report, that report is returned with provider "stored" and nothing
is generated. A failed lookup or save degrades to a fresh report with
persisted=false; the computed report is still returned.

app.state resources (report_store, generator, email_service, redis) are set
in main.py lifespan.
"""
import asyncio
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from redis.exceptions import RedisError

from astroline.agents.delivery_agent.email_service import (
    EmailDeliveryError,
    EmailNotConfiguredError,
)
from astroline.agents.quiz_agent.session_store import QuizSessionStore
from astroline.agents.report_agent.pdf_generator import generate_report_pdf
from astroline.agents.report_agent.schemas import (
    FullReport,
    PaidStatusUpdate,
    ReportRequest,
    public_view,
)

router = APIRouter(prefix="/api/reports", tags=["report_agent"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def new_report_id() -> str:
    """16 hex chars."""
    return secrets.token_hex(8)


def _quiz_store(request: Request) -> Optional[QuizSessionStore]:
    redis = getattr(request.app.state, "redis", None)
    return QuizSessionStore(redis) if redis is not None else None


async def _stored_report_for_session(request: Request, session_id: str) -> Optional[FullReport]:
    store = _quiz_store(request)
    if store is None:
        return None
    try:
        session = await store.load(session_id)
    except RedisError as exc:
        logger.warning("Quiz session lookup failed session_id=%s: %s", session_id, exc)
        return None
    if session is None or not session.report_id:
        return None
    try:
        return await request.app.state.report_store.get(session.report_id)
    except Exception as exc:
        logger.warning(
            "Stored report lookup failed session_id=%s report_id=%s: %s, generating a new report",
            session_id, session.report_id, exc,
        )
        return None


async def _attach_report_to_session(request: Request, session_id: str, report_id: str) -> None:
    store = _quiz_store(request)
    if store is None:
        return
    try:
        session = await store.load_or_new(session_id)
        session.attach_report(report_id)
        await store.save(session_id, session)
    except RedisError as exc:
        logger.warning("Could not link report to quiz session session_id=%s: %s", session_id, exc)


async def _load_paid_report(request: Request, report_id: str) -> FullReport:
    report = await request.app.state.report_store.get(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail=f"Report '{report_id}' not found")
    if not report.is_paid:
        raise HTTPException(status_code=402, detail="Report is locked until payment is completed")
    return report


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("")
async def create_report(body: ReportRequest, request: Request) -> JSONResponse:
    """
    Generate (or reuse) a report.

    Response: {success, report_id, provider, persisted, report}
    report is the public view — premium sections are null until paid.
    """
    if body.session_id:
        existing = await _stored_report_for_session(request, body.session_id)
        if existing is not None:
            logger.info("Reusing stored report report_id=%s session_id=%s", existing.id, body.session_id)
            return JSONResponse(status_code=200, content={
                "success": True,
                "report_id": existing.id,
                "provider": "stored",
                "persisted": True,
                "report": public_view(existing),
            })

    report_id = new_report_id()
    result = await request.app.state.generator.generate(
        report_id,
        body,
        palm_reading=body.palm_reading,
        is_paid_hint=False,
        language=body.language,
    )

    saved = await request.app.state.report_store.save(report_id, body.email, result.report)
    if not saved.success:
        logger.warning("Report not persisted report_id=%s: %s", report_id, saved.error)

    if body.session_id:
        await _attach_report_to_session(request, body.session_id, report_id)

    return JSONResponse(status_code=201, content={
        "success": True,
        "report_id": report_id,
        "provider": result.provider_used,
        "persisted": saved.success,
        "report": public_view(result.report),
    })


@router.get("/{report_id}")
async def get_report(report_id: str, request: Request) -> JSONResponse:
    report = await request.app.state.report_store.get(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail=f"Report '{report_id}' not found")
    return JSONResponse(status_code=200, content=public_view(report))


@router.patch("/{report_id}")
async def update_paid_status(report_id: str, body: PaidStatusUpdate, request: Request) -> JSONResponse:
    store = request.app.state.report_store
    if await store.get(report_id) is None:
        raise HTTPException(status_code=404, detail=f"Report '{report_id}' not found")
    result = await store.set_paid(report_id, body.is_paid)
    if not result.success:
        raise HTTPException(status_code=503, detail="Report store unavailable")
    return JSONResponse(status_code=200, content={
        "success": True,
        "report_id": report_id,
        "is_paid": body.is_paid,
    })


@router.get("/{report_id}/pdf")
async def download_report_pdf(report_id: str, request: Request) -> StreamingResponse:
    report = await _load_paid_report(request, report_id)
    buffer = await asyncio.to_thread(generate_report_pdf, report)
    return StreamingResponse(
        buffer,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="astroline-report-{report_id}.pdf"'},
    )


@router.post("/{report_id}/send")
async def send_report_email(report_id: str, request: Request) -> JSONResponse:
    report = await _load_paid_report(request, report_id)
    try:
        sent = await request.app.state.email_service.send_report(report)
    except EmailNotConfiguredError:
        raise HTTPException(status_code=503, detail="Email delivery is not configured")
    except EmailDeliveryError as exc:
        logger.error("Report email failed report_id=%s: %s", report_id, exc)
        raise HTTPException(status_code=502, detail="Email provider rejected the message")
    return JSONResponse(status_code=200, content={"success": True, "message_id": sent.message_id})
