"""
PaymentAgent HTTP routes — /api/payments

  POST /api/payments                         → create checkout (Monobank invoice)
  POST /api/payments/webhook                 → gateway push; always {"status": "ok"}
  GET  /api/payments/success?reportId&reference → browser return; reconcile, 303 onward
  GET  /api/payments/{reference}             → last reconciled status

app.state resources (payment_store, reconciler, gateway) are set in main.py lifespan.
Gateway errors propagate to the handlers in main.py:
  GatewayUnavailableError → 503, GatewayValidationError → 502 GATEWAY_REJECTED.
"""
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from astroline.agents.payment_agent.gateway import GatewayError
from astroline.agents.payment_agent.plans import CURRENCY_UAH, build_reference, get_plan
from astroline.agents.payment_agent.schemas import (
    CreatePaymentRequest,
    CreatePaymentResponse,
    PaymentRecord,
    PaymentStatus,
    PaymentStatusResponse,
)
from astroline.config import settings
from astroline.store import StoreError

router = APIRouter(prefix="/api/payments", tags=["payment_agent"])
logger = logging.getLogger(__name__)

PAYMENT_UNAVAILABLE = "Payment system unavailable"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _success_page_url(report_id: str, reference: Optional[str]) -> str:
    params = {"reportId": report_id}
    if reference:
        params["reference"] = reference
    return f"{settings.public_base_url.rstrip('/')}/payment/success?{urlencode(params)}"


def _redirect_callback_url(report_id: str, reference: str) -> str:
    query = urlencode({"reportId": report_id, "reference": reference})
    return f"{settings.api_base_url.rstrip('/')}/api/payments/success?{query}"


def _webhook_url() -> str:
    return f"{settings.api_base_url.rstrip('/')}/api/payments/webhook"


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("")
async def create_payment(body: CreatePaymentRequest, request: Request) -> JSONResponse:
    """
    Start a checkout for a report.

    The payment record is persisted BEFORE the invoice exists — an
    unpersisted reference could never be reconciled, so a store failure
    is a 503 rather than a degraded success.
    """
    plan = get_plan(body.plan_id)
    if plan is None:
        raise HTTPException(status_code=422, detail=f"Unknown plan '{body.plan_id}'")

    state = request.app.state
    reference = build_reference(body.report_id)
    record = PaymentRecord(
        reference=reference,
        report_id=body.report_id,
        email=body.email,
        plan_id=plan.plan_id,
        amount=plan.amount,
    )
    try:
        await state.payment_store.create(record)
    except StoreError:
        raise HTTPException(status_code=503, detail=PAYMENT_UNAVAILABLE)

    reconciler = state.reconciler
    if reconciler.test_mode:
        outcome = await reconciler.apply_status(reference, PaymentStatus.success, source="test-mode")
        logger.info("Test-mode payment reference=%s unlocked=%s", reference, outcome.unlocked)
        response = CreatePaymentResponse(
            reference=reference,
            page_url=_success_page_url(body.report_id, reference),
            test_mode=True,
        )
        return JSONResponse(status_code=200, content=response.model_dump())

    try:
        invoice = await state.gateway.create_invoice(
            amount=plan.amount,
            reference=reference,
            destination=f"Astroline — {plan.name}",
            redirect_url=_redirect_callback_url(body.report_id, reference),
            webhook_url=_webhook_url(),
            validity=settings.invoice_validity_seconds,
            basket=[{"name": plan.name, "qty": 1, "sum": plan.amount, "code": plan.plan_id}],
            ccy=CURRENCY_UAH,
        )
    except GatewayError:
        try:
            await state.payment_store.compare_and_set_status(
                reference, PaymentStatus.created, PaymentStatus.failure
            )
        except Exception as exc:
            logger.error("Could not mark failed checkout reference=%s: %s", reference, exc)
        raise

    try:
        await state.payment_store.set_invoice_id(reference, invoice.invoice_id)
    except StoreError as exc:
        # The webhook still carries the reference, so reconciliation survives
        logger.error("Could not store invoice_id reference=%s: %s", reference, exc)

    response = CreatePaymentResponse(
        reference=reference,
        invoice_id=invoice.invoice_id,
        page_url=invoice.page_url,
    )
    return JSONResponse(status_code=200, content=response.model_dump())


@router.post("/webhook")
async def payment_webhook(request: Request) -> dict:
    """Gateway push. Acknowledged unconditionally; failures are logged, never surfaced."""
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Webhook body is not JSON, acknowledged and ignored")
        return {"status": "ok"}
    if not isinstance(payload, dict):
        logger.warning("Webhook body is not an object, acknowledged and ignored")
        return {"status": "ok"}

    await request.app.state.reconciler.handle_webhook(payload)
    return {"status": "ok"}


@router.get("/success")
async def payment_success(
    request: Request,
    report_id: Optional[str] = Query(default=None, alias="reportId"),
    reference: Optional[str] = Query(default=None),
) -> RedirectResponse:
    """
    Browser return from checkout. Always forwards the user onward; the
    authoritative unlock is retried by later webhook deliveries if this one fails.
    """
    outcome = await request.app.state.reconciler.handle_redirect(report_id, reference)
    if not outcome.report_id:
        return RedirectResponse(
            url=f"{settings.public_base_url.rstrip('/')}/?payment=error",
            status_code=303,
        )
    return RedirectResponse(url=_success_page_url(outcome.report_id, reference), status_code=303)


@router.get("/{reference}")
async def get_payment_status(reference: str, request: Request) -> JSONResponse:
    record = await request.app.state.payment_store.get(reference)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Payment '{reference}' not found")
    body = PaymentStatusResponse(
        reference=record.reference,
        report_id=record.report_id,
        status=record.status,
        is_terminal=record.status.is_terminal,
        amount=record.amount,
        modified_at=record.modified_at,
    )
    return JSONResponse(status_code=200, content=body.model_dump(mode="json"))
