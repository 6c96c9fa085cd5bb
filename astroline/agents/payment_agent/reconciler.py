"""
reconciler.py — FulfillmentReconciler: one order-aware state machine fed by
two racing producers (gateway webhook and browser redirect).

Ordering (see schemas.is_transition_allowed):
  created(0) < processing(1) < hold(2) < terminal(3)
  a status applies only if it ranks strictly higher than the stored one;
  success → reversed is the single terminal → terminal edge.

Every status write is a compare-and-set against the stored status, retried
on conflict, so concurrent deliveries cannot move the record backwards.

Unlock:
  After any observation whose effective stored status is success, the
  reconciler calls ReportStore.mark_paid(). Only the call that flips the
  flag runs on_unlock (the delivery email). A failed unlock is retried by
  the next delivery for the same reference.

A reversal (refund) is recorded but does not re-lock an unlocked report.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from astroline.agents.payment_agent.gateway import GatewayError, MonobankClient
from astroline.agents.payment_agent.plans import parse_reference
from astroline.agents.payment_agent.schemas import (
    PaymentStatus,
    WebhookPayload,
    is_transition_allowed,
    parse_status,
)
from astroline.store import PaymentStore, ReportStore

logger = logging.getLogger(__name__)

UnlockCallback = Callable[[str], Awaitable[None]]

# Bound on compare-and-set retries; each retry means another writer advanced the record
MAX_CAS_ATTEMPTS = 8


@dataclass
class ReconcileOutcome:
    reference: Optional[str]
    report_id: Optional[str]
    status: Optional[PaymentStatus] = None   # effective stored status afterwards
    applied: bool = False                    # this call wrote the status
    unlocked: bool = False                   # this call flipped is_paid
    verified: bool = False                   # status came from the gateway, not a guess


class FulfillmentReconciler:

    def __init__(
        self,
        payment_store: PaymentStore,
        report_store: ReportStore,
        gateway: Optional[MonobankClient] = None,
        on_unlock: Optional[UnlockCallback] = None,
        test_mode: bool = False,
    ):
        self.payment_store = payment_store
        self.report_store = report_store
        self.gateway = gateway
        self.on_unlock = on_unlock
        self.test_mode = test_mode

    # ------------------------------------------------------------------
    # Core state machine
    # ------------------------------------------------------------------

    async def apply_status(
        self,
        reference: str,
        status: PaymentStatus,
        *,
        invoice_id: Optional[str] = None,
        amount: Optional[int] = None,
        source: str = "webhook",
    ) -> ReconcileOutcome:
        record = await self.payment_store.get(reference)

        if record is None:
            report_id = parse_reference(reference)
            if report_id is None:
                logger.warning("Unknown reference with no derivable report reference=%s source=%s", reference, source)
                return ReconcileOutcome(reference=reference, report_id=None)
            logger.warning(
                "No payment record reference=%s source=%s, using report_id=%s from reference",
                reference, source, report_id,
            )
            unlocked = False
            if status == PaymentStatus.success:
                unlocked = await self._unlock(report_id, reference, source)
            return ReconcileOutcome(reference=reference, report_id=report_id, status=status, unlocked=unlocked)

        if invoice_id and record.invoice_id and invoice_id != record.invoice_id:
            logger.warning(
                "Invoice mismatch reference=%s stored=%s observed=%s source=%s",
                reference, record.invoice_id, invoice_id, source,
            )

        if status == PaymentStatus.success and amount is not None and amount != record.amount:
            logger.error(
                "Amount mismatch reference=%s expected=%d observed=%d source=%s, not applied",
                reference, record.amount, amount, source,
            )
            return ReconcileOutcome(reference=reference, report_id=record.report_id, status=record.status)

        applied = False
        for _ in range(MAX_CAS_ATTEMPTS):
            current = record.status
            if not is_transition_allowed(current, status):
                logger.info(
                    "Status %s ignored reference=%s stored=%s source=%s",
                    status.value, reference, current.value, source,
                )
                break
            if await self.payment_store.compare_and_set_status(reference, current, status):
                applied = True
                logger.info(
                    "Status applied reference=%s %s→%s source=%s",
                    reference, current.value, status.value, source,
                )
                break
            refreshed = await self.payment_store.get(reference)
            if refreshed is None:
                break
            record = refreshed
        else:
            logger.error("Compare-and-set gave up reference=%s status=%s source=%s", reference, status.value, source)

        effective = status if applied else record.status
        unlocked = False
        if effective == PaymentStatus.success:
            unlocked = await self._unlock(record.report_id, reference, source)
        elif applied and status == PaymentStatus.reversed:
            logger.warning("Payment reversed reference=%s report_id=%s, report stays unlocked", reference, record.report_id)

        return ReconcileOutcome(
            reference=reference,
            report_id=record.report_id,
            status=effective,
            applied=applied,
            unlocked=unlocked,
        )

    async def _unlock(self, report_id: str, reference: Optional[str], source: str) -> bool:
        try:
            flipped = await self.report_store.mark_paid(report_id)
        except Exception as exc:
            logger.error("Unlock failed report_id=%s reference=%s source=%s: %s", report_id, reference, source, exc)
            return False
        if not flipped:
            logger.debug("Report already unlocked or missing report_id=%s source=%s", report_id, source)
            return False

        logger.info("Unlock performed report_id=%s reference=%s source=%s", report_id, reference, source)
        if self.on_unlock is not None:
            try:
                await self.on_unlock(report_id)
            except Exception as exc:
                logger.error(
                    "Report delivery pending report_id=%s, resend via POST /api/reports/%s/send: %s",
                    report_id, report_id, exc,
                )
        return True

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    async def handle_webhook(self, payload: Union[WebhookPayload, dict[str, Any]]) -> Optional[ReconcileOutcome]:
        """Apply a gateway push. Never raises; the gateway always gets an acknowledgement."""
        try:
            event = payload if isinstance(payload, WebhookPayload) else WebhookPayload.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Malformed webhook payload ignored: %d errors", exc.error_count())
            return None

        try:
            status = parse_status(event.status)
            if status is None:
                logger.warning("Webhook with unknown status=%r invoice_id=%s ignored", event.status, event.invoice_id)
                return None

            reference = event.reference
            if not reference and event.invoice_id:
                record = await self.payment_store.find_by_invoice_id(event.invoice_id)
                reference = record.reference if record else None
            if not reference:
                logger.warning("Webhook without resolvable reference invoice_id=%s ignored", event.invoice_id)
                return None

            return await self.apply_status(
                reference,
                status,
                invoice_id=event.invoice_id,
                amount=event.amount,
                source="webhook",
            )
        except Exception:
            logger.exception("Webhook processing failed invoice_id=%s reference=%s", event.invoice_id, event.reference)
            return None

    async def handle_redirect(self, report_id: Optional[str], reference: Optional[str]) -> ReconcileOutcome:
        """
        Reconcile on the browser's return from checkout. Never raises.

        With a stored invoice the gateway's own status is applied. Without one,
        or when the gateway is unreachable, the report is unlocked optimistically
        by report id alone, unless the stored record has already settled as a
        failure.
        """
        try:
            return await self._handle_redirect(report_id, reference)
        except Exception:
            logger.exception("Redirect reconciliation failed report_id=%s reference=%s", report_id, reference)
            return ReconcileOutcome(reference=reference, report_id=report_id)

    async def _handle_redirect(self, report_id: Optional[str], reference: Optional[str]) -> ReconcileOutcome:
        record = await self.payment_store.get(reference) if reference else None

        if record is not None:
            if report_id and report_id != record.report_id:
                logger.warning(
                    "Redirect report_id=%s does not match reference=%s, using stored report_id=%s",
                    report_id, reference, record.report_id,
                )
            report_id = record.report_id
        elif not report_id and reference:
            report_id = parse_reference(reference)

        if not report_id:
            logger.warning("Redirect without derivable report id reference=%s", reference)
            return ReconcileOutcome(reference=reference, report_id=None)

        if self.test_mode:
            if reference:
                outcome = await self.apply_status(reference, PaymentStatus.success, source="redirect-test")
                outcome.report_id = outcome.report_id or report_id
                return outcome
            unlocked = await self._unlock(report_id, None, "redirect-test")
            return ReconcileOutcome(reference=None, report_id=report_id, status=PaymentStatus.success, unlocked=unlocked)

        if record is not None and record.invoice_id and self.gateway is not None:
            try:
                invoice = await self.gateway.get_invoice_status(record.invoice_id)
            except GatewayError as exc:
                logger.warning("Gateway status check failed reference=%s: %s, optimistic unlock", reference, exc)
            else:
                if invoice.status is not None:
                    outcome = await self.apply_status(
                        record.reference,
                        invoice.status,
                        invoice_id=invoice.invoice_id,
                        amount=invoice.amount,
                        source="redirect",
                    )
                    outcome.verified = True
                    return outcome
                logger.warning("Gateway returned unknown status=%r reference=%s", invoice.raw_status, reference)

        if record is not None and record.status.is_terminal and record.status != PaymentStatus.success:
            logger.warning(
                "Redirect for settled payment reference=%s status=%s, report stays locked",
                reference, record.status.value,
            )
            return ReconcileOutcome(reference=reference, report_id=report_id, status=record.status)

        unlocked = await self._unlock(report_id, reference, "redirect-optimistic")
        return ReconcileOutcome(
            reference=reference,
            report_id=report_id,
            status=record.status if record else None,
            unlocked=unlocked,
        )
