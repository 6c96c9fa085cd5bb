"""
schemas.py — PaymentAgent Pydantic v2 data contracts.

Defines:
  - PaymentStatus + ordering rules  (is_transition_allowed)
  - PaymentRecord                   (one checkout attempt, persisted)
  - CreatePaymentRequest / Response (POST /api/payments)
  - WebhookPayload                  (Monobank invoice status push)
  - InvoiceCreated / InvoiceStatus  (gateway client return types)

Monobank sends camelCase keys; models accept both camelCase and snake_case
(populate_by_name) so tests and internal callers can use either.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PaymentStatus(str, Enum):
    created = "created"
    processing = "processing"
    hold = "hold"
    success = "success"
    failure = "failure"
    reversed = "reversed"
    expired = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    PaymentStatus.success,
    PaymentStatus.failure,
    PaymentStatus.reversed,
    PaymentStatus.expired,
})

# Non-terminal statuses advance by rank; every terminal status shares rank 3
STATUS_RANK: dict[PaymentStatus, int] = {
    PaymentStatus.created: 0,
    PaymentStatus.processing: 1,
    PaymentStatus.hold: 2,
    PaymentStatus.success: 3,
    PaymentStatus.failure: 3,
    PaymentStatus.reversed: 3,
    PaymentStatus.expired: 3,
}


def is_transition_allowed(current: PaymentStatus, new: PaymentStatus) -> bool:
    """
    True when `new` may replace `current` in the store.

    A status applies only if it ranks strictly higher than the stored one.
    The single terminal→terminal edge is success → reversed (refund).
    Equal statuses never apply, so duplicates are no-ops.
    """
    if current == new:
        return False
    if current == PaymentStatus.success and new == PaymentStatus.reversed:
        return True
    return STATUS_RANK[new] > STATUS_RANK[current]


def parse_status(value: Optional[str]) -> Optional[PaymentStatus]:
    """Map a raw gateway status string to PaymentStatus; None when unknown."""
    if not value:
        return None
    try:
        return PaymentStatus(value.strip().lower())
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Persisted record
# ---------------------------------------------------------------------------

class PaymentRecord(BaseModel):
    """One checkout attempt. reference is unique and never changes."""
    reference: str
    report_id: str
    email: Optional[str] = None
    plan_id: str
    amount: int
    invoice_id: Optional[str] = None
    status: PaymentStatus = PaymentStatus.created
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    modified_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    paid_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# HTTP contracts
# ---------------------------------------------------------------------------

class CreatePaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    plan_id: str = Field(..., validation_alias=AliasChoices("plan_id", "planId"))
    report_id: str = Field(
        ...,
        min_length=1,
        max_length=32,
        validation_alias=AliasChoices("report_id", "reportId"),
    )
    email: Optional[str] = Field(default=None, max_length=320)


class CreatePaymentResponse(BaseModel):
    success: bool = True
    reference: str
    invoice_id: Optional[str] = None
    page_url: str
    test_mode: bool = False


class PaymentStatusResponse(BaseModel):
    reference: str
    report_id: str
    status: PaymentStatus
    is_terminal: bool
    amount: int
    modified_at: datetime


class WebhookPayload(BaseModel):
    """
    Monobank invoice status push.

    Every field is optional — a malformed push must still be acknowledged,
    the reconciler decides what is actionable.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    invoice_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("invoiceId", "invoice_id"))
    status: Optional[str] = None
    failure_reason: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("failureReason", "failure_reason")
    )
    amount: Optional[int] = None
    ccy: Optional[int] = None
    reference: Optional[str] = None
    modified_date: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("modifiedDate", "modified_date")
    )


class InvoiceCreated(BaseModel):
    invoice_id: str
    page_url: str


class InvoiceStatus(BaseModel):
    invoice_id: str
    status: Optional[PaymentStatus] = None
    raw_status: str = ""
    amount: Optional[int] = None
    ccy: Optional[int] = None
    reference: Optional[str] = None
    failure_reason: Optional[str] = None
