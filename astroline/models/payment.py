"""
models/payment.py — SQLAlchemy ORM model for checkout attempts.

Table: payments
One row per checkout attempt, keyed by the merchant reference
ASTRO-<reportId>-<epochMillis>. Retries create a new row.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from astroline.database import Base


class PaymentORM(Base):
    """
    ORM model for a payment reference and its reconciled lifecycle status.

    status is only ever written through a compare-and-set UPDATE
    (see store.SqlPaymentStore.compare_and_set_status).
    """
    __tablename__ = "payments"

    reference: Mapped[str] = mapped_column(
        String(80),
        primary_key=True,
        comment="Merchant reference — ASTRO-<reportId>-<epochMillis>",
    )
    report_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        index=True,
        comment="Report unlocked by this payment",
    )
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    plan_id: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Key of PRICE_PLANS — trial_1w / trial_2w / trial_4w",
    )
    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Amount in the smallest currency unit (kopecks)",
    )
    invoice_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
        comment="Gateway invoice id — null until the invoice is created",
    )
    status: Mapped[str] = mapped_column(
        String(12),
        nullable=False,
        default="created",
        comment="created|processing|hold|success|failure|reversed|expired",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    modified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
