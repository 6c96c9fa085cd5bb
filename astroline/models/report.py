"""
models/report.py — SQLAlchemy ORM model for generated reports.

Table: reports
Storage strategy: JSON blob for the full report body.
The body is written once at creation and never rewritten; only the is_paid
column changes afterwards. Readers overlay is_paid onto the body.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from astroline.database import Base, JSONType


class ReportORM(Base):
    """
    ORM model for one generated FullReport.

    report_data: Full FullReport serialized as JSON(B). Birth data lives only
                 inside the blob, never in queryable columns.
    is_paid:     Denormalized unlock flag — the single authoritative gate for
                 premium content. Compare-and-set target for the reconciler.
    """
    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        comment="Opaque report id (16 hex chars)",
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(320),
        nullable=True,
        comment="Buyer email captured at the quiz email step",
    )
    is_paid: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Unlock flag — starts false, set true exactly once per purchase",
    )
    report_data: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        comment="Full FullReport serialized as JSON",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
