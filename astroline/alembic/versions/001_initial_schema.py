"""initial_schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-03-02 00:00:00.000000 UTC

Creates the reports and payments tables.
reports: one row per generated report, body stored as JSONB, is_paid as the unlock flag.
payments: one row per checkout attempt keyed by merchant reference.
Indexed by report_id and invoice_id so webhooks without a reference still resolve.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "reports",
        sa.Column("id", sa.String(32), nullable=False, comment="Opaque report id (16 hex chars)"),
        sa.Column(
            "email", sa.String(320), nullable=True,
            comment="Buyer email captured at the quiz email step",
        ),
        sa.Column(
            "is_paid", sa.Boolean(), nullable=False, server_default=sa.false(),
            comment="Unlock flag — starts false, set true exactly once per purchase",
        ),
        sa.Column(
            "report_data",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
            comment="Full FullReport serialized as JSON",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "payments",
        sa.Column(
            "reference", sa.String(80), nullable=False,
            comment="Merchant reference — ASTRO-<reportId>-<epochMillis>",
        ),
        sa.Column("report_id", sa.String(32), nullable=False, comment="Report unlocked by this payment"),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column(
            "plan_id", sa.String(20), nullable=False,
            comment="Key of PRICE_PLANS — trial_1w / trial_2w / trial_4w",
        ),
        sa.Column(
            "amount", sa.Integer(), nullable=False,
            comment="Amount in the smallest currency unit (kopecks)",
        ),
        sa.Column(
            "invoice_id", sa.String(64), nullable=True,
            comment="Gateway invoice id — null until the invoice is created",
        ),
        sa.Column(
            "status", sa.String(12), nullable=False, server_default="created",
            comment="created|processing|hold|success|failure|reversed|expired",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("modified_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("reference"),
    )
    op.create_index("ix_payments_report_id", "payments", ["report_id"], unique=False)
    op.create_index("ix_payments_invoice_id", "payments", ["invoice_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_payments_invoice_id", table_name="payments")
    op.drop_index("ix_payments_report_id", table_name="payments")
    op.drop_table("payments")
    op.drop_table("reports")
