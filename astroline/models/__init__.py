"""
models/__init__.py — imports all ORM models so Alembic's env.py
sees them via Base.metadata when generating migrations.
"""
from astroline.models.payment import PaymentORM
from astroline.models.report import ReportORM

__all__ = ["ReportORM", "PaymentORM"]
