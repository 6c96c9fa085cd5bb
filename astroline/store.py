"""
store.py — Data access facade for Astroline.

Provides a narrow, high-level API for persisting reports and payment records.
All agent routes and the reconciler go through these stores — nothing else
touches SQLAlchemy directly.

Two interchangeable backends, chosen by settings.storage_backend:
  - Sql*Store      — SQLAlchemy async (PostgreSQL via asyncpg in production)
  - InMemory*Store — process-local dicts guarded by an asyncio.Lock

Design principles:
  - One short transaction per operation; stores own their session scope
  - Status writes are compare-and-set, never a blind overwrite
  - Report save is insert-if-absent: a stored body is never replaced
  - reports.is_paid is the authoritative unlock flag; get() overlays it onto
    the stored body, so report_data stays exactly as generated
  - Logs only report_id / reference — never birth data or emails
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from astroline.agents.payment_agent.schemas import PaymentRecord, PaymentStatus
from astroline.agents.report_agent.schemas import FullReport
from astroline.models.payment import PaymentORM
from astroline.models.report import ReportORM

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Persistence backend unreachable or rejected the write."""


@dataclass
class StoreResult:
    success: bool
    error: Optional[str] = None
    created: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

class ReportStore(ABC):

    @abstractmethod
    async def save(self, report_id: str, email: Optional[str], report: FullReport) -> StoreResult:
        """Insert if absent. Never raises; failures come back as StoreResult(success=False)."""

    @abstractmethod
    async def get(self, report_id: str) -> Optional[FullReport]:
        """None when absent. Raises StoreError when the backend is unreachable."""

    @abstractmethod
    async def set_paid(self, report_id: str, is_paid: bool) -> StoreResult:
        """Idempotent write of the paid flag."""

    @abstractmethod
    async def mark_paid(self, report_id: str) -> bool:
        """Compare-and-set false → true. True only for the call that flipped it."""


class PaymentStore(ABC):

    @abstractmethod
    async def create(self, record: PaymentRecord) -> None:
        """Persist a new checkout attempt. Raises StoreError on failure."""

    @abstractmethod
    async def get(self, reference: str) -> Optional[PaymentRecord]:
        """None when absent. Raises StoreError when the backend is unreachable."""

    @abstractmethod
    async def find_by_invoice_id(self, invoice_id: str) -> Optional[PaymentRecord]:
        pass

    @abstractmethod
    async def set_invoice_id(self, reference: str, invoice_id: str) -> None:
        pass

    @abstractmethod
    async def compare_and_set_status(
        self,
        reference: str,
        expected: PaymentStatus,
        new: PaymentStatus,
    ) -> bool:
        """
        Write `new` only if the stored status still equals `expected`.
        Returns False when another writer got there first.
        """


# ---------------------------------------------------------------------------
# SQLAlchemy backend
# ---------------------------------------------------------------------------

class SqlReportStore(ReportStore):

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def save(self, report_id: str, email: Optional[str], report: FullReport) -> StoreResult:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    existing = await session.get(ReportORM, report_id)
                    if existing is not None:
                        logger.info("Report already stored report_id=%s, body kept", report_id)
                        return StoreResult(success=True, created=False)
                    session.add(ReportORM(
                        id=report_id,
                        email=email,
                        is_paid=report.is_paid,
                        report_data=report.model_dump(mode="json"),
                    ))
        except IntegrityError:
            # Concurrent insert of the same id won the race
            logger.info("Report inserted concurrently report_id=%s", report_id)
            return StoreResult(success=True, created=False)
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("Report save failed report_id=%s: %s", report_id, exc)
            return StoreResult(success=False, error=str(exc))
        logger.info("Saved report report_id=%s", report_id)
        return StoreResult(success=True, created=True)

    async def get(self, report_id: str) -> Optional[FullReport]:
        try:
            async with self._session_factory() as session:
                orm = (await session.execute(
                    select(ReportORM).where(ReportORM.id == report_id)
                )).scalar_one_or_none()
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("Report read failed report_id=%s: %s", report_id, exc)
            raise StoreError(str(exc)) from exc
        if orm is None:
            return None
        report = FullReport.model_validate(orm.report_data)
        return report.model_copy(update={"is_paid": orm.is_paid})

    async def set_paid(self, report_id: str, is_paid: bool) -> StoreResult:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(ReportORM)
                        .where(ReportORM.id == report_id)
                        .values(is_paid=is_paid, updated_at=_utcnow())
                    )
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("set_paid failed report_id=%s: %s", report_id, exc)
            return StoreResult(success=False, error=str(exc))
        if result.rowcount == 0:
            return StoreResult(success=False, error="Report not found")
        logger.info("Report paid flag set report_id=%s is_paid=%s", report_id, is_paid)
        return StoreResult(success=True)

    async def mark_paid(self, report_id: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(ReportORM)
                    .where(ReportORM.id == report_id, ReportORM.is_paid.is_(False))
                    .values(is_paid=True, updated_at=_utcnow())
                )
        flipped = result.rowcount == 1
        if flipped:
            logger.info("Report unlocked report_id=%s", report_id)
        return flipped


class SqlPaymentStore(PaymentStore):

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @staticmethod
    def _to_record(orm: PaymentORM) -> PaymentRecord:
        return PaymentRecord(
            reference=orm.reference,
            report_id=orm.report_id,
            email=orm.email,
            plan_id=orm.plan_id,
            amount=orm.amount,
            invoice_id=orm.invoice_id,
            status=PaymentStatus(orm.status),
            created_at=orm.created_at,
            modified_at=orm.modified_at,
            paid_at=orm.paid_at,
        )

    async def create(self, record: PaymentRecord) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(PaymentORM(
                        reference=record.reference,
                        report_id=record.report_id,
                        email=record.email,
                        plan_id=record.plan_id,
                        amount=record.amount,
                        invoice_id=record.invoice_id,
                        status=record.status.value,
                        created_at=record.created_at,
                        modified_at=record.modified_at,
                    ))
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Payment record create failed reference=%s: %s", record.reference, exc)
            raise StoreError(str(exc)) from exc
        logger.info("Created payment reference=%s plan_id=%s", record.reference, record.plan_id)

    async def get(self, reference: str) -> Optional[PaymentRecord]:
        try:
            async with self._session_factory() as session:
                orm = (await session.execute(
                    select(PaymentORM).where(PaymentORM.reference == reference)
                )).scalar_one_or_none()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(str(exc)) from exc
        return None if orm is None else self._to_record(orm)

    async def find_by_invoice_id(self, invoice_id: str) -> Optional[PaymentRecord]:
        try:
            async with self._session_factory() as session:
                orm = (await session.execute(
                    select(PaymentORM).where(PaymentORM.invoice_id == invoice_id)
                )).scalars().first()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(str(exc)) from exc
        return None if orm is None else self._to_record(orm)

    async def set_invoice_id(self, reference: str, invoice_id: str) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        update(PaymentORM)
                        .where(PaymentORM.reference == reference)
                        .values(invoice_id=invoice_id, modified_at=_utcnow())
                    )
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(str(exc)) from exc

    async def compare_and_set_status(
        self,
        reference: str,
        expected: PaymentStatus,
        new: PaymentStatus,
    ) -> bool:
        now = _utcnow()
        values = {"status": new.value, "modified_at": now}
        if new == PaymentStatus.success:
            values["paid_at"] = now
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(PaymentORM)
                    .where(
                        PaymentORM.reference == reference,
                        PaymentORM.status == expected.value,
                    )
                    .values(**values)
                )
        return result.rowcount == 1


# ---------------------------------------------------------------------------
# In-memory backend (quick-start, single process only)
# ---------------------------------------------------------------------------

class InMemoryReportStore(ReportStore):

    def __init__(self):
        self._reports: dict[str, FullReport] = {}
        self._paid: dict[str, bool] = {}
        self._lock = asyncio.Lock()

    async def save(self, report_id: str, email: Optional[str], report: FullReport) -> StoreResult:
        async with self._lock:
            if report_id in self._reports:
                return StoreResult(success=True, created=False)
            self._reports[report_id] = report.model_copy(deep=True)
            self._paid[report_id] = report.is_paid
        logger.info("Saved report report_id=%s (memory)", report_id)
        return StoreResult(success=True, created=True)

    async def get(self, report_id: str) -> Optional[FullReport]:
        async with self._lock:
            report = self._reports.get(report_id)
            if report is None:
                return None
            return report.model_copy(update={"is_paid": self._paid[report_id]}, deep=True)

    async def set_paid(self, report_id: str, is_paid: bool) -> StoreResult:
        async with self._lock:
            if report_id not in self._reports:
                return StoreResult(success=False, error="Report not found")
            self._paid[report_id] = is_paid
        return StoreResult(success=True)

    async def mark_paid(self, report_id: str) -> bool:
        async with self._lock:
            if report_id not in self._reports or self._paid[report_id]:
                return False
            self._paid[report_id] = True
        logger.info("Report unlocked report_id=%s (memory)", report_id)
        return True


class InMemoryPaymentStore(PaymentStore):

    def __init__(self):
        self._records: dict[str, PaymentRecord] = {}
        self._lock = asyncio.Lock()

    async def create(self, record: PaymentRecord) -> None:
        async with self._lock:
            if record.reference in self._records:
                raise StoreError(f"Duplicate reference {record.reference}")
            self._records[record.reference] = record.model_copy()

    async def get(self, reference: str) -> Optional[PaymentRecord]:
        async with self._lock:
            record = self._records.get(reference)
            return None if record is None else record.model_copy()

    async def find_by_invoice_id(self, invoice_id: str) -> Optional[PaymentRecord]:
        async with self._lock:
            for record in self._records.values():
                if record.invoice_id == invoice_id:
                    return record.model_copy()
        return None

    async def set_invoice_id(self, reference: str, invoice_id: str) -> None:
        async with self._lock:
            record = self._records.get(reference)
            if record is not None:
                self._records[reference] = record.model_copy(
                    update={"invoice_id": invoice_id, "modified_at": _utcnow()}
                )

    async def compare_and_set_status(
        self,
        reference: str,
        expected: PaymentStatus,
        new: PaymentStatus,
    ) -> bool:
        async with self._lock:
            record = self._records.get(reference)
            if record is None or record.status != expected:
                return False
            now = _utcnow()
            changes = {"status": new, "modified_at": now}
            if new == PaymentStatus.success:
                changes["paid_at"] = now
            self._records[reference] = record.model_copy(update=changes)
            return True


def build_stores(
    backend: str,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> tuple[ReportStore, PaymentStore]:
    """Construct the report + payment stores for the configured backend."""
    if backend == "memory":
        logger.warning("Using in-memory stores, state is lost on restart, single worker only")
        return InMemoryReportStore(), InMemoryPaymentStore()
    if session_factory is None:
        from astroline.database import AsyncSessionLocal
        session_factory = AsyncSessionLocal
    return SqlReportStore(session_factory), SqlPaymentStore(session_factory)
