"""Recurring background sweeps.

Both sweeps are driven by Celery beat (see marketstall.worker.celery_app) and
can also be triggered manually over HTTP. Every item is processed in its own
session and transaction: one broken session or applicant is logged and
skipped, never aborting the rest of the run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketstall.config import settings
from marketstall.crud import applicant as applicant_crud
from marketstall.database import SessionLocal
from marketstall.errors import SessionClosed
from marketstall.models.allocation_session import AllocationSession
from marketstall.models.application import Application
from marketstall.models.base import utcnow
from marketstall.services.events import SYSTEM, DomainEvent, EventCollector
from marketstall.services.sessions import ACTIVE_STATUSES, SessionManager
from marketstall.services.unit_of_work import unit_of_work

logger = logging.getLogger("marketstall.sweeps")


@dataclass
class SweepItem:
    entity_id: str
    outcome: str
    error: str | None = None


@dataclass
class SweepReport:
    kind: str
    items: list[SweepItem] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.items)

    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if i.outcome == "failed")

    @property
    def succeeded(self) -> int:
        return self.processed - self.failed


SessionFactory = Callable[[], AsyncSession]


async def run_expiry_sweep(
    *,
    now: datetime | None = None,
    manager: SessionManager | None = None,
    session_factory: SessionFactory = SessionLocal,
) -> SweepReport:
    """Close every active session whose deadline has passed.

    A caller-supplied ``manager`` keeps its own activity-log factory.
    """

    now = now or utcnow()
    manager = manager or SessionManager(session_factory=session_factory)
    report = SweepReport(kind="session_expiry")

    async with session_factory() as session:
        res = await session.execute(
            select(AllocationSession.id)
            .where(
                AllocationSession.status.in_(ACTIVE_STATUSES),
                AllocationSession.deadline <= now,
            )
            .order_by(AllocationSession.deadline.asc())
        )
        due = list(res.scalars().all())

    for session_id in due:
        try:
            async with session_factory() as session:
                outcome = await manager.close_expired_session(session, session_id, now=now)
            report.items.append(SweepItem(entity_id=str(session_id), outcome=outcome.outcome))
        except SessionClosed:
            # A manual close or cancel committed first.
            report.items.append(SweepItem(entity_id=str(session_id), outcome="already_closed"))
        except Exception as e:
            logger.exception("expiry_sweep_item_failed session_id=%s", session_id)
            report.items.append(SweepItem(entity_id=str(session_id), outcome="failed", error=type(e).__name__))

    logger.info(
        "expiry_sweep_done processed=%d succeeded=%d failed=%d",
        report.processed,
        report.succeeded,
        report.failed,
    )
    return report


async def _purge_applicant(
    session: AsyncSession,
    applicant_id,
    *,
    cutoff: datetime,
    session_factory: SessionFactory = SessionLocal,
) -> str:
    events = EventCollector(actor=SYSTEM, session_factory=session_factory)

    async with unit_of_work(session):
        # Re-check under the transaction: a live application anywhere keeps the
        # applicant, and so does a decline that is not old enough any more
        # (e.g. a fresh resubmission attached to the same applicant).
        live = (
            await session.execute(
                select(
                    exists().where(
                        Application.applicant_id == applicant_id,
                        (Application.status != "declined") | (Application.created_at > cutoff),
                    )
                )
            )
        ).scalar()
        if live:
            return "skipped_live_application"

        deleted = await applicant_crud.delete_applicant_records(session, applicant_id=applicant_id)
        if not deleted:
            return "already_deleted"

        events.record(
            DomainEvent(
                entity_type="applicant",
                entity_id=str(applicant_id),
                action="purged",
                summary="declined applicant purged after retention window",
            )
        )

    await events.publish()
    return "purged"


async def run_cleanup_sweep(
    *,
    now: datetime | None = None,
    retention_days: int | None = None,
    session_factory: SessionFactory = SessionLocal,
) -> SweepReport:
    """Delete applicants whose declined applications are past the retention window.

    Pending and approved applications are never touched, whatever their age.
    """

    now = now or utcnow()
    days = settings.rejection_retention_days if retention_days is None else retention_days
    cutoff = now - timedelta(days=days)
    report = SweepReport(kind="rejected_purge")

    async with session_factory() as session:
        res = await session.execute(
            select(Application.applicant_id)
            .where(
                Application.status == "declined",
                Application.created_at <= cutoff,
            )
            .distinct()
        )
        candidates = list(res.scalars().all())

    for applicant_id in candidates:
        try:
            async with session_factory() as session:
                outcome = await _purge_applicant(
                    session, applicant_id, cutoff=cutoff, session_factory=session_factory
                )
            report.items.append(SweepItem(entity_id=str(applicant_id), outcome=outcome))
        except Exception as e:
            logger.exception("cleanup_sweep_item_failed applicant_id=%s", applicant_id)
            report.items.append(SweepItem(entity_id=str(applicant_id), outcome="failed", error=type(e).__name__))

    logger.info(
        "cleanup_sweep_done cutoff=%s processed=%d purged=%d failed=%d",
        cutoff.isoformat(),
        report.processed,
        sum(1 for i in report.items if i.outcome == "purged"),
        report.failed,
    )
    return report
