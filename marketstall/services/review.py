"""Minimal approve/decline workflow for applications."""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketstall.errors import InvalidTransition, NotFound
from marketstall.models.applicant import OtherInformation
from marketstall.models.application import Application
from marketstall.models.base import utcnow
from marketstall.services.events import Actor, DomainEvent, EventCollector
from marketstall.services.ledger import StallLedger
from marketstall.services.unit_of_work import unit_of_work

logger = logging.getLogger("marketstall.review")


ALLOWED_TRANSITIONS = {
    ("pending", "approved"),
    ("pending", "declined"),
}


class ReviewService:
    def __init__(self, *, ledger: StallLedger | None = None) -> None:
        self._ledger = ledger or StallLedger()

    async def review_application(
        self,
        session: AsyncSession,
        application_id: UUID,
        status: str,
        *,
        actor: Actor | None = None,
        now: datetime | None = None,
    ) -> Application:
        now = now or utcnow()
        events = EventCollector(actor=actor or Actor())

        async with unit_of_work(session):
            res = await session.execute(
                select(Application).where(Application.id == application_id).with_for_update()
            )
            application = res.scalar_one_or_none()
            if application is None:
                raise NotFound("Application not found")

            old_status = application.status
            if old_status == status:
                return application

            if (old_status, status) not in ALLOWED_TRANSITIONS:
                raise InvalidTransition(f"Invalid status transition: {old_status} -> {status}")

            application.status = status
            application.decided_at = now
            await session.flush()

            if status == "declined":
                await self._ledger.release(session, application.stall_id)

            email = (
                await session.execute(
                    select(OtherInformation.email_address).where(
                        OtherInformation.applicant_id == application.applicant_id
                    )
                )
            ).scalar_one_or_none()

            events.record(
                DomainEvent(
                    entity_type="application",
                    entity_id=str(application.id),
                    action=status,
                    summary=f"application {status}",
                    old_value={"status": old_status},
                    new_value={"status": status, "stall_id": application.stall_id},
                    notify_email=email,
                    outcome=status,
                )
            )

        logger.info("application_reviewed application_id=%s %s->%s", application_id, old_status, status)
        await events.publish()
        return application
