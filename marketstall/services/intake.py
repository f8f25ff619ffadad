"""Applicant intake: applicant records plus an optional stall application, all-or-nothing."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from marketstall.config import Settings, settings as default_settings
from marketstall.crud import applicant as applicant_crud
from marketstall.errors import StallUnavailable, ValidationError
from marketstall.models.application import Application
from marketstall.models.base import utcnow
from marketstall.schemas.applicant import CombinedStallApplicationCreate, IntakeCreate, IntakeResult
from marketstall.services.eligibility import check_eligibility
from marketstall.services.events import Actor, DomainEvent, EventCollector
from marketstall.services.ledger import StallLedger
from marketstall.services.unit_of_work import unit_of_work

logger = logging.getLogger("marketstall.intake")


def validate_intake(payload: IntakeCreate) -> None:
    missing: list[str] = []
    if not payload.personal.full_name:
        missing.append("personal.full_name")
    if not payload.personal.contact_number:
        missing.append("personal.contact_number")
    if not payload.other.email_address:
        missing.append("other.email_address")

    if missing:
        raise ValidationError(
            "Applicant name, contact number, and email address are required",
            fields=missing,
        )


class IntakeService:
    def __init__(self, *, ledger: StallLedger | None = None, settings: Settings | None = None) -> None:
        self._ledger = ledger or StallLedger()
        self._settings = settings or default_settings

    async def submit_intake(
        self,
        session: AsyncSession,
        payload: IntakeCreate,
        *,
        actor: Actor | None = None,
        now: datetime | None = None,
    ) -> IntakeResult:
        """General applicant intake; a stall application is attached only if stall_id is given."""

        return await self._submit(
            session,
            payload,
            cooldown=timedelta(days=self._settings.intake_cooldown_days),
            actor=actor,
            now=now,
        )

    async def submit_combined_stall_application(
        self,
        session: AsyncSession,
        payload: CombinedStallApplicationCreate,
        *,
        actor: Actor | None = None,
        now: datetime | None = None,
    ) -> IntakeResult:
        """Applicant and stall application in one step, under the stricter cooldown."""

        if payload.stall_id is None:
            raise ValidationError("stall_id is required", fields=["stall_id"])

        return await self._submit(
            session,
            payload,
            cooldown=timedelta(days=self._settings.combined_cooldown_days),
            actor=actor,
            now=now,
        )

    async def _submit(
        self,
        session: AsyncSession,
        payload: IntakeCreate,
        *,
        cooldown: timedelta,
        actor: Actor | None,
        now: datetime | None,
    ) -> IntakeResult:
        validate_intake(payload)

        now = now or utcnow()
        email = payload.other.email_address.strip()
        stall_id = payload.stall_id
        events = EventCollector(actor=actor or Actor())

        async with unit_of_work(session):
            eligibility = await check_eligibility(session, email=email, cooldown=cooldown, now=now)
            eligibility.raise_for_denial()

            if stall_id is not None:
                stall = await self._ledger.get_stall(session, stall_id)
                if stall.allocation_mode != "fixed_price":
                    raise StallUnavailable(
                        stall_id,
                        f"Stall {stall_id} is allocated by {stall.allocation_mode}; join its session instead",
                    )
                if not stall.is_available or stall.status != "active":
                    raise StallUnavailable(stall_id)

            applicant = await applicant_crud.insert_applicant(session, personal=payload.personal, now=now)

            if payload.business is not None and payload.business.has_data():
                await applicant_crud.insert_business(session, applicant_id=applicant.id, business=payload.business)

            if applicant_crud.spouse_applies(payload.personal, payload.spouse):
                await applicant_crud.insert_spouse(session, applicant_id=applicant.id, spouse=payload.spouse)

            await applicant_crud.insert_other(session, applicant_id=applicant.id, other=payload.other)

            application = None
            if stall_id is not None:
                # Re-verify inside the transaction; closes the race with other
                # submissions that passed the pre-check at the same time.
                await self._ledger.reserve_or_raise(session, stall_id)

                application = Application(
                    applicant_id=applicant.id,
                    stall_id=stall_id,
                    status="pending",
                    source="intake",
                    created_at=now,
                    updated_at=now,
                )
                session.add(application)
                await session.flush()

            events.record(
                DomainEvent(
                    entity_type="applicant",
                    entity_id=str(applicant.id),
                    action="submitted",
                    summary="applicant submitted" + (f" with application for stall {stall_id}" if stall_id else ""),
                    new_value={
                        "stall_id": stall_id,
                        "application_id": str(application.id) if application else None,
                        "eligibility": eligibility.verdict.value,
                    },
                    notify_email=email,
                    outcome="submitted",
                )
            )

        logger.info(
            "intake_committed applicant_id=%s application_id=%s stall_id=%s eligibility=%s",
            applicant.id,
            application.id if application else None,
            stall_id,
            eligibility.verdict.value,
        )
        await events.publish()

        return IntakeResult(
            applicant_id=applicant.id,
            application_id=application.id if application else None,
            eligibility=eligibility.verdict.value,
            warning=eligibility.reason if eligibility.allowed else None,
        )
