"""Resubmission rules keyed on an applicant's email history."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketstall.errors import EligibilityDenied
from marketstall.models.applicant import Applicant, OtherInformation
from marketstall.models.application import Application
from marketstall.models.base import utcnow


class Verdict(str, enum.Enum):
    ALLOW = "allow"
    ALLOW_WITH_WARNING = "allow_with_warning"
    DENY = "deny"


@dataclass(frozen=True)
class PriorRecord:
    applicant_id: object
    applicant_created_at: datetime
    application_status: str | None
    application_created_at: datetime | None


@dataclass(frozen=True)
class EligibilityResult:
    verdict: Verdict
    reason: str | None = None
    retry_after_days: int | None = None

    @property
    def allowed(self) -> bool:
        return self.verdict is not Verdict.DENY

    def raise_for_denial(self) -> None:
        if self.verdict is Verdict.DENY:
            raise EligibilityDenied(self.reason or "Not eligible", retry_after_days=self.retry_after_days)


def evaluate(prior: PriorRecord | None, *, cooldown: timedelta, now: datetime) -> EligibilityResult:
    """Pure rule evaluation over the most recent record for an email."""

    if prior is None or prior.application_status is None:
        return EligibilityResult(Verdict.ALLOW)

    status = prior.application_status

    if status == "approved":
        return EligibilityResult(
            Verdict.DENY,
            reason="This email is already associated with an approved application",
        )

    if status == "pending":
        age = now - prior.application_created_at
        if age < cooldown:
            remaining = cooldown - age
            days = max(1, math.ceil(remaining.total_seconds() / 86400))
            return EligibilityResult(
                Verdict.DENY,
                reason=f"A previous application is pending review; please wait {days} more day(s) before resubmitting",
                retry_after_days=days,
            )
        return EligibilityResult(
            Verdict.ALLOW_WITH_WARNING,
            reason="A previous application is still pending review; it remains open",
        )

    # declined (or any status the review workflow may add later)
    return EligibilityResult(Verdict.ALLOW)


async def latest_record_for_email(session: AsyncSession, email: str) -> PriorRecord | None:
    """Most recently created applicant with this email, with its latest application.

    Email is not unique in storage; the newest applicant row is authoritative.
    """

    stmt = (
        select(
            Applicant.id,
            Applicant.created_at,
            Application.status,
            Application.created_at,
        )
        .join(OtherInformation, OtherInformation.applicant_id == Applicant.id)
        .outerjoin(Application, Application.applicant_id == Applicant.id)
        .where(func.lower(OtherInformation.email_address) == email.strip().lower())
        .order_by(Applicant.created_at.desc(), Application.created_at.desc())
        .limit(1)
    )
    row = (await session.execute(stmt)).first()
    if row is None:
        return None

    return PriorRecord(
        applicant_id=row[0],
        applicant_created_at=row[1],
        application_status=row[2],
        application_created_at=row[3],
    )


async def check_eligibility(
    session: AsyncSession,
    *,
    email: str,
    cooldown: timedelta,
    now: datetime | None = None,
) -> EligibilityResult:
    prior = await latest_record_for_email(session, email)
    return evaluate(prior, cooldown=cooldown, now=now or utcnow())
