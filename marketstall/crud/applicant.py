from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketstall.crud.base import BaseCRUD
from marketstall.models.allocation_session import AuctionBid, RaffleParticipant
from marketstall.models.applicant import Applicant, BusinessInformation, OtherInformation, Spouse
from marketstall.models.application import Application
from marketstall.schemas.applicant import BusinessInfo, OtherInfo, PersonalInfo, SpouseInfo


applicants = BaseCRUD(Applicant)
business_information = BaseCRUD(BusinessInformation)
spouses = BaseCRUD(Spouse)
other_information = BaseCRUD(OtherInformation)


def spouse_applies(personal: PersonalInfo, spouse: SpouseInfo | None) -> bool:
    if spouse is None or not spouse.full_name:
        return False
    return (personal.civil_status or "").strip().lower() == "married"


async def insert_applicant(session: AsyncSession, *, personal: PersonalInfo, now: datetime) -> Applicant:
    return await applicants.create(session, obj_in=personal, created_at=now, updated_at=now)


async def insert_business(session: AsyncSession, *, applicant_id: UUID, business: BusinessInfo) -> BusinessInformation:
    return await business_information.create(session, obj_in=business, applicant_id=applicant_id)


async def insert_spouse(session: AsyncSession, *, applicant_id: UUID, spouse: SpouseInfo) -> Spouse:
    return await spouses.create(session, obj_in=spouse, applicant_id=applicant_id)


async def insert_other(session: AsyncSession, *, applicant_id: UUID, other: OtherInfo) -> OtherInformation:
    data = other.model_dump()
    data["email_address"] = data["email_address"].strip()
    return await other_information.create(session, obj_in=data, applicant_id=applicant_id)


async def get_applicant(session: AsyncSession, *, applicant_id: UUID) -> Applicant | None:
    return await applicants.get(session, id=applicant_id)


async def get_applicant_bundle(session: AsyncSession, *, applicant_id: UUID) -> dict | None:
    """Applicant with its sub-records and applications (newest first)."""

    applicant = await get_applicant(session, applicant_id=applicant_id)
    if applicant is None:
        return None

    business = await business_information.get_by(session, field="applicant_id", value=applicant_id)
    spouse = await spouses.get_by(session, field="applicant_id", value=applicant_id)
    other = await other_information.get_by(session, field="applicant_id", value=applicant_id)

    res = await session.execute(
        select(Application)
        .where(Application.applicant_id == applicant_id)
        .order_by(Application.created_at.desc())
    )

    return {
        "applicant": applicant,
        "business": business,
        "spouse": spouse,
        "other": other,
        "applications": list(res.scalars().all()),
    }


async def list_applications_for_applicant(session: AsyncSession, *, applicant_id: UUID) -> list[Application]:
    res = await session.execute(select(Application).where(Application.applicant_id == applicant_id))
    return list(res.scalars().all())


async def delete_applicant_records(session: AsyncSession, *, applicant_id: UUID) -> bool:
    """Delete an applicant and everything hanging off it. False if it was already gone.

    Children are removed explicitly so the result does not depend on the
    backend enforcing ON DELETE CASCADE.
    """

    for model in (
        AuctionBid,
        RaffleParticipant,
        Application,
        OtherInformation,
        BusinessInformation,
        Spouse,
    ):
        await session.execute(delete(model).where(model.applicant_id == applicant_id))

    res = await session.execute(delete(Applicant).where(Applicant.id == applicant_id))
    return res.rowcount == 1
