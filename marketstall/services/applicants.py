from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from marketstall.crud import applicant as applicant_crud
from marketstall.errors import NotFound, ValidationError
from marketstall.schemas.applicant import (
    ApplicantRead,
    ApplicantUpdate,
    ApplicationRead,
    BusinessInfo,
    OtherInfo,
    SpouseInfo,
)
from marketstall.services.events import Actor, DomainEvent, EventCollector
from marketstall.services.ledger import StallLedger
from marketstall.services.unit_of_work import unit_of_work

logger = logging.getLogger("marketstall.applicants")


def _section(schema, obj):
    if obj is None:
        return None
    return schema.model_validate(obj, from_attributes=True)


def bundle_to_read(bundle: dict) -> ApplicantRead:
    applicant = bundle["applicant"]
    payload = {
        "id": applicant.id,
        "full_name": applicant.full_name,
        "contact_number": applicant.contact_number,
        "address": applicant.address,
        "birthdate": applicant.birthdate,
        "civil_status": applicant.civil_status,
        "educational_attainment": applicant.educational_attainment,
        "business": _section(BusinessInfo, bundle["business"]),
        "spouse": _section(SpouseInfo, bundle["spouse"]),
        "other": _section(OtherInfo, bundle["other"]),
        "applications": [ApplicationRead.model_validate(a) for a in bundle["applications"]],
        "created_at": applicant.created_at,
        "updated_at": applicant.updated_at,
    }
    return ApplicantRead(**payload)


class ApplicantService:
    def __init__(self, *, ledger: StallLedger | None = None) -> None:
        self._ledger = ledger or StallLedger()

    async def get_applicant_by_id(self, session: AsyncSession, applicant_id: UUID) -> ApplicantRead:
        bundle = await applicant_crud.get_applicant_bundle(session, applicant_id=applicant_id)
        if bundle is None:
            raise NotFound("Applicant not found")
        return bundle_to_read(bundle)

    async def update_applicant(
        self,
        session: AsyncSession,
        applicant_id: UUID,
        fields: ApplicantUpdate,
        *,
        actor: Actor | None = None,
    ) -> ApplicantRead:
        events = EventCollector(actor=actor or Actor())

        async with unit_of_work(session):
            bundle = await applicant_crud.get_applicant_bundle(session, applicant_id=applicant_id)
            if bundle is None:
                raise NotFound("Applicant not found")

            changed: list[str] = []

            if fields.personal is not None:
                personal = fields.personal.model_dump(exclude_unset=True)
                for key in ("full_name", "contact_number"):
                    if key in personal and not personal[key]:
                        raise ValidationError(f"{key} cannot be blank", fields=[f"personal.{key}"])
                await applicant_crud.applicants.update(session, db_obj=bundle["applicant"], obj_in=personal)
                changed.append("personal")

            if fields.business is not None:
                if bundle["business"] is None:
                    bundle["business"] = await applicant_crud.insert_business(
                        session, applicant_id=applicant_id, business=fields.business
                    )
                else:
                    await applicant_crud.business_information.update(
                        session, db_obj=bundle["business"], obj_in=fields.business
                    )
                changed.append("business")

            if fields.spouse is not None:
                if bundle["spouse"] is None:
                    if not fields.spouse.full_name:
                        raise ValidationError("Spouse full name is required", fields=["spouse.full_name"])
                    bundle["spouse"] = await applicant_crud.insert_spouse(
                        session, applicant_id=applicant_id, spouse=fields.spouse
                    )
                else:
                    await applicant_crud.spouses.update(session, db_obj=bundle["spouse"], obj_in=fields.spouse)
                changed.append("spouse")

            if fields.other is not None:
                other = fields.other.model_dump(exclude_unset=True)
                if "email_address" in other and not other["email_address"]:
                    raise ValidationError("email_address cannot be blank", fields=["other.email_address"])
                await applicant_crud.other_information.update(session, db_obj=bundle["other"], obj_in=other)
                changed.append("other")

            events.record(
                DomainEvent(
                    entity_type="applicant",
                    entity_id=str(applicant_id),
                    action="updated",
                    summary="applicant updated: " + (", ".join(changed) or "no changes"),
                )
            )

        await events.publish()
        return await self.get_applicant_by_id(session, applicant_id)

    async def delete_applicant(
        self,
        session: AsyncSession,
        applicant_id: UUID,
        *,
        actor: Actor | None = None,
    ) -> None:
        """Delete an applicant and release stalls held by its live applications."""

        events = EventCollector(actor=actor or Actor())

        async with unit_of_work(session):
            applicant = await applicant_crud.get_applicant(session, applicant_id=applicant_id)
            if applicant is None:
                raise NotFound("Applicant not found")

            released: list[int] = []
            for application in await applicant_crud.list_applications_for_applicant(
                session, applicant_id=applicant_id
            ):
                if application.status != "declined":
                    await self._ledger.release(session, application.stall_id)
                    released.append(application.stall_id)

            await applicant_crud.delete_applicant_records(session, applicant_id=applicant_id)

            events.record(
                DomainEvent(
                    entity_type="applicant",
                    entity_id=str(applicant_id),
                    action="deleted",
                    summary="applicant deleted",
                    old_value={"released_stalls": released},
                )
            )

        logger.info("applicant_deleted applicant_id=%s released_stalls=%s", applicant_id, released)
        await events.publish()
