from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator


def _blank_to_none(value):
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


class _Form(BaseModel):
    """Form sections arrive from web/mobile clients with empty strings for unset fields."""

    @field_validator("*", mode="before")
    @classmethod
    def _normalize_blank(cls, value):
        return _blank_to_none(value)


class PersonalInfo(_Form):
    full_name: str | None = None
    contact_number: str | None = None
    address: str | None = None
    birthdate: date | None = None
    civil_status: str | None = None
    educational_attainment: str | None = None


class BusinessInfo(_Form):
    nature_of_business: str | None = None
    capitalization: str | None = None
    source_of_capital: str | None = None
    previous_business_experience: str | None = None
    relative_stall_owner: str | None = None

    def has_data(self) -> bool:
        return any(v is not None for v in self.model_dump().values())


class SpouseInfo(_Form):
    full_name: str | None = None
    birthdate: date | None = None
    educational_attainment: str | None = None
    contact_number: str | None = None
    occupation: str | None = None


class OtherInfo(_Form):
    email_address: EmailStr | None = None
    signature_ref: str | None = None
    house_sketch_ref: str | None = None
    valid_id_ref: str | None = None


class IntakeCreate(BaseModel):
    personal: PersonalInfo
    business: BusinessInfo | None = None
    spouse: SpouseInfo | None = None
    other: OtherInfo
    stall_id: int | None = None


class CombinedStallApplicationCreate(IntakeCreate):
    stall_id: int


class ApplicantUpdate(BaseModel):
    personal: PersonalInfo | None = None
    business: BusinessInfo | None = None
    spouse: SpouseInfo | None = None
    other: OtherInfo | None = None


class IntakeResult(BaseModel):
    applicant_id: UUID
    application_id: UUID | None = None
    eligibility: str
    warning: str | None = None


class ApplicationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    applicant_id: UUID
    stall_id: int
    status: str
    source: str
    decided_at: datetime | None = None
    created_at: datetime


class ApplicantRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: str
    contact_number: str
    address: str | None = None
    birthdate: date | None = None
    civil_status: str | None = None
    educational_attainment: str | None = None

    business: BusinessInfo | None = None
    spouse: SpouseInfo | None = None
    other: OtherInfo | None = None
    applications: list[ApplicationRead] = []

    created_at: datetime
    updated_at: datetime


class ApplicationStatusUpdate(BaseModel):
    status: str
