from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import Date, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UTCDateTime, utcnow


class Applicant(Base):
    __tablename__ = "applicants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_number: Mapped[str] = mapped_column(String(50), nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    birthdate: Mapped[date | None] = mapped_column(Date, nullable=True)
    civil_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    educational_attainment: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[object] = mapped_column(UTCDateTime, nullable=False, default=utcnow, index=True)
    updated_at: Mapped[object] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)


class BusinessInformation(Base):
    __tablename__ = "business_information"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    applicant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("applicants.id", ondelete="CASCADE"), nullable=False, unique=True)

    nature_of_business: Mapped[str | None] = mapped_column(String(255), nullable=True)
    capitalization: Mapped[str | None] = mapped_column(String(100), nullable=True)
    source_of_capital: Mapped[str | None] = mapped_column(String(255), nullable=True)
    previous_business_experience: Mapped[str | None] = mapped_column(Text, nullable=True)
    relative_stall_owner: Mapped[str | None] = mapped_column(String(255), nullable=True)


class Spouse(Base):
    __tablename__ = "spouses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    applicant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("applicants.id", ondelete="CASCADE"), nullable=False, unique=True)

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    birthdate: Mapped[date | None] = mapped_column(Date, nullable=True)
    educational_attainment: Mapped[str | None] = mapped_column(String(100), nullable=True)
    contact_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    occupation: Mapped[str | None] = mapped_column(String(100), nullable=True)


class OtherInformation(Base):
    __tablename__ = "other_information"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    applicant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("applicants.id", ondelete="CASCADE"), nullable=False, unique=True)

    # Identity key for eligibility; deliberately not unique.
    email_address: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    signature_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    house_sketch_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    valid_id_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
