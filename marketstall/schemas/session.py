from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SessionOpen(BaseModel):
    stall_id: int
    mode: str = Field(..., description="raffle | auction")
    deadline: datetime | None = None
    duration_hours: float | None = Field(None, gt=0)
    minimum_bid: Decimal | None = Field(None, ge=0)


class SessionJoin(BaseModel):
    applicant_id: UUID


class BidCreate(BaseModel):
    applicant_id: UUID
    amount: Decimal


class SessionExtend(BaseModel):
    new_deadline: datetime | None = None
    additional_hours: float | None = Field(None, gt=0)
    reason: str | None = None


class SessionCancel(BaseModel):
    reason: str | None = None


class SessionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    stall_id: int
    mode: str
    status: str

    opened_at: datetime
    deadline: datetime
    extension_count: int
    minimum_bid: Decimal | None = None

    winner_applicant_id: UUID | None = None
    winning_amount: Decimal | None = None
    winner_application_id: UUID | None = None

    closed_at: datetime | None = None
    close_reason: str | None = None


class SessionEntryRead(BaseModel):
    applicant_id: UUID
    amount: Decimal | None = None
    entered_at: datetime


class SessionEntriesResponse(BaseModel):
    session_id: UUID
    mode: str
    items: list[SessionEntryRead]


class SweepItemRead(BaseModel):
    entity_id: str
    outcome: str
    error: str | None = None


class SweepReportRead(BaseModel):
    kind: str
    processed: int
    succeeded: int
    failed: int
    items: list[SweepItemRead]
