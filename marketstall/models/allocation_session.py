from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UTCDateTime, utcnow


class AllocationSession(Base):
    """A raffle or auction attached to a stall while it runs."""

    __tablename__ = "allocation_sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    stall_id: Mapped[int] = mapped_column(Integer, ForeignKey("stalls.id"), nullable=False, index=True)

    mode: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open", index=True)

    opened_at: Mapped[object] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    deadline: Mapped[object] = mapped_column(UTCDateTime, nullable=False, index=True)
    extension_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    minimum_bid: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    winner_applicant_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    winning_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    winner_application_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    closed_at: Mapped[object | None] = mapped_column(UTCDateTime, nullable=True)
    close_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[object] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[object] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)


class RaffleParticipant(Base):
    __tablename__ = "raffle_participants"
    __table_args__ = (UniqueConstraint("session_id", "applicant_id", name="uq_raffle_participants_session_applicant"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("allocation_sessions.id", ondelete="CASCADE"), nullable=False)
    applicant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("applicants.id", ondelete="CASCADE"), nullable=False)
    stall_id: Mapped[int] = mapped_column(Integer, ForeignKey("stalls.id"), nullable=False)

    joined_at: Mapped[object] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class AuctionBid(Base):
    __tablename__ = "auction_bids"
    __table_args__ = (UniqueConstraint("session_id", "applicant_id", name="uq_auction_bids_session_applicant"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("allocation_sessions.id", ondelete="CASCADE"), nullable=False)
    applicant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("applicants.id", ondelete="CASCADE"), nullable=False)
    stall_id: Mapped[int] = mapped_column(Integer, ForeignKey("stalls.id"), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    placed_at: Mapped[object] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
