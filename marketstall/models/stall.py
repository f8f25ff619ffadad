from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UTCDateTime, utcnow


class Stall(Base):
    """Allocatable unit.

    Owned by the stall catalog; this service only mutates ``is_available`` and
    ``current_session_id``.
    """

    __tablename__ = "stalls"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    branch_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    stall_no: Mapped[str] = mapped_column(String(50), nullable=False)

    rental_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    allocation_mode: Mapped[str] = mapped_column(String(20), nullable=False, default="fixed_price")

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    current_session_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[object] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[object] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
