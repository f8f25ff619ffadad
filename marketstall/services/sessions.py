"""Raffle and auction sessions.

State machine (per session)::

    open/extended --join/bid--------------------> unchanged
    open/extended --extend----------------------> extended (new deadline)
    open/extended --cancel----------------------> cancelled   (stall released)
    open/extended --close, entries present------> closed_won  (winner application created)
    open/extended --close, no entries-----------> cancelled   (stall released)

Leaving open/extended is a compare-and-set on the status column, so a racing
force-close and expiry sweep produce exactly one terminal transition; the
loser gets SessionClosed.
"""

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketstall.database import SessionLocal
from marketstall.errors import (
    AlreadyJoined,
    BidTooLow,
    Forbidden,
    NotFound,
    SessionClosed,
    ValidationError,
)
from marketstall.models.allocation_session import AllocationSession, AuctionBid, RaffleParticipant
from marketstall.models.applicant import Applicant, OtherInformation
from marketstall.models.application import Application
from marketstall.models.base import utcnow
from marketstall.models.stall import Stall
from marketstall.services.events import SYSTEM, Actor, DomainEvent, EventCollector
from marketstall.services.ledger import StallLedger
from marketstall.services.unit_of_work import unit_of_work

logger = logging.getLogger("marketstall.sessions")


MODES = ("raffle", "auction")
ACTIVE_STATUSES = ("open", "extended")
TERMINAL_STATUSES = ("closed_won", "cancelled")

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class Entry:
    applicant_id: uuid.UUID
    entered_at: datetime
    amount: Decimal | None = None


@dataclass(frozen=True)
class CloseOutcome:
    session: AllocationSession
    outcome: str  # won | no_entries | not_due
    winner: Entry | None = None
    application_id: uuid.UUID | None = None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _money(value) -> Decimal:
    try:
        amount = Decimal(str(value)).quantize(CENTS)
    except (InvalidOperation, ValueError) as e:
        raise ValidationError("amount must be a number", fields=["amount"]) from e
    if not amount.is_finite():
        raise ValidationError("amount must be a number", fields=["amount"])
    return amount


def pick_raffle_winner(entries: list[Entry], rng: random.Random) -> Entry:
    """Uniform pick over the current participants."""

    ordered = sorted(entries, key=lambda e: (e.entered_at, str(e.applicant_id)))
    return rng.choice(ordered)


def pick_auction_winner(entries: list[Entry]) -> Entry:
    """Highest amount; equal amounts go to the earliest bid."""

    return sorted(entries, key=lambda e: (-e.amount, e.entered_at))[0]


class SessionManager:
    def __init__(
        self,
        *,
        ledger: StallLedger | None = None,
        rng: random.Random | None = None,
        session_factory: Callable[[], AsyncSession] = SessionLocal,
    ) -> None:
        self._ledger = ledger or StallLedger()
        self._rng = rng or random.SystemRandom()
        self._session_factory = session_factory

    # -- reads ---------------------------------------------------------------

    async def _load(
        self,
        session: AsyncSession,
        session_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> AllocationSession:
        stmt = select(AllocationSession).where(AllocationSession.id == session_id)
        if for_update:
            stmt = stmt.with_for_update()
        obj = (await session.execute(stmt)).scalar_one_or_none()
        if obj is None:
            raise NotFound("Session not found")
        return obj

    async def get_session(self, session: AsyncSession, session_id: uuid.UUID) -> AllocationSession:
        return await self._load(session, session_id)

    async def list_entries(
        self,
        session: AsyncSession,
        session_id: uuid.UUID,
    ) -> tuple[AllocationSession, list[Entry]]:
        obj = await self._load(session, session_id)
        return obj, await self._entries(session, obj)

    async def _entries(self, session: AsyncSession, obj: AllocationSession) -> list[Entry]:
        if obj.mode == "raffle":
            res = await session.execute(
                select(RaffleParticipant)
                .where(RaffleParticipant.session_id == obj.id)
                .order_by(RaffleParticipant.joined_at.asc())
            )
            return [Entry(applicant_id=p.applicant_id, entered_at=p.joined_at) for p in res.scalars().all()]

        res = await session.execute(
            select(AuctionBid).where(AuctionBid.session_id == obj.id).order_by(AuctionBid.placed_at.asc())
        )
        return [
            Entry(applicant_id=b.applicant_id, entered_at=b.placed_at, amount=b.amount)
            for b in res.scalars().all()
        ]

    # -- guards --------------------------------------------------------------

    @staticmethod
    def _authorize(actor: Actor | None, stall: Stall) -> None:
        if actor is None or actor.branch_id is None or stall.branch_id is None:
            return
        if actor.branch_id != stall.branch_id:
            raise Forbidden(f"Operator is not scoped to the branch of stall {stall.id}")

    @staticmethod
    def _ensure_accepting(obj: AllocationSession, now: datetime) -> None:
        if obj.status in TERMINAL_STATUSES:
            raise SessionClosed(f"Session is {obj.status}; no further entries are accepted")
        if obj.deadline <= now:
            raise SessionClosed("Session deadline has passed; no further entries are accepted")

    async def _ensure_applicant(self, session: AsyncSession, applicant_id: uuid.UUID) -> None:
        found = (
            await session.execute(select(Applicant.id).where(Applicant.id == applicant_id))
        ).scalar_one_or_none()
        if found is None:
            raise NotFound("Applicant not found")

    async def _transition(self, session: AsyncSession, obj: AllocationSession, **values) -> None:
        """Compare-and-set guarded by the session still being active."""

        res = await session.execute(
            update(AllocationSession)
            .where(
                AllocationSession.id == obj.id,
                AllocationSession.status.in_(ACTIVE_STATUSES),
            )
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise SessionClosed("Session was closed by a concurrent operation")
        await session.refresh(obj)

    # -- operator actions ----------------------------------------------------

    async def open_session(
        self,
        session: AsyncSession,
        *,
        stall_id: int,
        mode: str,
        deadline: datetime | None = None,
        duration_hours: float | None = None,
        minimum_bid=None,
        actor: Actor | None = None,
        now: datetime | None = None,
    ) -> AllocationSession:
        """Activate a raffle or auction on a stall, reserving the stall while it runs."""

        now = now or utcnow()
        if mode not in MODES:
            raise ValidationError("mode must be one of: raffle, auction", fields=["mode"])
        if (deadline is None) == (duration_hours is None):
            raise ValidationError(
                "Provide exactly one of deadline or duration_hours",
                fields=["deadline", "duration_hours"],
            )

        deadline = _as_utc(deadline) if deadline is not None else now + timedelta(hours=duration_hours)
        if deadline <= now:
            raise ValidationError("deadline must be in the future", fields=["deadline"])

        actor = actor or Actor()
        events = EventCollector(actor=actor, session_factory=self._session_factory)

        async with unit_of_work(session):
            stall = await self._ledger.get_stall(session, stall_id, for_update=True)
            self._authorize(actor, stall)
            if stall.allocation_mode != mode:
                raise ValidationError(
                    f"Stall {stall_id} is allocated by {stall.allocation_mode}, not {mode}",
                    fields=["mode"],
                )

            floor = None
            if mode == "auction":
                floor = _money(minimum_bid if minimum_bid is not None else stall.rental_price)

            obj = AllocationSession(
                id=uuid.uuid4(),
                stall_id=stall_id,
                mode=mode,
                status="open",
                opened_at=now,
                deadline=deadline,
                minimum_bid=floor,
                created_by=actor.operator_id,
            )
            await self._ledger.reserve_or_raise(session, stall_id, session_id=obj.id)
            session.add(obj)
            await session.flush()

            events.record(
                DomainEvent(
                    entity_type="session",
                    entity_id=str(obj.id),
                    action="opened",
                    summary=f"{mode} opened for stall {stall_id}",
                    new_value={"stall_id": stall_id, "deadline": deadline.isoformat()},
                )
            )

        logger.info(
            "session_opened session_id=%s stall_id=%s mode=%s deadline=%s",
            obj.id,
            stall_id,
            mode,
            deadline.isoformat(),
        )
        await events.publish()
        return obj

    async def extend_deadline(
        self,
        session: AsyncSession,
        session_id: uuid.UUID,
        *,
        new_deadline: datetime | None = None,
        additional_hours: float | None = None,
        reason: str | None = None,
        actor: Actor | None = None,
        now: datetime | None = None,
    ) -> AllocationSession:
        """Replace the deadline of an active session."""

        now = now or utcnow()
        if (new_deadline is None) == (additional_hours is None):
            raise ValidationError(
                "Provide exactly one of new_deadline or additional_hours",
                fields=["new_deadline", "additional_hours"],
            )
        if additional_hours is not None and additional_hours <= 0:
            raise ValidationError("additional_hours must be a positive number", fields=["additional_hours"])

        events = EventCollector(actor=actor or Actor(), session_factory=self._session_factory)

        async with unit_of_work(session):
            obj = await self._load(session, session_id, for_update=True)
            if obj.status in TERMINAL_STATUSES:
                raise SessionClosed(f"Cannot extend a {obj.status} session")

            stall = await self._ledger.get_stall(session, obj.stall_id)
            self._authorize(actor, stall)

            old_deadline = obj.deadline
            if new_deadline is not None:
                target = _as_utc(new_deadline)
            else:
                target = old_deadline + timedelta(hours=additional_hours)
            if target <= old_deadline:
                raise ValidationError(
                    "new deadline must be later than the current deadline",
                    fields=["new_deadline"],
                )
            if target <= now:
                raise ValidationError("new deadline must be in the future", fields=["new_deadline"])

            await self._transition(
                session,
                obj,
                status="extended",
                deadline=target,
                extension_count=AllocationSession.extension_count + 1,
            )

            events.record(
                DomainEvent(
                    entity_type="session",
                    entity_id=str(obj.id),
                    action="extended",
                    summary=reason or "Emergency extension",
                    old_value={"deadline": old_deadline.isoformat()},
                    new_value={"deadline": target.isoformat()},
                )
            )

        logger.info(
            "session_extended session_id=%s old_deadline=%s new_deadline=%s",
            obj.id,
            old_deadline.isoformat(),
            target.isoformat(),
        )
        await events.publish()
        return obj

    async def cancel_session(
        self,
        session: AsyncSession,
        session_id: uuid.UUID,
        *,
        reason: str | None = None,
        actor: Actor | None = None,
        now: datetime | None = None,
    ) -> AllocationSession:
        now = now or utcnow()
        events = EventCollector(actor=actor or Actor(), session_factory=self._session_factory)

        async with unit_of_work(session):
            obj = await self._load(session, session_id, for_update=True)
            if obj.status in TERMINAL_STATUSES:
                raise SessionClosed(f"Cannot cancel a {obj.status} session")

            stall = await self._ledger.get_stall(session, obj.stall_id)
            self._authorize(actor, stall)

            await self._transition(
                session,
                obj,
                status="cancelled",
                closed_at=now,
                close_reason="cancelled_by_operator",
            )
            await self._ledger.release(session, obj.stall_id)

            events.record(
                DomainEvent(
                    entity_type="session",
                    entity_id=str(obj.id),
                    action="cancelled",
                    summary=reason or "Cancelled by manager",
                    new_value={"stall_id": obj.stall_id},
                )
            )

        logger.info("session_cancelled session_id=%s stall_id=%s", obj.id, obj.stall_id)
        await events.publish()
        return obj

    async def force_close_session(
        self,
        session: AsyncSession,
        session_id: uuid.UUID,
        *,
        actor: Actor | None = None,
        now: datetime | None = None,
    ) -> CloseOutcome:
        """Close now, regardless of the deadline."""

        return await self._close(
            session,
            session_id,
            actor=actor,
            now=now,
            require_expired=False,
            reason="force_closed",
        )

    async def close_expired_session(
        self,
        session: AsyncSession,
        session_id: uuid.UUID,
        *,
        now: datetime | None = None,
    ) -> CloseOutcome:
        """Close a session whose deadline has passed (expiry sweep)."""

        return await self._close(
            session,
            session_id,
            actor=SYSTEM,
            now=now,
            require_expired=True,
            reason="deadline_reached",
        )

    async def _close(
        self,
        session: AsyncSession,
        session_id: uuid.UUID,
        *,
        actor: Actor | None,
        now: datetime | None,
        require_expired: bool,
        reason: str,
    ) -> CloseOutcome:
        now = now or utcnow()
        events = EventCollector(actor=actor or Actor(), session_factory=self._session_factory)

        async with unit_of_work(session):
            obj = await self._load(session, session_id, for_update=True)
            if obj.status in TERMINAL_STATUSES:
                raise SessionClosed(f"Session is already {obj.status}")
            if require_expired and obj.deadline > now:
                # Extended after the sweep selected it.
                return CloseOutcome(session=obj, outcome="not_due")

            stall = await self._ledger.get_stall(session, obj.stall_id)
            self._authorize(actor, stall)

            entries = await self._entries(session, obj)

            if not entries:
                await self._transition(session, obj, status="cancelled", closed_at=now, close_reason="no_entries")
                await self._ledger.release(session, obj.stall_id)
                events.record(
                    DomainEvent(
                        entity_type="session",
                        entity_id=str(obj.id),
                        action="cancelled",
                        summary=f"{obj.mode} ended without entries",
                        new_value={"stall_id": obj.stall_id, "reason": reason},
                    )
                )
                result = CloseOutcome(session=obj, outcome="no_entries")
            else:
                if obj.mode == "raffle":
                    winner = pick_raffle_winner(entries, self._rng)
                else:
                    winner = pick_auction_winner(entries)
                application_id = uuid.uuid4()

                await self._transition(
                    session,
                    obj,
                    status="closed_won",
                    closed_at=now,
                    close_reason=reason,
                    winner_applicant_id=winner.applicant_id,
                    winning_amount=winner.amount,
                    winner_application_id=application_id,
                )

                session.add(
                    Application(
                        id=application_id,
                        applicant_id=winner.applicant_id,
                        stall_id=obj.stall_id,
                        status="pending",
                        source=obj.mode,
                        created_at=now,
                        updated_at=now,
                    )
                )
                await session.flush()
                # The stall stays unavailable; it now backs the winner's application.
                await self._ledger.detach_session(session, obj.stall_id)

                email = (
                    await session.execute(
                        select(OtherInformation.email_address).where(
                            OtherInformation.applicant_id == winner.applicant_id
                        )
                    )
                ).scalar_one_or_none()

                events.record(
                    DomainEvent(
                        entity_type="session",
                        entity_id=str(obj.id),
                        action="closed",
                        summary=f"{obj.mode} winner selected from {len(entries)} entries",
                        new_value={
                            "stall_id": obj.stall_id,
                            "winner_applicant_id": str(winner.applicant_id),
                            "application_id": str(application_id),
                            "amount": str(winner.amount) if winner.amount is not None else None,
                            "reason": reason,
                        },
                        notify_email=email,
                        outcome="session_won",
                    )
                )
                result = CloseOutcome(session=obj, outcome="won", winner=winner, application_id=application_id)

        logger.info(
            "session_closed session_id=%s outcome=%s winner=%s reason=%s",
            obj.id,
            result.outcome,
            result.winner.applicant_id if result.winner else None,
            reason,
        )
        await events.publish()
        return result

    # -- applicant actions ---------------------------------------------------

    async def join_raffle(
        self,
        session: AsyncSession,
        session_id: uuid.UUID,
        applicant_id: uuid.UUID,
        *,
        now: datetime | None = None,
    ) -> RaffleParticipant:
        now = now or utcnow()

        async with unit_of_work(session):
            obj = await self._load(session, session_id, for_update=True)
            if obj.mode != "raffle":
                raise ValidationError("Session is not a raffle", fields=["session_id"])
            self._ensure_accepting(obj, now)
            await self._ensure_applicant(session, applicant_id)

            existing = (
                await session.execute(
                    select(RaffleParticipant.id).where(
                        RaffleParticipant.session_id == obj.id,
                        RaffleParticipant.applicant_id == applicant_id,
                    )
                )
            ).scalar_one_or_none()
            if existing is not None:
                raise AlreadyJoined("Applicant has already joined this raffle")

            participant = RaffleParticipant(
                session_id=obj.id,
                applicant_id=applicant_id,
                stall_id=obj.stall_id,
                joined_at=now,
            )
            session.add(participant)
            try:
                await session.flush()
            except IntegrityError as e:
                raise AlreadyJoined("Applicant has already joined this raffle") from e

        logger.info("raffle_joined session_id=%s applicant_id=%s", session_id, applicant_id)
        return participant

    async def place_bid(
        self,
        session: AsyncSession,
        session_id: uuid.UUID,
        applicant_id: uuid.UUID,
        amount,
        *,
        now: datetime | None = None,
    ) -> AuctionBid:
        """Place or raise a bid. An applicant holds at most one bid per session."""

        now = now or utcnow()
        amount = _money(amount)
        if amount <= 0:
            raise BidTooLow("Bid amount must be positive", minimum=CENTS)

        async with unit_of_work(session):
            obj = await self._load(session, session_id, for_update=True)
            if obj.mode != "auction":
                raise ValidationError("Session is not an auction", fields=["session_id"])
            self._ensure_accepting(obj, now)
            await self._ensure_applicant(session, applicant_id)

            if obj.minimum_bid is not None and amount < obj.minimum_bid:
                raise BidTooLow(f"Bid must be at least {obj.minimum_bid}", minimum=obj.minimum_bid)

            bid = (
                await session.execute(
                    select(AuctionBid).where(
                        AuctionBid.session_id == obj.id,
                        AuctionBid.applicant_id == applicant_id,
                    )
                )
            ).scalar_one_or_none()

            if bid is not None:
                # Only the applicant's own previous bid matters here.
                if amount <= bid.amount:
                    raise BidTooLow(
                        f"New bid must exceed your previous bid of {bid.amount}",
                        minimum=bid.amount + CENTS,
                    )
                bid.amount = amount
                bid.placed_at = now
                await session.flush()
            else:
                bid = AuctionBid(
                    session_id=obj.id,
                    applicant_id=applicant_id,
                    stall_id=obj.stall_id,
                    amount=amount,
                    placed_at=now,
                )
                session.add(bid)
                try:
                    await session.flush()
                except IntegrityError as e:
                    raise AlreadyJoined("A bid from this applicant was placed concurrently; retry") from e

        logger.info("bid_placed session_id=%s applicant_id=%s amount=%s", session_id, applicant_id, amount)
        return bid
