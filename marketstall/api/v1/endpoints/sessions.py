from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketstall.api.deps import get_actor
from marketstall.database import get_db
from marketstall.schemas.session import (
    BidCreate,
    SessionCancel,
    SessionEntriesResponse,
    SessionEntryRead,
    SessionExtend,
    SessionJoin,
    SessionOpen,
    SessionRead,
)
from marketstall.services.events import Actor
from marketstall.services.sessions import SessionManager


router = APIRouter(prefix="/sessions", tags=["sessions"])

manager = SessionManager()


def _parse_session_id(session_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(session_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Session not found")


@router.post("", response_model=SessionRead, status_code=status.HTTP_201_CREATED)
async def open_session_endpoint(
    payload: SessionOpen,
    session: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> SessionRead:
    obj = await manager.open_session(
        session,
        stall_id=payload.stall_id,
        mode=payload.mode,
        deadline=payload.deadline,
        duration_hours=payload.duration_hours,
        minimum_bid=payload.minimum_bid,
        actor=actor,
    )
    return SessionRead.model_validate(obj)


@router.get("/{session_id}", response_model=SessionRead)
async def get_session_endpoint(
    session_id: str,
    session: AsyncSession = Depends(get_db),
) -> SessionRead:
    obj = await manager.get_session(session, _parse_session_id(session_id))
    return SessionRead.model_validate(obj)


@router.get("/{session_id}/entries", response_model=SessionEntriesResponse)
async def list_session_entries_endpoint(
    session_id: str,
    session: AsyncSession = Depends(get_db),
) -> SessionEntriesResponse:
    obj, entries = await manager.list_entries(session, _parse_session_id(session_id))
    return SessionEntriesResponse(
        session_id=obj.id,
        mode=obj.mode,
        items=[
            SessionEntryRead(applicant_id=e.applicant_id, amount=e.amount, entered_at=e.entered_at)
            for e in entries
        ],
    )


@router.post("/{session_id}/join", response_model=SessionEntryRead, status_code=status.HTTP_201_CREATED)
async def join_raffle_endpoint(
    session_id: str,
    payload: SessionJoin,
    session: AsyncSession = Depends(get_db),
) -> SessionEntryRead:
    participant = await manager.join_raffle(session, _parse_session_id(session_id), payload.applicant_id)
    return SessionEntryRead(applicant_id=participant.applicant_id, entered_at=participant.joined_at)


@router.post("/{session_id}/bids", response_model=SessionEntryRead)
async def place_bid_endpoint(
    session_id: str,
    payload: BidCreate,
    session: AsyncSession = Depends(get_db),
) -> SessionEntryRead:
    bid = await manager.place_bid(session, _parse_session_id(session_id), payload.applicant_id, payload.amount)
    return SessionEntryRead(applicant_id=bid.applicant_id, amount=bid.amount, entered_at=bid.placed_at)


@router.put("/{session_id}/extend", response_model=SessionRead)
async def extend_session_endpoint(
    session_id: str,
    payload: SessionExtend,
    session: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> SessionRead:
    obj = await manager.extend_deadline(
        session,
        _parse_session_id(session_id),
        new_deadline=payload.new_deadline,
        additional_hours=payload.additional_hours,
        reason=payload.reason,
        actor=actor,
    )
    return SessionRead.model_validate(obj)


@router.put("/{session_id}/cancel", response_model=SessionRead)
async def cancel_session_endpoint(
    session_id: str,
    payload: SessionCancel | None = None,
    session: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> SessionRead:
    obj = await manager.cancel_session(
        session,
        _parse_session_id(session_id),
        reason=payload.reason if payload else None,
        actor=actor,
    )
    return SessionRead.model_validate(obj)


@router.post("/{session_id}/force-close", response_model=SessionRead)
async def force_close_session_endpoint(
    session_id: str,
    session: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> SessionRead:
    outcome = await manager.force_close_session(session, _parse_session_id(session_id), actor=actor)
    return SessionRead.model_validate(outcome.session)
