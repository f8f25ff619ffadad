from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from marketstall.api.deps import get_actor
from marketstall.database import get_db
from marketstall.schemas.applicant import ApplicationRead, ApplicationStatusUpdate
from marketstall.services.events import Actor
from marketstall.services.review import ReviewService


router = APIRouter(prefix="/applications", tags=["applications"])

review_service = ReviewService()


@router.patch("/{application_id}/status", response_model=ApplicationRead)
async def review_application_endpoint(
    application_id: str,
    payload: ApplicationStatusUpdate,
    session: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> ApplicationRead:
    try:
        app_id = uuid.UUID(application_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Application not found")

    if payload.status not in {"approved", "declined"}:
        raise HTTPException(status_code=422, detail="status must be one of: approved, declined")

    application = await review_service.review_application(session, app_id, payload.status, actor=actor)
    return ApplicationRead.model_validate(application)
