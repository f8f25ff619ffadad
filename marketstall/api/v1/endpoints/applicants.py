from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketstall.api.deps import get_actor
from marketstall.database import get_db
from marketstall.schemas.applicant import (
    ApplicantRead,
    ApplicantUpdate,
    CombinedStallApplicationCreate,
    IntakeCreate,
    IntakeResult,
)
from marketstall.services.applicants import ApplicantService
from marketstall.services.events import Actor
from marketstall.services.intake import IntakeService


router = APIRouter(prefix="/applicants", tags=["applicants"])

intake_service = IntakeService()
applicant_service = ApplicantService()


def _parse_applicant_id(applicant_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(applicant_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Applicant not found")


@router.post("", response_model=IntakeResult, status_code=status.HTTP_201_CREATED)
async def submit_intake_endpoint(
    payload: IntakeCreate,
    session: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> IntakeResult:
    return await intake_service.submit_intake(session, payload, actor=actor)


@router.post("/stall-application", response_model=IntakeResult, status_code=status.HTTP_201_CREATED)
async def submit_combined_stall_application_endpoint(
    payload: CombinedStallApplicationCreate,
    session: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> IntakeResult:
    return await intake_service.submit_combined_stall_application(session, payload, actor=actor)


@router.get("/{applicant_id}", response_model=ApplicantRead)
async def get_applicant_endpoint(
    applicant_id: str,
    session: AsyncSession = Depends(get_db),
) -> ApplicantRead:
    return await applicant_service.get_applicant_by_id(session, _parse_applicant_id(applicant_id))


@router.patch("/{applicant_id}", response_model=ApplicantRead)
async def update_applicant_endpoint(
    applicant_id: str,
    payload: ApplicantUpdate,
    session: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> ApplicantRead:
    return await applicant_service.update_applicant(
        session, _parse_applicant_id(applicant_id), payload, actor=actor
    )


@router.delete("/{applicant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_applicant_endpoint(
    applicant_id: str,
    session: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Response:
    await applicant_service.delete_applicant(session, _parse_applicant_id(applicant_id), actor=actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
