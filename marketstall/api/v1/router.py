from fastapi import APIRouter

from marketstall.api.v1.endpoints.applicants import router as applicants_router
from marketstall.api.v1.endpoints.applications import router as applications_router
from marketstall.api.v1.endpoints.maintenance import router as maintenance_router
from marketstall.api.v1.endpoints.sessions import router as sessions_router

router = APIRouter()


@router.get("/ping")
async def ping():
    return {"ping": "pong"}


router.include_router(applicants_router)
router.include_router(applications_router)
router.include_router(sessions_router)
router.include_router(maintenance_router)
