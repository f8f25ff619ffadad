from __future__ import annotations

from fastapi import APIRouter

from marketstall.schemas.session import SweepItemRead, SweepReportRead
from marketstall.services.sweeps import SweepReport, run_cleanup_sweep, run_expiry_sweep


router = APIRouter(prefix="/maintenance", tags=["maintenance"])


def _to_read(report: SweepReport) -> SweepReportRead:
    return SweepReportRead(
        kind=report.kind,
        processed=report.processed,
        succeeded=report.succeeded,
        failed=report.failed,
        items=[SweepItemRead(entity_id=i.entity_id, outcome=i.outcome, error=i.error) for i in report.items],
    )


@router.post("/expiry-sweep", response_model=SweepReportRead)
async def run_expiry_sweep_endpoint() -> SweepReportRead:
    """Manual trigger for the session expiry sweep (normally run by Celery beat)."""

    return _to_read(await run_expiry_sweep())


@router.post("/cleanup-sweep", response_model=SweepReportRead)
async def run_cleanup_sweep_endpoint() -> SweepReportRead:
    """Manual trigger for the rejected-applicant purge (normally run daily)."""

    return _to_read(await run_cleanup_sweep())
