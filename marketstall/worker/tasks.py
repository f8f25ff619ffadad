from __future__ import annotations

import asyncio
import logging

from marketstall.database import engine
from marketstall.services.sweeps import SweepReport, run_cleanup_sweep, run_expiry_sweep
from marketstall.worker.celery_app import celery_app


logger = logging.getLogger(__name__)


def _run_sweep(factory) -> dict:
    async def _main() -> SweepReport:
        try:
            return await factory()
        finally:
            # Each task runs on a fresh event loop; pooled connections must not
            # outlive it.
            await engine.dispose()

    report = asyncio.run(_main())
    return {
        "kind": report.kind,
        "processed": report.processed,
        "succeeded": report.succeeded,
        "failed": report.failed,
    }


@celery_app.task(name="marketstall.run_expiry_sweep")
def expiry_sweep() -> dict:
    return _run_sweep(run_expiry_sweep)


@celery_app.task(name="marketstall.run_cleanup_sweep")
def cleanup_sweep() -> dict:
    return _run_sweep(run_cleanup_sweep)


@celery_app.task(name="marketstall.send_notification")
def send_notification(email: str, outcome: str, context: dict | None = None) -> None:
    """Hand a post-commit outcome to the notification collaborator.

    Delivery (email/push) lives outside this service; this task is the seam
    it consumes.
    """

    logger.info(
        "notification_dispatched email=%s outcome=%s context=%s",
        email,
        outcome,
        context or {},
    )
