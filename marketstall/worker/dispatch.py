from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def enqueue_notification(*, email: str, outcome: str, context: dict | None = None) -> None:
    """Emit a notification job after a successful commit.

    Must be non-fatal: a broker outage never undoes or fails the operation
    that produced the notification.
    """

    try:
        # Imported lazily so the API can start without a reachable broker.
        from marketstall.worker.tasks import send_notification

        send_notification.delay(email, outcome, context or {})
    except Exception:
        logger.exception("Failed to enqueue send_notification (outcome=%s)", outcome)
