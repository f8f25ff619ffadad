"""Post-commit side effects.

Services record events while a transaction is open and publish them only once
it has committed. Publishing feeds the notification worker and the activity
log; neither may affect the outcome of the operation that produced them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from marketstall.database import SessionLocal
from marketstall.models.activity_log import ActivityLog
from marketstall.worker import dispatch

logger = logging.getLogger("marketstall.events")


@dataclass(frozen=True)
class Actor:
    """Pre-authenticated principal supplied by the identity collaborator."""

    operator_id: str | None = None
    branch_id: int | None = None
    request_id: str | None = None


SYSTEM = Actor(operator_id="system")


@dataclass(frozen=True)
class DomainEvent:
    entity_type: str
    entity_id: str
    action: str
    summary: str | None = None
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None

    # Set when the notification collaborator should hear about this event.
    notify_email: str | None = None
    outcome: str | None = None


@dataclass
class EventCollector:
    actor: Actor = field(default_factory=Actor)
    events: list[DomainEvent] = field(default_factory=list)
    # Activity-log rows are written through this factory.
    session_factory: Callable[[], AsyncSession] = SessionLocal

    def record(self, event: DomainEvent) -> None:
        self.events.append(event)

    async def publish(self) -> None:
        events, self.events = self.events, []
        if not events:
            return

        for event in events:
            if event.notify_email and event.outcome:
                dispatch.enqueue_notification(
                    email=event.notify_email,
                    outcome=event.outcome,
                    context={"entity_type": event.entity_type, "entity_id": event.entity_id},
                )

        try:
            async with self.session_factory() as session:
                session.add_all(
                    [
                        ActivityLog(
                            entity_type=e.entity_type,
                            entity_id=e.entity_id,
                            action=e.action,
                            old_value=e.old_value,
                            new_value=e.new_value,
                            change_summary=e.summary,
                            performed_by=self.actor.operator_id,
                            request_id=self.actor.request_id,
                        )
                        for e in events
                    ]
                )
                await session.commit()
        except Exception:
            logger.exception("activity_log_write_failed events=%d", len(events))
