"""Domain errors raised by the allocation services.

Each error carries the HTTP status and a stable ``code`` used by the API
layer when rendering the error envelope.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class AllocationError(Exception):
    status_code: int = 400
    code: str = "allocation_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict[str, Any]:
        return {"message": self.message}


class ValidationError(AllocationError):
    status_code = 422
    code = "validation_error"

    def __init__(self, message: str, *, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or []

    def to_detail(self) -> dict[str, Any]:
        return {"message": self.message, "fields": self.fields}


class EligibilityDenied(AllocationError):
    status_code = 400
    code = "eligibility_denied"

    def __init__(self, reason: str, *, retry_after_days: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.retry_after_days = retry_after_days

    def to_detail(self) -> dict[str, Any]:
        return {"message": self.reason, "retry_after_days": self.retry_after_days}


class NotFound(AllocationError):
    status_code = 404
    code = "not_found"


class StallUnavailable(AllocationError):
    status_code = 409
    code = "stall_unavailable"

    def __init__(self, stall_id: int, message: str | None = None) -> None:
        super().__init__(message or f"Stall {stall_id} is no longer available; please choose a different stall")
        self.stall_id = stall_id


class SessionClosed(AllocationError):
    status_code = 409
    code = "session_closed"


class AlreadyJoined(AllocationError):
    status_code = 409
    code = "already_joined"


class BidTooLow(AllocationError):
    status_code = 422
    code = "bid_too_low"

    def __init__(self, message: str, *, minimum: Decimal | None = None) -> None:
        super().__init__(message)
        self.minimum = minimum

    def to_detail(self) -> dict[str, Any]:
        return {"message": self.message, "minimum": str(self.minimum) if self.minimum is not None else None}


class InvalidTransition(AllocationError):
    status_code = 422
    code = "invalid_transition"


class PersistenceFailure(AllocationError):
    """Storage failure. The unit of work has already been rolled back."""

    status_code = 500
    code = "persistence_failure"

    def __init__(self, message: str = "Failed to persist changes", *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class Forbidden(AllocationError):
    """The acting operator's branch scope does not cover the stall."""

    status_code = 403
    code = "forbidden"
