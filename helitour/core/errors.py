"""
Domain errors raised by the capacity, cancellation and refund helpers.

Each error carries the HTTP status the API layer maps it to, a short
machine-readable ``error`` kind and a message that is safe to show to the
end user. The handler registered in ``helitour.main`` turns them into
``{"error": ..., "message": ..., **extra}`` responses.
"""
from typing import Any, Dict, Optional


class BookingError(Exception):
    status_code = 500
    error = "internal_error"

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "message": self.message, **self.extra}


# ---------------------------------------------------------------------------
# 404
# ---------------------------------------------------------------------------


class NotFoundError(BookingError):
    status_code = 404
    error = "not_found"


class SlotNotFound(NotFoundError):
    error = "slot_not_found"

    def __init__(self, slot_id=None):
        super().__init__("Slot not found", {"slot_id": str(slot_id)} if slot_id else None)


class CourseNotFound(NotFoundError):
    error = "course_not_found"

    def __init__(self, course_id=None):
        super().__init__("Course not found", {"course_id": str(course_id)} if course_id else None)


class ReservationNotFound(NotFoundError):
    error = "reservation_not_found"

    def __init__(self):
        super().__init__("Reservation not found")


class PolicyNotFound(NotFoundError):
    error = "policy_not_found"

    def __init__(self):
        super().__init__("Cancellation policy not found")


# ---------------------------------------------------------------------------
# 409
# ---------------------------------------------------------------------------


class ConflictError(BookingError):
    status_code = 409
    error = "conflict"


class SlotUnavailable(ConflictError):
    error = "slot_unavailable"

    def __init__(self, status):
        super().__init__(
            f"Slot is not available (status: '{status}')",
            {"status": str(status)},
        )


class InsufficientCapacity(ConflictError):
    error = "insufficient_capacity"

    def __init__(self, available: int, requested: int):
        super().__init__(
            f"Only {available} spots available.",
            {"available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested


class ReservationNotCancellable(ConflictError):
    error = "reservation_not_cancellable"


class InvalidStatusTransition(ConflictError):
    error = "invalid_status_transition"


class SlotInUse(ConflictError):
    error = "slot_in_use"


# ---------------------------------------------------------------------------
# 400
# ---------------------------------------------------------------------------


class InvalidInput(BookingError):
    status_code = 400
    error = "invalid_input"


# ---------------------------------------------------------------------------
# 5xx — upstream failures, retryable by the caller
# ---------------------------------------------------------------------------


class UpstreamFailure(BookingError):
    status_code = 500
    error = "upstream_failure"


class PersistenceFailure(UpstreamFailure):
    error = "persistence_failure"


class GatewayFailure(UpstreamFailure):
    status_code = 502
    error = "gateway_failure"
