"""
Domain errors raised by the queue services.

Malformed input never reaches these; it is rejected by the pydantic request
models (``pydantic.ValidationError`` / HTTP 422) before any write happens.
"""

from typing import Any, Dict, Optional


class QueueError(Exception):
    """Base class for typed queue failures."""

    code = "queue_error"
    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.extra}


class AlreadyBooked(QueueError):
    """The phone already holds an active ticket with this doctor today."""

    code = "already_booked"
    status_code = 409

    def __init__(self, ticket_id: str, public_ticket_id: Optional[str], queue_number: int):
        super().__init__(
            "Patient already has an active booking today",
            public_ticket_id=public_ticket_id,
            queue_number=queue_number,
        )
        self.ticket_id = ticket_id
        self.public_ticket_id = public_ticket_id
        self.queue_number = queue_number


class InvalidTarget(QueueError):
    code = "invalid_target"
    status_code = 404


class InvalidTransition(QueueError):
    code = "invalid_transition"
    status_code = 409


class DoctorBusy(QueueError):
    code = "doctor_busy"
    status_code = 409

    def __init__(self, doctor_id: str, consulting_queue_number: Optional[int] = None):
        super().__init__(
            "Doctor is already consulting another patient",
            doctor_id=doctor_id,
            consulting_queue_number=consulting_queue_number,
        )


class InvalidNextPatient(QueueError):
    code = "invalid_next_patient"
    status_code = 409


class NotFound(QueueError):
    code = "not_found"
    status_code = 404


class AllocationFailure(QueueError):
    code = "allocation_failure"
    status_code = 503


class BookingFailed(QueueError):
    """The booking could not be stored; nothing was kept and it is safe to retry."""

    code = "booking_failed"
    status_code = 503
