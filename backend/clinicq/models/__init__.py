"""Pydantic models for ClinicQ."""

from .user import StaffPrincipal, StaffRole
from .clinic import Clinic, ClinicSettings, Doctor, DoctorAvailabilityUpdate, DoctorMessageUpdate
from .ticket import (
    ACTIVE_STATUSES,
    BookingResult,
    BookingSource,
    FinishAndCallNextRequest,
    FinishRequest,
    QueueType,
    Ticket,
    TicketCreate,
    TicketStatus,
    TransitionResult,
)
from .queue_state import QueueOpenUpdate, QueueState
from .public import PublicTicket, PublicTicketStatus

__all__ = [
    # Staff
    "StaffPrincipal", "StaffRole",
    # Clinic
    "Clinic", "ClinicSettings", "Doctor", "DoctorAvailabilityUpdate", "DoctorMessageUpdate",
    # Tickets
    "ACTIVE_STATUSES", "BookingResult", "BookingSource", "FinishAndCallNextRequest",
    "FinishRequest", "QueueType", "Ticket", "TicketCreate", "TicketStatus", "TransitionResult",
    # Queue state
    "QueueOpenUpdate", "QueueState",
    # Public
    "PublicTicket", "PublicTicketStatus",
]
