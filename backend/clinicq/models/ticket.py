"""
Queue ticket models: booking intake, stored ticket and transition requests.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

from ..utils.validation import is_valid_phone, sanitize_name, sanitize_phone, sanitize_text


class TicketStatus(str, Enum):
    """Ticket lifecycle states. Cancellation deletes the ticket instead."""
    WAITING = "Waiting"
    CONSULTING = "Consulting"
    FINISHED = "Finished"


ACTIVE_STATUSES = (TicketStatus.WAITING, TicketStatus.CONSULTING)


class QueueType(str, Enum):
    """Visit kind, which also decides the price accrued on finish."""
    CONSULTATION = "Consultation"
    RE_CONSULTATION = "Re-consultation"


class BookingSource(str, Enum):
    PATIENT = "patient"
    NURSE = "nurse"


class TicketCreate(BaseModel):
    """Booking intake."""
    clinic_slug: Optional[str] = Field(None, min_length=1, max_length=100)
    doctor_id: Optional[str] = Field(None, min_length=1, max_length=100)
    name: str = Field(..., min_length=2, max_length=100)
    phone: str = Field(..., description="11-digit local mobile number")
    age: Optional[int] = Field(None, ge=0, le=150)
    chronic_diseases: Optional[str] = Field(None, max_length=500)
    consultation_reason: Optional[str] = Field(None, max_length=500)
    queue_type: QueueType = QueueType.CONSULTATION

    @field_validator("name")
    @classmethod
    def _clean_name(cls, value: str) -> str:
        cleaned = sanitize_name(value)
        if len(cleaned) < 2:
            raise ValueError("Name must be at least 2 characters")
        return cleaned

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, value: str) -> str:
        if not is_valid_phone(value):
            raise ValueError("Invalid Egyptian phone number")
        return sanitize_phone(value)

    @field_validator("chronic_diseases", "consultation_reason")
    @classmethod
    def _clean_text(cls, value: Optional[str]) -> Optional[str]:
        return sanitize_text(value)


class Ticket(BaseModel):
    """Authoritative booking record (staff-only)."""
    id: str = Field(..., alias="_id")
    clinic_id: str
    doctor_id: str
    patient_name: str
    phone: str
    age: Optional[int] = None
    chronic_diseases: Optional[str] = None
    consultation_reason: Optional[str] = None
    queue_number: int = Field(..., ge=1)
    status: TicketStatus = TicketStatus.WAITING
    queue_type: QueueType = QueueType.CONSULTATION
    booking_day: str
    booking_timestamp: datetime
    consulting_start_time: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    prescription_text: Optional[str] = None
    public_ticket_ref: Optional[str] = None
    source: BookingSource = BookingSource.PATIENT
    booked_by: Optional[str] = None

    class Config:
        populate_by_name = True


class BookingResult(BaseModel):
    """Returned to the booking caller."""
    ticket_id: str
    public_ticket_id: str
    queue_number: int
    booking_day: str
    queue_type: QueueType


class FinishRequest(BaseModel):
    prescription_text: Optional[str] = Field(None, max_length=5000)


class FinishAndCallNextRequest(FinishRequest):
    next_ticket_id: str = Field(..., min_length=1)


class TransitionResult(BaseModel):
    """Tickets touched by a state machine operation."""
    finished: Optional[Ticket] = None
    consulting: Optional[Ticket] = None
    revenue_accrued: float = 0
