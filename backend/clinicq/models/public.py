"""
Models served to anonymous patients. None of them carries clinical data,
prescriptions or a full phone number.
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from .ticket import TicketStatus
from .queue_state import QueueState


class PublicTicket(BaseModel):
    """Privacy-safe mirror of a ticket."""
    id: str = Field(..., alias="_id")
    clinic_id: str
    doctor_id: str
    ticket_ref: str
    queue_number: int
    status: TicketStatus
    display_name: Optional[str] = None
    phone_last4: Optional[str] = None
    booking_day: str
    created_at: datetime
    expires_at: datetime

    class Config:
        populate_by_name = True


class PublicTicketStatus(BaseModel):
    """Status page payload: projection plus advisory estimates."""
    ticket: PublicTicket
    queue_state: QueueState
    people_ahead: int = 0
    estimated_wait_minutes: int = 0
    doctor_available: bool = True
    doctor_message: Optional[str] = None
