"""
Derived per-doctor, per-day queue summary.
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class QueueState(BaseModel):
    """
    Public-safe projection of a doctor's queue for one booking day.

    It is a cache over the tickets and can always be rebuilt from them.
    """
    id: str = Field(..., alias="_id", description="{clinic_id}_{doctor_id}_{booking_day}")
    clinic_id: str
    doctor_id: str
    booking_day: str
    current_consulting_queue_number: Optional[int] = None
    current_consulting_started_at: Optional[datetime] = None
    total_waiting_count: int = Field(0, ge=0)
    average_wait_time_minutes: Optional[float] = None
    is_open: bool = True
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True


class QueueOpenUpdate(BaseModel):
    is_open: bool
