"""
Clinic and doctor documents. Both are provisioned by the tenant
management side; the queue core reads them and maintains a few doctor fields
(revenue, availability, status message).
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class ClinicSettings(BaseModel):
    """Per-clinic pricing and pacing."""
    consultation_time: int = Field(15, gt=0, description="Minutes per patient")
    consultation_cost: float = Field(0, ge=0)
    re_consultation_cost: float = Field(0, ge=0)


class Clinic(BaseModel):
    id: str = Field(..., alias="_id")
    slug: str
    name: str
    is_active: bool = True
    settings: ClinicSettings = Field(default_factory=ClinicSettings)

    class Config:
        populate_by_name = True


class Doctor(BaseModel):
    id: str = Field(..., alias="_id")
    clinic_id: str
    name: str
    specialty: Optional[str] = None
    is_active: bool = True
    is_available: bool = True
    status_message: Optional[str] = None
    total_revenue: float = 0
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True


class DoctorAvailabilityUpdate(BaseModel):
    is_available: bool


class DoctorMessageUpdate(BaseModel):
    message: str = Field("", max_length=500)
