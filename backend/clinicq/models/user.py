"""
Staff principal decoded from the bearer token issued by the auth service.
"""

from pydantic import BaseModel
from typing import Optional
from enum import Enum


class StaffRole(str, Enum):
    """Staff roles recognised by the queue API."""
    ADMIN = "admin"
    DOCTOR = "doctor"
    NURSE = "nurse"


class StaffPrincipal(BaseModel):
    """Authenticated staff member scoped to one clinic."""
    user_id: str
    role: StaffRole
    clinic_id: str
    doctor_id: Optional[str] = None  # own id for doctors, assigned doctor for nurses
    name: Optional[str] = None
