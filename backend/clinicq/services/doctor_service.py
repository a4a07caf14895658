"""
Doctor availability and status message.

These flags pause service on the status page; they never change ticket
states.
"""

import logging
from typing import Optional

from ..errors import NotFound
from ..models.clinic import Doctor
from ..stores import get_store
from ..utils.booking_day import utcnow
from ..utils.validation import sanitize_text

logger = logging.getLogger(__name__)


class DoctorService:

    @classmethod
    async def get_doctor(cls, doctor_id: str, clinic_id: Optional[str] = None) -> Doctor:
        doc = await get_store().get_doctor(doctor_id)
        if not doc or (clinic_id and doc.get("clinic_id") != clinic_id):
            raise NotFound("Doctor not found")
        return Doctor(**doc)

    @classmethod
    async def _update(cls, doctor_id: str, clinic_id: Optional[str], updates: dict) -> Doctor:
        await cls.get_doctor(doctor_id, clinic_id)
        doc = await get_store().update_doctor(doctor_id, {**updates, "updated_at": utcnow()})
        if not doc:
            raise NotFound("Doctor not found")
        return Doctor(**doc)

    @classmethod
    async def set_availability(cls, doctor_id: str, is_available: bool, clinic_id: Optional[str] = None) -> Doctor:
        doctor = await cls._update(doctor_id, clinic_id, {"is_available": is_available})
        logger.info("Doctor %s is now %s", doctor_id, "available" if is_available else "unavailable")
        return doctor

    @classmethod
    async def set_message(cls, doctor_id: str, message: str, clinic_id: Optional[str] = None) -> Doctor:
        """Set (or clear, with an empty string) the message shown to waiting patients."""
        return await cls._update(doctor_id, clinic_id, {"status_message": sanitize_text(message)})
