"""
Doctor self-service routes: availability and the message shown to waiting
patients.
"""

from typing import Optional
from fastapi import APIRouter, Depends

from ..models.clinic import Doctor, DoctorAvailabilityUpdate, DoctorMessageUpdate
from ..models.user import StaffPrincipal
from ..services.doctor_service import DoctorService
from .dependencies import doctor_scope, get_current_staff, require_doctor

router = APIRouter(prefix="/doctors", tags=["Doctors"])


@router.get("/me", response_model=Doctor, response_model_by_alias=False)
async def get_my_doctor(
    doctor_id: Optional[str] = None,
    principal: StaffPrincipal = Depends(get_current_staff)
):
    """Profile of the doctor on the caller's token."""
    return await DoctorService.get_doctor(doctor_scope(principal, doctor_id), principal.clinic_id)


@router.put("/me/availability", response_model=Doctor, response_model_by_alias=False)
async def set_availability(
    request: DoctorAvailabilityUpdate,
    doctor_id: Optional[str] = None,
    principal: StaffPrincipal = Depends(require_doctor)
):
    """Pause or resume service; waiting tickets are left as they are."""
    return await DoctorService.set_availability(
        doctor_scope(principal, doctor_id), request.is_available, principal.clinic_id
    )


@router.put("/me/message", response_model=Doctor, response_model_by_alias=False)
async def set_message(
    request: DoctorMessageUpdate,
    doctor_id: Optional[str] = None,
    principal: StaffPrincipal = Depends(require_doctor)
):
    """Set the note shown on the patient status page."""
    return await DoctorService.set_message(
        doctor_scope(principal, doctor_id), request.message, principal.clinic_id
    )
