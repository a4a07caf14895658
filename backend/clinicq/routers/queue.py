"""
Staff queue routes: booking at the desk, day lists, consultation
transitions and queue state upkeep.
"""

from datetime import date
from typing import List, Optional
from fastapi import APIRouter, HTTPException, Query, status, Depends

from ..models.queue_state import QueueOpenUpdate, QueueState
from ..models.ticket import (
    BookingResult,
    FinishAndCallNextRequest,
    FinishRequest,
    QueueType,
    Ticket,
    TicketCreate,
    TicketStatus,
    TransitionResult,
)
from ..models.user import StaffPrincipal
from ..services.booking_service import BookingService
from ..services.consultation_service import ConsultationService
from ..services.queue_state_service import QueueStateService
from ..utils.booking_day import get_booking_day
from .dependencies import doctor_scope, require_admin, require_doctor, require_staff, ticket_scope

router = APIRouter(prefix="/queue", tags=["Queue"])

DAY_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
MAX_HISTORY_DAYS = 92


@router.post("/tickets", response_model=BookingResult, status_code=status.HTTP_201_CREATED)
async def book_ticket(
    details: TicketCreate,
    principal: StaffPrincipal = Depends(require_staff)
):
    """Book a patient from the reception desk."""
    return await BookingService.create_ticket(
        details,
        clinic_id=principal.clinic_id,
        booked_by=principal.user_id,
        default_doctor_id=principal.doctor_id,
    )


@router.get("/tickets", response_model=List[Ticket], response_model_by_alias=False)
async def list_tickets(
    doctor_id: Optional[str] = None,
    booking_day: Optional[str] = Query(None, pattern=DAY_PATTERN),
    ticket_status: Optional[TicketStatus] = Query(None, alias="status"),
    principal: StaffPrincipal = Depends(require_staff)
):
    """A doctor's tickets for one day (today by default) in queue order."""
    return await BookingService.list_day_tickets(
        principal.clinic_id,
        doctor_scope(principal, doctor_id),
        booking_day,
        ticket_status,
    )


@router.get("/history", response_model=List[Ticket], response_model_by_alias=False)
async def list_history(
    start_day: str = Query(..., pattern=DAY_PATTERN),
    end_day: str = Query(..., pattern=DAY_PATTERN),
    doctor_id: Optional[str] = None,
    principal: StaffPrincipal = Depends(require_staff)
):
    """Previous bookings between two days, inclusive."""
    try:
        span = (date.fromisoformat(end_day) - date.fromisoformat(start_day)).days
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid date"
        )
    if span > MAX_HISTORY_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"History range is limited to {MAX_HISTORY_DAYS} days"
        )
    return await BookingService.list_history(
        principal.clinic_id, doctor_scope(principal, doctor_id), start_day, end_day
    )


@router.get("/next", response_model=Ticket, response_model_by_alias=False)
async def get_next_ticket(
    doctor_id: Optional[str] = None,
    queue_type: Optional[QueueType] = None,
    principal: StaffPrincipal = Depends(require_staff)
):
    """The waiting ticket that should be called in next."""
    ticket = await ConsultationService.select_next_ticket(
        principal.clinic_id, doctor_scope(principal, doctor_id), get_booking_day(), queue_type
    )
    if not ticket:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No patients waiting in queue"
        )
    return ticket


@router.get("/tickets/{ticket_id}", response_model=Ticket, response_model_by_alias=False)
async def get_ticket(
    ticket_id: str,
    principal: StaffPrincipal = Depends(require_staff)
):
    """Get ticket by ID."""
    return await BookingService.get_ticket(ticket_id, principal.clinic_id, ticket_scope(principal))


@router.post("/tickets/{ticket_id}/start", response_model=Ticket, response_model_by_alias=False)
async def start_consulting(
    ticket_id: str,
    principal: StaffPrincipal = Depends(require_doctor)
):
    """Call a waiting patient in."""
    return await ConsultationService.start_consulting(
        ticket_id, principal.clinic_id, ticket_scope(principal)
    )


@router.post("/tickets/{ticket_id}/finish", response_model=TransitionResult, response_model_by_alias=False)
async def finish_consultation(
    ticket_id: str,
    request: Optional[FinishRequest] = None,
    principal: StaffPrincipal = Depends(require_doctor)
):
    """Finish the consulting patient without calling the next one."""
    return await ConsultationService.finish_consultation(
        ticket_id,
        request.prescription_text if request else None,
        principal.clinic_id,
        ticket_scope(principal),
    )


@router.post(
    "/tickets/{ticket_id}/finish-and-call-next",
    response_model=TransitionResult,
    response_model_by_alias=False,
)
async def finish_and_call_next(
    ticket_id: str,
    request: FinishAndCallNextRequest,
    principal: StaffPrincipal = Depends(require_doctor)
):
    """Finish the consulting patient and call the next one in a single step."""
    return await ConsultationService.finish_and_call_next(
        ticket_id,
        request.next_ticket_id,
        request.prescription_text,
        principal.clinic_id,
        ticket_scope(principal),
    )


@router.delete("/tickets/{ticket_id}", response_model=Ticket, response_model_by_alias=False)
async def cancel_ticket(
    ticket_id: str,
    principal: StaffPrincipal = Depends(require_staff)
):
    """Cancel a waiting ticket."""
    return await BookingService.cancel_ticket(ticket_id, principal.clinic_id, ticket_scope(principal))


@router.get("/state", response_model=QueueState, response_model_by_alias=False)
async def get_queue_state(
    doctor_id: Optional[str] = None,
    principal: StaffPrincipal = Depends(require_staff)
):
    """Today's queue state, checked against the tickets."""
    return await QueueStateService.get_queue_state(
        principal.clinic_id, doctor_scope(principal, doctor_id), verify=True
    )


@router.post("/state/rebuild", response_model=QueueState, response_model_by_alias=False)
async def rebuild_queue_state(
    doctor_id: Optional[str] = None,
    principal: StaffPrincipal = Depends(require_staff)
):
    """Recompute today's queue state from the tickets."""
    return await QueueStateService.rebuild(
        principal.clinic_id, doctor_scope(principal, doctor_id), get_booking_day()
    )


@router.put("/state/open", response_model=QueueState, response_model_by_alias=False)
async def set_queue_open(
    request: QueueOpenUpdate,
    doctor_id: Optional[str] = None,
    principal: StaffPrincipal = Depends(require_doctor)
):
    """Open or close today's queue for new bookings."""
    return await QueueStateService.set_open(
        principal.clinic_id, doctor_scope(principal, doctor_id), request.is_open
    )


@router.delete("/public-tickets/expired")
async def purge_expired_public_tickets(principal: StaffPrincipal = Depends(require_admin)):
    """Remove public ticket projections whose booking day is over."""
    deleted = await BookingService.purge_expired_public_tickets()
    return {"deleted": deleted}
