"""
Anonymous patient routes: booking intake, ticket status and the live queue
state stream.
"""

from fastapi import APIRouter, status
from fastapi.responses import StreamingResponse

from ..models.public import PublicTicketStatus
from ..models.ticket import BookingResult, TicketCreate
from ..services.booking_service import BookingService
from ..services.public_status_service import PublicStatusService

router = APIRouter(prefix="/public", tags=["Public"])


@router.post("/book", response_model=BookingResult, status_code=status.HTTP_201_CREATED)
async def book_ticket(details: TicketCreate):
    """Book into a doctor's queue by clinic slug and doctor id."""
    return await BookingService.create_ticket(details)


@router.get("/tickets/{public_ticket_id}", response_model=PublicTicketStatus, response_model_by_alias=False)
async def get_ticket_status(public_ticket_id: str):
    """Ticket position and advisory wait for the status page."""
    return await PublicStatusService.get_ticket_status(public_ticket_id)


@router.get("/queue-state/{clinic_id}/{doctor_id}/stream")
async def stream_queue_state(clinic_id: str, doctor_id: str):
    """Server-sent events carrying the doctor's queue state on every change."""
    updates = PublicStatusService.subscribe_to_queue_state(clinic_id, doctor_id)
    # pull the first state here so an unknown queue is a 404, not a broken stream
    first = await updates.__anext__()

    async def event_stream():
        try:
            yield f"data: {first.model_dump_json()}\n\n"
            async for state in updates:
                yield f"data: {state.model_dump_json()}\n\n"
        finally:
            await updates.aclose()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
    )
