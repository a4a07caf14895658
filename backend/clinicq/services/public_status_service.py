"""
Anonymous read path for the patient status page.

Only two reads exist: one public ticket by its unguessable id, and the
queue state stream of one doctor. Nothing here lists or searches tickets.
"""

import logging
from datetime import datetime
from typing import AsyncIterator, Optional

from ..config import get_settings
from ..errors import NotFound
from ..models.clinic import ClinicSettings
from ..models.public import PublicTicket, PublicTicketStatus
from ..models.queue_state import QueueState
from ..models.ticket import TicketStatus
from ..stores import get_store
from ..utils.booking_day import get_booking_day, utcnow
from .queue_state_service import QueueStateService
from .wait_time import estimate_wait_minutes, people_ahead

settings = get_settings()
logger = logging.getLogger(__name__)


class PublicStatusService:
    """Privacy-safe ticket and queue state reads."""

    @classmethod
    async def get_ticket_by_id(cls, public_ticket_id: str, now: Optional[datetime] = None) -> PublicTicket:
        """Public projection of a ticket; expired projections are not found."""
        doc = await get_store().get_public_ticket(public_ticket_id)
        if not doc:
            raise NotFound("Ticket not found")
        ticket = PublicTicket(**doc)
        if (now or utcnow()) > ticket.expires_at:
            raise NotFound("Ticket not found or expired")
        return ticket

    @classmethod
    async def get_ticket_status(cls, public_ticket_id: str, now: Optional[datetime] = None) -> PublicTicketStatus:
        """Projection plus live position and advisory wait estimate."""
        now = now or utcnow()
        ticket = await cls.get_ticket_by_id(public_ticket_id, now)
        state = await QueueStateService.get_queue_state(
            ticket.clinic_id, ticket.doctor_id, ticket.booking_day, verify=True
        )

        store = get_store()
        clinic = await store.get_clinic(ticket.clinic_id)
        doctor = await store.get_doctor(ticket.doctor_id) or {}
        if clinic:
            default_minutes = ClinicSettings(**(clinic.get("settings") or {})).consultation_time
        else:
            default_minutes = settings.DEFAULT_CONSULTATION_MINUTES

        ahead = 0
        if ticket.status == TicketStatus.WAITING:
            ahead = people_ahead(ticket.queue_number, state.current_consulting_queue_number)

        return PublicTicketStatus(
            ticket=ticket,
            queue_state=state,
            people_ahead=ahead,
            estimated_wait_minutes=estimate_wait_minutes(ticket, state, default_minutes, now),
            doctor_available=doctor.get("is_available", True),
            doctor_message=doctor.get("status_message") or None,
        )

    @classmethod
    async def subscribe_to_queue_state(cls, clinic_id: str, doctor_id: str) -> AsyncIterator[QueueState]:
        """
        Stream today's queue state for a doctor: the current version first,
        then every update until the consumer stops iterating.
        """
        store = get_store()
        clinic = await store.get_clinic(clinic_id)
        doctor = await store.get_doctor(doctor_id)
        if not clinic or not doctor or doctor.get("clinic_id") != clinic_id:
            raise NotFound("Queue not found")

        booking_day = get_booking_day()
        # register before reading so no update falls between the two
        watch = store.watch_queue_state(QueueStateService.state_id(clinic_id, doctor_id, booking_day))
        try:
            yield await QueueStateService.get_queue_state(clinic_id, doctor_id, booking_day)
            async for doc in watch:
                yield QueueState(**doc)
        finally:
            await watch.aclose()
            logger.debug("Queue state subscriber for %s/%s left", clinic_id, doctor_id)
