"""
Ticket booking, cancellation and staff-side ticket queries.
"""

import logging
import secrets
from datetime import datetime
from typing import List, Optional, Tuple

from bson import ObjectId

from ..errors import AlreadyBooked, BookingFailed, InvalidTarget, InvalidTransition, NotFound
from ..models.clinic import Clinic, Doctor
from ..models.ticket import (
    ACTIVE_STATUSES,
    BookingResult,
    BookingSource,
    QueueType,
    Ticket,
    TicketCreate,
    TicketStatus,
)
from ..stores import DuplicateActiveTicket, StoreError, get_store
from ..utils.booking_day import booking_day_range, end_of_booking_day, get_booking_day, utcnow
from ..utils.validation import display_initials, phone_last4
from .queue_state_service import QueueStateService
from .sequence_service import SequenceService

logger = logging.getLogger(__name__)


class BookingService:
    """Creates tickets and their public projections."""

    @classmethod
    async def _resolve_target(
        cls,
        details: TicketCreate,
        clinic_id: Optional[str],
        default_doctor_id: Optional[str],
    ) -> Tuple[Clinic, Doctor]:
        store = get_store()

        if clinic_id:
            clinic_doc = await store.get_clinic(clinic_id)
        elif details.clinic_slug:
            clinic_doc = await store.get_clinic_by_slug(details.clinic_slug)
        else:
            raise InvalidTarget("A clinic is required for booking")

        if not clinic_doc or not clinic_doc.get("is_active", True):
            raise InvalidTarget("Clinic not found or inactive")
        clinic = Clinic(**clinic_doc)

        doctor_id = details.doctor_id or default_doctor_id
        if not doctor_id:
            raise InvalidTarget("A doctor is required for booking")

        doctor_doc = await store.get_doctor(doctor_id)
        if not doctor_doc:
            raise InvalidTarget("Doctor not found")
        doctor = Doctor(**doctor_doc)
        if doctor.clinic_id != clinic.id:
            raise InvalidTarget("Doctor does not belong to this clinic")
        if not doctor.is_active:
            raise InvalidTarget("Doctor is not active")

        return clinic, doctor

    @classmethod
    async def find_active_ticket(
        cls,
        clinic_id: str,
        doctor_id: str,
        booking_day: str,
        phone: str,
    ) -> Optional[Ticket]:
        """Waiting or Consulting ticket of this phone with the doctor on that day."""
        found = await get_store().find_tickets(
            {
                "clinic_id": clinic_id,
                "doctor_id": doctor_id,
                "booking_day": booking_day,
                "phone": phone,
                "status": [s.value for s in ACTIVE_STATUSES],
            },
            limit=1,
        )
        return Ticket(**found[0]) if found else None

    @classmethod
    async def _effective_queue_type(cls, clinic_id: str, doctor_id: str, phone: str, requested: QueueType) -> QueueType:
        # Re-consultation is only priced as such for returning patients
        if requested != QueueType.RE_CONSULTATION:
            return requested
        history = await get_store().find_tickets(
            {"clinic_id": clinic_id, "doctor_id": doctor_id, "phone": phone},
            limit=1,
        )
        return requested if history else QueueType.CONSULTATION

    @classmethod
    async def create_ticket(
        cls,
        details: TicketCreate,
        clinic_id: Optional[str] = None,
        booked_by: Optional[str] = None,
        default_doctor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingResult:
        """
        Book a patient into a doctor's queue for the current booking day.

        Public bookings resolve the clinic by ``details.clinic_slug``; staff
        bookings pass ``clinic_id`` and ``booked_by``. Invalid targets and
        duplicate active bookings are rejected before a queue number is
        consumed. The ticket and its public projection are stored together.
        """
        store = get_store()
        now = now or utcnow()

        clinic, doctor = await cls._resolve_target(details, clinic_id, default_doctor_id)
        booking_day = get_booking_day(now)

        state = await store.get_queue_state(QueueStateService.state_id(clinic.id, doctor.id, booking_day))
        if state is not None and not state.get("is_open", True):
            raise InvalidTarget("The doctor's queue is closed for today")

        existing = await cls.find_active_ticket(clinic.id, doctor.id, booking_day, details.phone)
        if existing:
            raise AlreadyBooked(existing.id, existing.public_ticket_ref, existing.queue_number)

        queue_type = await cls._effective_queue_type(clinic.id, doctor.id, details.phone, details.queue_type)
        ticket_id = str(ObjectId())
        public_ticket_id = secrets.token_urlsafe(16)
        ticket_doc = {
            "_id": ticket_id,
            "clinic_id": clinic.id,
            "doctor_id": doctor.id,
            "patient_name": details.name,
            "phone": details.phone,
            "age": details.age,
            "chronic_diseases": details.chronic_diseases,
            "consultation_reason": details.consultation_reason,
            "status": TicketStatus.WAITING.value,
            "queue_type": queue_type.value,
            "booking_day": booking_day,
            "booking_timestamp": now,
            "consulting_start_time": None,
            "finished_at": None,
            "prescription_text": None,
            "public_ticket_ref": public_ticket_id,
            "source": (BookingSource.NURSE if booked_by else BookingSource.PATIENT).value,
            "booked_by": booked_by,
        }
        public_doc = {
            "_id": public_ticket_id,
            "clinic_id": clinic.id,
            "doctor_id": doctor.id,
            "ticket_ref": ticket_id,
            "status": TicketStatus.WAITING.value,
            "display_name": display_initials(details.name),
            "phone_last4": phone_last4(details.phone),
            "booking_day": booking_day,
            "created_at": now,
            "expires_at": end_of_booking_day(booking_day),
        }

        try:
            queue_number = await SequenceService.insert_with_next_number(
                clinic.id, doctor.id, booking_day, ticket_doc, public_doc
            )
        except DuplicateActiveTicket:
            # A concurrent request for the same phone won the race
            existing = await cls.find_active_ticket(clinic.id, doctor.id, booking_day, details.phone)
            if existing:
                raise AlreadyBooked(existing.id, existing.public_ticket_ref, existing.queue_number)
            logger.warning("Duplicate booking for doctor %s rejected but no active ticket found", doctor.id)
            raise BookingFailed("Booking could not be completed, please retry")
        except StoreError as e:
            logger.error("Ticket %s could not be stored: %s", ticket_id, e)
            raise BookingFailed("Booking could not be completed, please retry") from e

        logger.info(
            "Booked ticket %s (#%s, %s) for doctor %s on %s",
            ticket_id, queue_number, queue_type.value, doctor.id, booking_day,
        )

        try:
            await QueueStateService.on_queue_changed(clinic.id, doctor.id, booking_day)
        except StoreError as e:
            logger.warning("Queue state not refreshed after booking %s: %s", ticket_id, e)

        return BookingResult(
            ticket_id=ticket_id,
            public_ticket_id=public_ticket_id,
            queue_number=queue_number,
            booking_day=booking_day,
            queue_type=queue_type,
        )

    @classmethod
    async def get_ticket(
        cls,
        ticket_id: str,
        clinic_id: Optional[str] = None,
        doctor_id: Optional[str] = None,
    ) -> Ticket:
        """Staff read of a full ticket, scoped to the caller's clinic and doctor."""
        doc = await get_store().get_ticket(ticket_id)
        if (
            not doc
            or (clinic_id and doc["clinic_id"] != clinic_id)
            or (doctor_id and doc["doctor_id"] != doctor_id)
        ):
            raise NotFound("Ticket not found")
        return Ticket(**doc)

    @classmethod
    async def cancel_ticket(
        cls,
        ticket_id: str,
        clinic_id: Optional[str] = None,
        doctor_id: Optional[str] = None,
    ) -> Ticket:
        """Delete a Waiting ticket together with its public projection."""
        ticket = await cls.get_ticket(ticket_id, clinic_id, doctor_id)
        if ticket.status != TicketStatus.WAITING:
            raise InvalidTransition(f"Only waiting tickets can be cancelled (ticket is {ticket.status.value})")

        deleted = await get_store().delete_ticket(ticket_id, TicketStatus.WAITING.value)
        if not deleted:
            raise InvalidTransition("Ticket changed before it could be cancelled")

        logger.info("Cancelled ticket %s (#%s) for doctor %s", ticket_id, ticket.queue_number, ticket.doctor_id)
        try:
            await QueueStateService.on_queue_changed(ticket.clinic_id, ticket.doctor_id, ticket.booking_day)
        except StoreError as e:
            logger.warning("Queue state not refreshed after cancelling %s: %s", ticket_id, e)
        return ticket

    @classmethod
    async def list_day_tickets(
        cls,
        clinic_id: str,
        doctor_id: str,
        booking_day: Optional[str] = None,
        status: Optional[TicketStatus] = None,
    ) -> List[Ticket]:
        """A doctor's tickets for one day in queue order."""
        filters = {
            "clinic_id": clinic_id,
            "doctor_id": doctor_id,
            "booking_day": booking_day or get_booking_day(),
        }
        if status:
            filters["status"] = status.value
        return [Ticket(**doc) for doc in await get_store().find_tickets(filters)]

    @classmethod
    async def list_history(cls, clinic_id: str, doctor_id: str, start_day: str, end_day: str) -> List[Ticket]:
        """Tickets between two booking days (inclusive), newest day first."""
        days = booking_day_range(start_day, end_day)
        if not days:
            return []
        docs = await get_store().find_tickets(
            {"clinic_id": clinic_id, "doctor_id": doctor_id, "booking_day": days},
            sort=(("booking_day", -1), ("queue_number", 1)),
        )
        return [Ticket(**doc) for doc in docs]

    @classmethod
    async def purge_expired_public_tickets(cls, before: Optional[datetime] = None) -> int:
        """Garbage-collect public projections whose booking day has ended."""
        deleted = await get_store().delete_expired_public_tickets(before or utcnow())
        logger.info("Purged %s expired public tickets", deleted)
        return deleted
