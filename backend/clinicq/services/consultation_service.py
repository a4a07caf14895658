"""
Consultation state machine: Waiting -> Consulting -> Finished.
"""

import logging
from typing import Optional

from ..errors import DoctorBusy, InvalidNextPatient, InvalidTransition, NotFound
from ..models.clinic import ClinicSettings
from ..models.ticket import QueueType, Ticket, TicketStatus, TransitionResult
from ..stores import (
    ConsultingSlotTaken,
    RevenueAccrual,
    StaleWrite,
    StoreError,
    TicketChange,
    get_store,
)
from ..utils.booking_day import utcnow
from .queue_state_service import QueueStateService

logger = logging.getLogger(__name__)


class ConsultationService:
    """
    Ticket transitions for staff.

    Each operation commits its ticket writes, projection mirrors and revenue
    accrual as one unit. The queue state is refreshed afterwards; if that
    refresh fails the state is rebuilt by the next verified read.
    """

    @classmethod
    async def _load(
        cls,
        ticket_id: str,
        clinic_id: Optional[str] = None,
        doctor_id: Optional[str] = None,
    ) -> Ticket:
        doc = await get_store().get_ticket(ticket_id)
        if (
            not doc
            or (clinic_id and doc["clinic_id"] != clinic_id)
            or (doctor_id and doc["doctor_id"] != doctor_id)
        ):
            raise NotFound("Ticket not found")
        return Ticket(**doc)

    @classmethod
    async def _consulting_ticket(cls, clinic_id: str, doctor_id: str) -> Optional[Ticket]:
        found = await get_store().find_tickets(
            {"clinic_id": clinic_id, "doctor_id": doctor_id, "status": TicketStatus.CONSULTING.value},
            limit=1,
        )
        return Ticket(**found[0]) if found else None

    @classmethod
    async def _price(cls, ticket: Ticket) -> float:
        clinic = await get_store().get_clinic(ticket.clinic_id)
        prices = ClinicSettings(**((clinic or {}).get("settings") or {}))
        if ticket.queue_type == QueueType.RE_CONSULTATION:
            return prices.re_consultation_cost
        return prices.consultation_cost

    @staticmethod
    def _start_change(ticket: Ticket, now) -> TicketChange:
        return TicketChange(
            ticket_id=ticket.id,
            expected_status=TicketStatus.WAITING.value,
            updates={"status": TicketStatus.CONSULTING.value, "consulting_start_time": now},
            public_ticket_id=ticket.public_ticket_ref,
            public_updates={"status": TicketStatus.CONSULTING.value},
        )

    @staticmethod
    def _finish_change(ticket: Ticket, now, prescription_text: Optional[str]) -> TicketChange:
        updates = {"status": TicketStatus.FINISHED.value, "finished_at": now}
        if prescription_text:
            updates["prescription_text"] = prescription_text
        return TicketChange(
            ticket_id=ticket.id,
            expected_status=TicketStatus.CONSULTING.value,
            updates=updates,
            public_ticket_id=ticket.public_ticket_ref,
            public_updates={"status": TicketStatus.FINISHED.value},
        )

    @classmethod
    async def _refresh_started(cls, ticket: Ticket, started_at) -> None:
        try:
            await QueueStateService.on_consulting_started(
                ticket.clinic_id, ticket.doctor_id, ticket.queue_number, ticket.booking_day, started_at
            )
        except StoreError as e:
            logger.warning("Queue state not updated after starting ticket %s: %s", ticket.id, e)

    @classmethod
    async def start_consulting(
        cls,
        ticket_id: str,
        clinic_id: Optional[str] = None,
        doctor_id: Optional[str] = None,
    ) -> Ticket:
        """
        Call a Waiting ticket in. Fails with DoctorBusy while another ticket
        of the same doctor is Consulting. Repeating the call on a ticket
        that is already Consulting returns it unchanged.
        """
        ticket = await cls._load(ticket_id, clinic_id, doctor_id)
        if ticket.status == TicketStatus.CONSULTING:
            return ticket
        if ticket.status != TicketStatus.WAITING:
            raise InvalidTransition(f"Cannot start consulting a {ticket.status.value} ticket")

        busy = await cls._consulting_ticket(ticket.clinic_id, ticket.doctor_id)
        if busy:
            raise DoctorBusy(ticket.doctor_id, busy.queue_number)

        now = utcnow()
        try:
            await get_store().commit_transition([cls._start_change(ticket, now)])
        except ConsultingSlotTaken:
            busy = await cls._consulting_ticket(ticket.clinic_id, ticket.doctor_id)
            raise DoctorBusy(ticket.doctor_id, busy.queue_number if busy else None)
        except StaleWrite:
            current = await cls._load(ticket_id)
            if current.status == TicketStatus.CONSULTING:
                return current
            raise InvalidTransition(f"Cannot start consulting a {current.status.value} ticket")

        logger.info("Doctor %s started consulting ticket #%s (%s)", ticket.doctor_id, ticket.queue_number, ticket.id)
        await cls._refresh_started(ticket, now)
        return await cls._load(ticket_id)

    @classmethod
    async def finish_consultation(
        cls,
        ticket_id: str,
        prescription_text: Optional[str] = None,
        clinic_id: Optional[str] = None,
        doctor_id: Optional[str] = None,
    ) -> TransitionResult:
        """Finish a Consulting ticket and accrue its price to the doctor."""
        ticket = await cls._load(ticket_id, clinic_id, doctor_id)
        if ticket.status != TicketStatus.CONSULTING:
            raise InvalidTransition(f"Cannot finish a {ticket.status.value} ticket")

        amount = await cls._price(ticket)
        try:
            await get_store().commit_transition(
                [cls._finish_change(ticket, utcnow(), prescription_text)],
                revenue=RevenueAccrual(ticket.doctor_id, amount),
            )
        except StaleWrite:
            raise InvalidTransition("Ticket is no longer consulting")

        logger.info(
            "Doctor %s finished ticket #%s (%s), accrued %s",
            ticket.doctor_id, ticket.queue_number, ticket.id, amount,
        )
        try:
            await QueueStateService.on_consultation_finished(ticket.clinic_id, ticket.doctor_id, ticket.booking_day)
        except StoreError as e:
            logger.warning("Queue state not updated after finishing ticket %s: %s", ticket.id, e)

        return TransitionResult(finished=await cls._load(ticket_id), revenue_accrued=amount)

    @classmethod
    async def finish_and_call_next(
        cls,
        current_ticket_id: str,
        next_ticket_id: str,
        prescription_text: Optional[str] = None,
        clinic_id: Optional[str] = None,
        doctor_id: Optional[str] = None,
    ) -> TransitionResult:
        """
        Finish the current patient and call ``next_ticket_id`` in one unit.

        Either both tickets move or neither does: a next ticket that is not
        Waiting for the same doctor fails with InvalidNextPatient before the
        current ticket is touched.
        """
        current = await cls._load(current_ticket_id, clinic_id, doctor_id)
        if current.status != TicketStatus.CONSULTING:
            raise InvalidTransition(f"Cannot finish a {current.status.value} ticket")

        try:
            nxt = await cls._load(next_ticket_id, current.clinic_id, current.doctor_id)
        except NotFound:
            raise InvalidNextPatient("Next patient not found in this doctor's queue")
        if nxt.id == current.id or nxt.status != TicketStatus.WAITING:
            raise InvalidNextPatient(f"Next patient must be waiting (ticket is {nxt.status.value})")

        amount = await cls._price(current)
        now = utcnow()
        try:
            await get_store().commit_transition(
                [cls._finish_change(current, now, prescription_text), cls._start_change(nxt, now)],
                revenue=RevenueAccrual(current.doctor_id, amount),
            )
        except StaleWrite as e:
            if e.ticket_id == nxt.id:
                raise InvalidNextPatient("Next patient is no longer waiting")
            raise InvalidTransition("Current ticket is no longer consulting")
        except ConsultingSlotTaken:
            raise DoctorBusy(current.doctor_id)

        logger.info(
            "Doctor %s finished #%s and called #%s",
            current.doctor_id, current.queue_number, nxt.queue_number,
        )
        if current.booking_day != nxt.booking_day:
            try:
                await QueueStateService.on_consultation_finished(
                    current.clinic_id, current.doctor_id, current.booking_day
                )
            except StoreError as e:
                logger.warning("Queue state not updated after finishing ticket %s: %s", current.id, e)
        await cls._refresh_started(nxt, now)

        return TransitionResult(
            finished=await cls._load(current.id),
            consulting=await cls._load(nxt.id),
            revenue_accrued=amount,
        )

    @classmethod
    async def select_next_ticket(
        cls,
        clinic_id: str,
        doctor_id: str,
        booking_day: str,
        queue_type: Optional[QueueType] = None,
    ) -> Optional[Ticket]:
        """Lowest-numbered Waiting ticket, optionally within one queue type lane."""
        filters = {
            "clinic_id": clinic_id,
            "doctor_id": doctor_id,
            "booking_day": booking_day,
            "status": TicketStatus.WAITING.value,
        }
        if queue_type:
            filters["queue_type"] = queue_type.value
        found = await get_store().find_tickets(filters, limit=1)
        return Ticket(**found[0]) if found else None
