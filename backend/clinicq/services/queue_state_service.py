"""
Queue state projection.

Maintains one small summary document per doctor per booking day that the
public status page reads instead of the ticket list. The document is a
cache: every field can be recomputed from that day's tickets.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ..config import get_settings
from ..models.clinic import ClinicSettings
from ..models.queue_state import QueueState
from ..models.ticket import TicketStatus
from ..stores import get_store
from ..utils.booking_day import get_booking_day, utcnow

settings = get_settings()
logger = logging.getLogger(__name__)


class QueueStateService:
    """Queue state projector."""

    @staticmethod
    def state_id(clinic_id: str, doctor_id: str, booking_day: str) -> str:
        return f"{clinic_id}_{doctor_id}_{booking_day}"

    @staticmethod
    def _day_filter(clinic_id: str, doctor_id: str, booking_day: str, status: TicketStatus) -> Dict[str, Any]:
        return {
            "clinic_id": clinic_id,
            "doctor_id": doctor_id,
            "booking_day": booking_day,
            "status": status.value,
        }

    @classmethod
    async def rolling_average_minutes(cls, clinic_id: str, doctor_id: str, booking_day: str) -> float:
        """
        Mean duration of the last few finished consultations of the day,
        falling back to the clinic's configured consultation time.
        """
        store = get_store()
        finished = await store.find_tickets(
            cls._day_filter(clinic_id, doctor_id, booking_day, TicketStatus.FINISHED),
            sort=(("finished_at", -1),),
            limit=settings.ROLLING_AVERAGE_WINDOW,
        )
        durations = [
            max(0.0, (t["finished_at"] - t["consulting_start_time"]).total_seconds() / 60)
            for t in finished
            if t.get("finished_at") and t.get("consulting_start_time")
        ]
        if durations:
            return round(sum(durations) / len(durations), 1)

        clinic = await store.get_clinic(clinic_id)
        if clinic:
            return float(ClinicSettings(**(clinic.get("settings") or {})).consultation_time)
        return float(settings.DEFAULT_CONSULTATION_MINUTES)

    @classmethod
    async def _aggregates(cls, clinic_id: str, doctor_id: str, booking_day: str) -> Dict[str, Any]:
        waiting = await get_store().count_tickets(
            cls._day_filter(clinic_id, doctor_id, booking_day, TicketStatus.WAITING)
        )
        return {
            "total_waiting_count": waiting,
            "average_wait_time_minutes": await cls.rolling_average_minutes(clinic_id, doctor_id, booking_day),
        }

    @classmethod
    async def _write(
        cls,
        clinic_id: str,
        doctor_id: str,
        booking_day: str,
        updates: Dict[str, Any],
    ) -> QueueState:
        defaults = {
            "clinic_id": clinic_id,
            "doctor_id": doctor_id,
            "booking_day": booking_day,
            "current_consulting_queue_number": None,
            "current_consulting_started_at": None,
            "total_waiting_count": 0,
            "average_wait_time_minutes": None,
            "is_open": True,
        }
        doc = await get_store().upsert_queue_state(
            cls.state_id(clinic_id, doctor_id, booking_day),
            {**updates, "updated_at": utcnow()},
            defaults,
        )
        return QueueState(**doc)

    @classmethod
    async def on_consulting_started(
        cls,
        clinic_id: str,
        doctor_id: str,
        queue_number: int,
        booking_day: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ) -> QueueState:
        """Point the state at the ticket that just entered Consulting."""
        booking_day = booking_day or get_booking_day()
        updates = {
            "current_consulting_queue_number": queue_number,
            "current_consulting_started_at": started_at or utcnow(),
        }
        updates.update(await cls._aggregates(clinic_id, doctor_id, booking_day))
        return await cls._write(clinic_id, doctor_id, booking_day, updates)

    @classmethod
    async def on_consultation_finished(cls, clinic_id: str, doctor_id: str, booking_day: str) -> QueueState:
        return await cls.rebuild(clinic_id, doctor_id, booking_day)

    @classmethod
    async def on_queue_changed(cls, clinic_id: str, doctor_id: str, booking_day: str) -> QueueState:
        """Recount waiting tickets after a booking or cancellation."""
        waiting = await get_store().count_tickets(
            cls._day_filter(clinic_id, doctor_id, booking_day, TicketStatus.WAITING)
        )
        return await cls._write(clinic_id, doctor_id, booking_day, {"total_waiting_count": waiting})

    @classmethod
    async def rebuild(cls, clinic_id: str, doctor_id: str, booking_day: str) -> QueueState:
        """Recompute the whole state from the day's tickets."""
        consulting = await get_store().find_tickets(
            cls._day_filter(clinic_id, doctor_id, booking_day, TicketStatus.CONSULTING),
            limit=1,
        )
        current = consulting[0] if consulting else None
        updates = {
            "current_consulting_queue_number": current["queue_number"] if current else None,
            "current_consulting_started_at": current.get("consulting_start_time") if current else None,
        }
        updates.update(await cls._aggregates(clinic_id, doctor_id, booking_day))
        return await cls._write(clinic_id, doctor_id, booking_day, updates)

    @classmethod
    async def get_queue_state(
        cls,
        clinic_id: str,
        doctor_id: str,
        booking_day: Optional[str] = None,
        verify: bool = False,
    ) -> QueueState:
        """
        Current state, created lazily. With ``verify`` the cached consulting
        number is checked against the tickets and rebuilt on divergence.
        """
        booking_day = booking_day or get_booking_day()
        doc = await get_store().get_queue_state(cls.state_id(clinic_id, doctor_id, booking_day))
        if doc is None:
            return await cls.rebuild(clinic_id, doctor_id, booking_day)

        state = QueueState(**doc)
        if verify:
            consulting = await get_store().find_tickets(
                cls._day_filter(clinic_id, doctor_id, booking_day, TicketStatus.CONSULTING),
                limit=1,
            )
            expected = consulting[0]["queue_number"] if consulting else None
            if state.current_consulting_queue_number != expected:
                logger.warning(
                    "Queue state %s diverged (cached %s, tickets %s); rebuilding",
                    state.id, state.current_consulting_queue_number, expected,
                )
                return await cls.rebuild(clinic_id, doctor_id, booking_day)
        return state

    @classmethod
    async def set_open(
        cls,
        clinic_id: str,
        doctor_id: str,
        is_open: bool,
        booking_day: Optional[str] = None,
    ) -> QueueState:
        """Open or close the doctor's queue for the day."""
        booking_day = booking_day or get_booking_day()
        await cls.get_queue_state(clinic_id, doctor_id, booking_day)
        return await cls._write(clinic_id, doctor_id, booking_day, {"is_open": is_open})
