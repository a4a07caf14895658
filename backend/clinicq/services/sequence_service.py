"""
Queue number allocation.
"""

import logging

from ..errors import AllocationFailure
from ..stores import CounterUnavailable, StoreError, get_store

logger = logging.getLogger(__name__)


class SequenceService:
    """Per doctor, per day queue number counters."""

    @staticmethod
    def counter_key(clinic_id: str, doctor_id: str, booking_day: str) -> str:
        return f"{clinic_id}:{doctor_id}:{booking_day}"

    @classmethod
    async def allocate_next_queue_number(cls, clinic_id: str, doctor_id: str, booking_day: str) -> int:
        """
        Atomically reserve the next queue number (1, 2, 3, ...).

        The counter is keyed by booking day, so a new day starts at 1
        without any reset job.
        """
        key = cls.counter_key(clinic_id, doctor_id, booking_day)
        try:
            number = await get_store().increment_sequence(key)
        except StoreError as e:
            logger.error("Queue number allocation failed for %s: %s", key, e)
            raise AllocationFailure("Could not allocate a queue number, please retry") from e

        logger.debug("Allocated queue number %s for %s", number, key)
        return number

    @classmethod
    async def insert_with_next_number(
        cls,
        clinic_id: str,
        doctor_id: str,
        booking_day: str,
        ticket: dict,
        public_ticket: dict,
    ) -> int:
        """
        Store a new ticket and its projection under the next queue number.

        The number is taken in the same unit as the insert, so a rejected
        insert never leaves a gap. Store errors other than a failing counter
        propagate to the caller.
        """
        key = cls.counter_key(clinic_id, doctor_id, booking_day)
        try:
            number = await get_store().insert_ticket(ticket, public_ticket, key)
        except CounterUnavailable as e:
            logger.error("Queue number allocation failed for %s: %s", key, e)
            raise AllocationFailure("Could not allocate a queue number, please retry") from e

        logger.debug("Allocated queue number %s for %s", number, key)
        return number
