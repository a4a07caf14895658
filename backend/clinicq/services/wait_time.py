"""
Advisory wait-time estimation. Results are recomputed on every read and
never stored on tickets.
"""

from datetime import datetime
from typing import Optional

from ..models.queue_state import QueueState
from ..models.ticket import TicketStatus
from ..utils.booking_day import utcnow


def people_ahead(queue_number: int, current_consulting_queue_number: Optional[int]) -> int:
    """Patients still to be seen before ``queue_number``."""
    if current_consulting_queue_number is None:
        ahead = queue_number - 1
    elif queue_number <= current_consulting_queue_number:
        # already served or being served
        ahead = 0
    else:
        ahead = queue_number - current_consulting_queue_number - 1
    return max(0, ahead)


def estimate_wait_minutes(
    ticket,
    queue_state: Optional[QueueState],
    clinic_default_minutes: float,
    now: Optional[datetime] = None,
) -> int:
    """
    Estimated minutes until ``ticket`` is called.

    ``ticket`` is anything with ``status`` and ``queue_number`` (a Ticket or
    its public projection). The per-patient duration is the queue state's
    rolling average when positive, else ``clinic_default_minutes``. The
    patient currently consulting counts once, for the part of their slot
    that has not elapsed yet.
    """
    if TicketStatus(ticket.status) != TicketStatus.WAITING:
        return 0

    current = queue_state.current_consulting_queue_number if queue_state else None
    ahead = people_ahead(ticket.queue_number, current)

    average = queue_state.average_wait_time_minutes if queue_state else None
    per_patient = average if average and average > 0 else clinic_default_minutes

    minutes = ahead * per_patient
    if current is not None and ticket.queue_number > current:
        started = queue_state.current_consulting_started_at
        elapsed = ((now or utcnow()) - started).total_seconds() / 60 if started else 0.0
        minutes += max(0.0, per_patient - elapsed)

    return max(0, round(minutes))
