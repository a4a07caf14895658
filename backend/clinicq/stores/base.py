"""
Storage contract for the queue core.

Every method is a potential-latency, potential-failure suspension point.
Methods documented as atomic apply all of their writes or none of them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence


class StoreError(Exception):
    """The backend failed to perform an operation."""


class StaleWrite(StoreError):
    """A conditional write found the ticket missing or in another status."""

    def __init__(self, ticket_id: str):
        super().__init__(f"Ticket {ticket_id} changed concurrently")
        self.ticket_id = ticket_id


class ConsultingSlotTaken(StoreError):
    """Another ticket of the same doctor is already Consulting."""


class DuplicateActiveTicket(StoreError):
    """The phone already has a Waiting ticket with this doctor today."""


class CounterUnavailable(StoreError):
    """The sequence counter could not be incremented."""


@dataclass
class TicketChange:
    """One conditional ticket update inside a transition unit."""
    ticket_id: str
    expected_status: str
    updates: Dict[str, Any]
    public_ticket_id: Optional[str] = None
    public_updates: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RevenueAccrual:
    doctor_id: str
    amount: float


class QueueStateWatch(ABC):
    """Async iterator over successive versions of one queue state document."""

    def __aiter__(self):
        return self

    @abstractmethod
    async def __anext__(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def aclose(self) -> None:
        ...


class QueueStore(ABC):
    """Persistence operations used by the services."""

    async def connect(self) -> None:
        """Open connections and prepare indexes."""

    async def disconnect(self) -> None:
        """Release connections."""

    # Clinics & doctors

    @abstractmethod
    async def get_clinic(self, clinic_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def get_clinic_by_slug(self, slug: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def save_clinic(self, clinic: dict) -> dict:
        ...

    @abstractmethod
    async def get_doctor(self, doctor_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def save_doctor(self, doctor: dict) -> dict:
        ...

    @abstractmethod
    async def update_doctor(self, doctor_id: str, updates: Dict[str, Any]) -> Optional[dict]:
        ...

    # Sequence counters

    @abstractmethod
    async def increment_sequence(self, key: str) -> int:
        """Atomically increment the counter ``key`` and return the new value (first call -> 1)."""

    # Tickets

    @abstractmethod
    async def insert_ticket(self, ticket: dict, public_ticket: dict, counter_key: str) -> int:
        """
        Atomically take the next number of ``counter_key`` and persist the
        ticket and its public projection under it. Returns the number.

        A rejected insert (DuplicateActiveTicket, StoreError) leaves the
        counter untouched; a failing counter raises CounterUnavailable.
        """

    @abstractmethod
    async def get_ticket(self, ticket_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def find_tickets(
        self,
        filters: Dict[str, Any],
        sort: Sequence[tuple] = (("queue_number", 1),),
        limit: Optional[int] = None,
    ) -> List[dict]:
        """
        Tickets matching equality ``filters``. A list or tuple value matches
        any of its members.
        """

    @abstractmethod
    async def count_tickets(self, filters: Dict[str, Any]) -> int:
        ...

    @abstractmethod
    async def commit_transition(
        self,
        changes: Sequence[TicketChange],
        revenue: Optional[RevenueAccrual] = None,
    ) -> None:
        """
        Atomically apply conditional ticket changes, their projection updates
        and an optional revenue accrual.

        Raises StaleWrite or ConsultingSlotTaken, in which case nothing is applied.
        """

    @abstractmethod
    async def delete_ticket(self, ticket_id: str, expected_status: str) -> bool:
        """Atomically delete a ticket in ``expected_status`` and its projection."""

    # Public projections

    @abstractmethod
    async def get_public_ticket(self, public_ticket_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def delete_expired_public_tickets(self, before: datetime) -> int:
        ...

    # Queue state

    @abstractmethod
    async def get_queue_state(self, state_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def upsert_queue_state(
        self,
        state_id: str,
        updates: Dict[str, Any],
        defaults: Optional[Dict[str, Any]] = None,
    ) -> dict:
        """Merge ``updates`` into the state, seeding ``defaults`` on creation."""

    @abstractmethod
    def watch_queue_state(self, state_id: str) -> QueueStateWatch:
        """Start watching a queue state; registration happens before this returns."""
