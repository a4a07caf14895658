"""
In-process store for development and tests.

No method awaits anything before it has finished mutating, so each call is
atomic with respect to other coroutines on the same event loop.
"""

import asyncio
import copy
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .base import (
    ConsultingSlotTaken,
    DuplicateActiveTicket,
    QueueStateWatch,
    QueueStore,
    RevenueAccrual,
    StaleWrite,
    TicketChange,
)

CONSULTING = "Consulting"
WAITING = "Waiting"


def _matches(doc: dict, filters: Dict[str, Any]) -> bool:
    for key, expected in filters.items():
        value = doc.get(key)
        if isinstance(expected, (list, tuple, set)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def _sort_key(value):
    # None sorts first, like MongoDB
    return (value is not None, value)


class _MemoryWatch(QueueStateWatch):

    def __init__(self, watchers: Dict[str, set], state_id: str):
        self._watchers = watchers
        self._state_id = state_id
        self._queue: asyncio.Queue = asyncio.Queue()
        watchers[state_id].add(self._queue)

    async def __anext__(self) -> Dict[str, Any]:
        return await self._queue.get()

    async def aclose(self) -> None:
        self._watchers[self._state_id].discard(self._queue)


class MemoryQueueStore(QueueStore):
    """Dictionary-backed QueueStore."""

    def __init__(self):
        self.clinics: Dict[str, dict] = {}
        self.doctors: Dict[str, dict] = {}
        self.tickets: Dict[str, dict] = {}
        self.public_tickets: Dict[str, dict] = {}
        self.queue_states: Dict[str, dict] = {}
        self.counters: Dict[str, int] = {}
        self._watchers: Dict[str, set] = defaultdict(set)

    # Clinics & doctors

    async def get_clinic(self, clinic_id: str) -> Optional[dict]:
        return copy.deepcopy(self.clinics.get(clinic_id))

    async def get_clinic_by_slug(self, slug: str) -> Optional[dict]:
        for clinic in self.clinics.values():
            if clinic.get("slug") == slug:
                return copy.deepcopy(clinic)
        return None

    async def save_clinic(self, clinic: dict) -> dict:
        self.clinics[clinic["_id"]] = copy.deepcopy(clinic)
        return copy.deepcopy(clinic)

    async def get_doctor(self, doctor_id: str) -> Optional[dict]:
        return copy.deepcopy(self.doctors.get(doctor_id))

    async def save_doctor(self, doctor: dict) -> dict:
        self.doctors[doctor["_id"]] = copy.deepcopy(doctor)
        return copy.deepcopy(doctor)

    async def update_doctor(self, doctor_id: str, updates: Dict[str, Any]) -> Optional[dict]:
        doctor = self.doctors.get(doctor_id)
        if doctor is None:
            return None
        doctor.update(copy.deepcopy(updates))
        return copy.deepcopy(doctor)

    # Sequence counters

    def _increment(self, key: str) -> int:
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def increment_sequence(self, key: str) -> int:
        return self._increment(key)

    # Tickets

    async def insert_ticket(self, ticket: dict, public_ticket: dict, counter_key: str) -> int:
        if ticket.get("status") == WAITING:
            scope = {
                "clinic_id": ticket["clinic_id"],
                "doctor_id": ticket["doctor_id"],
                "booking_day": ticket["booking_day"],
                "phone": ticket["phone"],
                "status": WAITING,
            }
            if any(_matches(existing, scope) for existing in self.tickets.values()):
                raise DuplicateActiveTicket(ticket["phone"])
        # number taken only once the insert can no longer be rejected
        number = self._increment(counter_key)
        self.tickets[ticket["_id"]] = {**copy.deepcopy(ticket), "queue_number": number}
        self.public_tickets[public_ticket["_id"]] = {**copy.deepcopy(public_ticket), "queue_number": number}
        return number

    async def get_ticket(self, ticket_id: str) -> Optional[dict]:
        return copy.deepcopy(self.tickets.get(ticket_id))

    async def find_tickets(
        self,
        filters: Dict[str, Any],
        sort: Sequence[tuple] = (("queue_number", 1),),
        limit: Optional[int] = None,
    ) -> List[dict]:
        found = [t for t in self.tickets.values() if _matches(t, filters)]
        for key, direction in reversed(list(sort)):
            found.sort(key=lambda t: _sort_key(t.get(key)), reverse=direction < 0)
        if limit is not None:
            found = found[:limit]
        return copy.deepcopy(found)

    async def count_tickets(self, filters: Dict[str, Any]) -> int:
        return sum(1 for t in self.tickets.values() if _matches(t, filters))

    async def commit_transition(
        self,
        changes: Sequence[TicketChange],
        revenue: Optional[RevenueAccrual] = None,
    ) -> None:
        staged: Dict[str, dict] = {}
        for change in changes:
            current = staged.get(change.ticket_id) or self.tickets.get(change.ticket_id)
            if current is None or current.get("status") != change.expected_status:
                raise StaleWrite(change.ticket_id)
            staged[change.ticket_id] = {**current, **copy.deepcopy(change.updates)}

        merged = {**self.tickets, **staged}
        for ticket in staged.values():
            if ticket.get("status") != CONSULTING:
                continue
            for other in merged.values():
                if (
                    other["_id"] != ticket["_id"]
                    and other.get("status") == CONSULTING
                    and other["clinic_id"] == ticket["clinic_id"]
                    and other["doctor_id"] == ticket["doctor_id"]
                ):
                    raise ConsultingSlotTaken(ticket["doctor_id"])

        if revenue is not None and revenue.doctor_id not in self.doctors:
            self.doctors[revenue.doctor_id] = {"_id": revenue.doctor_id, "total_revenue": 0}

        self.tickets.update(staged)
        for change in changes:
            public = self.public_tickets.get(change.public_ticket_id or "")
            if public is not None:
                public.update(copy.deepcopy(change.public_updates))
        if revenue is not None:
            doctor = self.doctors[revenue.doctor_id]
            doctor["total_revenue"] = doctor.get("total_revenue", 0) + revenue.amount

    async def delete_ticket(self, ticket_id: str, expected_status: str) -> bool:
        ticket = self.tickets.get(ticket_id)
        if ticket is None or ticket.get("status") != expected_status:
            return False
        del self.tickets[ticket_id]
        self.public_tickets.pop(ticket.get("public_ticket_ref") or "", None)
        return True

    # Public projections

    async def get_public_ticket(self, public_ticket_id: str) -> Optional[dict]:
        return copy.deepcopy(self.public_tickets.get(public_ticket_id))

    async def delete_expired_public_tickets(self, before: datetime) -> int:
        expired = [key for key, doc in self.public_tickets.items() if doc["expires_at"] < before]
        for key in expired:
            del self.public_tickets[key]
        return len(expired)

    # Queue state

    async def get_queue_state(self, state_id: str) -> Optional[dict]:
        return copy.deepcopy(self.queue_states.get(state_id))

    async def upsert_queue_state(
        self,
        state_id: str,
        updates: Dict[str, Any],
        defaults: Optional[Dict[str, Any]] = None,
    ) -> dict:
        state = self.queue_states.get(state_id)
        if state is None:
            state = {"_id": state_id, **copy.deepcopy(defaults or {})}
            self.queue_states[state_id] = state
        state.update(copy.deepcopy(updates))
        for queue in list(self._watchers.get(state_id, ())):
            queue.put_nowait(copy.deepcopy(state))
        return copy.deepcopy(state)

    def watch_queue_state(self, state_id: str) -> QueueStateWatch:
        return _MemoryWatch(self._watchers, state_id)
