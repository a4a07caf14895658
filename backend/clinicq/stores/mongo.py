"""
MongoDB implementation of the queue store (Motor).

Multi-document units run inside transactions, so the server must be a
replica set. The partial unique indexes created in ``Database`` back the
one-Consulting-per-doctor and one-Waiting-per-phone invariants.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..database import Database
from .base import (
    ConsultingSlotTaken,
    CounterUnavailable,
    DuplicateActiveTicket,
    QueueStateWatch,
    QueueStore,
    RevenueAccrual,
    StaleWrite,
    StoreError,
    TicketChange,
)


def _oid(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _ticket_out(doc: Optional[dict]) -> Optional[dict]:
    if doc is not None:
        doc["_id"] = str(doc["_id"])
    return doc


def _query(filters: Dict[str, Any]) -> Dict[str, Any]:
    query = {}
    for key, value in filters.items():
        if isinstance(value, (list, tuple, set)):
            query[key] = {"$in": list(value)}
        else:
            query[key] = value
    return query


class _ChangeStreamWatch(QueueStateWatch):

    def __init__(self, state_id: str):
        self._state_id = state_id
        self._states = Database.get_collection("queue_state")
        self._stream = self._states.watch(
            [{"$match": {"documentKey._id": state_id}}],
            full_document="updateLookup",
        )
        self._opened = False

    async def __anext__(self) -> Dict[str, Any]:
        if not self._opened:
            self._opened = True
            # the server-side stream only opens here; re-read so nothing written before is lost
            change = await self._stream.try_next()
            document = change.get("fullDocument") if change else await self._states.find_one({"_id": self._state_id})
            if document is not None:
                return document
        while True:
            change = await self._stream.next()
            document = change.get("fullDocument")
            if document is not None:
                return document

    async def aclose(self) -> None:
        await self._stream.close()


class MongoQueueStore(QueueStore):
    """QueueStore backed by the collections of ``Database``."""

    async def connect(self) -> None:
        await Database.connect()

    async def disconnect(self) -> None:
        await Database.disconnect()

    # Clinics & doctors

    async def get_clinic(self, clinic_id: str) -> Optional[dict]:
        return await Database.get_collection("clinics").find_one({"_id": clinic_id})

    async def get_clinic_by_slug(self, slug: str) -> Optional[dict]:
        return await Database.get_collection("clinics").find_one({"slug": slug})

    async def save_clinic(self, clinic: dict) -> dict:
        await Database.get_collection("clinics").replace_one({"_id": clinic["_id"]}, clinic, upsert=True)
        return clinic

    async def get_doctor(self, doctor_id: str) -> Optional[dict]:
        return await Database.get_collection("doctors").find_one({"_id": doctor_id})

    async def save_doctor(self, doctor: dict) -> dict:
        await Database.get_collection("doctors").replace_one({"_id": doctor["_id"]}, doctor, upsert=True)
        return doctor

    async def update_doctor(self, doctor_id: str, updates: Dict[str, Any]) -> Optional[dict]:
        return await Database.get_collection("doctors").find_one_and_update(
            {"_id": doctor_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )

    # Sequence counters

    async def increment_sequence(self, key: str) -> int:
        counters = Database.get_collection("counters")
        try:
            counter = await counters.find_one_and_update(
                {"_id": key},
                {"$inc": {"seq": 1}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise StoreError(f"Counter {key} could not be incremented: {e}") from e
        return counter["seq"]

    # Tickets

    async def insert_ticket(self, ticket: dict, public_ticket: dict, counter_key: str) -> int:
        counters = Database.get_collection("counters")
        tickets = Database.get_collection("tickets")
        public_tickets = Database.get_collection("public_tickets")

        # the counter document must exist before the transaction increments it
        try:
            await counters.update_one({"_id": counter_key}, {"$setOnInsert": {"seq": 0}}, upsert=True)
        except PyMongoError as e:
            raise CounterUnavailable(f"Counter {counter_key} could not be created: {e}") from e

        async def _insert(session):
            try:
                counter = await counters.find_one_and_update(
                    {"_id": counter_key},
                    {"$inc": {"seq": 1}},
                    return_document=ReturnDocument.AFTER,
                    session=session,
                )
            except PyMongoError as e:
                if e.has_error_label("TransientTransactionError"):
                    raise
                raise CounterUnavailable(f"Counter {counter_key} could not be incremented: {e}") from e
            number = counter["seq"]
            await tickets.insert_one(
                {**ticket, "_id": ObjectId(ticket["_id"]), "queue_number": number}, session=session
            )
            await public_tickets.insert_one({**public_ticket, "queue_number": number}, session=session)
            return number

        try:
            async with await Database.start_session() as session:
                return await session.with_transaction(_insert)
        except DuplicateKeyError as e:
            if "one_waiting_per_phone" in str(e):
                raise DuplicateActiveTicket(ticket["phone"]) from e
            raise StoreError(f"Ticket could not be stored: {e}") from e
        except PyMongoError as e:
            raise StoreError(f"Ticket could not be stored: {e}") from e

    async def get_ticket(self, ticket_id: str) -> Optional[dict]:
        object_id = _oid(ticket_id)
        if object_id is None:
            return None
        return _ticket_out(await Database.get_collection("tickets").find_one({"_id": object_id}))

    async def find_tickets(
        self,
        filters: Dict[str, Any],
        sort: Sequence[tuple] = (("queue_number", 1),),
        limit: Optional[int] = None,
    ) -> List[dict]:
        cursor = Database.get_collection("tickets").find(_query(filters)).sort(list(sort))
        if limit is not None:
            cursor = cursor.limit(limit)

        result = []
        async for ticket in cursor:
            result.append(_ticket_out(ticket))
        return result

    async def count_tickets(self, filters: Dict[str, Any]) -> int:
        return await Database.get_collection("tickets").count_documents(_query(filters))

    async def commit_transition(
        self,
        changes: Sequence[TicketChange],
        revenue: Optional[RevenueAccrual] = None,
    ) -> None:
        tickets = Database.get_collection("tickets")
        public_tickets = Database.get_collection("public_tickets")
        doctors = Database.get_collection("doctors")

        async def _apply(session):
            for change in changes:
                result = await tickets.update_one(
                    {"_id": _oid(change.ticket_id), "status": change.expected_status},
                    {"$set": change.updates},
                    session=session,
                )
                if result.matched_count == 0:
                    raise StaleWrite(change.ticket_id)
                if change.public_ticket_id and change.public_updates:
                    await public_tickets.update_one(
                        {"_id": change.public_ticket_id},
                        {"$set": change.public_updates},
                        session=session,
                    )
            if revenue is not None:
                await doctors.update_one(
                    {"_id": revenue.doctor_id},
                    {"$inc": {"total_revenue": revenue.amount}},
                    upsert=True,
                    session=session,
                )

        try:
            async with await Database.start_session() as session:
                await session.with_transaction(_apply)
        except DuplicateKeyError as e:
            if "one_consulting_per_doctor" in str(e):
                raise ConsultingSlotTaken(str(e)) from e
            raise StoreError(f"Transition failed: {e}") from e
        except PyMongoError as e:
            raise StoreError(f"Transition failed: {e}") from e

    async def delete_ticket(self, ticket_id: str, expected_status: str) -> bool:
        object_id = _oid(ticket_id)
        if object_id is None:
            return False
        tickets = Database.get_collection("tickets")
        public_tickets = Database.get_collection("public_tickets")

        async def _delete(session):
            ticket = await tickets.find_one_and_delete(
                {"_id": object_id, "status": expected_status}, session=session
            )
            if ticket is None:
                return False
            if ticket.get("public_ticket_ref"):
                await public_tickets.delete_one({"_id": ticket["public_ticket_ref"]}, session=session)
            return True

        try:
            async with await Database.start_session() as session:
                return await session.with_transaction(_delete)
        except PyMongoError as e:
            raise StoreError(f"Ticket could not be deleted: {e}") from e

    # Public projections

    async def get_public_ticket(self, public_ticket_id: str) -> Optional[dict]:
        return await Database.get_collection("public_tickets").find_one({"_id": public_ticket_id})

    async def delete_expired_public_tickets(self, before: datetime) -> int:
        result = await Database.get_collection("public_tickets").delete_many(
            {"expires_at": {"$lt": before}}
        )
        return result.deleted_count

    # Queue state

    async def get_queue_state(self, state_id: str) -> Optional[dict]:
        return await Database.get_collection("queue_state").find_one({"_id": state_id})

    async def upsert_queue_state(
        self,
        state_id: str,
        updates: Dict[str, Any],
        defaults: Optional[Dict[str, Any]] = None,
    ) -> dict:
        update: Dict[str, Any] = {"$set": updates}
        on_insert = {k: v for k, v in (defaults or {}).items() if k not in updates}
        if on_insert:
            update["$setOnInsert"] = on_insert
        try:
            return await Database.get_collection("queue_state").find_one_and_update(
                {"_id": state_id},
                update,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise StoreError(f"Queue state {state_id} could not be written: {e}") from e

    def watch_queue_state(self, state_id: str) -> QueueStateWatch:
        return _ChangeStreamWatch(state_id)
