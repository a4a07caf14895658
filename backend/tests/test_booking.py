import asyncio
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from clinicq.errors import AlreadyBooked, BookingFailed, InvalidTarget, NotFound
from clinicq.models.ticket import QueueType, TicketCreate, TicketStatus
from clinicq.services import BookingService, QueueStateService, SequenceService
from clinicq.stores import DuplicateActiveTicket, MemoryQueueStore, StoreError, set_store

CLINIC_ID = "clinic-1"
DOCTOR_ID = "doctor-1"
DAY = "2026-01-15"
MORNING = datetime(2026, 1, 15, 8, 0, tzinfo=timezone.utc)


def test_concurrent_bookings_get_gapless_numbers(yielding, new_booking):
    async def scenario():
        return await asyncio.gather(*(
            BookingService.create_ticket(new_booking(phone=f"0101234{i:04d}"), now=MORNING)
            for i in range(20)
        ))

    results = asyncio.run(scenario())

    assert sorted(r.queue_number for r in results) == list(range(1, 21))
    assert len({r.public_ticket_id for r in results}) == 20
    assert yielding.counters[SequenceService.counter_key(CLINIC_ID, DOCTOR_ID, DAY)] == 20


def test_booking_stores_ticket_and_public_projection(seeded, new_booking):
    result = asyncio.run(BookingService.create_ticket(
        new_booking(chronic_diseases="Diabetes", age=40), now=MORNING
    ))

    assert result.queue_number == 1
    assert result.booking_day == DAY
    ticket = seeded.tickets[result.ticket_id]
    assert ticket["status"] == TicketStatus.WAITING.value
    assert ticket["public_ticket_ref"] == result.public_ticket_id
    assert ticket["source"] == "patient"

    public = seeded.public_tickets[result.public_ticket_id]
    assert public["ticket_ref"] == result.ticket_id
    assert public["display_name"] == "A.M."
    assert public["phone_last4"] == "5678"
    assert "phone" not in public
    assert "chronic_diseases" not in public
    # end of the booking day in Cairo (UTC+2 in January)
    assert public["expires_at"].isoformat().startswith("2026-01-15T21:59:59")


def test_second_active_booking_is_rejected(seeded, new_booking):
    async def scenario():
        first = await BookingService.create_ticket(new_booking(), now=MORNING)
        with pytest.raises(AlreadyBooked) as exc:
            await BookingService.create_ticket(new_booking(phone="010-1234-5678"), now=MORNING)
        return first, exc.value

    first, error = asyncio.run(scenario())

    assert error.public_ticket_id == first.public_ticket_id
    assert error.to_dict()["queue_number"] == 1
    assert len(seeded.tickets) == 1
    # the rejected request did not consume a number
    assert seeded.counters[SequenceService.counter_key(CLINIC_ID, DOCTOR_ID, DAY)] == 1


@pytest.mark.parametrize("overrides", [
    {"clinic_slug": "no-such-clinic"},
    {"doctor_id": "no-such-doctor"},
    {"doctor_id": "doctor-giza"},
    {"doctor_id": "doctor-retired"},
])
def test_invalid_target_consumes_no_number(seeded, new_booking, overrides):
    with pytest.raises(InvalidTarget):
        asyncio.run(BookingService.create_ticket(new_booking(**overrides), now=MORNING))

    assert seeded.counters == {}
    assert seeded.tickets == {}


def test_inactive_clinic_is_invalid_target(seeded, new_booking):
    seeded.clinics[CLINIC_ID]["is_active"] = False

    with pytest.raises(InvalidTarget):
        asyncio.run(BookingService.create_ticket(new_booking(), now=MORNING))


def test_closed_queue_rejects_bookings(seeded, new_booking):
    async def scenario():
        await QueueStateService.set_open(CLINIC_ID, DOCTOR_ID, False, DAY)
        await BookingService.create_ticket(new_booking(), now=MORNING)

    with pytest.raises(InvalidTarget):
        asyncio.run(scenario())
    assert seeded.counters == {}


@pytest.mark.parametrize("phone", ["0123", "01312345678", "0101234567a", "+201012345678"])
def test_malformed_phone_is_a_validation_error(phone):
    with pytest.raises(ValidationError):
        TicketCreate(clinic_slug="cairo-care", doctor_id=DOCTOR_ID, name="Ahmed", phone=phone)


def test_intake_is_sanitised():
    details = TicketCreate(
        clinic_slug="cairo-care",
        doctor_id=DOCTOR_ID,
        name="  Ahmed <b>Mohamed</b>  ",
        phone="010 1234 5678",
        consultation_reason="  headache   <script> ",
    )

    assert details.phone == "01012345678"
    assert details.name == "Ahmed bMohamedb"
    assert details.consultation_reason == "headache script"


@pytest.mark.parametrize("name", ["A", "123", "  "])
def test_short_names_are_rejected(name):
    with pytest.raises(ValidationError):
        TicketCreate(clinic_slug="cairo-care", doctor_id=DOCTOR_ID, name=name, phone="01012345678")


def test_age_out_of_range_is_rejected():
    with pytest.raises(ValidationError):
        TicketCreate(clinic_slug="cairo-care", doctor_id=DOCTOR_ID, name="Ahmed", phone="01012345678", age=151)


def test_first_visit_re_consultation_is_downgraded(seeded, new_booking):
    result = asyncio.run(BookingService.create_ticket(
        new_booking(queue_type=QueueType.RE_CONSULTATION), now=MORNING
    ))

    assert result.queue_type == QueueType.CONSULTATION


def test_returning_patient_keeps_re_consultation(seeded, new_booking):
    async def scenario():
        await BookingService.create_ticket(new_booking(), now=datetime(2026, 1, 10, 8, 0, tzinfo=timezone.utc))
        return await BookingService.create_ticket(
            new_booking(queue_type=QueueType.RE_CONSULTATION), now=MORNING
        )

    assert asyncio.run(scenario()).queue_type == QueueType.RE_CONSULTATION


def test_new_booking_day_starts_at_one(seeded, new_booking):
    async def scenario():
        late = await BookingService.create_ticket(
            new_booking(), now=datetime(2026, 1, 15, 21, 0, tzinfo=timezone.utc)
        )
        # 01:00 in Cairo is already the next booking day
        after_midnight = await BookingService.create_ticket(
            new_booking(phone="01198765432"), now=datetime(2026, 1, 15, 23, 0, tzinfo=timezone.utc)
        )
        return late, after_midnight

    late, after_midnight = asyncio.run(scenario())

    assert (late.booking_day, late.queue_number) == ("2026-01-15", 1)
    assert (after_midnight.booking_day, after_midnight.queue_number) == ("2026-01-16", 1)


def test_booking_refreshes_waiting_count(seeded, new_booking):
    async def scenario():
        await BookingService.create_ticket(new_booking(), now=MORNING)
        await BookingService.create_ticket(new_booking(phone="01198765432"), now=MORNING)
        return await QueueStateService.get_queue_state(CLINIC_ID, DOCTOR_ID, DAY)

    state = asyncio.run(scenario())

    assert state.total_waiting_count == 2
    assert state.current_consulting_queue_number is None
    assert state.is_open is True


def test_purge_expired_public_tickets(seeded, new_booking):
    async def scenario():
        result = await BookingService.create_ticket(new_booking(), now=MORNING)
        kept = await BookingService.purge_expired_public_tickets(datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc))
        purged = await BookingService.purge_expired_public_tickets(datetime(2026, 1, 16, 0, 0, tzinfo=timezone.utc))
        return result, kept, purged

    result, kept, purged = asyncio.run(scenario())

    assert (kept, purged) == (0, 1)
    assert result.public_ticket_id not in seeded.public_tickets
    assert result.ticket_id in seeded.tickets


def test_same_phone_submitted_twice_at_once_books_one_ticket(yielding, new_booking):
    async def scenario():
        results = await asyncio.gather(
            BookingService.create_ticket(new_booking(), now=MORNING),
            BookingService.create_ticket(new_booking(), now=MORNING),
            return_exceptions=True,
        )
        other = await BookingService.create_ticket(new_booking(phone="01198765432"), now=MORNING)
        return results, other

    results, other = asyncio.run(scenario())

    booked = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, AlreadyBooked)]
    assert len(booked) == 1 and len(rejected) == 1
    assert booked[0].queue_number == 1
    assert rejected[0].to_dict()["queue_number"] == 1
    # the losing request left no gap behind
    assert other.queue_number == 2
    assert sorted(t["queue_number"] for t in yielding.tickets.values()) == [1, 2]


class _RejectingStore(MemoryQueueStore):

    def __init__(self, error):
        super().__init__()
        self.error = error

    async def insert_ticket(self, ticket, public_ticket, counter_key):
        raise self.error


@pytest.mark.parametrize("error", [
    DuplicateActiveTicket("01012345678"),
    StoreError("write failed"),
])
def test_failed_insert_is_a_retryable_booking_error(seeded, new_booking, error):
    rejecting = _RejectingStore(error)
    rejecting.clinics.update(seeded.clinics)
    rejecting.doctors.update(seeded.doctors)
    set_store(rejecting)

    with pytest.raises(BookingFailed) as exc:
        asyncio.run(BookingService.create_ticket(new_booking(), now=MORNING))

    assert exc.value.status_code == 503
    assert exc.value.to_dict()["code"] == "booking_failed"
    assert rejecting.tickets == {}
    assert rejecting.counters == {}


def test_ticket_reads_are_scoped_to_the_doctor(seeded, new_booking):
    async def scenario():
        result = await BookingService.create_ticket(new_booking(), now=MORNING)
        own = await BookingService.get_ticket(result.ticket_id, CLINIC_ID, DOCTOR_ID)
        with pytest.raises(NotFound):
            await BookingService.get_ticket(result.ticket_id, CLINIC_ID, "doctor-2")
        with pytest.raises(NotFound):
            await BookingService.cancel_ticket(result.ticket_id, CLINIC_ID, "doctor-2")
        return result, own

    result, own = asyncio.run(scenario())

    assert own.id == result.ticket_id
    assert seeded.tickets[result.ticket_id]["status"] == "Waiting"


def test_allocator_and_bookings_share_the_day_counter(seeded, new_booking):
    async def scenario():
        reserved = [
            await SequenceService.allocate_next_queue_number(CLINIC_ID, DOCTOR_ID, DAY)
            for _ in range(2)
        ]
        booked = await BookingService.create_ticket(new_booking(), now=MORNING)
        return reserved, booked

    reserved, booked = asyncio.run(scenario())

    assert reserved == [1, 2]
    assert booked.queue_number == 3
