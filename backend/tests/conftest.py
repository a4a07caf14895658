import asyncio
import functools
import inspect
import os

# Must be set before clinicq reads its settings
os.environ["STORAGE_BACKEND"] = "memory"

import pytest

from clinicq.models.ticket import TicketCreate
from clinicq.services.auth_service import AuthService
from clinicq.stores import MemoryQueueStore, set_store

CLINIC_ID = "clinic-1"
CLINIC_SLUG = "cairo-care"
DOCTOR_ID = "doctor-1"


class YieldingQueueStore(MemoryQueueStore):
    """Memory store that hands control back to the event loop before every call."""


def _yield_first(method):
    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        await asyncio.sleep(0)
        return await method(self, *args, **kwargs)
    return wrapper


for _name, _method in list(vars(MemoryQueueStore).items()):
    if not _name.startswith("_") and inspect.iscoroutinefunction(_method):
        setattr(YieldingQueueStore, _name, _yield_first(_method))


def seed(store):
    """One active clinic with two doctors, plus a doctor of another clinic."""
    store.clinics[CLINIC_ID] = {
        "_id": CLINIC_ID,
        "slug": CLINIC_SLUG,
        "name": "Cairo Care",
        "is_active": True,
        "settings": {"consultation_time": 10, "consultation_cost": 100, "re_consultation_cost": 50},
    }
    store.clinics["clinic-2"] = {"_id": "clinic-2", "slug": "giza-health", "name": "Giza Health"}
    store.doctors[DOCTOR_ID] = {
        "_id": DOCTOR_ID,
        "clinic_id": CLINIC_ID,
        "name": "Dr. Sara",
        "is_active": True,
        "is_available": True,
        "total_revenue": 0,
    }
    store.doctors["doctor-retired"] = {
        "_id": "doctor-retired",
        "clinic_id": CLINIC_ID,
        "name": "Dr. Hany",
        "is_active": False,
    }
    store.doctors["doctor-giza"] = {"_id": "doctor-giza", "clinic_id": "clinic-2", "name": "Dr. Omar"}
    return store


@pytest.fixture
def store():
    store = MemoryQueueStore()
    set_store(store)
    yield store
    set_store(None)


@pytest.fixture
def seeded(store):
    return seed(store)


@pytest.fixture
def yielding():
    """Seeded store whose calls interleave when run concurrently."""
    store = seed(YieldingQueueStore())
    set_store(store)
    yield store
    set_store(None)


@pytest.fixture
def new_booking():
    def _booking(phone="01012345678", name="Ahmed Mohamed", **extra):
        extra.setdefault("clinic_slug", CLINIC_SLUG)
        extra.setdefault("doctor_id", DOCTOR_ID)
        return TicketCreate(name=name, phone=phone, **extra)
    return _booking


@pytest.fixture
def make_token():
    def _token(role="doctor", user_id=DOCTOR_ID, clinic_id=CLINIC_ID, doctor_id=DOCTOR_ID):
        return AuthService.create_access_token({
            "sub": user_id,
            "role": role,
            "clinic_id": clinic_id,
            "doctor_id": doctor_id,
        })
    return _token
