"""
MongoDB async database connection using Motor.
Provides database instance and collection access.
"""

import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from typing import Optional
from .config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class Database:
    """MongoDB database connection manager."""

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    async def connect(cls):
        """Connect to MongoDB."""
        cls.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
        cls.db = cls.client[settings.DATABASE_NAME]

        # Verify connection
        await cls.client.admin.command('ping')
        logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

        # Create indexes
        await cls._create_indexes()

    @classmethod
    async def disconnect(cls):
        """Disconnect from MongoDB."""
        if cls.client:
            cls.client.close()
            cls.client = None
            cls.db = None
            logger.info("Disconnected from MongoDB")

    @classmethod
    async def _create_indexes(cls):
        """Create database indexes for invariants and lookups."""
        if cls.db is None:
            return

        # Clinics are resolved by slug for public bookings
        await cls.db.clinics.create_index("slug", unique=True)
        await cls.db.doctors.create_index("clinic_id")

        # One queue number per doctor per day
        await cls.db.tickets.create_index(
            [("clinic_id", ASCENDING), ("doctor_id", ASCENDING),
             ("booking_day", ASCENDING), ("queue_number", ASCENDING)],
            unique=True,
            name="queue_number_per_day",
        )
        # At most one Consulting ticket per doctor
        await cls.db.tickets.create_index(
            [("clinic_id", ASCENDING), ("doctor_id", ASCENDING)],
            unique=True,
            partialFilterExpression={"status": "Consulting"},
            name="one_consulting_per_doctor",
        )
        # At most one Waiting ticket per phone per doctor per day
        await cls.db.tickets.create_index(
            [("clinic_id", ASCENDING), ("doctor_id", ASCENDING),
             ("booking_day", ASCENDING), ("phone", ASCENDING)],
            unique=True,
            partialFilterExpression={"status": "Waiting"},
            name="one_waiting_per_phone",
        )
        await cls.db.tickets.create_index(
            [("clinic_id", ASCENDING), ("doctor_id", ASCENDING),
             ("booking_day", ASCENDING), ("status", ASCENDING)]
        )
        await cls.db.tickets.create_index(
            [("clinic_id", ASCENDING), ("doctor_id", ASCENDING), ("phone", ASCENDING)]
        )

        await cls.db.public_tickets.create_index("expires_at")
        await cls.db.queue_state.create_index(
            [("clinic_id", ASCENDING), ("doctor_id", ASCENDING), ("booking_day", DESCENDING)]
        )

        logger.info("Database indexes created")

    @classmethod
    def get_collection(cls, name: str):
        """Get a collection by name."""
        if cls.db is None:
            raise RuntimeError("Database not connected")
        return cls.db[name]

    @classmethod
    async def start_session(cls):
        """Start a client session for multi-document transactions."""
        if cls.client is None:
            raise RuntimeError("Database not connected")
        return await cls.client.start_session()
