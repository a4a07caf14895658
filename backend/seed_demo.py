"""
Seed a demo clinic and doctor into the configured store and print staff
tokens for trying the API.

    cd backend && python seed_demo.py
"""

import asyncio
import sys

from clinicq.config import get_settings
from clinicq.services.auth_service import AuthService
from clinicq.stores import get_store

CLINIC_ID = "demo-clinic"
DOCTOR_ID = "demo-doctor"


async def seed_demo():
    settings = get_settings()
    store = get_store()

    print(f"Seeding {settings.STORAGE_BACKEND} storage ({settings.DATABASE_NAME})...")
    await store.connect()
    try:
        await store.save_clinic({
            "_id": CLINIC_ID,
            "slug": "demo",
            "name": "Demo Clinic",
            "is_active": True,
            "settings": {
                "consultation_time": 15,
                "consultation_cost": 200,
                "re_consultation_cost": 100,
            },
        })
        await store.save_doctor({
            "_id": DOCTOR_ID,
            "clinic_id": CLINIC_ID,
            "name": "Dr. Demo",
            "specialty": "General Practice",
            "is_active": True,
            "is_available": True,
            "status_message": None,
            "total_revenue": 0,
        })

        print("-" * 80)
        print(f"{'Role':<10} | Token")
        print("-" * 80)
        for role, user_id in (("doctor", DOCTOR_ID), ("nurse", "demo-nurse"), ("admin", "demo-admin")):
            token = AuthService.create_access_token({
                "sub": user_id,
                "role": role,
                "clinic_id": CLINIC_ID,
                "doctor_id": DOCTOR_ID,
            })
            print(f"{role:<10} | {token}")
        print("\nBook publicly with clinic_slug='demo' and doctor_id='demo-doctor'.")
    finally:
        await store.disconnect()


if __name__ == "__main__":
    if sys.platform == 'win32':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(seed_demo())
