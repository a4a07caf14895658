"""Routers package for the ClinicQ API."""

from .public import router as public_router
from .queue import router as queue_router
from .doctors import router as doctors_router

__all__ = [
    "public_router",
    "queue_router",
    "doctors_router"
]
