"""Services package for ClinicQ."""

from .sequence_service import SequenceService
from .booking_service import BookingService
from .queue_state_service import QueueStateService
from .consultation_service import ConsultationService
from .public_status_service import PublicStatusService
from .doctor_service import DoctorService
from .wait_time import estimate_wait_minutes, people_ahead

__all__ = [
    "SequenceService",
    "BookingService",
    "QueueStateService",
    "ConsultationService",
    "PublicStatusService",
    "DoctorService",
    "estimate_wait_minutes",
    "people_ahead",
]
