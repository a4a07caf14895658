"""
Staff token handling.

Tokens are issued by the clinic's auth service; this module only verifies
them. ``create_access_token`` exists for the demo seed script and tests.
"""

import logging
from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt
from pydantic import ValidationError

from ..config import get_settings
from ..models.user import StaffPrincipal
from ..utils.booking_day import utcnow

settings = get_settings()
logger = logging.getLogger(__name__)


class AuthService:
    """Bearer token verification for staff endpoints."""

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Create JWT access token."""
        to_encode = data.copy()
        expire = utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> Optional[StaffPrincipal]:
        """Decode a staff token into its principal, or None when invalid."""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except JWTError as e:
            logger.debug("Rejected staff token: %s", e)
            return None

        user_id = payload.get("sub")
        if user_id is None:
            return None
        try:
            return StaffPrincipal(
                user_id=user_id,
                role=payload.get("role"),
                clinic_id=payload.get("clinic_id"),
                doctor_id=payload.get("doctor_id"),
                name=payload.get("name"),
            )
        except ValidationError:
            return None
