"""
Authentication and authorization dependencies.
"""

from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..services.auth_service import AuthService
from ..models.user import StaffPrincipal, StaffRole

security = HTTPBearer()


async def get_current_staff(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> StaffPrincipal:
    """Get the staff principal from the bearer token."""
    principal = AuthService.decode_token(credentials.credentials)

    if not principal:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    return principal


def require_role(*roles: StaffRole):
    """Dependency factory for role-based access control."""
    async def role_checker(principal: StaffPrincipal = Depends(get_current_staff)) -> StaffPrincipal:
        if principal.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[r.value for r in roles]}"
            )
        return principal
    return role_checker


# Pre-defined role dependencies
require_admin = require_role(StaffRole.ADMIN)
require_doctor = require_role(StaffRole.DOCTOR, StaffRole.ADMIN)
require_staff = require_role(StaffRole.NURSE, StaffRole.DOCTOR, StaffRole.ADMIN)


def doctor_scope(principal: StaffPrincipal, doctor_id: Optional[str] = None) -> str:
    """
    Doctor whose queue a request acts on.

    Admins may name any doctor of their clinic; doctors and nurses are
    pinned to the doctor on their token.
    """
    if principal.role == StaffRole.ADMIN:
        if doctor_id:
            return doctor_id
        if principal.doctor_id:
            return principal.doctor_id
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="doctor_id is required"
        )

    if not principal.doctor_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No doctor is assigned to this account"
        )
    if doctor_id and doctor_id != principal.doctor_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to another doctor's queue"
        )
    return principal.doctor_id


def ticket_scope(principal: StaffPrincipal) -> Optional[str]:
    """Doctor filter for ticket lookups by id; admins are not restricted."""
    if principal.role == StaffRole.ADMIN:
        return None
    return doctor_scope(principal)
