"""
Caller identity models - who is acting on an enrollment.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel


class UserRole(str, Enum):
    CUSTOMER = "customer"
    DOCTOR = "doctor"
    ADMIN = "admin"


class TokenData(BaseModel):
    """Claims read from a bearer token."""
    user_id: Optional[str] = None
    role: UserRole = UserRole.CUSTOMER


class CurrentUser(BaseModel):
    """Authenticated caller of the HTTP API."""
    user_id: str
    role: UserRole = UserRole.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
