"""
Bearer token handling for the challenge API.

Tokens are issued by the surrounding platform; the engine only verifies them
and reads the acting user's id ("sub") and role ("role", default customer).
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Callable
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..config import settings
from ..models.user import TokenData, CurrentUser, UserRole

security = HTTPBearer()


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Encode a signed token for the given claims.

    Used by tests and local tooling to act as a customer, doctor or admin.

    Args:
        data: Claims to encode; "sub" is the user id, "role" is optional
        expires_delta: Lifetime, defaults to settings.access_token_expire_minutes
    """
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {**data, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[TokenData]:
    """
    Verify a token and read the acting user.

    Returns:
        Optional[TokenData]: None when the token is invalid, expired, has no
        subject or carries an unknown role
    """
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        subject = claims.get("sub")
        if not subject:
            return None
        return TokenData(user_id=subject, role=UserRole(claims.get("role", UserRole.CUSTOMER.value)))
    except (JWTError, ValueError):
        return None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> CurrentUser:
    """Dependency resolving the acting user; 401 for an unusable token."""
    token_data = decode_access_token(credentials.credentials)
    if token_data is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return CurrentUser(user_id=token_data.user_id, role=token_data.role)


async def get_current_user_id(user: CurrentUser = Depends(get_current_user)) -> str:
    return user.user_id


def require_role(*roles: UserRole) -> Callable:
    """
    Dependency factory restricting an endpoint to the given roles.

    Example:
        Depends(require_role(UserRole.DOCTOR, UserRole.ADMIN))
    """

    async def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(role.value for role in roles)}",
            )
        return user

    return dependency
