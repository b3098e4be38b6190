"""
Authentication dependencies
Every protected route is scoped to the owner named by the bearer token's ``sub`` claim.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.error_handling import UnauthorizedException
from app.core.security import TokenError, verify_token

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: Optional[str] = None
    role: Optional[str] = None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    """Resolve the authenticated user from ``Authorization: Bearer <token>``"""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedException("auth_required")

    try:
        payload = verify_token(credentials.credentials)
    except TokenError:
        raise UnauthorizedException("invalid_token")

    return CurrentUser(id=payload["sub"], email=payload.get("email"), role=payload.get("role"))


async def get_owner_id(current_user: CurrentUser = Depends(get_current_user)) -> str:
    return current_user.id
