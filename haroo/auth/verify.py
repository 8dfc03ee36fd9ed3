"""
verify.py
---------
Purpose:
    Bearer JWT verification (HS256 shared secret).

Notes:
    - The user id is read from the `id` claim, falling back to `sub`.
    - `auth_dependency` yields a typed Principal that routes pass explicitly
      into every service call.
"""

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from haroo.config import settings

_security = HTTPBearer()


class Principal(BaseModel):
    """The authenticated caller."""

    user_id: str


def verify_jwt(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": True},
        )
    except jwt.PyJWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def principal_from_claims(claims: dict) -> Principal:
    user_id = claims.get("id") or claims.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Principal(user_id=str(user_id))


def auth_dependency(credentials: HTTPAuthorizationCredentials = Depends(_security)) -> Principal:
    return principal_from_claims(verify_jwt(credentials.credentials))
