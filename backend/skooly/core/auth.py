"""
Authentication dependencies for FastAPI.

Skooly does not issue credentials itself. An external identity provider signs
JWTs with the shared ``JWT_SECRET_KEY``; this module verifies them and turns
the claims into an :class:`Identity` that services receive explicitly as the
"acting identity" for ownership checks.

Expected claims:
    sub:  user id (required)
    name: display name (optional)
    role: "admin" grants admin routes (optional)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from skooly.core.config import settings


# ================================
# Bearer Scheme
# ================================

# auto_error=False so we can answer with our own 401 body
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """The caller on whose behalf an operation runs."""

    user_id: str
    name: str | None = None
    is_admin: bool = False

    @property
    def display_name(self) -> str:
        return self.name or "Anonymous"


# ================================
# Token Helpers
# ================================

def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """
    Sign a JWT with the shared secret.

    Only used by tests and local tooling; production tokens come from the
    identity provider.

    Args:
        data: Claims to include (must contain "sub")
        expires_delta: Lifetime (default 1 hour)

    Returns:
        Encoded JWT string
    """
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    to_encode.update({
        "iat": now,
        "exp": now + (expires_delta or timedelta(hours=1)),
    })
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """
    Decode and verify a JWT.

    Returns:
        Claims dict if the signature and expiry are valid, None otherwise
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


def identity_from_claims(payload: dict[str, Any]) -> Identity | None:
    """Build an Identity from verified claims, or None if "sub" is missing."""
    user_id = payload.get("sub")
    if not user_id:
        return None
    user_id = str(user_id)
    is_admin = payload.get("role") == "admin" or user_id in settings.admin_user_ids
    return Identity(user_id=user_id, name=payload.get("name"), is_admin=is_admin)


# ================================
# Dependencies
# ================================

async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    """
    Resolve the acting identity from the Authorization header.

    Raises:
        HTTPException 401: Missing, invalid or expired token
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    identity = identity_from_claims(payload)
    if identity is None:
        raise credentials_exception

    return identity


async def require_admin(
    identity: Identity = Depends(get_current_identity),
) -> Identity:
    """Allow only admin identities (embedding maintenance endpoints)."""
    if not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return identity
