"""
Bearer-token verification for tokens issued by the external auth provider.

Sign-in, sign-up and refresh happen against the provider; this module only
checks signatures and reads the `sub`, `email` and `user_metadata` claims.
"""

import uuid
import logging
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Header
from jose import JWTError, jwt

from printhub.core.config import get_settings
from printhub.core.exceptions import AuthenticationError, PermissionDeniedError

settings = get_settings()
logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
SHOP_OWNER = "shop_owner"
CUSTOMER = "customer"


@dataclass
class CurrentUser:
    id: uuid.UUID
    email: Optional[str] = None
    user_type: str = CUSTOMER
    metadata: dict = field(default_factory=dict)

    @property
    def is_shop_owner(self) -> bool:
        return self.user_type == SHOP_OWNER

    @property
    def full_name(self) -> str:
        return self.metadata.get("full_name") or ""


def decode_access_token(token: str) -> CurrentUser:
    """Verify a provider JWT and build the caller identity from its claims."""
    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE,
        )
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise AuthenticationError("Invalid or expired session")

    sub = payload.get("sub")
    if not sub:
        raise AuthenticationError("Token missing subject")

    try:
        user_id = uuid.UUID(sub)
    except ValueError:
        raise AuthenticationError("Token subject is not a valid user id")

    metadata = payload.get("user_metadata") or {}
    return CurrentUser(
        id=user_id,
        email=payload.get("email"),
        user_type=metadata.get("user_type") or CUSTOMER,
        metadata=metadata,
    )


def _bearer(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationError()
    return authorization.split(" ", 1)[1].strip()


async def get_current_user(authorization: str = Header(None)) -> CurrentUser:
    return decode_access_token(_bearer(authorization))


async def get_optional_user(authorization: str = Header(None)) -> Optional[CurrentUser]:
    if not authorization:
        return None
    return decode_access_token(_bearer(authorization))


async def require_shop_owner(authorization: str = Header(None)) -> CurrentUser:
    user = decode_access_token(_bearer(authorization))
    if not user.is_shop_owner:
        raise PermissionDeniedError("Shop owner access required")
    return user
