from __future__ import annotations

import hmac
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from jose import JWTError, jwt

from goldfinger.config import Settings


@dataclass
class TokenPayload:
    sub: uuid.UUID
    email: str | None
    exp: datetime


def decode_token(token: str, settings: Settings | None = None) -> TokenPayload | None:
    """Verify an access token issued by the identity provider."""
    if settings is None:
        settings = Settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
        user_id = uuid.UUID(payload["sub"])
        exp = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        return TokenPayload(sub=user_id, email=payload.get("email"), exp=exp)
    except (JWTError, ValueError, KeyError):
        return None


def secrets_match(provided: str | None, expected: str) -> bool:
    """Constant-time comparison; an empty expected secret never matches."""
    if not expected or provided is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
