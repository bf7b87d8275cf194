from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from goldfinger.auth.utils import TokenPayload, decode_token, secrets_match
from goldfinger.config import Settings
from goldfinger.core.exceptions import UnauthorizedTrigger
from goldfinger.exchange.service import ExchangeRateService

security = HTTPBearer()
security_optional = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_db(request: Request) -> AsyncSession:
    async with request.app.state.session_factory() as session:
        yield session


def get_exchange_rates(request: Request) -> ExchangeRateService:
    return request.app.state.exchange_rates


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TokenPayload:
    token_data = decode_token(credentials.credentials, settings)
    if token_data is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return token_data


async def require_cron_secret(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security_optional)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Guard for the scheduled trigger: ``Authorization: Bearer <cron_secret>``."""
    provided = credentials.credentials if credentials is not None else None
    if not secrets_match(provided, settings.cron_secret):
        raise UnauthorizedTrigger()
