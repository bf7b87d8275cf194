from typing import Annotated

from fastapi import APIRouter, Depends, Query

from goldfinger.auth.utils import TokenPayload
from goldfinger.core.exceptions import AppError
from goldfinger.dependencies import get_current_user, get_exchange_rates
from goldfinger.exchange.schemas import ExchangeRateResponse
from goldfinger.exchange.service import ExchangeRateService

router = APIRouter()


@router.get("")
async def get_exchange_rate(
    _: Annotated[TokenPayload, Depends(get_current_user)],
    rates: Annotated[ExchangeRateService, Depends(get_exchange_rates)],
    from_currency: str = Query(..., alias="from", min_length=3, max_length=3),
    to_currency: str = Query(..., alias="to", min_length=3, max_length=3),
) -> dict:
    result = await rates.get_rate(from_currency, to_currency)
    if result is None:
        raise AppError(
            code="EXCHANGE_RATE_UNAVAILABLE",
            message=f"No exchange rate available for {from_currency.upper()} to {to_currency.upper()}.",
            status_code=503,
        )
    return {"data": ExchangeRateResponse.model_validate(result)}
