import datetime as dt

from pydantic import BaseModel


class ExchangeRateResponse(BaseModel):
    rate: float
    date: dt.date
    from_currency: str
    to_currency: str

    model_config = {"from_attributes": True}
