import datetime as dt
import uuid
from typing import Optional

from pydantic import BaseModel


class ExpenseResponse(BaseModel):
    id: uuid.UUID
    account_id: uuid.UUID
    user_id: uuid.UUID
    category_id: uuid.UUID | None
    amount: float
    currency: str
    summary: str | None
    description: str | None
    date: dt.date
    recurring_expense_id: uuid.UUID | None
    converted_amount: float | None
    exchange_rate: float | None
    account_currency: str | None
    rate_date: Optional[dt.date]
    created_at: dt.datetime

    model_config = {"from_attributes": True}


class ExpenseFilter(BaseModel):
    account_id: uuid.UUID
    recurring_expense_id: uuid.UUID | None = None
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
