import datetime as dt
import uuid
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from goldfinger.recurring.models import CustomUnit, Frequency


class RecurringRuleCreate(BaseModel):
    account_id: uuid.UUID
    amount: float = Field(gt=0)
    currency: str = Field(min_length=3, max_length=3)
    summary: str | None = Field(None, max_length=255)
    description: str | None = None
    category_id: uuid.UUID | None = None
    frequency: Frequency
    custom_interval: int | None = Field(None, ge=1, le=365)
    custom_unit: CustomUnit | None = None
    day_of_week_mask: int = Field(0, ge=0, le=127)
    day_of_month: int | None = Field(None, ge=1, le=31)
    start_date: dt.date
    end_date: Optional[dt.date] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class RecurringRuleUpdate(BaseModel):
    amount: float | None = Field(None, gt=0)
    currency: str | None = Field(None, min_length=3, max_length=3)
    summary: str | None = Field(None, max_length=255)
    description: str | None = None
    category_id: uuid.UUID | None = None
    frequency: Frequency | None = None
    custom_interval: int | None = Field(None, ge=1, le=365)
    custom_unit: CustomUnit | None = None
    day_of_week_mask: int | None = Field(None, ge=0, le=127)
    day_of_month: int | None = Field(None, ge=1, le=31)
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    is_active: bool | None = None


class RecurringRuleResponse(BaseModel):
    id: uuid.UUID
    account_id: uuid.UUID
    user_id: uuid.UUID
    amount: float
    currency: str
    summary: str | None
    description: str | None
    category_id: uuid.UUID | None
    frequency: Frequency
    custom_interval: int | None
    custom_unit: CustomUnit | None
    day_of_week_mask: int
    day_of_month: int | None
    start_date: dt.date
    end_date: Optional[dt.date]
    next_occurrence: dt.date
    last_generated_date: Optional[dt.date]
    is_active: bool
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = {"from_attributes": True}


class RecurringRuleListItem(BaseModel):
    id: uuid.UUID
    amount: float
    currency: str
    summary: str | None
    frequency: Frequency
    next_occurrence: dt.date
    end_date: Optional[dt.date]
    is_active: bool

    model_config = {"from_attributes": True}


class OccurrencePreview(BaseModel):
    description: str
    occurrences: list[dt.date]
