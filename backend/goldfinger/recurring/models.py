import datetime as dt
import enum
import uuid

from sqlalchemy import Boolean, Date, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from goldfinger.database import Base, TimestampMixin


class RuleKind(str, enum.Enum):
    EXPENSE = "expense"
    INCOME = "income"


class Frequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class CustomUnit(str, enum.Enum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"


class RecurringRuleMixin(TimestampMixin):
    """Columns shared by recurring expense and income definitions.

    ``next_occurrence`` is the cursor: the earliest occurrence that has not
    been materialized yet. Only the catch-up generator and explicit user
    edits move it.
    """

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)

    @declared_attr
    def account_id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
        )

    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)

    # Transaction template
    category_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    summary: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Schedule
    frequency: Mapped[Frequency] = mapped_column(Enum(Frequency), nullable=False)
    custom_interval: Mapped[int | None] = mapped_column(Integer, nullable=True)
    custom_unit: Mapped[CustomUnit | None] = mapped_column(Enum(CustomUnit), nullable=True)
    day_of_week_mask: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    day_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)

    next_occurrence: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    last_generated_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)


class RecurringExpense(RecurringRuleMixin, Base):
    __tablename__ = "recurring_expenses"


class RecurringIncome(RecurringRuleMixin, Base):
    __tablename__ = "recurring_incomes"
