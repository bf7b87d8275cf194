import datetime as dt
import uuid

from sqlalchemy import Date, Float, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from goldfinger.database import Base, TimestampMixin


class Income(TimestampMixin, Base):
    __tablename__ = "income_entries"
    __table_args__ = (UniqueConstraint("recurring_income_id", "date"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    category_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    summary: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    recurring_income_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("recurring_incomes.id", ondelete="SET NULL"), nullable=True, index=True
    )

    converted_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    exchange_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    account_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    rate_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
