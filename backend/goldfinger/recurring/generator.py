"""Catch-up generation of transactions from recurring rules.

Each occurrence is committed as one unit: the cursor advance (a
compare-and-swap on ``next_occurrence``) and the transaction insert succeed
or fail together. A crash or failure therefore never leaves a generated
transaction behind an un-advanced cursor, and a rerun resumes at exactly
the first occurrence that was not committed.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from goldfinger.accounts.service import get_account_currency
from goldfinger.core.exceptions import NotFoundError, PersistenceFailure
from goldfinger.exchange.service import ExchangeRateService, convert_amount
from goldfinger.expenses.models import Expense
from goldfinger.income.models import Income
from goldfinger.recurring.models import RecurringExpense, RecurringIncome, RuleKind
from goldfinger.recurring.recurrence import RecurrencePattern, compute_next_occurrence

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 5000


def utc_today() -> date:
    """Current date in UTC, the calendar the daily cron runs on."""
    return datetime.now(timezone.utc).date()


@dataclass(frozen=True)
class RuleTables:
    rule_model: type
    transaction_model: type
    back_reference: str


RULE_TABLES = {
    RuleKind.EXPENSE: RuleTables(RecurringExpense, Expense, "recurring_expense_id"),
    RuleKind.INCOME: RuleTables(RecurringIncome, Income, "recurring_income_id"),
}

TEMPLATE_FIELDS = (
    "account_id",
    "user_id",
    "category_id",
    "amount",
    "currency",
    "summary",
    "description",
)


@dataclass
class CatchUpResult:
    generated: int
    next_occurrence: date
    is_active: bool


@dataclass
class _Conversion:
    converted_amount: float
    exchange_rate: float
    account_currency: str
    rate_date: date


async def _load_rule(db: AsyncSession, tables: RuleTables, rule_id: uuid.UUID):
    model = tables.rule_model
    result = await db.execute(select(model).where(model.id == rule_id))
    rule = result.scalar_one_or_none()
    if rule is None:
        raise NotFoundError(model.__name__, str(rule_id))
    return rule


async def _resolve_conversion(
    db: AsyncSession,
    template: dict,
    exchange_rates: ExchangeRateService | None,
    default_currency: str,
) -> _Conversion | None:
    if exchange_rates is None:
        return None
    account_currency = await get_account_currency(db, template["account_id"], default_currency)
    if template["currency"] == account_currency:
        return None
    rate = await exchange_rates.get_rate(template["currency"], account_currency)
    if rate is None:
        return None
    return _Conversion(
        converted_amount=convert_amount(template["amount"], rate.rate),
        exchange_rate=rate.rate,
        account_currency=account_currency,
        rate_date=rate.date,
    )


async def _advance_cursor(
    db: AsyncSession,
    tables: RuleTables,
    rule_id: uuid.UUID,
    seen: date,
    next_occurrence: date,
    still_active: bool,
) -> bool:
    """Move the cursor from ``seen`` to ``next_occurrence``.

    Returns False when the cursor no longer holds ``seen`` (another writer
    got there first) or the rule has been deactivated.
    """
    model = tables.rule_model
    values = {"next_occurrence": next_occurrence, "last_generated_date": seen}
    if not still_active:
        values["is_active"] = False
    result = await db.execute(
        update(model)
        .where(
            model.id == rule_id,
            model.next_occurrence == seen,
            model.is_active == True,  # noqa: E712
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _insert_transaction(
    db: AsyncSession,
    tables: RuleTables,
    rule_id: uuid.UUID,
    template: dict,
    occurrence: date,
    conversion: _Conversion | None,
) -> None:
    row = tables.transaction_model(**template, date=occurrence)
    setattr(row, tables.back_reference, rule_id)
    if conversion is not None:
        row.converted_amount = conversion.converted_amount
        row.exchange_rate = conversion.exchange_rate
        row.account_currency = conversion.account_currency
        row.rate_date = conversion.rate_date
    db.add(row)
    await db.flush()


async def _deactivate(db: AsyncSession, tables: RuleTables, rule_id: uuid.UUID, seen: date) -> None:
    model = tables.rule_model
    await db.execute(
        update(model)
        .where(model.id == rule_id, model.next_occurrence == seen)
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def catch_up(
    db: AsyncSession,
    kind: RuleKind,
    rule_id: uuid.UUID,
    *,
    today: date | None = None,
    exchange_rates: ExchangeRateService | None = None,
    default_currency: str = "EUR",
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> CatchUpResult:
    """Generate every due occurrence of a rule up to and including ``today``.

    Raises PersistenceFailure when a write fails; occurrences committed
    before the failure stay, and the cursor points at the failed one.
    """
    today = today or utc_today()
    tables = RULE_TABLES[kind]
    rule = await _load_rule(db, tables, rule_id)

    cursor = rule.next_occurrence
    end_date = rule.end_date
    if not rule.is_active:
        return CatchUpResult(generated=0, next_occurrence=cursor, is_active=False)

    if end_date is not None and cursor > end_date:
        await _deactivate(db, tables, rule_id, cursor)
        logger.info("Recurring %s %s is past its end date; deactivated", kind.value, rule_id)
        return CatchUpResult(generated=0, next_occurrence=cursor, is_active=False)

    pattern = RecurrencePattern.from_rule(rule)
    template = {field: getattr(rule, field) for field in TEMPLATE_FIELDS}
    conversion = await _resolve_conversion(db, template, exchange_rates, default_currency)

    generated = 0
    while cursor <= today and (end_date is None or cursor <= end_date):
        if generated >= max_iterations:
            logger.warning(
                "Recurring %s %s hit the %d iteration limit at %s",
                kind.value, rule_id, max_iterations, cursor,
            )
            break

        next_cursor = compute_next_occurrence(cursor, pattern)
        if next_cursor <= cursor:
            logger.error("Recurring %s %s schedule did not advance past %s", kind.value, rule_id, cursor)
            break
        still_active = end_date is None or next_cursor <= end_date

        try:
            if not await _advance_cursor(db, tables, rule_id, cursor, next_cursor, still_active):
                await db.rollback()
                logger.info(
                    "Recurring %s %s cursor moved concurrently at %s; stopping",
                    kind.value, rule_id, cursor,
                )
                break
            await _insert_transaction(db, tables, rule_id, template, cursor, conversion)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.exception(
                "Failed to generate %s for rule %s on %s", kind.value, rule_id, cursor
            )
            raise PersistenceFailure(rule_id, cursor, generated) from e

        generated += 1
        cursor = next_cursor

    await db.refresh(rule)
    return CatchUpResult(
        generated=generated,
        next_occurrence=rule.next_occurrence,
        is_active=rule.is_active,
    )
