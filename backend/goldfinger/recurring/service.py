from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from goldfinger.accounts.service import require_membership
from goldfinger.config import Settings
from goldfinger.core.exceptions import ConflictError, NotFoundError, PersistenceFailure, ValidationError
from goldfinger.core.pagination import PaginationParams, build_pagination_meta
from goldfinger.exchange.service import ExchangeRateService
from goldfinger.recurring.generator import RULE_TABLES, catch_up, utc_today
from goldfinger.recurring.models import RuleKind
from goldfinger.recurring.recurrence import (
    RecurrencePattern,
    compute_first_occurrence,
    first_occurrence_on_or_after,
)
from goldfinger.recurring.schemas import RecurringRuleCreate, RecurringRuleUpdate

logger = logging.getLogger(__name__)

PATTERN_FIELDS = (
    "frequency",
    "custom_interval",
    "custom_unit",
    "day_of_week_mask",
    "day_of_month",
    "start_date",
    "end_date",
)
# Changing any of these moves the cursor
SCHEDULE_FIELDS = tuple(f for f in PATTERN_FIELDS if f != "end_date")
NULLABLE_FIELDS = {
    "summary",
    "description",
    "category_id",
    "custom_interval",
    "custom_unit",
    "day_of_month",
    "end_date",
}


def catch_up_options(settings: Settings, exchange_rates: ExchangeRateService | None) -> dict:
    return {
        "exchange_rates": exchange_rates,
        "default_currency": settings.default_currency,
        "max_iterations": settings.recurring_max_iterations,
    }


async def _backfill(db: AsyncSession, kind: RuleKind, rule, today: date, options: dict) -> None:
    """Generate occurrences already due, without failing the surrounding request."""
    if not rule.is_active or rule.next_occurrence > today:
        return
    # A failed catch-up rolls back and expires the loaded rule
    rule_id = rule.id
    try:
        await catch_up(db, kind, rule_id, today=today, **options)
    except (PersistenceFailure, SQLAlchemyError):
        logger.exception("Catch-up for recurring %s %s failed", kind.value, rule_id)
        await db.rollback()
    await db.refresh(rule)


async def create_rule(
    db: AsyncSession,
    kind: RuleKind,
    data: RecurringRuleCreate,
    user_id: uuid.UUID,
    *,
    today: date | None = None,
    options: dict | None = None,
):
    today = today or utc_today()
    await require_membership(db, data.account_id, user_id)

    pattern = RecurrencePattern(**data.model_dump(include=set(PATTERN_FIELDS)))
    first = compute_first_occurrence(pattern)
    is_active = data.end_date is None or first <= data.end_date

    model = RULE_TABLES[kind].rule_model
    values = data.model_dump()
    values["currency"] = data.currency.upper()
    rule = model(**values, user_id=user_id, next_occurrence=first, is_active=is_active)
    db.add(rule)
    await db.commit()
    await db.refresh(rule)

    await _backfill(db, kind, rule, today, options or {})
    return rule


async def list_rules(
    db: AsyncSession,
    kind: RuleKind,
    account_id: uuid.UUID,
    user_id: uuid.UUID,
    pagination: PaginationParams,
    is_active: bool | None = None,
) -> tuple[list, dict]:
    await require_membership(db, account_id, user_id)
    model = RULE_TABLES[kind].rule_model

    filters = [model.account_id == account_id]
    if is_active is not None:
        filters.append(model.is_active == is_active)

    total = (await db.execute(select(func.count(model.id)).where(*filters))).scalar() or 0
    result = await db.execute(
        select(model)
        .where(*filters)
        .order_by(model.next_occurrence)
        .offset(pagination.offset)
        .limit(pagination.limit)
    )
    return list(result.scalars().all()), build_pagination_meta(total, pagination)


async def get_rule(db: AsyncSession, kind: RuleKind, rule_id: uuid.UUID, user_id: uuid.UUID):
    model = RULE_TABLES[kind].rule_model
    result = await db.execute(select(model).where(model.id == rule_id))
    rule = result.scalar_one_or_none()
    if rule is None:
        raise NotFoundError(model.__name__, str(rule_id))
    await require_membership(db, rule.account_id, user_id)
    return rule


async def update_rule(
    db: AsyncSession,
    kind: RuleKind,
    rule_id: uuid.UUID,
    data: RecurringRuleUpdate,
    user_id: uuid.UUID,
    *,
    today: date | None = None,
    options: dict | None = None,
):
    """Apply a user edit, recomputing the cursor when the schedule changes.

    The write only succeeds if the cursor still holds the value read here,
    so an edit never races a running catch-up.
    """
    today = today or utc_today()
    rule = await get_rule(db, kind, rule_id, user_id)
    model = RULE_TABLES[kind].rule_model
    seen = rule.next_occurrence

    values = {
        k: v for k, v in data.model_dump(exclude_unset=True).items()
        if v is not None or k in NULLABLE_FIELDS
    }
    if not values:
        return rule
    if values.get("currency"):
        values["currency"] = values["currency"].upper()
    merged = {f: values.get(f, getattr(rule, f)) for f in PATTERN_FIELDS}
    if merged["end_date"] is not None and merged["end_date"] < merged["start_date"]:
        raise ValidationError("end_date must not be before start_date")
    pattern = RecurrencePattern(**merged)

    resuming = values.get("is_active") is True and not rule.is_active
    rescheduled = any(f in values and values[f] != getattr(rule, f) for f in SCHEDULE_FIELDS)
    cursor = seen
    if resuming or rescheduled:
        floors = [pattern.start_date]
        if rule.last_generated_date is not None:
            floors.append(rule.last_generated_date + timedelta(days=1))
        # Never reach back before the current cursor or today, whichever is
        # earlier: dates skipped by a pause stay skipped.
        floors.append(today if resuming else min(seen, today))
        cursor = first_occurrence_on_or_after(pattern, max(floors))
        values["next_occurrence"] = cursor

    is_active = values.get("is_active", rule.is_active)
    if is_active and pattern.end_date is not None and cursor > pattern.end_date:
        values["is_active"] = False

    result = await db.execute(
        update(model)
        .where(model.id == rule.id, model.next_occurrence == seen)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise ConflictError("The recurring rule was modified concurrently, please retry.")
    await db.commit()
    await db.refresh(rule)

    await _backfill(db, kind, rule, today, options or {})
    return rule


async def delete_rule(db: AsyncSession, kind: RuleKind, rule_id: uuid.UUID, user_id: uuid.UUID) -> None:
    rule = await get_rule(db, kind, rule_id, user_id)
    await db.delete(rule)
    await db.commit()
