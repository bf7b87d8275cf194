"""Daily sweep over every tenant's due recurring rules."""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from goldfinger.core.exceptions import PersistenceFailure
from goldfinger.exchange.service import ExchangeRateService
from goldfinger.recurring.generator import DEFAULT_MAX_ITERATIONS, RULE_TABLES, catch_up, utc_today
from goldfinger.recurring.models import RuleKind

logger = logging.getLogger(__name__)


@dataclass
class CollectionCounts:
    processed: int = 0
    generated: int = 0
    errors: int = 0


@dataclass
class SweepResult:
    expenses: CollectionCounts = field(default_factory=CollectionCounts)
    incomes: CollectionCounts = field(default_factory=CollectionCounts)

    def as_dict(self) -> dict:
        return asdict(self)


async def find_due_rule_ids(db: AsyncSession, kind: RuleKind, today: date) -> list[uuid.UUID]:
    model = RULE_TABLES[kind].rule_model
    result = await db.execute(
        select(model.id)
        .where(
            model.is_active == True,  # noqa: E712
            model.next_occurrence <= today,
        )
        .order_by(model.next_occurrence)
    )
    return list(result.scalars().all())


async def _sweep_collection(
    session_factory: Any,
    kind: RuleKind,
    counts: CollectionCounts,
    today: date,
    **catch_up_options,
) -> None:
    try:
        async with session_factory() as db:
            rule_ids = await find_due_rule_ids(db, kind, today)
    except SQLAlchemyError:
        logger.exception("Error fetching due recurring %s rules", kind.value)
        return

    for rule_id in rule_ids:
        counts.processed += 1
        try:
            async with session_factory() as db:
                outcome = await catch_up(db, kind, rule_id, today=today, **catch_up_options)
            counts.generated += outcome.generated
        except PersistenceFailure as e:
            counts.generated += e.generated
            counts.errors += 1
            logger.warning("Recurring %s %s stopped at %s", kind.value, rule_id, e.occurrence)
        except Exception:
            counts.errors += 1
            logger.exception("Error processing recurring %s %s", kind.value, rule_id)


async def run_sweep(
    session_factory: Any,
    *,
    today: date | None = None,
    exchange_rates: ExchangeRateService | None = None,
    default_currency: str = "EUR",
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> SweepResult:
    """Catch up every active rule due on or before ``today``.

    Rules are processed one after another, each in its own session. Failures
    are counted per collection and never abort the sweep.
    """
    today = today or utc_today()
    result = SweepResult()
    options = {
        "exchange_rates": exchange_rates,
        "default_currency": default_currency,
        "max_iterations": max_iterations,
    }

    await _sweep_collection(session_factory, RuleKind.EXPENSE, result.expenses, today, **options)
    await _sweep_collection(session_factory, RuleKind.INCOME, result.incomes, today, **options)

    logger.info(
        "Recurring sweep for %s: expenses %s, incomes %s",
        today, asdict(result.expenses), asdict(result.incomes),
    )
    return result
