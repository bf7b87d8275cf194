import logging
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from goldfinger.config import Settings
from goldfinger.exchange.service import ExchangeRateService

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(timezone="UTC")


async def _generate_recurring_transactions(
    session_factory: Any, settings: Settings, exchange_rates: ExchangeRateService
) -> None:
    """Job: catch up all due recurring expenses and incomes."""
    from goldfinger.recurring.sweep import run_sweep

    try:
        result = await run_sweep(
            session_factory,
            exchange_rates=exchange_rates,
            default_currency=settings.default_currency,
            max_iterations=settings.recurring_max_iterations,
        )
        generated = result.expenses.generated + result.incomes.generated
        if generated > 0:
            logger.info("Generated %d recurring transactions", generated)
    except Exception:
        logger.exception("Error generating recurring transactions")


def setup_scheduler(
    session_factory: Any, settings: Settings, exchange_rates: ExchangeRateService
) -> None:
    """Register the daily recurring sweep and start the scheduler."""
    scheduler.add_job(
        _generate_recurring_transactions,
        CronTrigger(hour=settings.recurring_cron_hour, minute=settings.recurring_cron_minute),
        kwargs={
            "session_factory": session_factory,
            "settings": settings,
            "exchange_rates": exchange_rates,
        },
        id="generate_recurring_transactions",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Background scheduler started with %d jobs", len(scheduler.get_jobs()))


def shutdown_scheduler() -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")
