from __future__ import annotations

import asyncio
from datetime import timedelta

from conftest import generated_dates, make_rule
from goldfinger.config import Settings
from goldfinger.core import scheduler as scheduler_module
from goldfinger.core.scheduler import scheduler, setup_scheduler, shutdown_scheduler
from goldfinger.recurring import sweep
from goldfinger.recurring.generator import utc_today
from goldfinger.recurring.models import RuleKind


async def test_job_catches_up_due_rules(db, session_factory, account):
    rule = await make_rule(db, account, start_date=utc_today() - timedelta(days=1))

    await scheduler_module._generate_recurring_transactions(session_factory, Settings(), None)

    assert len(await generated_dates(session_factory, RuleKind.EXPENSE, rule.id)) == 2


async def test_job_never_raises(session_factory, monkeypatch):
    async def broken_sweep(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(sweep, "run_sweep", broken_sweep)

    await scheduler_module._generate_recurring_transactions(session_factory, Settings(), None)


async def test_setup_registers_daily_cron_job(session_factory):
    settings = Settings(recurring_cron_hour=3, recurring_cron_minute=30)

    setup_scheduler(session_factory, settings, None)
    try:
        job = scheduler.get_job("generate_recurring_transactions")
        assert job is not None
        assert "hour='3'" in str(job.trigger)
        assert "minute='30'" in str(job.trigger)
        assert job.kwargs["settings"] is settings
    finally:
        shutdown_scheduler()

    # AsyncIOScheduler stops on its event loop, not inside shutdown()
    await asyncio.sleep(0)
    assert not scheduler.running
