import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from goldfinger.config import Settings
from goldfinger.core.exceptions import register_exception_handlers
from goldfinger.database import Base, build_engine, build_session_factory
from goldfinger.exchange.service import build_exchange_rate_service

# Import all models so Base.metadata knows about them
import goldfinger.accounts.models  # noqa: F401
import goldfinger.expenses.models  # noqa: F401
import goldfinger.income.models  # noqa: F401
import goldfinger.recurring.models  # noqa: F401

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    settings = application.state.settings

    if settings.is_sqlite and ":memory:" not in settings.database_url:
        db_path = settings.database_url.split("///")[-1]
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    engine = build_engine(settings.database_url)

    # Auto-create tables for SQLite in development
    if settings.is_sqlite:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    application.state.engine = engine
    application.state.session_factory = build_session_factory(engine)
    application.state.exchange_rates = build_exchange_rate_service(settings)

    if settings.scheduler_enabled:
        from goldfinger.core.scheduler import setup_scheduler, shutdown_scheduler

        setup_scheduler(
            application.state.session_factory, settings, application.state.exchange_rates
        )

    yield

    if settings.scheduler_enabled:
        shutdown_scheduler()
    await engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()

    fastapi_app = FastAPI(
        title="Gold-Finger",
        description="Shared personal finance: expenses, incomes and recurring transactions",
        version="0.1.0",
        lifespan=lifespan,
    )
    fastapi_app.state.settings = settings

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from goldfinger.exchange.router import router as exchange_router
    from goldfinger.expenses.router import router as expenses_router
    from goldfinger.income.router import router as income_router
    from goldfinger.recurring.router import (
        cron_router,
        expense_rules_router,
        income_rules_router,
    )

    fastapi_app.include_router(expenses_router, prefix="/api/expenses", tags=["expenses"])
    fastapi_app.include_router(income_router, prefix="/api/incomes", tags=["incomes"])
    fastapi_app.include_router(
        expense_rules_router, prefix="/api/recurring-expenses", tags=["recurring-expenses"]
    )
    fastapi_app.include_router(
        income_rules_router, prefix="/api/recurring-incomes", tags=["recurring-incomes"]
    )
    fastapi_app.include_router(cron_router, prefix="/api/cron", tags=["cron"])
    fastapi_app.include_router(exchange_router, prefix="/api/exchange-rates", tags=["exchange-rates"])

    @fastapi_app.get("/api/system/health")
    async def health():
        return {"data": {"status": "healthy"}}

    register_exception_handlers(fastapi_app)

    return fastapi_app


app = create_app()
