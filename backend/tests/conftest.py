from __future__ import annotations

import uuid
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from goldfinger.accounts.models import Account, AccountMember, MemberRole
from goldfinger.database import Base, build_engine, build_session_factory
from goldfinger.expenses.models import Expense
from goldfinger.income.models import Income
from goldfinger.recurring.generator import RULE_TABLES
from goldfinger.recurring.models import Frequency, RuleKind

USER_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")


@pytest.fixture()
async def engine(tmp_path: Path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'goldfinger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture()
async def db(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def account(db: AsyncSession) -> Account:
    acct = Account(name="Household", currency="EUR", created_by=USER_ID)
    db.add(acct)
    await db.flush()
    db.add(AccountMember(account_id=acct.id, user_id=USER_ID, role=MemberRole.OWNER))
    await db.commit()
    return acct


async def make_rule(
    db: AsyncSession,
    account: Account,
    kind: RuleKind = RuleKind.EXPENSE,
    **overrides,
):
    """Insert a rule directly, with the cursor defaulting to the start date."""
    values = {
        "account_id": account.id,
        "user_id": USER_ID,
        "amount": 42.5,
        "currency": "EUR",
        "summary": "Rent",
        "description": "Monthly flat rent",
        "frequency": Frequency.DAILY,
        "day_of_week_mask": 0,
        "start_date": date(2024, 1, 1),
    }
    values.update(overrides)
    values.setdefault("next_occurrence", values["start_date"])
    rule = RULE_TABLES[kind].rule_model(**values)
    db.add(rule)
    await db.commit()
    await db.refresh(rule)
    return rule


async def generated_dates(session_factory, kind: RuleKind, rule_id: uuid.UUID) -> list[date]:
    tables = RULE_TABLES[kind]
    model = tables.transaction_model
    async with session_factory() as session:
        result = await session.execute(
            select(model.date)
            .where(getattr(model, tables.back_reference) == rule_id)
            .order_by(model.date)
        )
        return list(result.scalars().all())


async def load_rule(session_factory, kind: RuleKind, rule_id: uuid.UUID):
    model = RULE_TABLES[kind].rule_model
    async with session_factory() as session:
        return (await session.execute(select(model).where(model.id == rule_id))).scalar_one()


async def count_transactions(session_factory) -> int:
    async with session_factory() as session:
        expenses = (await session.execute(select(func.count(Expense.id)))).scalar()
        incomes = (await session.execute(select(func.count(Income.id)))).scalar()
        return expenses + incomes
