import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from goldfinger.accounts.service import require_membership
from goldfinger.core.pagination import PaginationParams, build_pagination_meta
from goldfinger.income.models import Income
from goldfinger.income.schemas import IncomeFilter


async def list_income(
    db: AsyncSession, filters: IncomeFilter, user_id: uuid.UUID, pagination: PaginationParams
) -> tuple[list[Income], dict]:
    await require_membership(db, filters.account_id, user_id)

    conditions = [Income.account_id == filters.account_id]
    if filters.recurring_income_id is not None:
        conditions.append(Income.recurring_income_id == filters.recurring_income_id)
    if filters.date_from is not None:
        conditions.append(Income.date >= filters.date_from)
    if filters.date_to is not None:
        conditions.append(Income.date <= filters.date_to)

    total = (await db.execute(select(func.count(Income.id)).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(Income)
        .where(*conditions)
        .order_by(Income.date.desc(), Income.created_at.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
    )
    return list(result.scalars().all()), build_pagination_meta(total, pagination)
