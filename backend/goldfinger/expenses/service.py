import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from goldfinger.accounts.service import require_membership
from goldfinger.core.pagination import PaginationParams, build_pagination_meta
from goldfinger.expenses.models import Expense
from goldfinger.expenses.schemas import ExpenseFilter


async def list_expenses(
    db: AsyncSession, filters: ExpenseFilter, user_id: uuid.UUID, pagination: PaginationParams
) -> tuple[list[Expense], dict]:
    await require_membership(db, filters.account_id, user_id)

    conditions = [Expense.account_id == filters.account_id]
    if filters.recurring_expense_id is not None:
        conditions.append(Expense.recurring_expense_id == filters.recurring_expense_id)
    if filters.date_from is not None:
        conditions.append(Expense.date >= filters.date_from)
    if filters.date_to is not None:
        conditions.append(Expense.date <= filters.date_to)

    total = (await db.execute(select(func.count(Expense.id)).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(Expense)
        .where(*conditions)
        .order_by(Expense.date.desc(), Expense.created_at.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
    )
    return list(result.scalars().all()), build_pagination_meta(total, pagination)
