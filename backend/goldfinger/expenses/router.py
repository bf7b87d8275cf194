import uuid
from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from goldfinger.auth.utils import TokenPayload
from goldfinger.core.pagination import PaginationParams, get_pagination
from goldfinger.dependencies import get_current_user, get_db
from goldfinger.expenses import service
from goldfinger.expenses.schemas import ExpenseFilter, ExpenseResponse

router = APIRouter()


@router.get("")
async def list_expenses(
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[TokenPayload, Depends(get_current_user)],
    pagination: Annotated[PaginationParams, Depends(get_pagination)],
    account_id: uuid.UUID = Query(...),
    recurring_expense_id: uuid.UUID | None = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
) -> dict:
    filters = ExpenseFilter(
        account_id=account_id, recurring_expense_id=recurring_expense_id,
        date_from=date_from, date_to=date_to,
    )
    expenses, meta = await service.list_expenses(db, filters, user.sub, pagination)
    return {"data": [ExpenseResponse.model_validate(e) for e in expenses], "meta": meta}
