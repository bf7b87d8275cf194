import uuid
from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from goldfinger.auth.utils import TokenPayload
from goldfinger.core.pagination import PaginationParams, get_pagination
from goldfinger.dependencies import get_current_user, get_db
from goldfinger.income import service
from goldfinger.income.schemas import IncomeFilter, IncomeResponse

router = APIRouter()


@router.get("")
async def list_income(
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[TokenPayload, Depends(get_current_user)],
    pagination: Annotated[PaginationParams, Depends(get_pagination)],
    account_id: uuid.UUID = Query(...),
    recurring_income_id: uuid.UUID | None = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
) -> dict:
    filters = IncomeFilter(
        account_id=account_id, recurring_income_id=recurring_income_id,
        date_from=date_from, date_to=date_to,
    )
    entries, meta = await service.list_income(db, filters, user.sub, pagination)
    return {"data": [IncomeResponse.model_validate(e) for e in entries], "meta": meta}
