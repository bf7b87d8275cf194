import uuid
from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from goldfinger.auth.utils import TokenPayload
from goldfinger.config import Settings
from goldfinger.core.pagination import PaginationParams, get_pagination
from goldfinger.dependencies import (
    get_current_user,
    get_db,
    get_exchange_rates,
    get_settings,
    require_cron_secret,
)
from goldfinger.exchange.service import ExchangeRateService
from goldfinger.recurring import service
from goldfinger.recurring.models import CustomUnit, Frequency, RuleKind
from goldfinger.recurring.recurrence import RecurrencePattern, describe_pattern, preview_occurrences
from goldfinger.recurring.schemas import (
    OccurrencePreview,
    RecurringRuleCreate,
    RecurringRuleListItem,
    RecurringRuleResponse,
    RecurringRuleUpdate,
)
from goldfinger.recurring.generator import utc_today
from goldfinger.recurring.sweep import run_sweep


def build_rule_router(kind: RuleKind) -> APIRouter:
    """CRUD routes for one kind of recurring rule (expense or income)."""
    router = APIRouter()

    @router.get("")
    async def list_rules(
        db: Annotated[AsyncSession, Depends(get_db)],
        user: Annotated[TokenPayload, Depends(get_current_user)],
        pagination: Annotated[PaginationParams, Depends(get_pagination)],
        account_id: uuid.UUID = Query(...),
        is_active: bool | None = Query(None),
    ) -> dict:
        rules, meta = await service.list_rules(
            db, kind, account_id, user.sub, pagination, is_active=is_active
        )
        return {
            "data": [RecurringRuleListItem.model_validate(r) for r in rules],
            "meta": meta,
        }

    @router.post("", status_code=201)
    async def create_rule(
        data: RecurringRuleCreate,
        db: Annotated[AsyncSession, Depends(get_db)],
        user: Annotated[TokenPayload, Depends(get_current_user)],
        settings: Annotated[Settings, Depends(get_settings)],
        rates: Annotated[ExchangeRateService, Depends(get_exchange_rates)],
    ) -> dict:
        rule = await service.create_rule(
            db, kind, data, user.sub, options=service.catch_up_options(settings, rates)
        )
        return {"data": RecurringRuleResponse.model_validate(rule)}

    @router.get("/preview")
    async def preview_pattern(
        _: Annotated[TokenPayload, Depends(get_current_user)],
        frequency: Frequency = Query(...),
        start_date: date = Query(...),
        end_date: Optional[date] = Query(None),
        custom_interval: int | None = Query(None, ge=1),
        custom_unit: CustomUnit | None = Query(None),
        day_of_week_mask: int = Query(0, ge=0, le=127),
        day_of_month: int | None = Query(None, ge=1, le=31),
        count: int = Query(5, ge=1, le=12),
    ) -> dict:
        pattern = RecurrencePattern(
            frequency=frequency,
            start_date=start_date,
            end_date=end_date,
            custom_interval=custom_interval,
            custom_unit=custom_unit,
            day_of_week_mask=day_of_week_mask,
            day_of_month=day_of_month,
        )
        preview = OccurrencePreview(
            description=describe_pattern(pattern),
            occurrences=preview_occurrences(pattern, count),
        )
        return {"data": preview}

    @router.get("/{rule_id}")
    async def get_rule(
        rule_id: uuid.UUID,
        db: Annotated[AsyncSession, Depends(get_db)],
        user: Annotated[TokenPayload, Depends(get_current_user)],
    ) -> dict:
        rule = await service.get_rule(db, kind, rule_id, user.sub)
        return {"data": RecurringRuleResponse.model_validate(rule)}

    @router.get("/{rule_id}/preview")
    async def preview_rule(
        rule_id: uuid.UUID,
        db: Annotated[AsyncSession, Depends(get_db)],
        user: Annotated[TokenPayload, Depends(get_current_user)],
        count: int = Query(5, ge=1, le=12),
    ) -> dict:
        rule = await service.get_rule(db, kind, rule_id, user.sub)
        pattern = RecurrencePattern.from_rule(rule)
        occurrences = preview_occurrences(pattern, count, rule.next_occurrence) if rule.is_active else []
        return {"data": OccurrencePreview(description=describe_pattern(pattern), occurrences=occurrences)}

    @router.put("/{rule_id}")
    async def update_rule(
        rule_id: uuid.UUID,
        data: RecurringRuleUpdate,
        db: Annotated[AsyncSession, Depends(get_db)],
        user: Annotated[TokenPayload, Depends(get_current_user)],
        settings: Annotated[Settings, Depends(get_settings)],
        rates: Annotated[ExchangeRateService, Depends(get_exchange_rates)],
    ) -> dict:
        rule = await service.update_rule(
            db, kind, rule_id, data, user.sub, options=service.catch_up_options(settings, rates)
        )
        return {"data": RecurringRuleResponse.model_validate(rule)}

    @router.delete("/{rule_id}")
    async def delete_rule(
        rule_id: uuid.UUID,
        db: Annotated[AsyncSession, Depends(get_db)],
        user: Annotated[TokenPayload, Depends(get_current_user)],
    ) -> dict:
        await service.delete_rule(db, kind, rule_id, user.sub)
        return {"data": {"message": f"Recurring {kind.value} deleted"}}

    return router


expense_rules_router = build_rule_router(RuleKind.EXPENSE)
income_rules_router = build_rule_router(RuleKind.INCOME)

cron_router = APIRouter()


@cron_router.get("/generate-recurring", dependencies=[Depends(require_cron_secret)])
async def generate_recurring(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    rates: Annotated[ExchangeRateService, Depends(get_exchange_rates)],
) -> dict:
    today = utc_today()
    result = await run_sweep(
        request.app.state.session_factory,
        today=today,
        exchange_rates=rates,
        default_currency=settings.default_currency,
        max_iterations=settings.recurring_max_iterations,
    )
    return {"success": True, "date": today.isoformat(), "result": result.as_dict()}
