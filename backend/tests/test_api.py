from __future__ import annotations

import time
import uuid
from datetime import date, timedelta

import httpx
import pytest
from jose import jwt
from sqlalchemy.exc import OperationalError

from conftest import USER_ID, count_transactions, generated_dates, make_rule
from goldfinger.config import Settings
from goldfinger.exchange.service import ExchangeRateService, RateCache
from goldfinger.main import create_app
from goldfinger.recurring import generator
from goldfinger.recurring.generator import utc_today
from goldfinger.recurring.models import Frequency, RuleKind

JWT_SECRET = "test-jwt-secret"
CRON_SECRET = "test-cron-secret"


def _token(user_id: uuid.UUID = USER_ID) -> str:
    claims = {
        "sub": str(user_id),
        "email": "member@example.com",
        "aud": "authenticated",
        "exp": int(time.time()) + 3600,
    }
    return jwt.encode(claims, JWT_SECRET, algorithm="HS256")


def _auth(user_id: uuid.UUID = USER_ID) -> dict:
    return {"Authorization": f"Bearer {_token(user_id)}"}


def _frankfurter(request: httpx.Request) -> httpx.Response:
    target = request.url.params["to"]
    return httpx.Response(200, json={"amount": 1.0, "date": "2024-01-02", "rates": {target: 0.9}})


def _build_app(session_factory, **overrides):
    values = {
        "database_url": "sqlite+aiosqlite:///:memory:",
        "jwt_secret": JWT_SECRET,
        "cron_secret": CRON_SECRET,
    }
    values.update(overrides)
    settings = Settings(**values)
    app = create_app(settings)
    app.state.session_factory = session_factory
    app.state.exchange_rates = ExchangeRateService(
        "https://rates.test", RateCache(ttl_seconds=60), transport=httpx.MockTransport(_frankfurter)
    )
    return app


@pytest.fixture()
def app(session_factory):
    return _build_app(session_factory)


@pytest.fixture()
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def _rule_payload(account, **overrides) -> dict:
    payload = {
        "account_id": str(account.id),
        "amount": 9.99,
        "currency": "EUR",
        "summary": "Streaming",
        "frequency": "daily",
        "start_date": (utc_today() - timedelta(days=2)).isoformat(),
    }
    payload.update(overrides)
    return payload


async def test_health(client):
    response = await client.get("/api/system/health")

    assert response.status_code == 200
    assert response.json() == {"data": {"status": "healthy"}}


# ---------------------------------------------------------------------------
# Cron trigger
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Authorization": "Bearer wrong-secret"},
        {"Authorization": f"Token {CRON_SECRET}"},
    ],
)
async def test_cron_rejects_missing_or_wrong_secret(client, db, session_factory, account, headers):
    await make_rule(db, account, start_date=utc_today() - timedelta(days=3))

    response = await client.get("/api/cron/generate-recurring", headers=headers)

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED_TRIGGER"
    assert await count_transactions(session_factory) == 0


async def test_cron_runs_the_sweep(client, db, session_factory, account):
    today = utc_today()
    expense = await make_rule(db, account, start_date=today - timedelta(days=2))
    income = await make_rule(db, account, kind=RuleKind.INCOME, start_date=today)

    response = await client.get(
        "/api/cron/generate-recurring", headers={"Authorization": f"Bearer {CRON_SECRET}"}
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "date": today.isoformat(),
        "result": {
            "expenses": {"processed": 1, "generated": 3, "errors": 0},
            "incomes": {"processed": 1, "generated": 1, "errors": 0},
        },
    }
    assert len(await generated_dates(session_factory, RuleKind.EXPENSE, expense.id)) == 3
    assert await generated_dates(session_factory, RuleKind.INCOME, income.id) == [today]


async def test_cron_is_closed_when_no_secret_is_configured(session_factory, db, account):
    app = _build_app(session_factory, cron_secret="")
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get("/api/cron/generate-recurring", headers={"Authorization": "Bearer x"})

    assert response.status_code == 401


# ---------------------------------------------------------------------------
# Recurring rule management
# ---------------------------------------------------------------------------


async def test_create_rule_backfills_due_occurrences(client, account):
    today = utc_today()

    response = await client.post(
        "/api/recurring-expenses", json=_rule_payload(account), headers=_auth()
    )

    assert response.status_code == 201
    rule = response.json()["data"]
    assert rule["next_occurrence"] == (today + timedelta(days=1)).isoformat()
    assert rule["last_generated_date"] == today.isoformat()
    assert rule["user_id"] == str(USER_ID)

    listing = await client.get(
        "/api/expenses",
        params={"account_id": str(account.id), "recurring_expense_id": rule["id"]},
        headers=_auth(),
    )
    assert listing.status_code == 200
    body = listing.json()
    assert body["meta"]["total_count"] == 3
    assert [e["date"] for e in body["data"]] == [
        today.isoformat(),
        (today - timedelta(days=1)).isoformat(),
        (today - timedelta(days=2)).isoformat(),
    ]


async def test_create_rule_survives_a_failed_backfill(client, session_factory, account, monkeypatch):
    today = utc_today()
    original = generator._insert_transaction
    calls = {"count": 0}

    async def insert(*args, **kwargs):
        calls["count"] += 1
        if calls["count"] == 3:
            raise OperationalError("INSERT INTO expenses", {}, Exception("database is locked"))
        return await original(*args, **kwargs)

    monkeypatch.setattr(generator, "_insert_transaction", insert)

    response = await client.post(
        "/api/recurring-expenses",
        json=_rule_payload(account, start_date=(today - timedelta(days=4)).isoformat()),
        headers=_auth(),
    )

    assert response.status_code == 201
    rule = response.json()["data"]
    assert rule["is_active"] is True
    assert rule["next_occurrence"] == (today - timedelta(days=2)).isoformat()
    assert rule["last_generated_date"] == (today - timedelta(days=3)).isoformat()
    assert await generated_dates(session_factory, RuleKind.EXPENSE, uuid.UUID(rule["id"])) == [
        today - timedelta(days=4),
        today - timedelta(days=3),
    ]


async def test_create_income_rule_converts_foreign_currency(client, account):
    response = await client.post(
        "/api/recurring-incomes",
        json=_rule_payload(account, currency="usd", amount=100, start_date=utc_today().isoformat()),
        headers=_auth(),
    )

    assert response.status_code == 201
    assert response.json()["data"]["currency"] == "USD"

    listing = await client.get("/api/incomes", params={"account_id": str(account.id)}, headers=_auth())
    [income] = listing.json()["data"]
    assert income["converted_amount"] == 90.0
    assert income["account_currency"] == "EUR"


async def test_create_rule_with_future_start_generates_nothing(client, session_factory, account):
    start = utc_today() + timedelta(days=10)

    response = await client.post(
        "/api/recurring-expenses",
        json=_rule_payload(account, frequency="monthly", start_date=start.isoformat()),
        headers=_auth(),
    )

    assert response.status_code == 201
    assert response.json()["data"]["next_occurrence"] == start.isoformat()
    assert await count_transactions(session_factory) == 0


async def test_create_custom_rule_without_interval_is_rejected(client, session_factory, account):
    response = await client.post(
        "/api/recurring-expenses",
        json=_rule_payload(account, frequency="custom", custom_unit="weeks"),
        headers=_auth(),
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "INVALID_RULE_CONFIGURATION"
    assert await count_transactions(session_factory) == 0


async def test_create_rule_with_end_before_start_is_rejected(client, account):
    payload = _rule_payload(account, start_date="2024-03-01", end_date="2024-02-01")

    response = await client.post("/api/recurring-expenses", json=payload, headers=_auth())

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_non_member_cannot_create_or_read_rules(client, db, account):
    stranger = uuid.uuid4()
    rule = await make_rule(db, account)

    created = await client.post(
        "/api/recurring-expenses", json=_rule_payload(account), headers=_auth(stranger)
    )
    fetched = await client.get(f"/api/recurring-expenses/{rule.id}", headers=_auth(stranger))

    assert created.status_code == 403
    assert fetched.status_code == 403


async def test_invalid_token_is_rejected(client, account):
    response = await client.get(
        "/api/recurring-expenses",
        params={"account_id": str(account.id)},
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401


async def test_list_rules_filters_by_activity(client, db, account):
    await make_rule(db, account, summary="Active")
    await make_rule(db, account, summary="Paused", is_active=False)

    response = await client.get(
        "/api/recurring-expenses",
        params={"account_id": str(account.id), "is_active": "true"},
        headers=_auth(),
    )

    assert response.status_code == 200
    body = response.json()
    assert [r["summary"] for r in body["data"]] == ["Active"]
    assert body["meta"]["total_count"] == 1


async def test_preview_pattern(client):
    response = await client.get(
        "/api/recurring-expenses/preview",
        params={"frequency": "monthly", "start_date": "2024-01-31", "day_of_month": 31, "count": 3},
        headers=_auth(),
    )

    assert response.status_code == 200
    assert response.json()["data"] == {
        "description": "Monthly on the 31st",
        "occurrences": ["2024-01-31", "2024-02-29", "2024-03-31"],
    }


async def test_preview_rule_starts_at_cursor(client, db, account):
    rule = await make_rule(
        db, account, frequency=Frequency.WEEKLY, day_of_week_mask=0b0010010, next_occurrence=date(2024, 1, 4)
    )

    response = await client.get(
        f"/api/recurring-expenses/{rule.id}/preview", params={"count": 3}, headers=_auth()
    )

    assert response.json()["data"] == {
        "description": "Weekly on Mon, Thu",
        "occurrences": ["2024-01-04", "2024-01-08", "2024-01-11"],
    }


async def test_update_schedule_moves_cursor(client, db, account):
    start = utc_today() + timedelta(days=5)
    rule = await make_rule(db, account, start_date=start)
    new_start = start + timedelta(days=7)

    response = await client.put(
        f"/api/recurring-expenses/{rule.id}",
        json={"start_date": new_start.isoformat(), "amount": 15},
        headers=_auth(),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["next_occurrence"] == new_start.isoformat()
    assert data["amount"] == 15


async def test_update_validates_the_merged_schedule(client, db, account):
    start = utc_today() + timedelta(days=5)
    rule = await make_rule(db, account, start_date=start)

    response = await client.put(
        f"/api/recurring-expenses/{rule.id}",
        json={"end_date": (start - timedelta(days=1)).isoformat()},
        headers=_auth(),
    )

    assert response.status_code == 422

    response = await client.put(
        f"/api/recurring-expenses/{rule.id}",
        json={"frequency": "monthly", "end_date": start.isoformat()},
        headers=_auth(),
    )

    assert response.status_code == 200
    assert response.json()["data"]["is_active"] is True
    assert response.json()["data"]["next_occurrence"] == start.isoformat()


async def test_resume_skips_the_paused_period(client, db, session_factory, account):
    today = utc_today()
    rule = await make_rule(
        db, account, start_date=today - timedelta(days=30), is_active=False,
        last_generated_date=today - timedelta(days=21),
        next_occurrence=today - timedelta(days=20),
    )

    response = await client.put(
        f"/api/recurring-expenses/{rule.id}", json={"is_active": True}, headers=_auth()
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["is_active"] is True
    assert data["next_occurrence"] == (today + timedelta(days=1)).isoformat()
    assert await generated_dates(session_factory, RuleKind.EXPENSE, rule.id) == [today]


async def test_delete_rule_keeps_generated_transactions(client, db, session_factory, account):
    rule = await make_rule(db, account, start_date=utc_today())
    await client.get(
        "/api/cron/generate-recurring", headers={"Authorization": f"Bearer {CRON_SECRET}"}
    )

    response = await client.delete(f"/api/recurring-expenses/{rule.id}", headers=_auth())

    assert response.status_code == 200
    assert response.json() == {"data": {"message": "Recurring expense deleted"}}
    missing = await client.get(f"/api/recurring-expenses/{rule.id}", headers=_auth())
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "RECURRINGEXPENSE_NOT_FOUND"

    listing = await client.get("/api/expenses", params={"account_id": str(account.id)}, headers=_auth())
    [expense] = listing.json()["data"]
    assert expense["recurring_expense_id"] is None


# ---------------------------------------------------------------------------
# Exchange rates
# ---------------------------------------------------------------------------


async def test_exchange_rate_route(client):
    response = await client.get(
        "/api/exchange-rates", params={"from": "usd", "to": "eur"}, headers=_auth()
    )

    assert response.status_code == 200
    assert response.json()["data"] == {
        "rate": 0.9,
        "date": "2024-01-02",
        "from_currency": "USD",
        "to_currency": "EUR",
    }


async def test_exchange_rate_unavailable(app, client):
    def offline(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    app.state.exchange_rates = ExchangeRateService(
        "https://rates.test", RateCache(ttl_seconds=60), transport=httpx.MockTransport(offline)
    )

    response = await client.get(
        "/api/exchange-rates", params={"from": "USD", "to": "GBP"}, headers=_auth()
    )

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "EXCHANGE_RATE_UNAVAILABLE"
