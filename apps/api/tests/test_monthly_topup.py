from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.future import select

from config import settings
from models.billing_plan import BillingPlan
from models.credit_grant import CreditGrant
from models.subscription import Subscription
from services.credits import credit_account, ensure_account, get_balance
from services.plans import current_period_key, run_monthly_topup
from services.session_token import create_session_token


CRON_SECRET = "cron-secret-for-tests-0001"
SUBSCRIBER_ID = "subscriber-1"


async def _seed_plans(session_maker):
    async with session_maker() as db:
        pro = BillingPlan(slug="pro", name="Pro", credits=0, credits_monthly=50, price_cents=4990)
        retired = BillingPlan(slug="legacy", name="Legacy", credits_monthly=80, is_active=False)
        db.add_all([pro, retired])
        await db.flush()
        db.add_all([
            Subscription(user_id=SUBSCRIBER_ID, plan_id=pro.id, status="active"),
            Subscription(user_id="cancelled-user", plan_id=pro.id, status="canceled"),
            Subscription(user_id="legacy-user", plan_id=retired.id, status="active"),
        ])
        await db.commit()


def test_period_key_is_calendar_month():
    assert current_period_key(datetime(2026, 2, 28, 23, 59, tzinfo=timezone.utc)) == "2026-02"


@pytest.mark.asyncio
async def test_monthly_topup_grants_once_per_period(session_maker):
    await _seed_plans(session_maker)
    async with session_maker() as db:
        await ensure_account(SUBSCRIBER_ID, db)
        await credit_account(SUBSCRIBER_ID, 5, db)

    october = datetime(2026, 10, 1, 3, 0, tzinfo=timezone.utc)
    async with session_maker() as db:
        first = await run_monthly_topup(db, now=october)
    async with session_maker() as db:
        second = await run_monthly_topup(db, now=october)

    assert first == {"period_key": "2026-10", "granted_users": 1, "skipped_users": 0, "credits_granted": 50}
    assert second == {"period_key": "2026-10", "granted_users": 0, "skipped_users": 1, "credits_granted": 0}

    async with session_maker() as db:
        assert await get_balance(SUBSCRIBER_ID, db) == 55
        assert await get_balance("cancelled-user", db) == 0
        assert await get_balance("legacy-user", db) == 0
        grants = (await db.execute(select(CreditGrant))).scalars().all()
    assert [(g.user_id, g.period_key, g.credits) for g in grants] == [(SUBSCRIBER_ID, "2026-10", 50)]

    async with session_maker() as db:
        november = await run_monthly_topup(db, now=datetime(2026, 11, 1, tzinfo=timezone.utc))
        assert november["granted_users"] == 1
        assert await get_balance(SUBSCRIBER_ID, db) == 105


@pytest.mark.asyncio
async def test_cron_route_requires_secret(integration_client):
    with patch.object(settings, "CRON_SECRET", ""):
        unconfigured = await integration_client.post(
            "/cron/monthly-topup", headers={"Authorization": "Bearer anything"}
        )
    assert unconfigured.status_code == 401

    with patch.object(settings, "CRON_SECRET", CRON_SECRET):
        missing = await integration_client.post("/cron/monthly-topup")
        wrong = await integration_client.post("/cron/monthly-topup", headers={"x-cron-secret": "not-the-secret"})

    assert missing.status_code == 401
    assert wrong.status_code == 401


@pytest.mark.asyncio
async def test_cron_route_runs_topup_with_either_header(integration_client, session_maker):
    await _seed_plans(session_maker)

    with patch.object(settings, "CRON_SECRET", CRON_SECRET):
        first = await integration_client.get(
            "/cron/monthly-topup", headers={"Authorization": f"Bearer {CRON_SECRET}"}
        )
        second = await integration_client.post("/cron/monthly-topup", headers={"x-cron-secret": CRON_SECRET})

    assert first.status_code == 200
    assert first.json()["ok"] is True
    assert first.json()["result"]["granted_users"] == 1
    assert second.json()["result"]["skipped_users"] == 1

    async with session_maker() as db:
        assert await get_balance(SUBSCRIBER_ID, db) == 50


@pytest.mark.asyncio
async def test_plan_endpoint_falls_back_to_free(integration_client):
    headers = {"Authorization": f"Bearer {create_session_token('no-plan-user')}"}

    resp = await integration_client.get("/billing/plan", headers=headers)

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["plan"]["slug"] == "free"
    assert payload["subscription"] is None


@pytest.mark.asyncio
async def test_plan_endpoint_returns_active_subscription(integration_client, session_maker):
    await _seed_plans(session_maker)
    headers = {"Authorization": f"Bearer {create_session_token(SUBSCRIBER_ID)}"}

    resp = await integration_client.get("/billing/plan", headers=headers)

    payload = resp.json()
    assert payload["plan"]["slug"] == "pro"
    assert payload["plan"]["credits_monthly"] == 50
    assert payload["subscription"]["status"] == "active"


@pytest.mark.asyncio
async def test_costs_endpoint_quotes_with_handler_pricing(integration_client):
    resp = await integration_client.get("/billing/costs", params={"action": "generate", "quantity": 3, "quality": "hd"})

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["quote"]["credits"] == 6
    assert payload["costs"]["edit"]["per_image"] == 2
