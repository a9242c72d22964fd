"""Billing plans, subscription lookup and the monthly plan top-up."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.billing_plan import BillingPlan
from models.credit_grant import CreditGrant
from models.subscription import Subscription
from services.credits import credit_account, dialect_insert, ensure_account

logger = logging.getLogger(__name__)

ACTIVE_SUBSCRIPTION_STATUSES = ("active", "trialing", "past_due")
MONTHLY_PLAN_SOURCE = "monthly_plan"

FREE_PLAN_FALLBACK: Dict[str, Any] = {
    "slug": "free",
    "name": "Free",
    "period": "monthly",
    "credits": 0,
    "credits_monthly": 0,
    "price_cents": 0,
    "currency": "BRL",
    "is_active": True,
}


def current_period_key(now: Optional[datetime] = None) -> str:
    current = now or datetime.now(timezone.utc)
    return current.strftime("%Y-%m")


def _plan_payload(plan: BillingPlan) -> Dict[str, Any]:
    return {
        "id": plan.id,
        "slug": plan.slug,
        "name": plan.name,
        "period": plan.period,
        "credits": plan.credits,
        "credits_monthly": plan.credits_monthly,
        "price_cents": plan.price_cents,
        "currency": plan.currency,
        "is_active": plan.is_active,
    }


def _subscription_payload(subscription: Subscription) -> Dict[str, Any]:
    return {
        "id": subscription.id,
        "plan_id": subscription.plan_id,
        "status": subscription.status,
        "current_period_start": (
            subscription.current_period_start.isoformat() if subscription.current_period_start else None
        ),
        "current_period_end": (
            subscription.current_period_end.isoformat() if subscription.current_period_end else None
        ),
    }


async def get_active_subscription(user_id: str, db: AsyncSession) -> Optional[Subscription]:
    result = await db.execute(
        select(Subscription)
        .where(
            Subscription.user_id == user_id,
            Subscription.status.in_(ACTIVE_SUBSCRIPTION_STATUSES),
        )
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_plan_summary(user_id: str, db: AsyncSession) -> Dict[str, Any]:
    subscription = await get_active_subscription(user_id, db)
    if subscription is None:
        result = await db.execute(select(BillingPlan).where(BillingPlan.slug == "free"))
        free_plan = result.scalar_one_or_none()
        return {
            "ok": True,
            "plan": _plan_payload(free_plan) if free_plan else dict(FREE_PLAN_FALLBACK),
            "subscription": None,
        }

    result = await db.execute(select(BillingPlan).where(BillingPlan.id == subscription.plan_id))
    plan = result.scalar_one_or_none()
    return {
        "ok": True,
        "plan": _plan_payload(plan) if plan else None,
        "subscription": _subscription_payload(subscription),
    }


async def run_monthly_topup(db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Grant each subscribed account its plan's monthly credits, once per period."""
    period_key = current_period_key(now)
    result = await db.execute(
        select(Subscription.user_id, BillingPlan.credits_monthly)
        .join(BillingPlan, Subscription.plan_id == BillingPlan.id)
        .where(
            Subscription.status.in_(ACTIVE_SUBSCRIPTION_STATUSES),
            BillingPlan.is_active.is_(True),
            BillingPlan.credits_monthly > 0,
        )
        .order_by(Subscription.created_at.desc())
    )
    # Latest active subscription wins when a user has several.
    grants: Dict[str, int] = {}
    for user_id, credits_monthly in result.all():
        grants.setdefault(user_id, int(credits_monthly))

    insert = dialect_insert(db)
    granted_users = 0
    skipped_users = 0
    credits_granted = 0
    for user_id, credits in grants.items():
        await ensure_account(user_id, db)
        inserted = await db.execute(
            insert(CreditGrant)
            .values(user_id=user_id, source=MONTHLY_PLAN_SOURCE, period_key=period_key, credits=credits)
            .on_conflict_do_nothing(
                index_elements=[CreditGrant.user_id, CreditGrant.source, CreditGrant.period_key]
            )
            .returning(CreditGrant.id)
        )
        if inserted.scalar_one_or_none() is None:
            await db.rollback()
            skipped_users += 1
            continue
        await credit_account(user_id, credits, db, commit=False)
        await db.commit()
        granted_users += 1
        credits_granted += credits

    logger.info(
        "Monthly top-up %s: granted=%s skipped=%s credits=%s",
        period_key,
        granted_users,
        skipped_users,
        credits_granted,
    )
    return {
        "period_key": period_key,
        "granted_users": granted_users,
        "skipped_users": skipped_users,
        "credits_granted": credits_granted,
    }
