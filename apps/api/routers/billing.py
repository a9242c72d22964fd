"""Billing and credits router."""

from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from services.credits import ensure_account, get_balance
from services.plans import get_plan_summary
from services.pricing import cost_table, credit_cost

router = APIRouter()
logger = logging.getLogger(__name__)

NO_STORE_HEADERS = {"Cache-Control": "no-store, max-age=0"}


def no_store_json(content: dict, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=NO_STORE_HEADERS)


@router.get("/credits")
async def credits_balance(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    await ensure_account(auth.user_id, db)
    balance = await get_balance(auth.user_id, db)
    return no_store_json({"ok": True, "balance": balance})


@router.get("/costs")
async def credit_costs(
    action: Optional[Literal["generate", "edit"]] = Query(default=None),
    quantity: int = Query(default=1, ge=1, le=10),
    quality: Literal["standard", "hd"] = Query(default="standard"),
):
    """Cost table plus an optional quote computed with the same policy the handlers use."""
    payload = {"ok": True, "costs": cost_table()}
    if action is not None:
        payload["quote"] = {
            "action": action,
            "quantity": quantity,
            "quality": quality,
            "credits": credit_cost(action, quantity, quality),
        }
    return payload


@router.get("/plan")
async def current_plan(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return no_store_json(await get_plan_summary(auth.user_id, db))
