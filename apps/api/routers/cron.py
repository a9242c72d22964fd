"""Scheduled jobs triggered by an external scheduler holding ``CRON_SECRET``."""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.billing import no_store_json
from services.plans import run_monthly_topup

router = APIRouter()
logger = logging.getLogger(__name__)


def require_cron_secret(
    authorization: Optional[str] = Header(default=None),
    x_cron_secret: Optional[str] = Header(default=None),
) -> None:
    """Accept ``Authorization: Bearer <secret>`` or ``x-cron-secret: <secret>``."""
    expected = (settings.CRON_SECRET or "").strip()
    if not expected:
        raise HTTPException(status_code=401, detail="Scheduled jobs are not configured.")

    presented = (x_cron_secret or "").strip()
    if not presented and authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer":
            presented = token.strip()
    if not presented or not hmac.compare_digest(presented.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized.")


@router.api_route("/monthly-topup", methods=["GET", "POST"])
async def monthly_topup(
    _authorized: None = Depends(require_cron_secret),
    db: AsyncSession = Depends(get_db),
):
    try:
        result = await run_monthly_topup(db)
    except Exception as exc:
        logger.exception("Monthly top-up failed")
        await db.rollback()
        return no_store_json({"ok": False, "error": str(exc)}, status_code=500)
    return no_store_json({"ok": True, "result": result})
