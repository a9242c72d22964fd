"""Usage accounting and generation history writes."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.generation import Generation
from models.usage_log import UsageLog

logger = logging.getLogger(__name__)


async def record_usage(
    db: AsyncSession,
    *,
    user_id: str,
    action: str,
    credits_used: int,
    meta: Optional[Dict[str, Any]] = None,
    model: Optional[str] = None,
    size: Optional[str] = None,
    quality: Optional[str] = None,
    n: int = 1,
) -> UsageLog:
    entry = UsageLog(
        user_id=user_id,
        action=action,
        model=model,
        size=size,
        quality=quality,
        n=max(int(n or 1), 1),
        credits_used=max(int(credits_used), 0),
        meta=meta or {},
    )
    db.add(entry)
    await db.commit()
    return entry


async def record_generation(
    db: AsyncSession,
    *,
    user_id: str,
    kind: str,
    prompt: Optional[str],
    size: Optional[str],
    quality: Optional[str],
    n: int,
    results: List[Dict[str, Any]],
) -> Generation:
    record = Generation(
        user_id=user_id,
        kind=kind,
        prompt=prompt,
        size=size,
        quality=quality,
        n=max(int(n or 1), 1),
        results=results,
    )
    db.add(record)
    await db.commit()
    return record


async def run_best_effort(
    db: AsyncSession,
    write: Awaitable[Any],
    *,
    timeout_seconds: float,
    label: str,
) -> bool:
    """Await a secondary write with a short timeout. Failures are logged and absorbed."""
    try:
        await asyncio.wait_for(write, timeout=timeout_seconds)
        return True
    except Exception as exc:
        logger.warning("Best-effort %s write failed: %r", label, exc)
        try:
            await db.rollback()
        except Exception as rollback_exc:
            logger.warning("Rollback after failed %s write also failed: %r", label, rollback_exc)
        return False


async def list_generations(user_id: str, db: AsyncSession, limit: int = 20) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(Generation)
        .where(Generation.user_id == user_id)
        .order_by(Generation.created_at.desc())
        .limit(max(min(int(limit), 100), 1))
    )
    return [
        {
            "id": record.id,
            "kind": record.kind,
            "prompt": record.prompt,
            "size": record.size,
            "quality": record.quality,
            "n": record.n,
            "results": record.results or [],
            "created_at": record.created_at.isoformat() if record.created_at else None,
        }
        for record in result.scalars().all()
    ]
