"""Reserve-before-spend billing protocol with refund on failed work.

A billed request moves through::

    INIT -> DEBITED -> WORKING -> DONE
                              -> REFUNDED_AND_FAILED
    INIT -> REJECTED

The debit is committed before the paid-for work starts. If the work raises,
times out, or yields nothing, the exact amount is refunded once before the
failure propagates to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from services.credits import credit_account, ensure_account, try_debit
from services.image_provider import EmptyResultError, ImageProviderError, ImageTimeoutError
from services.pricing import ChargeRequest, cost_for

logger = logging.getLogger(__name__)


class ChargeState(str, Enum):
    INIT = "init"
    REJECTED = "rejected"
    DEBITED = "debited"
    WORKING = "working"
    DONE = "done"
    REFUNDED_AND_FAILED = "refunded_and_failed"


class InsufficientCredits(Exception):
    """Balance does not cover the cost. Nothing was debited."""

    code = "INSUFFICIENT_CREDITS"

    def __init__(self, cost: int, balance: int):
        self.cost = int(cost)
        self.balance = int(balance)
        self.needed = max(self.cost - self.balance, 0)
        super().__init__(f"Insufficient credits. Required: {self.cost}, available: {self.balance}.")

    def as_payload(self) -> dict:
        return {
            "ok": False,
            "code": self.code,
            "error": str(self),
            "needed": self.needed,
            "balance": self.balance,
            "cost": self.cost,
        }


class CreditCharge:
    """Tracks a single request's debit so it can be reversed at most once."""

    def __init__(self, user_id: str, amount: int, db: AsyncSession):
        self.user_id = user_id
        self.amount = int(amount)
        self.db = db
        self.charged = False
        self.state = ChargeState.INIT
        self.balance_after: Optional[int] = None

    async def debit(self) -> int:
        await ensure_account(self.user_id, self.db)
        result = await try_debit(self.user_id, self.amount, self.db)
        if not result.applied:
            self.state = ChargeState.REJECTED
            raise InsufficientCredits(self.amount, result.balance)
        self.charged = True
        self.state = ChargeState.DEBITED
        self.balance_after = result.balance
        return result.balance

    async def refund(self) -> bool:
        """Reverse the debit. Never raises; a failed refund is logged for reconciliation.

        The refund runs on its own short-lived session against the same engine, so
        it still completes when the request session is closed by a disconnect.
        """
        if not self.charged:
            return False
        self.charged = False
        try:
            async with AsyncSession(self.db.bind, expire_on_commit=False) as refund_db:
                self.balance_after = await credit_account(self.user_id, self.amount, refund_db)
        except Exception:
            logger.exception(
                "Credit refund failed; account needs manual reconciliation (user_id=%s amount=%s)",
                self.user_id,
                self.amount,
            )
            return False
        logger.info("Refunded %s credits to %s", self.amount, self.user_id)
        return True


@dataclass
class BilledOutcome:
    cost: int
    balance_after: Optional[int]
    images: List[str] = field(default_factory=list)
    state: ChargeState = ChargeState.DONE


async def run_billed_action(
    db: AsyncSession,
    *,
    user_id: str,
    charge_request: ChargeRequest,
    work: Callable[[], Awaitable[List[str]]],
    timeout_seconds: float,
) -> BilledOutcome:
    """Debit, run ``work`` under a timeout, and refund if it does not deliver images.

    Raises ``InsufficientCredits`` before any work starts when the balance is too
    low, and ``ImageProviderError`` subclasses after the refund when work fails.
    """
    cost = cost_for(charge_request)
    charge = CreditCharge(user_id, cost, db)
    await charge.debit()

    charge.state = ChargeState.WORKING
    try:
        images = await asyncio.wait_for(work(), timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        await charge.refund()
        charge.state = ChargeState.REFUNDED_AND_FAILED
        raise ImageTimeoutError("The image request took too long and was cancelled.") from exc
    except asyncio.CancelledError:
        await asyncio.shield(charge.refund())
        charge.state = ChargeState.REFUNDED_AND_FAILED
        raise
    except ImageProviderError:
        await charge.refund()
        charge.state = ChargeState.REFUNDED_AND_FAILED
        raise
    except Exception as exc:
        logger.exception("Billed %s action failed for %s", charge_request.action_kind, user_id)
        await charge.refund()
        charge.state = ChargeState.REFUNDED_AND_FAILED
        raise ImageProviderError("Image request failed.") from exc

    images = [item for item in (images or []) if item]
    if not images:
        await charge.refund()
        charge.state = ChargeState.REFUNDED_AND_FAILED
        raise EmptyResultError("No images were returned.")

    charge.state = ChargeState.DONE
    return BilledOutcome(cost=cost, balance_after=charge.balance_after, images=images, state=charge.state)
