"""Credit cost policy for billable image actions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from config import settings


ACTION_GENERATE = "generate"
ACTION_EDIT = "edit"
ACTION_KINDS = (ACTION_GENERATE, ACTION_EDIT)

QUALITY_STANDARD = "standard"
QUALITY_HD = "hd"
HIGH_QUALITY_TIERS = {QUALITY_HD, "high"}


@dataclass(frozen=True)
class ChargeRequest:
    """One billable action, derived per request and never persisted."""

    action_kind: str
    quantity: int = 1
    quality_tier: str = QUALITY_STANDARD


def credit_cost(action_kind: str, quantity: int = 1, quality_tier: str = QUALITY_STANDARD) -> int:
    """Return the credit cost of an action. Pure and deterministic for a given configuration."""
    units = max(int(quantity or 1), 1)
    if action_kind == ACTION_EDIT:
        return max(int(settings.CREDIT_COST_EDIT), 0) * units
    if action_kind == ACTION_GENERATE:
        per_unit = max(int(settings.CREDIT_COST_PER_IMAGE), 0)
        if (quality_tier or QUALITY_STANDARD).lower() in HIGH_QUALITY_TIERS:
            per_unit += max(int(settings.CREDIT_HD_SURCHARGE_PER_IMAGE), 0)
        return per_unit * units
    raise ValueError(f"Unknown action kind: {action_kind!r}")


def cost_for(request: ChargeRequest) -> int:
    return credit_cost(request.action_kind, request.quantity, request.quality_tier)


def cost_table() -> Dict[str, Any]:
    """Expose the configured constants so clients can preview charges."""
    return {
        "generate": {
            "per_image": max(int(settings.CREDIT_COST_PER_IMAGE), 0),
            "hd_surcharge_per_image": max(int(settings.CREDIT_HD_SURCHARGE_PER_IMAGE), 0),
        },
        "edit": {
            "per_image": max(int(settings.CREDIT_COST_EDIT), 0),
        },
        "max_images_per_request": max(int(settings.MAX_IMAGES_PER_REQUEST), 1),
    }
