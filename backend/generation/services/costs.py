"""Per-action credit costs configured through the ``CREDIT_COSTS`` setting."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from django.conf import settings

STYLE = "style"
ASSET = "asset"
ASSET_REFINEMENT = "asset_refinement"

ASSET_TYPES = ("character", "object", "set")

DEFAULT_CREDIT_COSTS = {
    "style": 15,
    "character": 8,
    "object": 8,
    "set": 5,
    "asset_refinement": 5,
}


@dataclass(frozen=True)
class ActionCost:
    key: str
    kind: str
    asset_type: Optional[str]
    credits: int


def get_credit_costs() -> Dict[str, int]:
    configured = getattr(settings, "CREDIT_COSTS", None) or {}
    costs = {**DEFAULT_CREDIT_COSTS, **configured}
    for key, value in costs.items():
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"CREDIT_COSTS['{key}'] must be a positive integer.")
    return costs


def resolve_credit_cost(kind: str, asset_type: Optional[str] = None) -> int:
    """Credits charged for one generation of ``kind`` (and ``asset_type`` for assets)."""

    costs = get_credit_costs()
    if kind == STYLE:
        return costs[STYLE]
    if kind == ASSET_REFINEMENT:
        return costs[ASSET_REFINEMENT]
    if kind == ASSET:
        if asset_type not in ASSET_TYPES:
            raise ValueError(f"Unknown asset type {asset_type!r}; expected one of {', '.join(ASSET_TYPES)}.")
        return costs[asset_type]
    raise ValueError(f"Unknown generation kind {kind!r}.")


def list_action_costs() -> Tuple[ActionCost, ...]:
    actions = [ActionCost(key=STYLE, kind=STYLE, asset_type=None, credits=resolve_credit_cost(STYLE))]
    actions.extend(
        ActionCost(key=asset_type, kind=ASSET, asset_type=asset_type, credits=resolve_credit_cost(ASSET, asset_type))
        for asset_type in ASSET_TYPES
    )
    actions.append(
        ActionCost(
            key=ASSET_REFINEMENT,
            kind=ASSET_REFINEMENT,
            asset_type=None,
            credits=resolve_credit_cost(ASSET_REFINEMENT),
        )
    )
    return tuple(actions)
