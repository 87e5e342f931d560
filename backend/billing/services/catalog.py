"""Plan and credit pack catalog built from Django settings.

Plans map a recurring Stripe price to a monthly credit grant; credit packs map
a one-off Stripe price to a fixed number of credits. The catalog is static for
the lifetime of the process and is rebuilt only when the billing settings are
overridden (tests) via Django's ``setting_changed`` signal.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Dict, Mapping, Optional, Tuple

from django.conf import settings

logger = logging.getLogger(__name__)

FREE_PLAN_ID = "free"
CATALOG_SETTINGS = frozenset({"BILLING_PLANS", "BILLING_CREDIT_PACKS"})


class CatalogError(Exception):
    """Base exception for catalog issues."""


class CatalogConfigurationError(CatalogError):
    """Raised when the plan or pack catalog in settings is missing or malformed."""


@dataclass(frozen=True)
class PlanDefinition:
    """Represents a subscription tier."""

    id: str
    name: str
    monthly_credit_grant: int
    external_price_ref: Optional[str]
    price_label: str = ""
    description: str = ""

    @property
    def is_free(self) -> bool:
        return self.id == FREE_PLAN_ID


@dataclass(frozen=True)
class CreditPackDefinition:
    """Represents a one-off credit top-up."""

    id: str
    credit_amount: int
    external_price_ref: Optional[str]
    price_label: str = ""


@dataclass(frozen=True)
class Catalog:
    plans: Tuple[PlanDefinition, ...]
    credit_packs: Tuple[CreditPackDefinition, ...]
    plans_by_price: Dict[str, PlanDefinition]
    packs_by_price: Dict[str, CreditPackDefinition]


def _normalise_price_ref(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise CatalogConfigurationError("Stripe price identifiers must be strings.")
    value = value.strip()
    return value or None


def _positive_int(value: object, label: str, *, allow_zero: bool = False) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise CatalogConfigurationError(f"{label} must be an integer.") from exc
    if number < 0 or (number == 0 and not allow_zero):
        raise CatalogConfigurationError(f"{label} must be {'non-negative' if allow_zero else 'positive'}.")
    return number


def _get_mapping(name: str) -> Mapping[str, object]:
    try:
        value = getattr(settings, name)
    except AttributeError as exc:
        raise CatalogConfigurationError(f"{name} is not defined in Django settings.") from exc
    if not isinstance(value, Mapping):
        raise CatalogConfigurationError(f"{name} must be a mapping keyed by identifier.")
    return value


def _build_plans(raw_plans: Mapping[str, object]) -> Tuple[PlanDefinition, ...]:
    plans = []
    for key, config in raw_plans.items():
        if not isinstance(config, Mapping):
            raise CatalogConfigurationError(f"Plan '{key}' must be configured with a mapping.")
        plans.append(
            PlanDefinition(
                id=key,
                name=str(config.get("name") or key.title()),
                monthly_credit_grant=_positive_int(
                    config.get("monthly_credits"), f"Plan '{key}' monthly_credits", allow_zero=True
                ),
                external_price_ref=_normalise_price_ref(config.get("price_id")),
                price_label=str(config.get("price_label") or ""),
                description=str(config.get("description") or ""),
            )
        )

    if not any(plan.id == FREE_PLAN_ID for plan in plans):
        raise CatalogConfigurationError("BILLING_PLANS must define the 'free' plan.")
    return tuple(plans)


def _build_packs(raw_packs: Mapping[str, object]) -> Tuple[CreditPackDefinition, ...]:
    packs = []
    for key, config in raw_packs.items():
        if not isinstance(config, Mapping):
            raise CatalogConfigurationError(f"Credit pack '{key}' must be configured with a mapping.")
        packs.append(
            CreditPackDefinition(
                id=key,
                credit_amount=_positive_int(config.get("credits"), f"Credit pack '{key}' credits"),
                external_price_ref=_normalise_price_ref(config.get("price_id")),
                price_label=str(config.get("price_label") or ""),
            )
        )
    return tuple(packs)


def _build_catalog() -> Catalog:
    plans = _build_plans(_get_mapping("BILLING_PLANS"))
    packs = _build_packs(_get_mapping("BILLING_CREDIT_PACKS"))

    plans_by_price: Dict[str, PlanDefinition] = {}
    packs_by_price: Dict[str, CreditPackDefinition] = {}
    for plan in plans:
        if plan.external_price_ref:
            plans_by_price[plan.external_price_ref] = plan
    for pack in packs:
        if not pack.external_price_ref:
            continue
        if pack.external_price_ref in plans_by_price:
            raise CatalogConfigurationError(
                f"Price '{pack.external_price_ref}' is configured for both a plan and a credit pack."
            )
        packs_by_price[pack.external_price_ref] = pack

    unpriced = [plan.id for plan in plans if not plan.is_free and not plan.external_price_ref]
    unpriced += [pack.id for pack in packs if not pack.external_price_ref]
    if unpriced:
        logger.warning("Billing catalog entries without a Stripe price: %s", ", ".join(unpriced))

    return Catalog(plans=plans, credit_packs=packs, plans_by_price=plans_by_price, packs_by_price=packs_by_price)


_CATALOG: Optional[Catalog] = None


def get_catalog() -> Catalog:
    global _CATALOG
    if _CATALOG is None:
        _CATALOG = _build_catalog()
    return _CATALOG


def reset_catalog_cache(**kwargs) -> None:
    """Drop the cached catalog; wired to ``setting_changed``."""

    global _CATALOG
    setting = kwargs.get("setting")
    if setting is None or setting in CATALOG_SETTINGS:
        _CATALOG = None


def get_plans() -> Tuple[PlanDefinition, ...]:
    return get_catalog().plans


def get_credit_packs() -> Tuple[CreditPackDefinition, ...]:
    return get_catalog().credit_packs


def get_plan(plan_id: Optional[str]) -> Optional[PlanDefinition]:
    if not plan_id:
        return None
    for plan in get_catalog().plans:
        if plan.id == plan_id:
            return plan
    return None


def get_free_plan() -> PlanDefinition:
    plan = get_plan(FREE_PLAN_ID)
    if plan is None:  # pragma: no cover - enforced when the catalog is built
        raise CatalogConfigurationError("BILLING_PLANS must define the 'free' plan.")
    return plan


def resolve_plan_by_external_price(price_ref: Optional[str]) -> Optional[PlanDefinition]:
    """Return the plan whose recurring price is ``price_ref``, or ``None``."""

    if not price_ref:
        return None
    return get_catalog().plans_by_price.get(price_ref)


def resolve_pack_by_external_price(price_ref: Optional[str]) -> Optional[CreditPackDefinition]:
    """Return the credit pack sold at ``price_ref``, or ``None``."""

    if not price_ref:
        return None
    return get_catalog().packs_by_price.get(price_ref)


def resolve_checkout_mode(price_ref: Optional[str]) -> Optional[str]:
    """Stripe Checkout mode for a price: ``subscription`` for plans, ``payment`` for packs."""

    if resolve_plan_by_external_price(price_ref):
        return "subscription"
    if resolve_pack_by_external_price(price_ref):
        return "payment"
    return None


def allowed_price_refs() -> Tuple[str, ...]:
    catalog = get_catalog()
    return tuple(catalog.plans_by_price) + tuple(catalog.packs_by_price)
