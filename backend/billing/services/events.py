"""Typed billing events decoded from Stripe webhook payloads."""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
INVOICE_PAID = "invoice.paid"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"


@dataclass(frozen=True)
class CheckoutCompleted:
    event_id: str
    session_id: str
    mode: str
    customer_ref: Optional[str] = None
    user_ref: Optional[str] = None
    price_ref: Optional[str] = None
    subscription_ref: Optional[str] = None


@dataclass(frozen=True)
class InvoicePaid:
    event_id: str
    invoice_id: str
    customer_ref: Optional[str] = None
    price_ref: Optional[str] = None
    subscription_ref: Optional[str] = None


@dataclass(frozen=True)
class SubscriptionUpdated:
    event_id: str
    subscription_id: str
    status: str
    customer_ref: Optional[str] = None
    price_ref: Optional[str] = None


@dataclass(frozen=True)
class SubscriptionDeleted:
    event_id: str
    subscription_id: str
    customer_ref: Optional[str] = None


BillingEvent = Union[CheckoutCompleted, InvoicePaid, SubscriptionUpdated, SubscriptionDeleted]


def _ref(value: Any) -> Optional[str]:
    """Stripe expands references to objects on demand; accept either form."""

    if isinstance(value, Mapping):
        value = value.get("id")
    if value in (None, ""):
        return None
    return str(value)


def _first_item_price(container: Mapping[str, Any]) -> Optional[str]:
    items = (container or {}).get("data") or []
    if not items:
        return None
    item = items[0] or {}
    price = _ref(item.get("price"))
    if price:
        return price
    # Invoice lines on newer API versions nest the price under ``pricing``
    details = (item.get("pricing") or {}).get("price_details") or {}
    return _ref(details.get("price"))


def _checkout_completed(event_id: str, obj: Mapping[str, Any]) -> CheckoutCompleted:
    metadata = obj.get("metadata") or {}
    return CheckoutCompleted(
        event_id=event_id,
        session_id=str(obj.get("id") or ""),
        mode=str(obj.get("mode") or ""),
        customer_ref=_ref(obj.get("customer")),
        user_ref=_ref(metadata.get("user_id") or obj.get("client_reference_id")),
        price_ref=_ref(metadata.get("price_id")) or _first_item_price(obj.get("line_items") or {}),
        subscription_ref=_ref(obj.get("subscription")),
    )


def _invoice_paid(event_id: str, obj: Mapping[str, Any]) -> InvoicePaid:
    subscription_ref = _ref(obj.get("subscription"))
    if subscription_ref is None:
        parent = (obj.get("parent") or {}).get("subscription_details") or {}
        subscription_ref = _ref(parent.get("subscription"))
    return InvoicePaid(
        event_id=event_id,
        invoice_id=str(obj.get("id") or ""),
        customer_ref=_ref(obj.get("customer")),
        price_ref=_first_item_price(obj.get("lines") or {}),
        subscription_ref=subscription_ref,
    )


def _subscription_updated(event_id: str, obj: Mapping[str, Any]) -> SubscriptionUpdated:
    return SubscriptionUpdated(
        event_id=event_id,
        subscription_id=str(obj.get("id") or ""),
        status=str(obj.get("status") or ""),
        customer_ref=_ref(obj.get("customer")),
        price_ref=_first_item_price(obj.get("items") or {}),
    )


def _subscription_deleted(event_id: str, obj: Mapping[str, Any]) -> SubscriptionDeleted:
    return SubscriptionDeleted(
        event_id=event_id,
        subscription_id=str(obj.get("id") or ""),
        customer_ref=_ref(obj.get("customer")),
    )


_PARSERS: Dict[str, Callable[[str, Mapping[str, Any]], BillingEvent]] = {
    CHECKOUT_COMPLETED: _checkout_completed,
    INVOICE_PAID: _invoice_paid,
    SUBSCRIPTION_UPDATED: _subscription_updated,
    SUBSCRIPTION_DELETED: _subscription_deleted,
}


def parse_billing_event(payload: Mapping[str, Any]) -> Optional[BillingEvent]:
    """Decode a Stripe event dictionary; unhandled event types yield ``None``."""

    event_type = payload.get("type")
    parser = _PARSERS.get(event_type)
    if parser is None:
        logger.debug("Ignoring unhandled Stripe event type %s", event_type)
        return None

    event_id = str(payload.get("id") or "")
    obj = (payload.get("data") or {}).get("object") or {}
    return parser(event_id, obj)


def is_supported_event(event_type: Optional[str]) -> bool:
    return event_type in _PARSERS
