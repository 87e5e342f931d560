"""Stripe checkout, portal and webhook helpers used across the billing flows."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from django.conf import settings
import stripe

from .catalog import resolve_checkout_mode

logger = logging.getLogger(__name__)


class StripeConfigurationError(RuntimeError):
    """Raised when mandatory Stripe configuration is missing."""


class StripeServiceError(RuntimeError):
    """Raised when Stripe returns an operational error."""


class StripeWebhookSignatureError(StripeServiceError):
    """Raised when webhook signature validation fails."""


class UnknownPrice(ValueError):
    """Raised when a checkout is requested for a price outside the catalog."""


def _configure_stripe() -> None:
    secret_key = getattr(settings, "STRIPE_SECRET_KEY", "")
    if not secret_key:
        raise StripeConfigurationError("STRIPE_SECRET_KEY is not configured.")

    stripe.api_key = secret_key
    api_version = getattr(settings, "STRIPE_API_VERSION", None)
    if api_version:
        stripe.api_version = api_version


def _to_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return json.loads(str(obj))


def _build_public_url(path: str) -> str:
    base_url = getattr(settings, "BILLING_PUBLIC_BASE_URL", "")
    if not base_url:
        raise StripeConfigurationError("BILLING_PUBLIC_BASE_URL must be configured.")
    normalized_base = base_url if base_url.endswith("/") else f"{base_url}/"
    return urljoin(normalized_base, path.lstrip("/"))


def _append_query(url: str, params: Dict[str, Any]) -> str:
    """Append query parameters, preserving those already on ``url``."""

    split_url = urlsplit(url)
    existing_params = dict(parse_qsl(split_url.query, keep_blank_values=True))
    for key, value in params.items():
        if value in (None, ""):
            continue
        existing_params[key] = str(value)
    query = urlencode(existing_params, doseq=True)
    return urlunsplit((split_url.scheme, split_url.netloc, split_url.path, query, split_url.fragment))


def _stringify_metadata(values: Dict[str, Any]) -> Dict[str, str]:
    return {key: "" if value is None else str(value) for key, value in values.items()}


def get_or_create_customer(account, *, email: Optional[str]) -> str:
    """Return the account's Stripe customer id, creating the customer on first use."""

    if account.stripe_customer_id:
        return account.stripe_customer_id

    from billing.services.credits import get_credit_service  # Lazy import to avoid circular dependency

    _configure_stripe()
    try:
        customer = stripe.Customer.create(
            email=email,
            metadata=_stringify_metadata({"user_id": account.user_id, "account_id": account.id}),
        )
    except stripe.StripeError as exc:
        logger.warning("Failed to create Stripe customer for account %s: %s", account.id, exc)
        raise StripeServiceError(str(exc)) from exc

    customer_id = str(customer.get("id"))
    get_credit_service().link_customer(account.id, customer_id)
    account.stripe_customer_id = customer_id
    return customer_id


def create_checkout_session(
    *,
    account,
    user,
    price_ref: str,
    success_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a Stripe Checkout session for a plan subscription or a credit pack.

    The checkout mode follows the catalog: plan prices open a subscription,
    pack prices a one-off payment. ``user_id`` travels in the session metadata
    so the completed checkout can be matched back to the account.
    """

    mode = resolve_checkout_mode(price_ref)
    if mode is None:
        raise UnknownPrice(f"Price '{price_ref}' is not sold through checkout.")

    customer_id = get_or_create_customer(account, email=getattr(user, "email", None))
    metadata = _stringify_metadata({"user_id": user.pk, "account_id": account.id, "price_id": price_ref})

    session_kwargs: Dict[str, Any] = {
        "mode": mode,
        "customer": customer_id,
        "client_reference_id": str(user.pk),
        "line_items": [{"price": price_ref, "quantity": 1}],
        "metadata": metadata,
        "success_url": success_url or _append_query(_build_public_url("billing"), {"success": 1}),
        "cancel_url": cancel_url or _append_query(_build_public_url("billing"), {"canceled": 1}),
    }
    if mode == "subscription":
        session_kwargs["subscription_data"] = {"metadata": metadata}

    _configure_stripe()
    try:
        session = stripe.checkout.Session.create(**session_kwargs)
    except stripe.StripeError as exc:
        logger.warning("Stripe checkout session creation failed for account %s: %s", account.id, exc)
        raise StripeServiceError(str(exc)) from exc

    return {"id": session.get("id"), "url": session.get("url"), "mode": mode}


def create_portal_session(*, account, user, return_url: Optional[str] = None) -> Dict[str, Any]:
    """Create a Stripe customer portal session for managing the subscription."""

    customer_id = get_or_create_customer(account, email=getattr(user, "email", None))

    _configure_stripe()
    try:
        session = stripe.billing_portal.Session.create(
            customer=customer_id,
            return_url=return_url or _build_public_url("billing"),
        )
    except stripe.StripeError as exc:
        logger.warning("Stripe portal session creation failed for account %s: %s", account.id, exc)
        raise StripeServiceError(str(exc)) from exc

    return {"url": session.get("url")}


def parse_event(payload: str, sig_header: str, secret: Optional[str] = None) -> Dict[str, Any]:
    """Validate a Stripe webhook payload and return it as a plain dictionary."""

    if not sig_header:
        raise StripeWebhookSignatureError("Stripe-Signature header is missing.")

    webhook_secret = secret or getattr(settings, "STRIPE_WEBHOOK_SECRET", "")
    if not webhook_secret:
        raise StripeConfigurationError("STRIPE_WEBHOOK_SECRET is not configured.")

    try:
        stripe.Webhook.construct_event(payload=payload, sig_header=sig_header, secret=webhook_secret)
    except stripe.SignatureVerificationError as exc:
        logger.warning("Stripe webhook signature verification failed: %s", exc)
        raise StripeWebhookSignatureError("Stripe webhook signature verification failed.") from exc
    except ValueError as exc:
        logger.error("Received malformed Stripe webhook payload: %s", exc)
        raise StripeServiceError("Malformed Stripe webhook payload.") from exc

    return json.loads(payload)


def retrieve_subscription(subscription_id: str, *, expand: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """Fetch a Stripe subscription object as a plain dictionary."""

    if not subscription_id:
        raise ValueError("subscription_id is required.")

    _configure_stripe()

    kwargs: Dict[str, Any] = {}
    if expand:
        kwargs["expand"] = list(expand)

    try:
        subscription = stripe.Subscription.retrieve(subscription_id, **kwargs)
    except stripe.StripeError as exc:  # pragma: no cover - Stripe client passthrough
        logger.warning("Failed to retrieve Stripe subscription %s: %s", subscription_id, exc)
        raise StripeServiceError(str(exc)) from exc

    return _to_dict(subscription)


def retrieve_checkout_price(session_id: str) -> Optional[str]:
    """Return the price of the first line item of a completed checkout session."""

    if not session_id:
        raise ValueError("session_id is required.")

    _configure_stripe()
    try:
        line_items = stripe.checkout.Session.list_line_items(session_id, limit=1)
    except stripe.StripeError as exc:  # pragma: no cover - Stripe client passthrough
        logger.warning("Failed to list line items for checkout session %s: %s", session_id, exc)
        raise StripeServiceError(str(exc)) from exc

    items = _to_dict(line_items).get("data") or []
    if not items:
        return None
    return ((items[0] or {}).get("price") or {}).get("id")


def subscription_price(subscription: Dict[str, Any]) -> Optional[str]:
    items = ((subscription or {}).get("items") or {}).get("data") or []
    if not items:
        return None
    return ((items[0] or {}).get("price") or {}).get("id")
