"""Celery tasks for Stripe billing event handling."""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict

from celery import shared_task
from django.db import IntegrityError, OperationalError

from billing.models import WebhookEventLog
from billing.observability.metrics import WEBHOOK_EVENTS
from billing.services import webhook_log
from billing.services.credits import get_credit_service
from billing.services.events import CheckoutCompleted, parse_billing_event
from billing.services.reconciler import PROCESSED, BillingReconciler
from billing.services.stripe_payments import (
    StripeConfigurationError,
    StripeServiceError,
    retrieve_checkout_price,
    retrieve_subscription,
    subscription_price,
)

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (IntegrityError, OperationalError, StripeServiceError)


@shared_task(bind=True, queue="billing", autoretry_for=RETRYABLE_ERRORS, retry_backoff=True, max_retries=5)
def process_stripe_event_async(self, event_data: Dict[str, Any]) -> Dict[str, Any]:
    """Reconcile one verified Stripe event against the credit ledger.

    Database and Stripe API errors are retried with backoff; the ledger's
    reference ids make a retried event safe to apply again.
    """

    event_id = event_data.get("id")
    event_type = event_data.get("type") or ""

    log_entry, already_handled = webhook_log.reserve(
        event_id,
        event_type,
        webhook_log.hash_payload(event_data),
        status=WebhookEventLog.Status.PROCESSING,
    )
    if already_handled:
        logger.info("Skipping Stripe event %s (%s); already %s.", event_id, event_type, log_entry.status)
        return {"status": "skipped"}

    event = parse_billing_event(event_data)
    if event is None:
        webhook_log.mark_completed(log_entry, WebhookEventLog.Status.IGNORED, detail="Unhandled event type.")
        WEBHOOK_EVENTS.labels(event_type=event_type, outcome="ignored").inc()
        return {"status": "ignored", "detail": "Unhandled event type."}

    try:
        event = _fill_checkout_price(event)
        result = BillingReconciler(get_credit_service()).reconcile(event)
    except RETRYABLE_ERRORS as exc:
        logger.warning("Retryable error processing Stripe event %s: %s", event_id, exc)
        webhook_log.mark_failed(log_entry, str(exc))
        WEBHOOK_EVENTS.labels(event_type=event_type, outcome="failed").inc()
        raise
    except StripeConfigurationError as exc:
        logger.error("Stripe is not configured; cannot process event %s: %s", event_id, exc)
        webhook_log.mark_failed(log_entry, str(exc))
        WEBHOOK_EVENTS.labels(event_type=event_type, outcome="failed").inc()
        return {"status": "failed", "detail": str(exc)}
    except Exception as exc:
        logger.exception("Unexpected error processing Stripe event %s", event_id)
        webhook_log.mark_failed(log_entry, str(exc))
        WEBHOOK_EVENTS.labels(event_type=event_type, outcome="failed").inc()
        raise self.retry(exc=exc)

    status = WebhookEventLog.Status.PROCESSED if result.status == PROCESSED else WebhookEventLog.Status.IGNORED
    webhook_log.mark_completed(log_entry, status, detail=result.detail, account_id=result.account_id)
    WEBHOOK_EVENTS.labels(event_type=event_type, outcome=result.status).inc()
    logger.info("Stripe event %s (%s) %s: %s", event_id, event_type, result.status, result.detail)
    return {"status": result.status, "detail": result.detail}


def _fill_checkout_price(event):
    """Checkout sessions opened outside our API carry no price metadata; ask Stripe for it."""

    if not isinstance(event, CheckoutCompleted) or event.price_ref:
        return event

    if event.mode == "subscription" and event.subscription_ref:
        price_ref = subscription_price(retrieve_subscription(event.subscription_ref))
    elif event.session_id:
        price_ref = retrieve_checkout_price(event.session_id)
    else:
        price_ref = None

    return dataclasses.replace(event, price_ref=price_ref)
