"""Prometheus metrics helpers for the credit ledger, billing webhooks and generation."""
from __future__ import annotations

from prometheus_client import Counter

CREDITS_SPENT = Counter(
    "billing_credits_spent",
    "Credits debited from accounts",
    labelnames=("reason",),
)

CREDITS_GRANTED = Counter(
    "billing_credits_granted",
    "Credits added to accounts by grants and allowance resets",
    labelnames=("reason",),
)

CREDIT_REJECTIONS = Counter(
    "billing_credit_rejections",
    "Spend or generation requests rejected for insufficient credits",
    labelnames=("reason",),
)

WEBHOOK_EVENTS = Counter(
    "billing_webhook_events",
    "Stripe webhook events by type and reconciliation outcome",
    labelnames=("event_type", "outcome"),
)

GENERATION_ATTEMPTS = Counter(
    "billing_generation_attempts",
    "Generation attempts by kind and terminal status",
    labelnames=("kind", "status"),
)
