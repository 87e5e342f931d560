"""Receipt log for Stripe webhook deliveries.

Stripe delivers at least once. The log row keyed by event id lets the webhook
view acknowledge an already-handled delivery without queueing it again, and
lets the worker skip an event another worker finished first. The credit
ledger's reference ids remain the authoritative guard; this log only saves
the work.
"""
from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping, Optional, Tuple

from django.db import transaction
from django.utils import timezone

from billing.models import WebhookEventLog


def hash_payload(event: Mapping[str, Any]) -> str:
    """SHA256 of the canonical JSON form of ``event``."""

    try:
        serialized = json.dumps(event, sort_keys=True, separators=(",", ":"))
    except TypeError:
        serialized = json.dumps(event, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def reserve(
    event_id: Optional[str],
    event_type: Optional[str],
    payload_hash: str,
    *,
    status: str,
) -> Tuple[Optional[WebhookEventLog], bool]:
    """Record that ``event_id`` reached ``status``.

    Returns ``(log_entry, already_handled)``. Events without an id cannot be
    tracked and yield ``(None, False)``.
    """

    if not event_id:
        return None, False

    with transaction.atomic():
        log_entry = WebhookEventLog.objects.select_for_update().filter(event_id=event_id).first()
        if log_entry is None:
            log_entry = WebhookEventLog.objects.create(
                event_id=event_id,
                event_type=event_type or "",
                status=status,
                payload_hash=payload_hash,
            )
            return log_entry, False

        if log_entry.handled:
            return log_entry, True

        log_entry.event_type = event_type or log_entry.event_type
        log_entry.status = status
        log_entry.last_error = ""
        log_entry.processed_at = None
        log_entry.payload_hash = payload_hash or log_entry.payload_hash
        log_entry.save(update_fields=["event_type", "status", "last_error", "processed_at", "payload_hash"])
        return log_entry, False


def mark_completed(
    log_entry: Optional[WebhookEventLog],
    status: str,
    *,
    detail: str = "",
    account_id=None,
) -> None:
    if log_entry is None:
        return

    log_entry.status = status
    log_entry.detail = detail
    log_entry.last_error = ""
    log_entry.processed_at = timezone.now()
    log_entry.handled = True
    update_fields = ["status", "detail", "last_error", "processed_at", "handled"]
    if account_id and log_entry.account_id != account_id:
        log_entry.account_id = account_id
        update_fields.append("account")
    log_entry.save(update_fields=update_fields)


def mark_failed(log_entry: Optional[WebhookEventLog], error: str) -> None:
    if log_entry is None:
        return

    log_entry.status = WebhookEventLog.Status.FAILED
    log_entry.last_error = error
    log_entry.processed_at = None
    log_entry.handled = False
    log_entry.save(update_fields=["status", "last_error", "processed_at", "handled"])
