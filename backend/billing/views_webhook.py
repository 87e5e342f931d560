"""Stripe webhook endpoint for billing events."""
from __future__ import annotations

import logging
from typing import Optional

from django.http import HttpResponse
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.models import WebhookEventLog
from billing.observability.metrics import WEBHOOK_EVENTS
from billing.services import webhook_log
from billing.services.events import is_supported_event
from billing.services.stripe_payments import (
    StripeConfigurationError,
    StripeServiceError,
    StripeWebhookSignatureError,
    parse_event,
)
from billing.tasks import process_stripe_event_async

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name="dispatch")
class StripeWebhookView(APIView):
    """Verify a Stripe delivery, log its receipt and hand it to the billing worker.

    Responds 202 once queued, 200 for deliveries that need no work (already
    handled, or an event type the reconciler does not act on) and 400 when
    the signature or payload is invalid so Stripe stops retrying.
    """

    authentication_classes = []
    permission_classes = []
    http_method_names = ["post"]

    def post(self, request, *args, **kwargs):
        payload = self._decode_payload(request.body)
        if payload is None:
            logger.error("Stripe webhook body is not valid UTF-8.")
            return HttpResponse(status=400)

        try:
            event = parse_event(payload=payload, sig_header=request.headers.get("Stripe-Signature") or "")
        except StripeWebhookSignatureError:
            return HttpResponse(status=400)
        except StripeConfigurationError as exc:
            logger.error("Stripe webhook configuration error: %s", exc)
            return HttpResponse(status=500)
        except StripeServiceError as exc:
            logger.warning("Rejected malformed Stripe webhook payload: %s", exc)
            return HttpResponse(status=400)

        event_id = event.get("id")
        event_type = event.get("type") or ""
        if not event_id:
            logger.warning("Stripe event of type %s has no id; it cannot be deduplicated.", event_type)

        log_entry, already_handled = webhook_log.reserve(
            event_id,
            event_type,
            webhook_log.hash_payload(event),
            status=WebhookEventLog.Status.RECEIVED,
        )
        if already_handled:
            logger.info("Stripe event %s (%s) already handled: %s.", event_id, event_type, log_entry.status)
            return Response({"status": log_entry.status}, status=200)

        if not is_supported_event(event_type):
            webhook_log.mark_completed(log_entry, WebhookEventLog.Status.IGNORED, detail="Unhandled event type.")
            WEBHOOK_EVENTS.labels(event_type=event_type, outcome="ignored").inc()
            return Response({"status": WebhookEventLog.Status.IGNORED}, status=200)

        process_stripe_event_async.delay(event)
        logger.info("Queued Stripe event %s (%s).", event_id, event_type)
        return Response({"status": "queued"}, status=202)

    @staticmethod
    def _decode_payload(body: bytes) -> Optional[str]:
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError:
            return None
