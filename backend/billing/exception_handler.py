"""DRF exception handler mapping credit and generation errors to HTTP responses."""
from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from billing.services.catalog import get_credit_packs
from billing.services.ledger_store import AccountNotFound, InsufficientBalance

logger = logging.getLogger(__name__)


def _top_up_packs():
    return [
        {
            "id": pack.id,
            "credits": pack.credit_amount,
            "price_id": pack.external_price_ref,
            "price_label": pack.price_label,
        }
        for pack in get_credit_packs()
    ]


def insufficient_credits_response(required, current_balance, detail=None) -> Response:
    return Response(
        {
            "error": "insufficient_credits",
            "detail": detail or "Not enough credits for this action.",
            "required": required,
            "current_balance": current_balance,
            "top_up_packs": _top_up_packs(),
        },
        status=status.HTTP_402_PAYMENT_REQUIRED,
    )


def billing_exception_handler(exc, context):
    from generation.services.orchestrator import (  # Lazy import to avoid circular dependency
        AttemptAlreadyCompleted,
        AttemptNotFound,
        GenerationFailed,
        InsufficientCredits,
    )

    if isinstance(exc, (InsufficientBalance, InsufficientCredits)):
        return insufficient_credits_response(exc.required, exc.current_balance)

    if isinstance(exc, (AccountNotFound, AttemptNotFound)):
        return Response({"error": "not_found", "detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)

    if isinstance(exc, AttemptAlreadyCompleted):
        return Response({"error": "attempt_completed", "detail": str(exc)}, status=status.HTTP_409_CONFLICT)

    if isinstance(exc, GenerationFailed):
        logger.warning("Generation attempt %s failed: %s", exc.attempt_id, exc)
        return Response(
            {
                "error": "generation_failed",
                "detail": str(exc),
                "attempt_id": str(exc.attempt_id) if exc.attempt_id else None,
                "retryable": True,
            },
            status=status.HTTP_502_BAD_GATEWAY,
        )

    return exception_handler(exc, context)
