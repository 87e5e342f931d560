"""Gate generation work on available credits and charge only for successful attempts."""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Dict, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from billing.models import CreditLedgerEntry
from billing.observability.logging import log_billing_event
from billing.observability.metrics import CREDIT_REJECTIONS, GENERATION_ATTEMPTS
from billing.services.credits import CreditService, get_credit_service
from billing.services.ledger_store import InsufficientBalance
from generation.models import GenerationAttempt

logger = logging.getLogger(__name__)

REASON_BY_KIND = {
    GenerationAttempt.KIND_STYLE: CreditLedgerEntry.Reason.STYLE_GENERATION,
    GenerationAttempt.KIND_ASSET: CreditLedgerEntry.Reason.ASSET_GENERATION,
    GenerationAttempt.KIND_ASSET_REFINEMENT: CreditLedgerEntry.Reason.ASSET_REFINEMENT,
}


class GenerationError(Exception):
    """Base exception for generation orchestration."""


class InsufficientCredits(GenerationError):
    """Raised when the account cannot cover the credits a generation needs."""

    def __init__(self, message: str, *, required: int, current_balance: Optional[int]):
        super().__init__(message)
        self.required = required
        self.current_balance = current_balance


class GenerationFailed(GenerationError):
    """Raised when the generation action itself failed; no credits were charged."""

    def __init__(self, message: str, *, attempt_id=None):
        super().__init__(message)
        self.attempt_id = attempt_id


class AttemptNotFound(GenerationError):
    pass


class AttemptAlreadyCompleted(GenerationError):
    pass


@dataclass(frozen=True)
class AttemptOutcome:
    succeeded: bool
    error_detail: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, metadata: Optional[Dict[str, Any]] = None) -> "AttemptOutcome":
        return cls(succeeded=True, metadata=metadata or {})

    @classmethod
    def failure(cls, error_detail: str, metadata: Optional[Dict[str, Any]] = None) -> "AttemptOutcome":
        return cls(succeeded=False, error_detail=error_detail, metadata=metadata or {})


@dataclass(frozen=True)
class GenerationRun:
    attempt: GenerationAttempt
    output: Any


class GenerationOrchestrator:
    """Wrap a generation action with a credit check, an attempt record and a spend.

    ``begin_attempt`` only checks the balance; nothing is charged until
    ``complete_attempt`` reports success, at which point the spend is keyed by
    the attempt id so it can never be charged twice. A concurrent spend can
    still win the race between the two steps, in which case the attempt is
    recorded as failed and ``InsufficientCredits`` is raised.
    """

    def __init__(self, credit_service: CreditService):
        self.credits = credit_service

    def begin_attempt(
        self,
        account_id,
        kind: str,
        credits_required: int,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        if kind not in REASON_BY_KIND:
            raise ValueError(f"Unknown generation kind {kind!r}.")
        if isinstance(credits_required, bool) or not isinstance(credits_required, int) or credits_required <= 0:
            raise ValueError("credits_required must be a positive integer.")

        check = self.credits.check_sufficient(account_id, credits_required)
        if not check.ok:
            CREDIT_REJECTIONS.labels(reason=REASON_BY_KIND[kind]).inc()
            log_billing_event(
                message="generation.rejected_insufficient_credits",
                account_id=str(account_id),
                extra={"kind": kind, "required": credits_required, "current_balance": check.current_balance},
                level=logging.WARNING,
            )
            raise InsufficientCredits(
                "Not enough credits to start generation.",
                required=credits_required,
                current_balance=check.current_balance,
            )

        attempt = GenerationAttempt.objects.create(
            account_id=account_id,
            kind=kind,
            credits_reserved=credits_required,
            metadata=metadata or {},
        )
        logger.info("Started %s generation attempt %s for account %s", kind, attempt.id, account_id)
        return attempt.id

    def complete_attempt(self, attempt_id, outcome: AttemptOutcome) -> GenerationAttempt:
        insufficient: Optional[InsufficientBalance] = None

        with transaction.atomic():
            attempt = self._lock_attempt(attempt_id)
            if not attempt.is_running:
                raise AttemptAlreadyCompleted(f"Generation attempt {attempt_id} is already {attempt.status}.")

            if outcome.metadata:
                attempt.metadata = {**(attempt.metadata or {}), **outcome.metadata}

            if not outcome.succeeded:
                self._finish(attempt, GenerationAttempt.STATUS_FAILED, outcome.error_detail or "Generation failed.")
            else:
                try:
                    result = self.credits.spend(
                        attempt.account_id,
                        attempt.credits_reserved,
                        REASON_BY_KIND[attempt.kind],
                        str(attempt.id),
                    )
                except InsufficientBalance as exc:
                    insufficient = exc
                    self._finish(
                        attempt,
                        GenerationAttempt.STATUS_FAILED,
                        "Insufficient credits when charging the completed generation.",
                    )
                else:
                    attempt.ledger_entry = result.entry
                    self._finish(attempt, GenerationAttempt.STATUS_SUCCEEDED)

        if insufficient is not None:
            raise InsufficientCredits(
                "Not enough credits to charge the completed generation.",
                required=attempt.credits_reserved,
                current_balance=insufficient.current_balance,
            ) from insufficient
        return attempt

    def run(
        self,
        account_id,
        kind: str,
        credits_required: int,
        action: Callable[[], Any],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> GenerationRun:
        """Begin an attempt, run ``action`` and complete the attempt from its outcome."""

        attempt_id = self.begin_attempt(account_id, kind, credits_required, metadata)
        try:
            output = action()
        except Exception as exc:
            detail = str(exc) or exc.__class__.__name__
            self.complete_attempt(attempt_id, AttemptOutcome.failure(detail))
            raise GenerationFailed(f"Generation failed: {detail}", attempt_id=attempt_id) from exc

        attempt = self.complete_attempt(attempt_id, AttemptOutcome.success())
        return GenerationRun(attempt=attempt, output=output)

    def _finish(self, attempt: GenerationAttempt, status: str, error_detail: str = "") -> None:
        now = timezone.now()
        attempt.status = status
        attempt.error_detail = error_detail
        attempt.completed_at = now
        attempt.duration_ms = max(int((now - attempt.started_at).total_seconds() * 1000), 0)
        attempt.save(
            update_fields=["status", "error_detail", "completed_at", "duration_ms", "ledger_entry", "metadata"]
        )
        GENERATION_ATTEMPTS.labels(kind=attempt.kind, status=status).inc()
        log_billing_event(
            message="generation.attempt_completed",
            account_id=str(attempt.account_id),
            extra={
                "attempt_id": str(attempt.id),
                "kind": attempt.kind,
                "status": status,
                "credits": attempt.credits_reserved,
                "duration_ms": attempt.duration_ms,
                "error": error_detail or None,
            },
        )

    @staticmethod
    def _lock_attempt(attempt_id) -> GenerationAttempt:
        try:
            return GenerationAttempt.objects.select_for_update().get(pk=attempt_id)
        except (GenerationAttempt.DoesNotExist, ValidationError, ValueError) as exc:
            raise AttemptNotFound(f"Generation attempt {attempt_id} does not exist.") from exc


def get_generation_orchestrator() -> GenerationOrchestrator:
    return GenerationOrchestrator(get_credit_service())
