"""Credit accounting service: the only sanctioned way to move credit balances."""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from django.conf import settings

from billing.observability.logging import log_billing_event
from billing.observability.metrics import CREDIT_REJECTIONS, CREDITS_GRANTED, CREDITS_SPENT

from .catalog import FREE_PLAN_ID, get_free_plan, get_plan
from .ledger_store import UNSET, DjangoLedgerStore, InsufficientBalance, LedgerResult, LedgerStore


@dataclass(frozen=True)
class CreditCheck:
    ok: bool
    current_balance: int


def _require_positive_int(value, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{label} must be an integer.")
    if value <= 0:
        raise ValueError(f"{label} must be a positive integer.")
    return value


class CreditService:
    """Checks, spends, grants and resets credits through an injected ``LedgerStore``.

    ``check_sufficient`` is advisory only; ``spend`` is the authoritative
    rejection point because its balance check happens under the store's
    per-account lock.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    def open_account(self, user):
        """Provision the credit account for a newly registered user."""

        initial_balance = int(getattr(settings, "DEFAULT_SIGNUP_CREDITS", 50))
        free_plan = get_free_plan()
        account = self.store.open_account(
            user,
            plan=FREE_PLAN_ID,
            initial_balance=initial_balance,
            monthly_credit_grant=free_plan.monthly_credit_grant,
        )
        return account

    def get_balance(self, account_id) -> int:
        return self.store.get_balance(account_id)

    def check_sufficient(self, account_id, required: int) -> CreditCheck:
        if isinstance(required, bool) or not isinstance(required, int) or required < 0:
            raise ValueError("Required credits must be a non-negative integer.")
        balance = self.store.get_balance(account_id)
        return CreditCheck(ok=balance >= required, current_balance=balance)

    def spend(self, account_id, amount: int, reason: str, reference_id: Optional[str] = None) -> LedgerResult:
        amount = _require_positive_int(amount, "Spend amount")
        try:
            result = self.store.apply_delta(account_id, -amount, reason, reference_id)
        except InsufficientBalance as exc:
            CREDIT_REJECTIONS.labels(reason=reason).inc()
            log_billing_event(
                message="credits.spend_rejected",
                account_id=str(account_id),
                extra={"amount": amount, "reason": reason, "current_balance": exc.current_balance},
                level=logging.WARNING,
            )
            raise

        if result.created:
            CREDITS_SPENT.labels(reason=reason).inc(amount)
        else:
            self._log_duplicate(result, reason, reference_id)
        return result

    def grant(self, account_id, amount: int, reason: str, reference_id: Optional[str] = None) -> LedgerResult:
        amount = _require_positive_int(amount, "Grant amount")
        result = self.store.apply_delta(account_id, amount, reason, reference_id)
        if result.created:
            CREDITS_GRANTED.labels(reason=reason).inc(amount)
        else:
            self._log_duplicate(result, reason, reference_id)
        return result

    def set_monthly_allowance(
        self,
        account_id,
        plan_id: str,
        target_balance: int,
        reason: str,
        reference_id: Optional[str] = None,
    ) -> LedgerResult:
        """Reset the balance to ``target_balance`` (absolute, not additive).

        The delta is computed under the store lock; a zero delta records no
        entry but still consumes ``reference_id``. ``target_balance`` is kept as
        the account's entitlement record.
        """

        if isinstance(target_balance, bool) or not isinstance(target_balance, int) or target_balance < 0:
            raise ValueError("Target balance must be a non-negative integer.")
        if get_plan(plan_id) is None:
            raise ValueError(f"Unknown plan '{plan_id}'.")

        result = self.store.reset_balance(
            account_id,
            target_balance,
            reason,
            reference_id,
            monthly_credit_grant=target_balance,
        )
        if result.duplicate:
            self._log_duplicate(result, reason, reference_id)
        elif result.entry is not None and result.entry.amount > 0:
            CREDITS_GRANTED.labels(reason=reason).inc(result.entry.amount)

        log_billing_event(
            message="credits.monthly_allowance_set",
            account_id=str(account_id),
            extra={
                "plan": plan_id,
                "target_balance": target_balance,
                "reason": reason,
                "reference_id": reference_id,
                "changed": result.created,
            },
        )
        return result

    def assign_plan(self, account_id, plan_id: str, *, subscription_ref=UNSET, customer_ref=UNSET):
        if get_plan(plan_id) is None:
            raise ValueError(f"Unknown plan '{plan_id}'.")
        changed = self.store.assign_plan(
            account_id, plan_id, subscription_ref=subscription_ref, customer_ref=customer_ref
        )
        if changed:
            log_billing_event(
                message="credits.plan_assigned",
                account_id=str(account_id),
                extra={"plan": plan_id, "changed_fields": changed},
            )
        return changed

    def link_customer(self, account_id, customer_ref: str):
        """Cache the Stripe customer ref on the account without touching its plan."""

        return self.store.assign_plan(account_id, customer_ref=customer_ref)

    def resolve_account(self, *, user_ref=None, customer_ref: Optional[str] = None):
        return self.store.resolve_account(user_ref=user_ref, customer_ref=customer_ref)

    def list_recent(self, account_id, limit: int = 20, offset: int = 0):
        return self.store.list_recent(account_id, limit=limit, offset=offset)

    def audit(self, account_id):
        return self.store.audit(account_id)

    @staticmethod
    def _log_duplicate(result: LedgerResult, reason: str, reference_id: Optional[str]) -> None:
        log_billing_event(
            message="credits.duplicate_reference",
            account_id=str(result.account_id),
            extra={"reason": reason, "reference_id": reference_id, "balance_after": result.new_balance},
        )


def get_credit_service() -> CreditService:
    return CreditService(DjangoLedgerStore())
