"""Translate provider billing events into plan assignments and credit movements."""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, Dict, Optional

from django.db import transaction

from billing.models import CreditLedgerEntry
from billing.observability.logging import log_billing_event

from .catalog import (
    FREE_PLAN_ID,
    get_free_plan,
    resolve_pack_by_external_price,
    resolve_plan_by_external_price,
)
from .credits import CreditService
from .events import BillingEvent, CheckoutCompleted, InvoicePaid, SubscriptionDeleted, SubscriptionUpdated

logger = logging.getLogger(__name__)

PROCESSED = "processed"
IGNORED = "ignored"

ACTIVE_SUBSCRIPTION_STATUSES = frozenset({"active", "trialing"})
ENDED_SUBSCRIPTION_STATUSES = frozenset({"canceled", "incomplete_expired", "unpaid"})

Reason = CreditLedgerEntry.Reason


@dataclass(frozen=True)
class ReconcileResult:
    status: str
    detail: str = ""
    account_id: Optional[Any] = None

    @property
    def processed(self) -> bool:
        return self.status == PROCESSED


class BillingReconciler:
    """Apply typed billing events to credit accounts.

    Events that cannot be matched to an account, or that name a price outside
    the catalog, are ignored and logged rather than raised: the provider would
    otherwise keep redelivering an event no retry can fix. Each event is
    applied in one transaction so plan and balance changes commit together,
    and every balance write carries a reference id so redelivery is a no-op.
    """

    def __init__(self, credit_service: CreditService):
        self.credits = credit_service
        self._handlers: Dict[type, Callable[[Any], ReconcileResult]] = {
            CheckoutCompleted: self._handle_checkout_completed,
            InvoicePaid: self._handle_invoice_paid,
            SubscriptionUpdated: self._handle_subscription_updated,
            SubscriptionDeleted: self._handle_subscription_deleted,
        }

    def reconcile(self, event: BillingEvent) -> ReconcileResult:
        handler = self._handlers.get(type(event))
        if handler is None:
            return ReconcileResult(IGNORED, f"Unsupported billing event {type(event).__name__}.")

        with transaction.atomic():
            result = handler(event)

        log_billing_event(
            message="billing.event_reconciled",
            account_id=str(result.account_id) if result.account_id else None,
            extra={
                "event_id": getattr(event, "event_id", None),
                "event": type(event).__name__,
                "status": result.status,
                "detail": result.detail,
            },
            level=logging.INFO if result.processed else logging.WARNING,
        )
        return result

    def _resolve(self, *, user_ref=None, customer_ref=None):
        return self.credits.resolve_account(user_ref=user_ref, customer_ref=customer_ref)

    @staticmethod
    def _customer_update(account, customer_ref: Optional[str]) -> Dict[str, str]:
        # Only fill an empty customer ref; an existing link is never overwritten
        if customer_ref and not account.stripe_customer_id:
            return {"customer_ref": customer_ref}
        return {}

    def _handle_checkout_completed(self, event: CheckoutCompleted) -> ReconcileResult:
        account = self._resolve(user_ref=event.user_ref, customer_ref=event.customer_ref)
        if account is None:
            return ReconcileResult(IGNORED, f"No credit account for checkout session {event.session_id}.")

        if event.mode == "subscription":
            plan = resolve_plan_by_external_price(event.price_ref)
            if plan is None:
                return ReconcileResult(IGNORED, f"Unknown plan price {event.price_ref!r}.", account.id)

            self.credits.assign_plan(
                account.id,
                plan.id,
                subscription_ref=event.subscription_ref,
                **self._customer_update(account, event.customer_ref),
            )
            result = self.credits.set_monthly_allowance(
                account.id,
                plan.id,
                plan.monthly_credit_grant,
                Reason.SUBSCRIPTION_START,
                event.session_id,
            )
            return ReconcileResult(
                PROCESSED, f"Subscribed to {plan.id}; balance {result.new_balance}.", account.id
            )

        if event.mode == "payment":
            pack = resolve_pack_by_external_price(event.price_ref)
            if pack is None:
                return ReconcileResult(IGNORED, f"Unknown credit pack price {event.price_ref!r}.", account.id)

            customer_update = self._customer_update(account, event.customer_ref)
            if customer_update:
                self.credits.link_customer(account.id, customer_update["customer_ref"])
            result = self.credits.grant(
                account.id, pack.credit_amount, Reason.CREDIT_PACK_PURCHASE, event.session_id
            )
            return ReconcileResult(
                PROCESSED, f"Granted {pack.credit_amount} credits; balance {result.new_balance}.", account.id
            )

        return ReconcileResult(IGNORED, f"Unsupported checkout mode {event.mode!r}.", account.id)

    def _handle_invoice_paid(self, event: InvoicePaid) -> ReconcileResult:
        account = self._resolve(customer_ref=event.customer_ref)
        if account is None:
            return ReconcileResult(IGNORED, f"No credit account for customer {event.customer_ref!r}.")

        # Pack prices are credited on checkout completion; falling back to free
        # here would cancel the subscriber's plan on a one-off purchase
        if resolve_pack_by_external_price(event.price_ref) is not None:
            return ReconcileResult(IGNORED, "Invoice is for a one-off credit pack.", account.id)

        plan = resolve_plan_by_external_price(event.price_ref) or get_free_plan()
        self.credits.assign_plan(
            account.id,
            plan.id,
            subscription_ref=event.subscription_ref if not plan.is_free else None,
        )
        result = self.credits.set_monthly_allowance(
            account.id,
            plan.id,
            plan.monthly_credit_grant,
            Reason.SUBSCRIPTION_RENEWAL,
            event.invoice_id,
        )
        return ReconcileResult(PROCESSED, f"Renewed {plan.id}; balance {result.new_balance}.", account.id)

    def _handle_subscription_updated(self, event: SubscriptionUpdated) -> ReconcileResult:
        account = self._resolve(customer_ref=event.customer_ref)
        if account is None:
            return ReconcileResult(IGNORED, f"No credit account for customer {event.customer_ref!r}.")

        if event.status in ENDED_SUBSCRIPTION_STATUSES:
            return self._downgrade(account, event.subscription_id)

        if event.status not in ACTIVE_SUBSCRIPTION_STATUSES:
            return ReconcileResult(IGNORED, f"Subscription status {event.status!r} needs no action.", account.id)

        plan = resolve_plan_by_external_price(event.price_ref)
        if plan is None:
            return ReconcileResult(IGNORED, f"Unknown plan price {event.price_ref!r}.", account.id)

        self.credits.assign_plan(account.id, plan.id, subscription_ref=event.subscription_id)

        # Read after assign_plan so the entitlement is compared under the row lock
        account = self.credits.store.get_account(account.id)
        if account.monthly_credit_grant == plan.monthly_credit_grant:
            return ReconcileResult(PROCESSED, f"Plan {plan.id} unchanged; no re-grant.", account.id)

        result = self.credits.set_monthly_allowance(
            account.id,
            plan.id,
            plan.monthly_credit_grant,
            Reason.SUBSCRIPTION_CHANGE,
            event.event_id,
        )
        return ReconcileResult(PROCESSED, f"Changed to {plan.id}; balance {result.new_balance}.", account.id)

    def _handle_subscription_deleted(self, event: SubscriptionDeleted) -> ReconcileResult:
        account = self._resolve(customer_ref=event.customer_ref)
        if account is None:
            return ReconcileResult(IGNORED, f"No credit account for customer {event.customer_ref!r}.")
        return self._downgrade(account, event.subscription_id)

    def _downgrade(self, account, subscription_id: str) -> ReconcileResult:
        current = account.stripe_subscription_id
        if current and subscription_id and current != subscription_id:
            return ReconcileResult(
                IGNORED, f"Subscription {subscription_id} is not the account's current subscription.", account.id
            )

        self.credits.assign_plan(account.id, FREE_PLAN_ID, subscription_ref=None)
        return ReconcileResult(PROCESSED, "Downgraded to free; balance unchanged.", account.id)
