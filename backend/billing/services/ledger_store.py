"""Credit ledger store: atomic balance mutation paired with append-only ledger entries."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Max

from billing.models import AppliedBillingReference, CreditAccount, CreditLedgerEntry
from billing.observability.logging import log_billing_event

UNSET: Any = object()


class LedgerError(Exception):
    """Base exception type for ledger issues."""


class AccountNotFound(LedgerError):
    """Raised when the target credit account cannot be located."""


class InsufficientBalance(LedgerError):
    """Raised when a debit would drive the credit balance below zero."""

    def __init__(self, message: str, *, account_id=None, required: Optional[int] = None,
                 current_balance: Optional[int] = None):
        super().__init__(message)
        self.account_id = account_id
        self.required = required
        self.current_balance = current_balance


@dataclass(frozen=True)
class LedgerResult:
    """Outcome of a balance mutation.

    ``created`` is False when nothing was written, either because the
    ``reference_id`` had already been applied (``duplicate``) or because an
    absolute reset resolved to a zero delta.
    """

    account_id: Any
    new_balance: int
    entry: Optional[Any]
    created: bool
    duplicate: bool = False


@dataclass(frozen=True)
class LedgerDrift:
    sequence: int
    expected_balance: int
    recorded_balance: int


@dataclass(frozen=True)
class LedgerAudit:
    account_id: Any
    entry_count: int
    ledger_sum: int
    current_balance: int
    drifts: Tuple[LedgerDrift, ...]

    @property
    def consistent(self) -> bool:
        return not self.drifts and self.ledger_sum == self.current_balance


class LedgerStore:
    """Storage contract used by the credit accounting service.

    Every mutating operation is a single all-or-nothing unit: the balance
    update and the ledger entry insert either both happen or neither does.
    """

    def get_account(self, account_id):
        raise NotImplementedError

    def get_balance(self, account_id) -> int:
        raise NotImplementedError

    def resolve_account(self, *, user_ref=None, customer_ref: Optional[str] = None):
        """Find an account by owning user id first, then by external customer ref."""
        raise NotImplementedError

    def open_account(self, user, *, plan: str, initial_balance: int, monthly_credit_grant: int):
        raise NotImplementedError

    def apply_delta(self, account_id, amount: int, reason: str, reference_id: Optional[str] = None) -> LedgerResult:
        raise NotImplementedError

    def reset_balance(
        self,
        account_id,
        target_balance: int,
        reason: str,
        reference_id: Optional[str] = None,
        *,
        monthly_credit_grant: Optional[int] = None,
    ) -> LedgerResult:
        raise NotImplementedError

    def assign_plan(self, account_id, plan=UNSET, *, subscription_ref=UNSET, customer_ref=UNSET) -> List[str]:
        raise NotImplementedError

    def find_by_reference(self, account_id, reference_id: str):
        raise NotImplementedError

    def list_recent(self, account_id, limit: int = 20, offset: int = 0) -> list:
        raise NotImplementedError

    def audit(self, account_id) -> LedgerAudit:
        raise NotImplementedError


def replay_entries(account_id, entries, current_balance: int) -> LedgerAudit:
    """Rebuild the running balance from ``entries`` (creation order) and report drift."""

    running = 0
    count = 0
    drifts: List[LedgerDrift] = []
    for entry in entries:
        running += entry.amount
        count += 1
        if entry.balance_after != running:
            drifts.append(
                LedgerDrift(
                    sequence=entry.sequence,
                    expected_balance=running,
                    recorded_balance=entry.balance_after,
                )
            )
    return LedgerAudit(
        account_id=account_id,
        entry_count=count,
        ledger_sum=running,
        current_balance=current_balance,
        drifts=tuple(drifts),
    )


class DjangoLedgerStore(LedgerStore):
    """Ledger store backed by the ``CreditAccount``/``CreditLedgerEntry`` tables.

    Concurrent mutations against one account serialise on the account row via
    ``SELECT ... FOR UPDATE``; the balance check and the write happen under
    that lock inside one transaction.
    """

    def get_account(self, account_id) -> CreditAccount:
        try:
            return CreditAccount.objects.get(pk=account_id)
        except (CreditAccount.DoesNotExist, ValidationError, ValueError) as exc:
            raise AccountNotFound(f"Credit account {account_id} does not exist.") from exc

    def get_balance(self, account_id) -> int:
        try:
            return CreditAccount.objects.values_list("credit_balance", flat=True).get(pk=account_id)
        except (CreditAccount.DoesNotExist, ValidationError, ValueError) as exc:
            raise AccountNotFound(f"Credit account {account_id} does not exist.") from exc

    def resolve_account(self, *, user_ref=None, customer_ref: Optional[str] = None) -> Optional[CreditAccount]:
        if user_ref not in (None, ""):
            try:
                account = CreditAccount.objects.filter(user_id=user_ref).first()
            except (ValidationError, ValueError, TypeError):
                account = None
            if account is not None:
                return account
        if customer_ref:
            return CreditAccount.objects.filter(stripe_customer_id=customer_ref).first()
        return None

    def open_account(self, user, *, plan: str, initial_balance: int, monthly_credit_grant: int) -> CreditAccount:
        if initial_balance < 0:
            raise ValueError("Opening balance cannot be negative.")

        with transaction.atomic():
            account, created = CreditAccount.objects.get_or_create(
                user=user,
                defaults={
                    "plan": plan,
                    "credit_balance": initial_balance,
                    "monthly_credit_grant": monthly_credit_grant,
                },
            )
            if created and initial_balance > 0:
                CreditLedgerEntry.objects.create(
                    account=account,
                    sequence=1,
                    amount=initial_balance,
                    reason=CreditLedgerEntry.Reason.SIGNUP_GRANT,
                    balance_after=initial_balance,
                )
        return account

    def apply_delta(self, account_id, amount: int, reason: str, reference_id: Optional[str] = None) -> LedgerResult:
        if amount == 0:
            raise ValueError("Amount must be non-zero for ledger operations.")

        with transaction.atomic():
            account = self._lock_account(account_id)

            duplicate = self._duplicate_result(account, reference_id)
            if duplicate is not None:
                return duplicate

            new_balance = account.credit_balance + amount
            if new_balance < 0:
                raise InsufficientBalance(
                    "Credit balance is insufficient for the requested debit.",
                    account_id=account.id,
                    required=-amount,
                    current_balance=account.credit_balance,
                )

            entry = self._write_entry(account, amount, reason, reference_id, new_balance)
            return LedgerResult(account_id=account.id, new_balance=new_balance, entry=entry, created=True)

    def reset_balance(
        self,
        account_id,
        target_balance: int,
        reason: str,
        reference_id: Optional[str] = None,
        *,
        monthly_credit_grant: Optional[int] = None,
    ) -> LedgerResult:
        if target_balance < 0:
            raise ValueError("Target balance cannot be negative.")

        with transaction.atomic():
            account = self._lock_account(account_id)

            duplicate = self._duplicate_result(account, reference_id)
            if duplicate is not None:
                return duplicate

            extra_fields: List[str] = []
            if monthly_credit_grant is not None and account.monthly_credit_grant != monthly_credit_grant:
                account.monthly_credit_grant = monthly_credit_grant
                extra_fields.append("monthly_credit_grant")

            delta = target_balance - account.credit_balance
            if delta == 0:
                if extra_fields:
                    account.save(update_fields=extra_fields + ["updated_at"])
                if reference_id:
                    # No entry carries the reference, so record it separately
                    AppliedBillingReference.objects.create(
                        account=account,
                        reference_id=reference_id,
                        reason=reason,
                        balance=account.credit_balance,
                    )
                return LedgerResult(account_id=account.id, new_balance=account.credit_balance, entry=None, created=False)

            entry = self._write_entry(
                account, delta, reason, reference_id, target_balance, extra_fields=extra_fields
            )
            return LedgerResult(account_id=account.id, new_balance=target_balance, entry=entry, created=True)

    def assign_plan(self, account_id, plan=UNSET, *, subscription_ref=UNSET, customer_ref=UNSET) -> List[str]:
        with transaction.atomic():
            account = self._lock_account(account_id)
            updates = {}
            if plan is not UNSET:
                updates["plan"] = plan
            if subscription_ref is not UNSET:
                updates["stripe_subscription_id"] = subscription_ref or None
            if customer_ref is not UNSET and customer_ref:
                updates["stripe_customer_id"] = customer_ref

            changed: List[str] = []
            for field, value in updates.items():
                if getattr(account, field) != value:
                    setattr(account, field, value)
                    changed.append(field)
            if changed:
                account.save(update_fields=changed + ["updated_at"])
            return changed

    def find_by_reference(self, account_id, reference_id: str) -> Optional[CreditLedgerEntry]:
        if not reference_id:
            return None
        return CreditLedgerEntry.objects.filter(account_id=account_id, reference_id=reference_id).first()

    def list_recent(self, account_id, limit: int = 20, offset: int = 0) -> List[CreditLedgerEntry]:
        if limit <= 0:
            return []
        if not CreditAccount.objects.filter(pk=account_id).exists():
            raise AccountNotFound(f"Credit account {account_id} does not exist.")
        queryset = CreditLedgerEntry.objects.filter(account_id=account_id).order_by("-sequence")
        return list(queryset[offset:offset + limit])

    def audit(self, account_id) -> LedgerAudit:
        account = self.get_account(account_id)
        entries = CreditLedgerEntry.objects.filter(account=account).order_by("sequence").iterator()
        return replay_entries(account.id, entries, account.credit_balance)

    def _write_entry(
        self,
        account: CreditAccount,
        amount: int,
        reason: str,
        reference_id: Optional[str],
        new_balance: int,
        *,
        extra_fields: Optional[List[str]] = None,
    ) -> CreditLedgerEntry:
        account.credit_balance = new_balance
        account.save(update_fields=["credit_balance", "updated_at"] + list(extra_fields or []))

        last_sequence = account.ledger_entries.aggregate(last=Max("sequence"))["last"] or 0
        entry = CreditLedgerEntry.objects.create(
            account=account,
            sequence=last_sequence + 1,
            amount=amount,
            reason=reason,
            reference_id=reference_id or None,
            balance_after=new_balance,
        )

        log_billing_event(
            message="credit_ledger.entry_written",
            account_id=str(account.id),
            extra={
                "amount": amount,
                "reason": reason,
                "reference_id": reference_id,
                "balance_after": new_balance,
                "sequence": entry.sequence,
            },
        )
        return entry

    def _duplicate_result(self, account: CreditAccount, reference_id: Optional[str]) -> Optional[LedgerResult]:
        """Return the outcome of an earlier application of ``reference_id``, if any.

        Must be called with the account row locked.
        """

        if not reference_id:
            return None

        existing = self.find_by_reference(account.id, reference_id)
        if existing is not None:
            return LedgerResult(
                account_id=account.id,
                new_balance=existing.balance_after,
                entry=existing,
                created=False,
                duplicate=True,
            )

        applied = AppliedBillingReference.objects.filter(account=account, reference_id=reference_id).first()
        if applied is not None:
            return LedgerResult(
                account_id=account.id,
                new_balance=applied.balance,
                entry=None,
                created=False,
                duplicate=True,
            )
        return None

    @staticmethod
    def _lock_account(account_id) -> CreditAccount:
        try:
            return CreditAccount.objects.select_for_update().get(pk=account_id)
        except (CreditAccount.DoesNotExist, ValidationError, ValueError) as exc:
            raise AccountNotFound(f"Credit account {account_id} does not exist.") from exc
