"""Billing models for credit accounting, the credit ledger, and webhook logging."""
import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q


def _default_signup_credits() -> int:
    """Resolve the opening balance for new accounts from settings."""
    return int(getattr(settings, "DEFAULT_SIGNUP_CREDITS", 50))


def _default_monthly_grant() -> int:
    """Resolve the free plan's monthly grant from settings."""
    plans = getattr(settings, "BILLING_PLANS", {}) or {}
    return int((plans.get("free") or {}).get("monthly_credits", 50))


class CreditAccount(models.Model):
    """Stores the credit balance, plan tier and Stripe linkage for one user."""

    DEFAULT_PLAN = "free"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="credit_account",
        help_text="User owning this credit account",
    )
    plan = models.CharField(
        max_length=32,
        default=DEFAULT_PLAN,
        help_text="Current plan tier identifier (free, starter, pro, ...)",
    )
    credit_balance = models.IntegerField(
        default=_default_signup_credits,
        validators=[MinValueValidator(0)],
        help_text="Current available credit balance",
    )
    monthly_credit_grant = models.IntegerField(
        default=_default_monthly_grant,
        validators=[MinValueValidator(0)],
        help_text="Monthly credit grant last applied for the current plan",
    )
    stripe_customer_id = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        help_text="Stripe customer identifier, created on first billing interaction",
    )
    stripe_subscription_id = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        help_text="Active Stripe subscription identifier, cleared when it ends",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "billing_credit_account"
        verbose_name = "Credit account"
        verbose_name_plural = "Credit accounts"
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(credit_balance__gte=0),
                name="credit_account_balance_non_negative",
            ),
            models.UniqueConstraint(
                fields=["stripe_customer_id"],
                condition=Q(stripe_customer_id__isnull=False),
                name="unique_credit_account_stripe_customer",
            ),
        ]

    def clean(self):
        super().clean()
        if self.credit_balance is not None and self.credit_balance < 0:
            raise ValidationError("CreditAccount balance cannot be negative.")

    def __str__(self):
        return f"CreditAccount<{self.user_id}:{self.plan}:{self.credit_balance}>"


class CreditLedgerEntry(models.Model):
    """Immutable audit trail for all credit balance changes."""

    class Reason(models.TextChoices):
        SIGNUP_GRANT = "signup_grant", "Signup grant"
        SUBSCRIPTION_START = "subscription_start", "Subscription start"
        SUBSCRIPTION_RENEWAL = "subscription_renewal", "Subscription renewal"
        SUBSCRIPTION_CHANGE = "subscription_change", "Subscription change"
        CREDIT_PACK_PURCHASE = "credit_pack_purchase", "Credit pack purchase"
        ASSET_GENERATION = "asset_generation", "Asset generation"
        ASSET_REFINEMENT = "asset_refinement", "Asset refinement"
        STYLE_GENERATION = "style_generation", "Style generation"
        MANUAL_ADJUSTMENT = "manual_adjustment", "Manual adjustment"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    account = models.ForeignKey(
        CreditAccount,
        on_delete=models.CASCADE,
        related_name="ledger_entries",
        help_text="Credit account affected by this entry",
    )
    sequence = models.PositiveIntegerField(
        help_text="Per-account position of this entry in creation order",
    )
    amount = models.IntegerField(
        help_text="Signed credit amount; positive for grants, negative for spends",
    )
    reason = models.CharField(
        max_length=32,
        choices=Reason.choices,
        help_text="Categorisation of the credit movement",
    )
    reference_id = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        help_text="External correlation id guarding against duplicate application",
    )
    balance_after = models.IntegerField(
        validators=[MinValueValidator(0)],
        help_text="Account balance immediately after this entry was applied",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "billing_credit_ledger_entry"
        verbose_name = "Credit ledger entry"
        verbose_name_plural = "Credit ledger entries"
        ordering = ["-sequence"]
        constraints = [
            models.CheckConstraint(condition=~Q(amount=0), name="credit_ledger_entry_non_zero"),
            models.UniqueConstraint(
                fields=["account", "sequence"],
                name="unique_credit_ledger_entry_sequence",
            ),
            models.UniqueConstraint(
                fields=["account", "reference_id"],
                condition=Q(reference_id__isnull=False),
                name="unique_credit_ledger_entry_reference",
            ),
        ]
        indexes = [
            models.Index(fields=["account", "created_at"], name="credit_ledger_account_ts_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("CreditLedgerEntry records are immutable and cannot be updated.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("CreditLedgerEntry records are immutable and cannot be deleted.")

    def __str__(self):
        return f"CreditLedgerEntry<{self.reason}:{self.amount} for {self.account_id}>"


class AppliedBillingReference(models.Model):
    """Reference id consumed by a balance reset that resolved to a zero delta.

    Such a reset writes no ledger entry, so the reference is recorded here to
    keep a later redelivery from applying it again.
    """

    id = models.BigAutoField(primary_key=True)
    account = models.ForeignKey(
        CreditAccount,
        on_delete=models.CASCADE,
        related_name="applied_references",
        help_text="Credit account the reference was applied to",
    )
    reference_id = models.CharField(max_length=255)
    reason = models.CharField(max_length=32, choices=CreditLedgerEntry.Reason.choices)
    balance = models.IntegerField(
        validators=[MinValueValidator(0)],
        help_text="Account balance when the reference was applied",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "billing_applied_reference"
        verbose_name = "Applied billing reference"
        verbose_name_plural = "Applied billing references"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["account", "reference_id"],
                name="unique_applied_billing_reference",
            ),
        ]

    def __str__(self):
        return f"AppliedBillingReference<{self.reference_id} for {self.account_id}>"


class WebhookEventLog(models.Model):
    """Keeps track of received Stripe webhook events to guarantee idempotency."""

    class Status(models.TextChoices):
        RECEIVED = "received", "Received"
        PROCESSING = "processing", "Processing"
        PROCESSED = "processed", "Processed"
        IGNORED = "ignored", "Ignored"
        FAILED = "failed", "Failed"

    id = models.BigAutoField(primary_key=True)
    event_id = models.CharField(max_length=255, unique=True)
    payload_hash = models.CharField(
        max_length=64,
        blank=True,
        help_text="SHA256 of the raw payload for drift detection.",
    )
    event_type = models.CharField(max_length=255, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.RECEIVED,
    )
    detail = models.TextField(blank=True)
    last_error = models.TextField(blank=True)
    handled = models.BooleanField(
        default=False,
        help_text="True once the event has been fully processed.",
    )
    account = models.ForeignKey(
        CreditAccount,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="webhook_events",
        help_text="Credit account resolved for this event when available.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "billing_webhook_event_log"
        verbose_name = "Webhook event log"
        verbose_name_plural = "Webhook event logs"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="webhook_event_status_idx"),
            models.Index(fields=["event_type"], name="webhook_event_type_idx"),
        ]

    def __str__(self):
        return f"WebhookEventLog<{self.event_id}:{self.status}>"
