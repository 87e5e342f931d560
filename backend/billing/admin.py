from django.contrib import admin
from django.urls import reverse
from django.utils.html import format_html

from .models import AppliedBillingReference, CreditAccount, CreditLedgerEntry, WebhookEventLog


@admin.register(CreditAccount)
class CreditAccountAdmin(admin.ModelAdmin):
    """Expose credit balances, plans and Stripe linkage.

    Balances are read-only here; adjustments go through the credit service so
    every change leaves a ledger entry.
    """

    list_display = ("id", "user", "plan", "credit_balance", "monthly_credit_grant", "updated_at")
    search_fields = ("id", "user__username", "user__email", "stripe_customer_id", "stripe_subscription_id")
    list_filter = ("plan", "created_at")
    readonly_fields = (
        "id",
        "user",
        "credit_balance",
        "monthly_credit_grant",
        "stripe_customer_id",
        "stripe_subscription_id",
        "created_at",
        "updated_at",
    )
    ordering = ("-created_at",)
    list_select_related = ("user",)

    fieldsets = (
        ("Ownership", {"fields": ("id", "user")}),
        ("Plan", {"fields": ("plan", "monthly_credit_grant")}),
        ("Balance", {"fields": ("credit_balance",)}),
        ("Stripe", {"fields": ("stripe_customer_id", "stripe_subscription_id")}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    def has_add_permission(self, request):
        return False


@admin.register(CreditLedgerEntry)
class CreditLedgerEntryAdmin(admin.ModelAdmin):
    """Read-only audit trail for credit movements."""

    list_display = (
        "sequence",
        "account_link",
        "reason",
        "amount",
        "balance_after",
        "reference_id",
        "created_at",
    )
    search_fields = ("id", "account__id", "account__user__email", "reference_id")
    list_filter = ("reason", "created_at")
    readonly_fields = (
        "id",
        "account",
        "sequence",
        "amount",
        "reason",
        "reference_id",
        "balance_after",
        "created_at",
    )
    ordering = ("-created_at",)
    list_select_related = ("account",)

    @admin.display(description="Account")
    def account_link(self, obj):
        url = reverse("admin:billing_creditaccount_change", args=[obj.account.pk])
        return format_html('<a href="{}">{}</a>', url, obj.account_id)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(AppliedBillingReference)
class AppliedBillingReferenceAdmin(admin.ModelAdmin):
    list_display = ("reference_id", "account", "reason", "balance", "created_at")
    search_fields = ("reference_id", "account__id")
    list_filter = ("reason",)
    readonly_fields = ("account", "reference_id", "reason", "balance", "created_at")
    list_select_related = ("account",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(WebhookEventLog)
class WebhookEventLogAdmin(admin.ModelAdmin):
    """Monitor webhook processing progress and failures."""

    list_display = (
        "event_id",
        "event_type",
        "status",
        "handled",
        "account",
        "created_at",
        "processed_at",
        "last_error_short",
    )
    search_fields = ("event_id", "event_type", "account__id")
    list_filter = ("status", "handled", "created_at", "processed_at")
    readonly_fields = (
        "event_id",
        "event_type",
        "status",
        "detail",
        "payload_hash",
        "account",
        "created_at",
        "processed_at",
        "last_error",
    )
    ordering = ("-created_at",)

    fieldsets = (
        ("Event", {"fields": ("event_id", "event_type", "status", "handled", "detail")}),
        ("Idempotency", {"fields": ("payload_hash", "account")}),
        ("Processing", {"fields": ("last_error", "created_at", "processed_at")}),
    )

    @admin.display(description="Last Error")
    def last_error_short(self, obj):
        if not obj.last_error:
            return "-"
        snippet = obj.last_error.strip().splitlines()[0]
        if len(snippet) > 120:
            snippet = f"{snippet[:117]}..."
        return snippet
