import uuid

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import billing.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="CreditAccount",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("plan", models.CharField(default="free", help_text="Current plan tier identifier (free, starter, pro, ...)", max_length=32)),
                ("credit_balance", models.IntegerField(default=billing.models._default_signup_credits, help_text="Current available credit balance", validators=[django.core.validators.MinValueValidator(0)])),
                ("monthly_credit_grant", models.IntegerField(default=billing.models._default_monthly_grant, help_text="Monthly credit grant last applied for the current plan", validators=[django.core.validators.MinValueValidator(0)])),
                ("stripe_customer_id", models.CharField(blank=True, help_text="Stripe customer identifier, created on first billing interaction", max_length=255, null=True)),
                ("stripe_subscription_id", models.CharField(blank=True, help_text="Active Stripe subscription identifier, cleared when it ends", max_length=255, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.OneToOneField(help_text="User owning this credit account", on_delete=django.db.models.deletion.CASCADE, related_name="credit_account", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Credit account",
                "verbose_name_plural": "Credit accounts",
                "db_table": "billing_credit_account",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(credit_balance__gte=0), name="credit_account_balance_non_negative"),
                    models.UniqueConstraint(condition=models.Q(stripe_customer_id__isnull=False), fields=["stripe_customer_id"], name="unique_credit_account_stripe_customer"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CreditLedgerEntry",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sequence", models.PositiveIntegerField(help_text="Per-account position of this entry in creation order")),
                ("amount", models.IntegerField(help_text="Signed credit amount; positive for grants, negative for spends")),
                ("reason", models.CharField(choices=[("signup_grant", "Signup grant"), ("subscription_start", "Subscription start"), ("subscription_renewal", "Subscription renewal"), ("subscription_change", "Subscription change"), ("credit_pack_purchase", "Credit pack purchase"), ("asset_generation", "Asset generation"), ("asset_refinement", "Asset refinement"), ("style_generation", "Style generation"), ("manual_adjustment", "Manual adjustment")], help_text="Categorisation of the credit movement", max_length=32)),
                ("reference_id", models.CharField(blank=True, help_text="External correlation id guarding against duplicate application", max_length=255, null=True)),
                ("balance_after", models.IntegerField(help_text="Account balance immediately after this entry was applied", validators=[django.core.validators.MinValueValidator(0)])),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("account", models.ForeignKey(help_text="Credit account affected by this entry", on_delete=django.db.models.deletion.CASCADE, related_name="ledger_entries", to="billing.creditaccount")),
            ],
            options={
                "verbose_name": "Credit ledger entry",
                "verbose_name_plural": "Credit ledger entries",
                "db_table": "billing_credit_ledger_entry",
                "ordering": ["-sequence"],
                "indexes": [
                    models.Index(fields=["account", "created_at"], name="credit_ledger_account_ts_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=~models.Q(amount=0), name="credit_ledger_entry_non_zero"),
                    models.UniqueConstraint(fields=["account", "sequence"], name="unique_credit_ledger_entry_sequence"),
                    models.UniqueConstraint(condition=models.Q(reference_id__isnull=False), fields=["account", "reference_id"], name="unique_credit_ledger_entry_reference"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEventLog",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("event_id", models.CharField(max_length=255, unique=True)),
                ("payload_hash", models.CharField(blank=True, help_text="SHA256 of the raw payload for drift detection.", max_length=64)),
                ("event_type", models.CharField(blank=True, max_length=255)),
                ("status", models.CharField(choices=[("received", "Received"), ("processing", "Processing"), ("processed", "Processed"), ("ignored", "Ignored"), ("failed", "Failed")], default="received", max_length=20)),
                ("detail", models.TextField(blank=True)),
                ("last_error", models.TextField(blank=True)),
                ("handled", models.BooleanField(default=False, help_text="True once the event has been fully processed.")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("account", models.ForeignKey(blank=True, help_text="Credit account resolved for this event when available.", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="webhook_events", to="billing.creditaccount")),
            ],
            options={
                "verbose_name": "Webhook event log",
                "verbose_name_plural": "Webhook event logs",
                "db_table": "billing_webhook_event_log",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status"], name="webhook_event_status_idx"),
                    models.Index(fields=["event_type"], name="webhook_event_type_idx"),
                ],
            },
        ),
    ]
