import uuid

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="GenerationAttempt",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "kind",
                    models.CharField(
                        choices=[("style", "Style"), ("asset", "Asset"), ("asset_refinement", "Asset refinement")],
                        max_length=32,
                    ),
                ),
                (
                    "credits_reserved",
                    models.PositiveIntegerField(
                        help_text="Credits charged if the attempt succeeds",
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("running", "Running"), ("succeeded", "Succeeded"), ("failed", "Failed")],
                        default="running",
                        max_length=20,
                    ),
                ),
                ("error_detail", models.TextField(blank=True, default="")),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("started_at", models.DateTimeField(auto_now_add=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("duration_ms", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="generation_attempts",
                        to="billing.creditaccount",
                    ),
                ),
                (
                    "ledger_entry",
                    models.ForeignKey(
                        blank=True,
                        help_text="Credit spend entry recorded for a successful attempt",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="generation_attempts",
                        to="billing.creditledgerentry",
                    ),
                ),
            ],
            options={
                "verbose_name": "Generation Attempt",
                "verbose_name_plural": "Generation Attempts",
                "db_table": "generation_attempts",
                "ordering": ["-started_at"],
                "indexes": [
                    models.Index(fields=["account", "status"], name="generation_account_status_idx"),
                ],
            },
        ),
    ]
