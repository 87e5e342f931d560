import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="AppliedBillingReference",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("reference_id", models.CharField(max_length=255)),
                ("reason", models.CharField(choices=[("signup_grant", "Signup grant"), ("subscription_start", "Subscription start"), ("subscription_renewal", "Subscription renewal"), ("subscription_change", "Subscription change"), ("credit_pack_purchase", "Credit pack purchase"), ("asset_generation", "Asset generation"), ("asset_refinement", "Asset refinement"), ("style_generation", "Style generation"), ("manual_adjustment", "Manual adjustment")], max_length=32)),
                ("balance", models.IntegerField(help_text="Account balance when the reference was applied", validators=[django.core.validators.MinValueValidator(0)])),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("account", models.ForeignKey(help_text="Credit account the reference was applied to", on_delete=django.db.models.deletion.CASCADE, related_name="applied_references", to="billing.creditaccount")),
            ],
            options={
                "verbose_name": "Applied billing reference",
                "verbose_name_plural": "Applied billing references",
                "db_table": "billing_applied_reference",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=["account", "reference_id"], name="unique_applied_billing_reference"),
                ],
            },
        ),
    ]
