"""DRF serializers for credit balances, the ledger, the catalog and checkout."""
from __future__ import annotations

from typing import Any, Dict

from django.utils.translation import gettext_lazy as _
from rest_framework import serializers

from billing.models import CreditAccount, CreditLedgerEntry
from billing.services.catalog import allowed_price_refs, resolve_checkout_mode


class CreditLedgerEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = CreditLedgerEntry
        fields = [
            "id",
            "sequence",
            "amount",
            "reason",
            "reference_id",
            "balance_after",
            "created_at",
        ]
        read_only_fields = fields


class CreditAccountSerializer(serializers.ModelSerializer):
    has_subscription = serializers.SerializerMethodField()

    class Meta:
        model = CreditAccount
        fields = [
            "id",
            "plan",
            "credit_balance",
            "monthly_credit_grant",
            "has_subscription",
            "updated_at",
        ]
        read_only_fields = fields

    def get_has_subscription(self, obj: CreditAccount) -> bool:
        return bool(obj.stripe_subscription_id)


class PlanDefinitionSerializer(serializers.Serializer):
    id = serializers.CharField()
    name = serializers.CharField()
    monthly_credit_grant = serializers.IntegerField()
    price_id = serializers.CharField(source="external_price_ref", allow_null=True)
    price_label = serializers.CharField()
    description = serializers.CharField()


class CreditPackDefinitionSerializer(serializers.Serializer):
    id = serializers.CharField()
    credit_amount = serializers.IntegerField()
    price_id = serializers.CharField(source="external_price_ref", allow_null=True)
    price_label = serializers.CharField()


class CheckoutRequestSerializer(serializers.Serializer):
    price_id = serializers.CharField()

    def validate_price_id(self, value: str) -> str:
        value = value.strip()
        if resolve_checkout_mode(value) is None:
            raise serializers.ValidationError(
                _("Unknown price. Allowed values: %(allowed)s") % {"allowed": ", ".join(allowed_price_refs())}
            )
        return value

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        attrs = super().validate(attrs)
        attrs["mode"] = resolve_checkout_mode(attrs["price_id"])
        return attrs
