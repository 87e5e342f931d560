"""FilterSet definitions for billing endpoints."""
from __future__ import annotations

import django_filters

from billing.models import CreditLedgerEntry


class CreditLedgerEntryFilter(django_filters.FilterSet):
    reason = django_filters.ChoiceFilter(field_name="reason", choices=CreditLedgerEntry.Reason.choices)
    reference_id = django_filters.CharFilter(field_name="reference_id", lookup_expr="exact")
    created_after = django_filters.DateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_before = django_filters.DateTimeFilter(field_name="created_at", lookup_expr="lte")
    direction = django_filters.ChoiceFilter(
        method="filter_direction",
        choices=(("credit", "credit"), ("debit", "debit")),
    )

    class Meta:
        model = CreditLedgerEntry
        fields = ["reason", "reference_id"]

    def filter_direction(self, queryset, name, value):
        if value == "credit":
            return queryset.filter(amount__gt=0)
        if value == "debit":
            return queryset.filter(amount__lt=0)
        return queryset
