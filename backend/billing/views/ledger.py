"""API endpoint exposing the caller's credit ledger."""
from __future__ import annotations

from rest_framework.permissions import IsAuthenticated
from rest_framework.viewsets import ReadOnlyModelViewSet

from billing.filters import CreditLedgerEntryFilter
from billing.models import CreditLedgerEntry
from billing.pagination import BoundedPageNumberPagination
from billing.serializers import CreditLedgerEntrySerializer


class CreditLedgerViewSet(ReadOnlyModelViewSet):
    serializer_class = CreditLedgerEntrySerializer
    permission_classes = [IsAuthenticated]
    pagination_class = BoundedPageNumberPagination
    filterset_class = CreditLedgerEntryFilter
    ordering_fields = ("sequence", "created_at", "amount")
    ordering = ("-sequence",)

    def get_queryset(self):
        return CreditLedgerEntry.objects.filter(account__user=self.request.user).order_by("-sequence")
