"""Billing API views for credit balances, the catalog, checkout and the customer portal."""
from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.models import CreditAccount
from billing.serializers import (
    CheckoutRequestSerializer,
    CreditAccountSerializer,
    CreditLedgerEntrySerializer,
    CreditPackDefinitionSerializer,
    PlanDefinitionSerializer,
)
from billing.services.catalog import get_credit_packs, get_plans
from billing.services.credits import get_credit_service
from billing.services.stripe_payments import (
    StripeConfigurationError,
    StripeServiceError,
    create_checkout_session,
    create_portal_session,
)

logger = logging.getLogger(__name__)

RECENT_ENTRY_COUNT = 10


def get_credit_account(user) -> CreditAccount:
    """Return the user's credit account, provisioning it if the signup hook never ran."""

    account = CreditAccount.objects.filter(user=user).first()
    if account is None:
        account = get_credit_service().open_account(user)
    return account


class CreditBalanceView(APIView):
    """Current balance, plan and most recent ledger entries for the caller."""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        account = get_credit_account(request.user)
        recent = get_credit_service().list_recent(account.id, limit=RECENT_ENTRY_COUNT)
        return Response(
            {
                "account": CreditAccountSerializer(account).data,
                "recent_entries": CreditLedgerEntrySerializer(recent, many=True).data,
            }
        )


class BillingCatalogView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(
            {
                "plans": PlanDefinitionSerializer(get_plans(), many=True).data,
                "credit_packs": CreditPackDefinitionSerializer(get_credit_packs(), many=True).data,
            }
        )


class CheckoutSessionView(APIView):
    """Start a Stripe Checkout for a plan subscription or a credit pack."""

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        account = get_credit_account(request.user)

        try:
            session_info = create_checkout_session(
                account=account,
                user=request.user,
                price_ref=serializer.validated_data["price_id"],
            )
        except (StripeConfigurationError, StripeServiceError) as exc:
            logger.warning("Unable to create Stripe checkout session: %s", exc)
            return Response({"detail": str(exc)}, status=status.HTTP_502_BAD_GATEWAY)

        return Response(
            {
                "checkout_session_id": session_info.get("id"),
                "checkout_url": session_info.get("url"),
                "mode": session_info.get("mode"),
            },
            status=status.HTTP_201_CREATED,
        )


class CustomerPortalView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        account = get_credit_account(request.user)
        try:
            session_info = create_portal_session(account=account, user=request.user)
        except (StripeConfigurationError, StripeServiceError) as exc:
            logger.warning("Unable to create Stripe portal session: %s", exc)
            return Response({"detail": str(exc)}, status=status.HTTP_502_BAD_GATEWAY)

        return Response({"portal_url": session_info.get("url")}, status=status.HTTP_201_CREATED)
