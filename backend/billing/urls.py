"""URL routes for billing endpoints."""
from django.urls import path

from .views import BillingCatalogView, CheckoutSessionView, CreditBalanceView, CustomerPortalView
from .views.ledger import CreditLedgerViewSet
from .views_webhook import StripeWebhookView

app_name = "billing"

urlpatterns = [
    path("credits/", CreditBalanceView.as_view(), name="credits"),
    path("ledger/", CreditLedgerViewSet.as_view({"get": "list"}), name="ledger"),
    path("catalog/", BillingCatalogView.as_view(), name="catalog"),
    path("checkout/", CheckoutSessionView.as_view(), name="checkout"),
    path("portal/", CustomerPortalView.as_view(), name="portal"),
    path("webhook/stripe/", StripeWebhookView.as_view(), name="stripe-webhook"),
]
