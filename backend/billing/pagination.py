"""Pagination for ledger and generation attempt listings."""
from __future__ import annotations

from django.conf import settings
from rest_framework.pagination import PageNumberPagination


class BoundedPageNumberPagination(PageNumberPagination):
    """Page-number pagination whose ``page_size`` query parameter is capped.

    Defaults come from ``BILLING_PAGE_SIZE`` and ``BILLING_MAX_PAGE_SIZE``.
    """

    page_size_query_param = "page_size"

    def __init__(self):
        self.page_size = int(getattr(settings, "BILLING_PAGE_SIZE", 20))
        self.max_page_size = int(getattr(settings, "BILLING_MAX_PAGE_SIZE", 100))
