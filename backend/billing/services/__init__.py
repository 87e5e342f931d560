"""Expose commonly used billing services."""

from .credits import CreditCheck, CreditService, get_credit_service
from .ledger_store import (
    AccountNotFound,
    DjangoLedgerStore,
    InsufficientBalance,
    LedgerAudit,
    LedgerError,
    LedgerResult,
    LedgerStore,
)
