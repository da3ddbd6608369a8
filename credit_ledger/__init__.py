"""
Credit Ledger for the admin dashboard

This package provides:
- An append-only log of top-ups and spends (no stored balance anywhere)
- Balances derived from the log, with an optional append-invalidated cache
- Dashboard aggregates over an optional date window, computed concurrently
- A deduplicated, searchable user directory
- Account registration with one account per email
"""

from .errors import (
    CorruptRecordError,
    DuplicateEmailError,
    LedgerError,
    StorageUnavailable,
    ValidationError,
)
from .models import (
    AdminContext,
    BalanceSummary,
    CreditTransaction,
    DashboardAggregate,
    NewTransaction,
    ReportingWindow,
    TransactionFilter,
    TransactionKind,
    UserAccount,
)
from .service import LedgerService
from .storage import InMemoryStorage, StorageBackend

__all__ = [
    "LedgerError",
    "ValidationError",
    "DuplicateEmailError",
    "StorageUnavailable",
    "CorruptRecordError",
    "AdminContext",
    "BalanceSummary",
    "CreditTransaction",
    "DashboardAggregate",
    "NewTransaction",
    "ReportingWindow",
    "TransactionFilter",
    "TransactionKind",
    "UserAccount",
    "LedgerService",
    "InMemoryStorage",
    "StorageBackend",
]
