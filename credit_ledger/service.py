from datetime import date
from decimal import Decimal
from typing import List, Optional, Union

from .aggregation import AggregationEngine
from .balance import BalanceCalculator
from .config import Settings, get_settings
from .directory import UserDirectory
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
    LedgerHistory,
    ReportingWindow,
    TransactionFilter,
    TransactionKind,
    UserAccount,
    normalize_email,
)
from .money import from_cents
from .registration import RegistrationService
from .storage import InMemoryStorage, StorageBackend
from .transactions import TransactionStore

Amount = Union[Decimal, str, int]

__all__ = [
    "LedgerService",
    "build_storage",
    "LedgerError",
    "ValidationError",
    "DuplicateEmailError",
    "StorageUnavailable",
    "CorruptRecordError",
]


def build_storage(settings: Settings) -> StorageBackend:
    if not settings.DATABASE_URL:
        return InMemoryStorage()
    # imported lazily so the in-memory path does not need a database driver
    from .sql_storage import SQLStorage

    return SQLStorage(settings.DATABASE_URL, create_schema=settings.CREATE_SCHEMA)


class LedgerService:
    """Admin-facing operations over the credit ledger and the user directory."""

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.storage = storage or build_storage(self.settings)
        tz = self.settings.reporting_tz

        self.transactions = TransactionStore(self.storage, tz)
        self.balances = BalanceCalculator(
            self.transactions, cache_enabled=self.settings.BALANCE_CACHE_ENABLED
        )
        self.directory = UserDirectory(self.storage, tz)
        self.aggregation = AggregationEngine(
            self.transactions,
            self.directory,
            recent_sales_limit=self.settings.RECENT_SALES_LIMIT,
            max_workers=self.settings.AGGREGATION_MAX_WORKERS,
        )
        self.registration = RegistrationService(
            self.storage, min_password_length=self.settings.MIN_PASSWORD_LENGTH
        )

    def top_up(
        self, context: AdminContext, email: str, amount: Amount, note: Optional[str] = None
    ) -> CreditTransaction:
        return self._record(context, TransactionKind.TOPUP, email, amount, note)

    def charge(
        self, context: AdminContext, email: str, amount: Amount, note: Optional[str] = None
    ) -> CreditTransaction:
        """Record a spend, e.g. an enrollment paid from the wallet.

        The ledger records what the admin submitted; a resulting negative
        balance is allowed.
        """
        return self._record(context, TransactionKind.SPEND, email, amount, note)

    def balance(self, email: str) -> Decimal:
        """Wallet balance; served from the balance cache when it is enabled."""
        return from_cents(self.balances.balance(email))

    def get_balance(self, email: str) -> BalanceSummary:
        return self.balances.summary(email)

    def get_history(self, email: str, limit: int = 50, offset: int = 0) -> LedgerHistory:
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")
        key = normalize_email(email)
        if not key:
            raise ValidationError("user_email is required")

        entries = self.transactions.query(TransactionFilter(user_email=key))
        return LedgerHistory(
            user_email=key,
            entries=entries[offset:offset + limit],
            total_count=len(entries),
            balance_cents=sum(e.signed_cents for e in entries),
        )

    def recent_top_ups(self, limit: Optional[int] = None) -> List[CreditTransaction]:
        if limit is not None and limit < 1:
            raise ValidationError("limit must be positive")
        return self.transactions.query(
            TransactionFilter(
                kind=TransactionKind.TOPUP,
                limit=limit or self.settings.RECENT_TOPUPS_LIMIT,
            )
        )

    def dashboard(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> DashboardAggregate:
        return self.aggregation.aggregate(ReportingWindow(start=start, end=end))

    def list_users(self) -> List[UserAccount]:
        return self.directory.list()

    def search_users(self, term: Optional[str] = "") -> List[UserAccount]:
        return self.directory.search(term)

    def register(
        self,
        full_name: str,
        email: str,
        phone: Optional[str],
        password: str,
        telegram: Optional[str] = None,
        program: Optional[str] = None,
        confirm_password: Optional[str] = None,
    ) -> UserAccount:
        return self.registration.create_account(
            full_name, email, phone, password, telegram, program, confirm_password
        )

    def _record(
        self,
        context: AdminContext,
        kind: TransactionKind,
        email: str,
        amount: Amount,
        note: Optional[str],
    ) -> CreditTransaction:
        return self.transactions.append(
            {"user_email": email, "kind": kind, "amount": amount, "note": note},
            context,
        )
