import threading
from collections import defaultdict
from typing import Iterable

from .errors import ValidationError
from .models import BalanceSummary, CreditTransaction, TransactionFilter, normalize_email
from .storage import Row
from .transactions import TransactionStore


def compute_balance(entries: Iterable[CreditTransaction]) -> int:
    """Sum of top-ups minus sum of spends, in cents."""
    return sum(e.signed_cents for e in entries)


class BalanceCalculator:
    """Derives balances from the log on every call.

    With ``cache_enabled`` results are memoized per email. The storage backend
    notifies us after each append, from any writer sharing it, and the entry is
    dropped; a generation counter keeps a read that overlapped an append from
    writing its stale total back. A backend that other processes can append to
    (SQL) cannot report every append, so the cache is refused there.
    """

    def __init__(self, store: TransactionStore, cache_enabled: bool = False):
        self.store = store
        self.cache_enabled = cache_enabled
        self._cache: dict[str, int] = {}
        self._generations: defaultdict[str, int] = defaultdict(int)
        self._lock = threading.Lock()
        if cache_enabled:
            if not store.storage.notifies_every_append:
                raise ValueError(
                    f"Balance cache is not supported on {type(store.storage).__name__}: "
                    "appends from other processes would not invalidate it"
                )
            store.subscribe(self._invalidate)

    def balance(self, email: str) -> int:
        key = self._key(email)
        if not self.cache_enabled:
            return compute_balance(self._entries(key))

        with self._lock:
            if key in self._cache:
                return self._cache[key]
            generation = self._generations[key]

        total = compute_balance(self._entries(key))

        with self._lock:
            if self._generations[key] == generation:
                self._cache[key] = total
        return total

    def summary(self, email: str) -> BalanceSummary:
        key = self._key(email)
        entries = self._entries(key)
        return BalanceSummary(
            user_email=key,
            balance_cents=compute_balance(entries),
            total_entries=len(entries),
            last_transaction_at=entries[0].created_at if entries else None,
        )

    def _entries(self, key: str) -> list[CreditTransaction]:
        return self.store.query(TransactionFilter(user_email=key))

    def _invalidate(self, row: Row) -> None:
        key = normalize_email(row.get("user_email"))
        with self._lock:
            self._generations[key] += 1
            self._cache.pop(key, None)

    @staticmethod
    def _key(email: str) -> str:
        key = normalize_email(email)
        if not key:
            raise ValidationError("user_email is required")
        return key
