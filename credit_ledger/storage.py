import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from .errors import DuplicateEmailError
from .models import to_utc

Row = dict[str, Any]
AppendListener = Callable[[Row], None]


class MonotonicClock:
    """Wall clock that never runs backwards for a single writer."""

    def __init__(self, source: Optional[Callable[[], datetime]] = None):
        self._source = source or (lambda: datetime.now(timezone.utc))
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = self._source().astimezone(timezone.utc)
            if self._last is not None and current < self._last:
                current = self._last
            self._last = current
            return current


class StorageBackend(ABC):
    """Untyped row storage for the ledger and the identity records.

    Rows use the persisted column names (``type``, ``amount``,
    ``phone_number``...). Callers parse them into typed models.
    ``since`` is inclusive and ``until`` exclusive, both aware UTC datetimes.

    Append listeners receive a copy of each stored ledger row after it is
    committed. ``notifies_every_append`` is True only when the data lives in
    this object, so no other writer can append behind the listeners' back.
    """

    notifies_every_append = False

    def __init__(self):
        self._append_listeners: list[AppendListener] = []
        self._append_listeners_lock = threading.Lock()

    def subscribe(self, listener: AppendListener) -> None:
        with self._append_listeners_lock:
            self._append_listeners.append(listener)

    def _notify_append(self, row: Row) -> None:
        with self._append_listeners_lock:
            listeners = list(self._append_listeners)
        for listener in listeners:
            listener(dict(row))

    @abstractmethod
    def insert_transaction(self, row: Row) -> Row:
        """Persist one ledger row atomically, stamping ``created_at``."""

    @abstractmethod
    def select_transactions(
        self,
        *,
        user_email: Optional[str] = None,
        kind: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Row]:
        """Matching ledger rows, newest first (ties: later insert first)."""

    @abstractmethod
    def insert_account(self, account: Row, registration: Row) -> Row:
        """Claim ``account['email']`` and record its registration in one step.

        Raises ``DuplicateEmailError`` if the email is already claimed; nothing
        is written in that case.
        """

    @abstractmethod
    def add_registration(self, row: Row) -> Row:
        """Record a raw registration; duplicate emails are allowed here."""

    @abstractmethod
    def select_registrations(
        self,
        *,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[Row]:
        """Registration rows in insertion order."""

    @abstractmethod
    def account_exists(self, email: str) -> bool:
        ...


def _in_range(ts: datetime, since: Optional[datetime], until: Optional[datetime]) -> bool:
    if since is not None and ts < since:
        return False
    if until is not None and ts >= until:
        return False
    return True


class InMemoryStorage(StorageBackend):
    notifies_every_append = True

    def __init__(self, clock: Optional[MonotonicClock] = None):
        super().__init__()
        self.ledger_entries: list[Row] = []
        self.registrations: list[Row] = []
        self.accounts: dict[str, Row] = {}
        self.clock = clock or MonotonicClock()
        self._lock = threading.Lock()

    def insert_transaction(self, row: Row) -> Row:
        with self._lock:
            stored = dict(row, created_at=self.clock.now())
            self.ledger_entries.append(stored)
        self._notify_append(stored)
        return dict(stored)

    def select_transactions(self, *, user_email=None, kind=None, since=None, until=None, limit=None):
        with self._lock:
            snapshot = list(self.ledger_entries)

        matches = [
            dict(e) for e in snapshot
            if (user_email is None or e["user_email"] == user_email)
            and (kind is None or e["type"] == kind)
            and _in_range(e["created_at"], since, until)
        ]
        # reversed() first so equal timestamps keep newest-insert-first under the stable sort
        matches = sorted(reversed(matches), key=lambda e: e["created_at"], reverse=True)
        return matches[:limit] if limit is not None else matches

    def insert_account(self, account: Row, registration: Row) -> Row:
        with self._lock:
            if account["email"] in self.accounts:
                raise DuplicateEmailError(f"Email {account['email']} is already registered")
            now = self.clock.now()
            stored = dict(account, created_at=now)
            self.accounts[account["email"]] = stored
            self.registrations.append(dict(registration, created_at=now))
            return dict(stored)

    def add_registration(self, row: Row) -> Row:
        with self._lock:
            stored = dict(row)
            if stored.get("created_at") is None:
                stored["created_at"] = self.clock.now()
            else:
                stored["created_at"] = to_utc(stored["created_at"])
            self.registrations.append(stored)
            return dict(stored)

    def select_registrations(self, *, since=None, until=None):
        with self._lock:
            snapshot = list(self.registrations)
        return [dict(r) for r in snapshot if _in_range(r["created_at"], since, until)]

    def account_exists(self, email: str) -> bool:
        with self._lock:
            return email in self.accounts
