from datetime import timezone, tzinfo
from typing import Iterable, List, Optional

from .models import ReportingWindow, UserAccount
from .storage import StorageBackend


def dedupe_latest(records: Iterable[UserAccount]) -> List[UserAccount]:
    """Collapse records sharing an email to the most recently created one.

    Records are ordered by ``created_at`` descending, later insertion first on
    ties, and the first occurrence of each email is kept. A newer registration
    under an existing email therefore supersedes the older name and phone.
    The result keeps that newest-first order.
    """
    indexed = list(enumerate(records))
    indexed.sort(key=lambda pair: (pair[1].created_at, pair[0]), reverse=True)

    seen = set()
    unique = []
    for _, record in indexed:
        if record.email in seen:
            continue
        seen.add(record.email)
        unique.append(record)
    return unique


def matches(record: UserAccount, term: str) -> bool:
    needle = term.lower()
    return any(
        needle in (value or "").lower()
        for value in (record.full_name, record.email, record.phone)
    )


class UserDirectory:
    """Deduplicated, searchable view over raw registration records."""

    def __init__(self, storage: StorageBackend, timezone_: tzinfo = timezone.utc):
        self.storage = storage
        self.timezone = timezone_

    def list(self) -> List[UserAccount]:
        return dedupe_latest(self._records())

    def search(self, term: Optional[str] = "") -> List[UserAccount]:
        term = (term or "").strip()
        users = self.list()
        if not term:
            return users
        return [u for u in users if matches(u, term)]

    def count_registered(self, window: Optional[ReportingWindow] = None) -> int:
        """Distinct emails with a registration inside ``window``."""
        window = window or ReportingWindow()
        if window.is_inverted:
            return 0
        return len({r.email for r in self._records(window)})

    def _records(self, window: Optional[ReportingWindow] = None) -> List[UserAccount]:
        since, until = (window or ReportingWindow()).bounds(self.timezone)
        rows = self.storage.select_registrations(since=since, until=until)
        return [UserAccount.from_row(r) for r in rows]
