from datetime import datetime, timedelta, timezone

import pytest

from credit_ledger.config import Settings
from credit_ledger.models import AdminContext
from credit_ledger.service import LedgerService
from credit_ledger.storage import InMemoryStorage, MonotonicClock


class FakeClock:
    """Settable time source so tests control ``created_at``."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def storage(clock):
    return InMemoryStorage(clock=MonotonicClock(clock))


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def service(storage, settings):
    return LedgerService(storage=storage, settings=settings)


@pytest.fixture
def admin():
    return AdminContext(admin_email="admin@klture.com")
