"""
Unit Tests for the User Directory

Tests cover:
1. Deduplication by email
2. Search across name, email and phone
3. Registered user counts by window
"""

from datetime import date, datetime, timezone

import pytest

from credit_ledger.directory import dedupe_latest
from credit_ledger.errors import CorruptRecordError
from credit_ledger.models import ReportingWindow


def at(*args):
    return datetime(*args, tzinfo=timezone.utc)


def register(storage, email, created_at, full_name, phone=None, record_id=None):
    return storage.add_registration({
        "id": record_id or f"{email}-{full_name}",
        "full_name": full_name,
        "email": email,
        "phone_number": phone,
        "program": "New Registration",
        "telegram_username": None,
        "created_at": created_at,
    })


class TestDeduplication:
    """Tests for collapsing duplicate registrations."""

    def test_newest_record_wins(self, service, storage):
        """Test that the later registration supersedes the earlier one."""
        register(storage, "a@x.com", at(2025, 1, 1), "Jane Doe", phone="012")
        register(storage, "a@x.com", at(2025, 2, 1), "Jane", phone="099")

        users = service.list_users()

        assert len(users) == 1
        assert users[0].full_name == "Jane"
        assert users[0].phone == "099"

    def test_insertion_order_does_not_matter(self, service, storage):
        """Test that the newest created_at wins even if it was inserted first."""
        register(storage, "a@x.com", at(2025, 2, 1), "Jane")
        register(storage, "a@x.com", at(2025, 1, 1), "Jane Doe")

        assert [u.full_name for u in service.list_users()] == ["Jane"]

    def test_tie_goes_to_later_insert(self, service, storage):
        """Test that equal timestamps resolve to the record inserted last."""
        same = at(2025, 3, 1, 9, 30)
        register(storage, "a@x.com", same, "First")
        register(storage, "a@x.com", same, "Second")

        assert [u.full_name for u in service.list_users()] == ["Second"]

    def test_one_entry_per_email(self, service, storage):
        """Test that every email appears exactly once, newest first."""
        register(storage, "a@x.com", at(2025, 1, 1), "A1")
        register(storage, "b@x.com", at(2025, 1, 2), "B1")
        register(storage, "a@x.com", at(2025, 1, 3), "A2")
        register(storage, "c@x.com", at(2025, 1, 4), "C1")

        users = service.list_users()

        assert [u.email for u in users] == ["c@x.com", "a@x.com", "b@x.com"]
        assert len({u.email for u in users}) == len(users)

    def test_emails_compare_normalized(self, service, storage):
        """Test that case and surrounding spaces do not split one user in two."""
        register(storage, "A@X.com ", at(2025, 1, 1), "Upper")
        register(storage, "a@x.com", at(2025, 1, 2), "Lower")

        users = service.list_users()
        assert [(u.email, u.full_name) for u in users] == [("a@x.com", "Lower")]
        assert len(service.search_users("")) == 1

    def test_dedupe_latest_helper(self, service, storage):
        """Test the helper directly on parsed records."""
        register(storage, "a@x.com", at(2025, 1, 1), "Old")
        register(storage, "a@x.com", at(2025, 1, 5), "New")
        records = service.directory._records()

        assert [r.full_name for r in dedupe_latest(records)] == ["New"]
        assert dedupe_latest([]) == []

    def test_malformed_row_raises(self, service, storage):
        """Test that a row without an email is reported as corrupt."""
        storage.registrations.append({"id": "broken", "full_name": "X", "created_at": at(2025, 1, 1)})

        with pytest.raises(CorruptRecordError):
            service.list_users()


class TestSearch:
    """Tests for directory search."""

    @pytest.fixture
    def populated(self, service, storage):
        register(storage, "jane@x.com", at(2025, 1, 1), "Jane Doe", phone="012345678")
        register(storage, "bob@y.com", at(2025, 1, 2), "Bob Smith", phone="098765432")
        register(storage, "jane@x.com", at(2025, 1, 3), "Jane", phone="011111111")
        return service

    def test_search_by_name_case_insensitive(self, populated):
        """Test that names match regardless of case."""
        users = populated.search_users("SMITH")
        assert [u.email for u in users] == ["bob@y.com"]

    def test_search_by_email(self, populated):
        """Test that email substrings match."""
        users = populated.search_users("@x.")
        assert [u.email for u in users] == ["jane@x.com"]

    def test_search_by_phone(self, populated):
        """Test that phone substrings match."""
        users = populated.search_users("98765")
        assert [u.email for u in users] == ["bob@y.com"]

    def test_search_uses_latest_record(self, populated):
        """Test that superseded names and phones no longer match."""
        assert populated.search_users("Doe") == []
        assert populated.search_users("012345") == []
        assert [u.full_name for u in populated.search_users("jane")] == ["Jane"]

    @pytest.mark.parametrize("term", ["", None, "   "])
    def test_empty_term_lists_everyone(self, populated, term):
        """Test that an empty or blank term returns one entry per email."""
        users = populated.search_users(term)
        assert sorted(u.email for u in users) == ["bob@y.com", "jane@x.com"]

    def test_term_is_trimmed(self, populated):
        """Test that surrounding whitespace in the term is ignored."""
        assert [u.email for u in populated.search_users("  bob ")] == ["bob@y.com"]

    def test_no_match(self, populated):
        """Test that an unmatched term returns an empty list."""
        assert populated.search_users("nobody") == []


class TestCountRegistered:
    """Tests for counting registered users within a window."""

    def test_counts_distinct_emails(self, service, storage):
        """Test that duplicate registrations count once."""
        register(storage, "a@x.com", at(2025, 3, 1), "A", record_id="1")
        register(storage, "a@x.com", at(2025, 3, 2), "A", record_id="2")
        register(storage, "b@x.com", at(2025, 3, 3), "B")

        window = ReportingWindow(start=date(2025, 3, 1), end=date(2025, 3, 31))
        assert service.directory.count_registered(window) == 2

    def test_window_filters_by_creation_day(self, service, storage):
        """Test that only registrations created inside the window count."""
        register(storage, "a@x.com", at(2025, 2, 28, 23, 59), "A")
        register(storage, "b@x.com", at(2025, 3, 31, 23, 59, 59), "B")
        register(storage, "c@x.com", at(2025, 4, 1), "C")

        window = ReportingWindow(start=date(2025, 3, 1), end=date(2025, 3, 31))
        assert service.directory.count_registered(window) == 1
        assert service.directory.count_registered() == 3

    def test_inverted_window_counts_nobody(self, service, storage):
        """Test that start after end counts zero."""
        register(storage, "a@x.com", at(2025, 3, 5), "A")

        window = ReportingWindow(start=date(2025, 3, 10), end=date(2025, 3, 1))
        assert service.directory.count_registered(window) == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
