"""SQL-backed storage for the ledger, usable with any SQLAlchemy URL.

Every public method runs in its own transaction via ``session_scope``.
Connection-level failures surface as ``StorageUnavailable`` after rollback, so
a failed append never leaves a partial row behind.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import exc as sa_exc
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .db import AccountRow, Base, RegistrationRow, TransactionRow, make_engine, row_to_dict
from .errors import DuplicateEmailError, StorageUnavailable, ValidationError
from .logging_setup import get_logger
from .models import to_utc
from .storage import MonotonicClock, Row, StorageBackend

logger = get_logger(__name__)

_UNAVAILABLE = (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError)


class SQLStorage(StorageBackend):
    def __init__(
        self,
        database_url: str,
        *,
        clock: Optional[MonotonicClock] = None,
        create_schema: bool = False,
    ):
        super().__init__()
        self.engine = make_engine(database_url)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False, class_=Session)
        self.clock = clock or MonotonicClock()
        if create_schema:
            self.create_schema()

    def create_schema(self) -> None:
        try:
            Base.metadata.create_all(bind=self.engine)
        except _UNAVAILABLE as e:
            logger.error("Could not create ledger schema: %s", e)
            raise StorageUnavailable(f"Ledger storage unavailable: {e}") from e

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""

        session = self._sessions()
        try:
            yield session
            session.commit()
        except _UNAVAILABLE as e:
            session.rollback()
            logger.error("Ledger storage unavailable: %s", e)
            raise StorageUnavailable(f"Ledger storage unavailable: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def insert_transaction(self, row: Row) -> Row:
        with self.session_scope() as session:
            record = TransactionRow(**row, created_at=self.clock.now())
            session.add(record)
            try:
                session.flush()
            except (sa_exc.IntegrityError, sa_exc.DataError) as e:
                raise ValidationError(f"Ledger row rejected by storage constraints: {e.orig}") from e
            stored = row_to_dict(record)
        # other processes writing the same database are not seen here
        self._notify_append(stored)
        return stored

    def select_transactions(self, *, user_email=None, kind=None, since=None, until=None, limit=None):
        stmt = select(TransactionRow)
        if user_email is not None:
            stmt = stmt.where(TransactionRow.user_email == user_email)
        if kind is not None:
            stmt = stmt.where(TransactionRow.type == kind)
        if since is not None:
            stmt = stmt.where(TransactionRow.created_at >= to_utc(since))
        if until is not None:
            stmt = stmt.where(TransactionRow.created_at < to_utc(until))
        stmt = stmt.order_by(TransactionRow.created_at.desc(), TransactionRow.seq.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        with self.session_scope() as session:
            return [row_to_dict(r) for r in session.scalars(stmt)]

    def insert_account(self, account: Row, registration: Row) -> Row:
        with self.session_scope() as session:
            existing = session.scalar(select(AccountRow.id).where(AccountRow.email == account["email"]))
            if existing is not None:
                raise DuplicateEmailError(f"Email {account['email']} is already registered")

            now = self.clock.now()
            record = AccountRow(**account, created_at=now)
            session.add(record)
            session.add(RegistrationRow(**registration, created_at=now))
            try:
                # the unique index settles a race between two registrations
                session.flush()
            except sa_exc.IntegrityError as e:
                raise DuplicateEmailError(f"Email {account['email']} is already registered") from e
            return row_to_dict(record)

    def add_registration(self, row: Row) -> Row:
        values = dict(row)
        created_at = values.pop("created_at", None)
        with self.session_scope() as session:
            record = RegistrationRow(
                **values,
                created_at=to_utc(created_at) if created_at is not None else self.clock.now(),
            )
            session.add(record)
            session.flush()
            return row_to_dict(record)

    def select_registrations(self, *, since=None, until=None):
        stmt = select(RegistrationRow)
        if since is not None:
            stmt = stmt.where(RegistrationRow.created_at >= to_utc(since))
        if until is not None:
            stmt = stmt.where(RegistrationRow.created_at < to_utc(until))
        stmt = stmt.order_by(RegistrationRow.seq)

        with self.session_scope() as session:
            return [row_to_dict(r) for r in session.scalars(stmt)]

    def account_exists(self, email: str) -> bool:
        with self.session_scope() as session:
            return session.scalar(select(AccountRow.id).where(AccountRow.email == email)) is not None

    def dispose(self) -> None:
        self.engine.dispose()
