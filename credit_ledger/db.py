"""SQLAlchemy schema for the ledger and identity tables.

``credit_transactions`` is append-only: the application never issues UPDATE or
DELETE against it. ``seq`` gives a total insertion order that breaks ties
between rows sharing a ``created_at``.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .money import AMOUNT_PRECISION, AMOUNT_SCALE


class Base(DeclarativeBase):
    pass


class TransactionRow(Base):
    __tablename__ = "credit_transactions"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    user_email: Mapped[str] = mapped_column(String, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(AMOUNT_PRECISION, AMOUNT_SCALE), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_credit_tx_amount_positive"),
        CheckConstraint("type in ('topup','spend')", name="ck_credit_tx_type"),
    )


class RegistrationRow(Base):
    __tablename__ = "registrations"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    # Not unique: historical duplicate registrations are expected here.
    email: Mapped[str] = mapped_column(String, nullable=False, index=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    program: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    telegram_username: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class AccountRow(Base):
    __tablename__ = "ledger_accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    password_hash: Mapped[str] = mapped_column(String, nullable=False)
    telegram_username: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    program: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


def make_engine(database_url: str) -> Engine:
    # File-backed SQLite gets a QueuePool with check_same_thread disabled, so
    # the aggregation thread pool can share it.
    return create_engine(database_url, pool_pre_ping=True)


def row_to_dict(row: Base) -> dict:
    return {c.name: getattr(row, c.key) for c in row.__table__.columns}
