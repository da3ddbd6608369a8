from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Tuple, Type, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    computed_field,
    field_validator,
    model_validator,
)

from .errors import CorruptRecordError, ValidationError
from .money import MAX_CENTS, from_cents, to_cents

M = TypeVar("M", bound=BaseModel)


def normalize_email(value: Any) -> str:
    return str(value or "").strip().lower()


def to_utc(value: datetime) -> datetime:
    # SQLite hands back naive timestamps; everything is written in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "value"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def parse_model(model: Type[M], data: Any, what: str) -> M:
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {what}: {_describe(e)}") from e


class TransactionKind(str, Enum):
    TOPUP = "topup"
    SPEND = "spend"


class AdminContext(BaseModel):
    """Identity of the admin performing a write, passed explicitly per call."""

    admin_email: str

    model_config = ConfigDict(frozen=True)

    @field_validator("admin_email")
    @classmethod
    def _required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("admin identity is required")
        return value


class NewTransaction(BaseModel):
    user_email: str
    kind: TransactionKind
    amount_cents: int = Field(gt=0, le=MAX_CENTS, strict=True)
    note: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _amount_to_cents(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and "amount" in data and "amount_cents" not in data:
            data = dict(data)
            data["amount_cents"] = to_cents(data.pop("amount"))
        return data

    @field_validator("user_email")
    @classmethod
    def _email_required(cls, value: str) -> str:
        value = normalize_email(value)
        if not value:
            raise ValueError("user_email is required")
        return value

    @field_validator("note")
    @classmethod
    def _blank_note_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class CreditTransaction(BaseModel):
    id: str
    user_email: str
    kind: TransactionKind
    amount_cents: int = Field(gt=0)
    note: Optional[str] = None
    created_by: str
    created_at: datetime

    model_config = ConfigDict(frozen=True)

    @field_validator("user_email")
    @classmethod
    def _email_required(cls, value: str) -> str:
        value = normalize_email(value)
        if not value:
            raise ValueError("user_email is required")
        return value

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return to_utc(value)

    @computed_field
    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)

    @property
    def signed_cents(self) -> int:
        return self.amount_cents if self.kind == TransactionKind.TOPUP else -self.amount_cents

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CreditTransaction":
        try:
            return cls(
                id=str(row["id"]),
                user_email=row["user_email"],
                kind=row["type"],
                amount_cents=to_cents(row["amount"]),
                note=row.get("note"),
                created_by=row["created_by"],
                created_at=row["created_at"],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CorruptRecordError(f"Malformed credit transaction row {row.get('id')!r}: {e}") from e


class UserAccount(BaseModel):
    id: str
    email: str
    full_name: str
    phone: Optional[str] = None
    program: Optional[str] = None
    telegram: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(frozen=True)

    @field_validator("email")
    @classmethod
    def _email_required(cls, value: str) -> str:
        value = normalize_email(value)
        if not value:
            raise ValueError("email is required")
        return value

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return to_utc(value)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "UserAccount":
        try:
            return cls(
                id=str(row["id"]),
                email=row["email"],
                full_name=row.get("full_name") or "",
                phone=row.get("phone_number"),
                program=row.get("program"),
                telegram=row.get("telegram_username"),
                created_at=row["created_at"],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CorruptRecordError(f"Malformed registration row {row.get('id')!r}: {e}") from e


class ReportingWindow(BaseModel):
    """Optional inclusive date range. Both bounds empty means all time."""

    start: Optional[date] = None
    end: Optional[date] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_empty(self) -> bool:
        return self.start is None and self.end is None

    @property
    def is_inverted(self) -> bool:
        return self.start is not None and self.end is not None and self.start > self.end

    def bounds(self, tz: tzinfo) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Return ``(since, until)`` in UTC; ``since`` inclusive, ``until`` exclusive.

        ``until`` is midnight after ``end`` in ``tz``, so the whole end day is
        covered including fractional seconds past 23:59:59.
        """
        since = until = None
        if self.start is not None:
            since = datetime.combine(self.start, time.min, tzinfo=tz).astimezone(timezone.utc)
        if self.end is not None:
            next_day = self.end + timedelta(days=1)
            until = datetime.combine(next_day, time.min, tzinfo=tz).astimezone(timezone.utc)
        return since, until


class TransactionFilter(BaseModel):
    user_email: Optional[str] = None
    kind: Optional[TransactionKind] = None
    window: ReportingWindow = Field(default_factory=ReportingWindow)
    limit: Optional[int] = Field(default=None, gt=0)

    model_config = ConfigDict(frozen=True)

    @field_validator("user_email")
    @classmethod
    def _normalize(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return normalize_email(value) or None


class BalanceSummary(BaseModel):
    user_email: str
    balance_cents: int
    total_entries: int
    last_transaction_at: Optional[datetime] = None

    @computed_field
    @property
    def balance(self) -> Decimal:
        return from_cents(self.balance_cents)


class LedgerHistory(BaseModel):
    user_email: str
    entries: list[CreditTransaction]
    total_count: int
    balance_cents: int

    @computed_field
    @property
    def balance(self) -> Decimal:
        return from_cents(self.balance_cents)


class DashboardAggregate(BaseModel):
    total_users: int = 0
    total_revenue_cents: int = 0
    product_sales_cents: int = 0
    recent_sales: list[CreditTransaction] = Field(default_factory=list)

    @computed_field
    @property
    def total_revenue(self) -> Decimal:
        return from_cents(self.total_revenue_cents)

    @computed_field
    @property
    def product_sales(self) -> Decimal:
        return from_cents(self.product_sales_cents)

    @classmethod
    def empty(cls) -> "DashboardAggregate":
        return cls()


class TransactionRequest(BaseModel):
    """Body of both the top-up and the spend endpoints."""

    user_email: str
    amount: Decimal
    note: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "user_email": "student@example.com",
            "amount": "50.00",
            "note": "Cash payment at front desk"
        }
    })


class RegistrationRequest(BaseModel):
    full_name: str
    email: str
    phone: Optional[str] = None
    password: str
    confirm_password: Optional[str] = None
    telegram: Optional[str] = None
    program: Optional[str] = None
