from typing import Optional
from uuid import uuid4

from passlib.context import CryptContext

from .errors import DuplicateEmailError, ValidationError
from .logging_setup import get_logger
from .models import UserAccount, normalize_email
from .storage import StorageBackend

logger = get_logger(__name__)

DEFAULT_PROGRAM = "New Registration"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


class RegistrationService:
    """Creates identity records, at most one account per email.

    The email claim and the registration record are written together by the
    storage backend, which also settles races between concurrent sign-ups.
    New accounts start with an implicit ledger balance of zero.
    """

    def __init__(self, storage: StorageBackend, min_password_length: int = 6):
        self.storage = storage
        self.min_password_length = min_password_length

    def create_account(
        self,
        full_name: str,
        email: str,
        phone: Optional[str],
        password: str,
        telegram: Optional[str] = None,
        program: Optional[str] = None,
        confirm_password: Optional[str] = None,
    ) -> UserAccount:
        full_name = (full_name or "").strip()
        email = normalize_email(email)
        if not full_name:
            raise ValidationError("full_name is required")
        if not email:
            raise ValidationError("email is required")
        if confirm_password is not None and password != confirm_password:
            raise ValidationError("Passwords do not match")
        if len(password or "") < self.min_password_length:
            raise ValidationError(
                f"Password must be at least {self.min_password_length} characters"
            )

        if self.storage.account_exists(email):
            raise DuplicateEmailError(f"Email {email} is already registered")

        account_id = str(uuid4())
        profile = {
            "full_name": full_name,
            "email": email,
            "phone_number": (phone or "").strip() or None,
            "telegram_username": (telegram or "").strip() or None,
            "program": (program or "").strip() or DEFAULT_PROGRAM,
        }
        stored = self.storage.insert_account(
            dict(profile, id=account_id, password_hash=get_password_hash(password)),
            dict(profile, id=str(uuid4())),
        )
        logger.info("Registered account %s (id=%s)", email, account_id)
        return UserAccount.from_row(stored)
