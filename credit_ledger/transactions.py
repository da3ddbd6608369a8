from datetime import timezone, tzinfo
from typing import Any, Mapping, Optional, Union
from uuid import uuid4

from .logging_setup import get_logger
from .models import (
    AdminContext,
    CreditTransaction,
    NewTransaction,
    TransactionFilter,
    parse_model,
)
from .money import from_cents
from .storage import AppendListener, StorageBackend

logger = get_logger(__name__)


class TransactionStore:
    """Append-only log of credit transactions.

    There is no update or delete path. Two concurrent appends for the same user
    are two independent rows; balances are always derived by summing the log.
    """

    def __init__(self, storage: StorageBackend, timezone_: tzinfo = timezone.utc):
        self.storage = storage
        self.timezone = timezone_

    def subscribe(self, listener: AppendListener) -> None:
        """Call ``listener`` with the stored row after every append to the storage.

        Listeners live on the storage backend, so appends made through any
        other store sharing it are reported too.
        """
        self.storage.subscribe(listener)

    def append(
        self,
        entry: Union[NewTransaction, Mapping[str, Any]],
        context: AdminContext,
    ) -> CreditTransaction:
        # re-validate even typed input; model_construct() would skip the checks
        if isinstance(entry, NewTransaction):
            entry = entry.model_dump()
        new = parse_model(NewTransaction, entry, "transaction")
        context = parse_model(AdminContext, context, "admin context")

        row = {
            "id": str(uuid4()),
            "user_email": new.user_email,
            "amount": from_cents(new.amount_cents),
            "type": new.kind.value,
            "note": new.note,
            "created_by": context.admin_email,
        }
        stored = CreditTransaction.from_row(self.storage.insert_transaction(row))
        logger.info(
            "Appended %s %s for %s (id=%s, by=%s)",
            stored.kind.value, stored.amount, stored.user_email, stored.id, stored.created_by,
        )
        return stored

    def query(self, criteria: Optional[TransactionFilter] = None) -> list[CreditTransaction]:
        criteria = criteria or TransactionFilter()
        since, until = criteria.window.bounds(self.timezone)
        rows = self.storage.select_transactions(
            user_email=criteria.user_email,
            kind=criteria.kind.value if criteria.kind is not None else None,
            since=since,
            until=until,
            limit=criteria.limit,
        )
        return [CreditTransaction.from_row(r) for r in rows]
