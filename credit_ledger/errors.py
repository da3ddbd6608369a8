class LedgerError(Exception):
    pass


class ValidationError(LedgerError, ValueError):
    """Malformed input to a ledger or registration operation. Not retryable."""


class DuplicateEmailError(LedgerError):
    pass


class StorageUnavailable(LedgerError):
    """The backing store could not be reached or timed out. Safe to retry."""


class CorruptRecordError(LedgerError):
    """A stored row could not be parsed into its typed model."""
