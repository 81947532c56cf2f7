"""Error types raised by the ledger core."""


class LedgerError(Exception):
    """Base class for ledger errors."""


class ValidationError(LedgerError, ValueError):
    """Split inputs do not conserve the expense amount. Never retried or corrected."""


class StoreError(LedgerError):
    """A query against a backing store failed."""

    def __init__(self, backend: str, operation: str, cause: Exception | None = None):
        self.backend = backend
        self.operation = operation
        self.cause = cause
        message = f"{backend} store failed during {operation}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class CacheError(LedgerError):
    """A cache backend call failed. Logged and swallowed by the cache layer."""
