class LedgerServiceError(Exception):
    pass


class EntityNotFoundError(LedgerServiceError):
    pass


class AlreadyProcessedError(LedgerServiceError):
    pass


class InsufficientFundsError(LedgerServiceError):
    pass


class InvalidRequestError(LedgerServiceError):
    pass


class StorageError(LedgerServiceError):
    pass


class RetryableError(LedgerServiceError):
    """Unit of work aborted before commit; safe to call again."""


class TransactionTimeoutError(RetryableError):
    pass


class TransactionConflictError(LedgerServiceError):
    """A unique index already holds the value; retrying will not help."""
