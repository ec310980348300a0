# storefront/domain/errors.py


class LedgerError(Exception):
    """Base for errors raised by order, payment and review operations."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(LedgerError):
    """
    Malformed or missing caller data. Raised before any state change.
    `errors` maps a field path (e.g. "line_items[1].quantity") to a message.
    """

    def __init__(self, errors: dict[str, str], message: str = "Invalid input"):
        super().__init__(message)
        self.errors = dict(errors)

    def __str__(self):
        details = "; ".join(f"{k}: {v}" for k, v in self.errors.items())
        return f"{self.message} ({details})" if details else self.message


class InvalidState(LedgerError):
    pass


class NotFound(LedgerError):
    pass


class GatewayError(LedgerError):
    """Payment provider unreachable or answered with something we do not understand. Retryable."""


class LockTimeout(LedgerError):
    """Per-order lock was not acquired in time. Retryable."""
