"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class PurchaseError(Exception):
    """Base exception for all purchase errors."""

    pass


class InvalidRequestError(PurchaseError):
    """Raised when client-supplied data is missing or malformed."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid request: {message}")


class PaymentProviderError(PurchaseError):
    """Raised when payment provider operation fails or returns an unexpected shape."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment provider error: {message}")


class PurchaseStoreError(PurchaseError):
    """Raised when the purchase store cannot be read or written."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Purchase store error at {path}: {reason}")


class CorruptStoreError(PurchaseStoreError):
    """Raised when the persisted purchase document cannot be parsed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(path, reason)
        # Override message so the failure kind is obvious in logs
        self.args = (f"Corrupt purchase store at {path}: {reason}",)
