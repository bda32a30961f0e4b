"""Failure taxonomy for the order lifecycle engine.

Every failure is decided locally and synchronously. Each carries a stable
machine-readable ``kind`` and a human-readable message; the HTTP layer maps
``http_status`` onto responses.
"""


class MarketplaceError(Exception):
    kind = "Error"
    http_status = 500
    default_message = "Marketplace operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class InvalidArgument(MarketplaceError):
    kind = "InvalidArgument"
    http_status = 400
    default_message = "Invalid argument"


class Unauthorized(MarketplaceError):
    kind = "Unauthorized"
    http_status = 403
    default_message = "Actor is not allowed to perform this operation"


class Unauthenticated(Unauthorized):
    """No usable credential was presented."""

    http_status = 401
    default_message = "Authentication required"


class NotFound(MarketplaceError):
    kind = "NotFound"
    http_status = 404
    default_message = "Not found"


class InsufficientStock(MarketplaceError):
    kind = "InsufficientStock"
    http_status = 409

    def __init__(self, product_id: str, message: str | None = None):
        self.product_id = product_id
        super().__init__(message or f"Insufficient stock for product {product_id}")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "product_id": self.product_id}


class Contention(MarketplaceError):
    kind = "Contention"
    http_status = 503
    default_message = "Stock reservation abandoned after repeated conflicting writes"


class InvalidTransition(MarketplaceError):
    kind = "InvalidTransition"
    http_status = 409
    default_message = "Status transition not allowed"


class AlreadyPaid(MarketplaceError):
    kind = "AlreadyPaid"
    http_status = 409
    default_message = "Order is already paid"


class EscrowNotReleasable(MarketplaceError):
    kind = "EscrowNotReleasable"
    http_status = 409
    default_message = "Escrow cannot be released for this order"


class Conflict(MarketplaceError):
    kind = "Conflict"
    http_status = 409
    default_message = "Order was modified concurrently; re-read and retry"


def describe(exc: Exception) -> str:
    """Flatten a field-keyed validation error into one message."""
    messages = getattr(exc, "messages", None) or {}
    if isinstance(messages, dict):
        return "; ".join(f"{field}: {', '.join(map(str, errors))}" for field, errors in messages.items())
    return str(exc)
