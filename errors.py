"""
Error types raised by the store core.

Each error carries the HTTP status it maps to; main.py turns them into JSON
responses.
"""

from typing import List, Optional


class StoreError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(StoreError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(StoreError):
    status_code = 403
    default_message = "Not allowed"


class NotFound(StoreError):
    status_code = 404
    default_message = "Not found"


class ValidationFailed(StoreError):
    status_code = 400
    default_message = "Validation failed"

    def __init__(self, errors: List[dict], message: Optional[str] = None):
        super().__init__(message)
        self.errors = errors


class InvalidState(StoreError):
    status_code = 400
    default_message = "Invalid state"


class InvalidTransition(StoreError):
    status_code = 400
    default_message = "Invalid status transition"


class Conflict(StoreError):
    status_code = 400
    default_message = "Already exists"


class Internal(StoreError):
    status_code = 500


class CartNotCleared(Internal):
    """The order was stored but the cart it came from still holds its lines."""

    def __init__(self, order: dict):
        super().__init__(
            f"Order {order['id']} was created but the cart could not be cleared"
        )
        self.order = order
