"""
Custom exceptions for LinearVue operations.

Input problems raise ValidationError or ResourceError synchronously. Store
problems raise StoreError; the schedule manager converts them into a retryable
result and the now resolver into a "store unavailable" answer.
"""


class LinearVueError(Exception):
    """Base exception for all LinearVue errors."""

    pass


class ValidationError(LinearVueError):
    """Raised when input validation fails."""

    pass


class ResourceError(LinearVueError):
    """Raised when a referenced resource (e.g. a channel) does not exist."""

    pass


class OperationError(LinearVueError):
    """Raised when an operation fails."""

    pass


class StoreError(OperationError):
    """Raised when the block store cannot complete a read or write."""

    pass


class StoreTimeoutError(StoreError):
    """Raised when a block store call exceeds its time budget."""

    pass
