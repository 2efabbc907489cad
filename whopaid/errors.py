"""Custom exception classes for the application."""


class AppError(Exception):
    """Base application error class."""

    def __init__(self, message, status_code=400):
        """Initialize the error."""
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ValidationError(AppError):
    """Raised when user input fails validation."""

    def __init__(self, message="Validation failed."):
        """Initialize the error."""
        super().__init__(message, 400)


class PermissionDeniedError(AppError):
    """Raised when the current user may not perform an action."""

    def __init__(self, message="You are not allowed to do that."):
        """Initialize the error."""
        super().__init__(message, 403)


class NotFoundError(AppError):
    """Raised when a resource is not found."""

    def __init__(self, message="Resource not found."):
        """Initialize the error."""
        super().__init__(message, 404)


class DuplicateResourceError(AppError):
    """Raised when trying to create a resource that already exists."""

    def __init__(self, message="Resource already exists."):
        """Initialize the error."""
        super().__init__(message, 409)


class ConversionError(AppError):
    """Raised when an amount cannot be converted between currencies."""

    def __init__(self, message="Currency conversion failed."):
        """Initialize the error."""
        super().__init__(message, 502)


class StorageError(AppError):
    """Raised when reading or writing the document store fails.

    Callers treat it as retryable; nothing in the application retries on
    its own.
    """

    def __init__(self, message="Storage backend unavailable."):
        """Initialize the error."""
        super().__init__(message, 503)
