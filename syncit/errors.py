"""Custom exception classes for the application."""


class AppError(Exception):
    """Base application error class."""

    def __init__(self, message, status_code=400):
        """Initialize the error."""
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ValidationError(AppError):
    """Raised when input fails validation, before any backend call is made."""

    def __init__(self, message="Validation failed."):
        """Initialize the error."""
        super().__init__(message, 400)


class PermissionDeniedError(AppError):
    """Raised when the caller is not the admin or member an operation requires."""

    def __init__(self, message="You don't have permission to perform this action."):
        """Initialize the error."""
        super().__init__(message, 403)


class NotFoundError(AppError):
    """Raised when a group, member or event is not found."""

    def __init__(self, message="Resource not found."):
        """Initialize the error."""
        super().__init__(message, 404)


class WriteError(AppError):
    """Raised when the backend rejects a write for a non-transient reason."""

    def __init__(self, message="The change could not be saved."):
        """Initialize the error."""
        super().__init__(message, 502)


class TransientNetworkError(AppError):
    """Raised when the backend cannot be reached. Safe to retry."""

    def __init__(self, message="Please check your internet connection."):
        """Initialize the error."""
        super().__init__(message, 503)
