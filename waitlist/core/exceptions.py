"""
Custom exceptions for the application
"""

class BaseAppException(Exception):
    """Base application exception"""
    def __init__(self, message: str, details: str = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


class NotFoundError(BaseAppException):
    """Raised when a waitlist entry is not found"""
    pass


class ValidationError(BaseAppException):
    """Raised when input is rejected before any mutation"""
    def __init__(self, message: str, details=None, error_code: str = None):
        super().__init__(message, details)
        self.error_code = error_code


class DuplicateEmailError(BaseAppException):
    """Raised when an email is already on the waitlist"""
    pass


class StorageUnavailableError(BaseAppException):
    """Raised when the database cannot be reached; callers may retry"""
    pass


class NotificationError(BaseAppException):
    """Raised when a notification cannot be dispatched; never crosses the ranking path"""
    pass
