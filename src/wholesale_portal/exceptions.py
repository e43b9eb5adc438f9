"""
Error taxonomy shared by the engine, the quote lifecycle and the API layer.

The API translates each class to an HTTP status (see api/main.py).
"""


class PortalError(Exception):
    """Base class for all portal errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PortalError):
    """Missing or invalid input."""

    status_code = 400


class InvalidTransitionError(ValidationError):
    """A quote status change the lifecycle does not allow."""

    def __init__(self, current: str, requested: str, reason: str = None):
        message = f"Cannot move quote from '{current}' to '{requested}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.current = current
        self.requested = requested


class NotFoundError(PortalError):
    """A quote, price list, product or template that does not exist."""

    status_code = 404


class ForbiddenError(PortalError):
    """The caller's role does not permit the requested action."""

    status_code = 403


class AuthenticationError(PortalError):
    """No valid session, or a bad cron secret."""

    status_code = 401
