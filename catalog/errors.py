"""
Error taxonomy for catalog operations.

Every error carries the HTTP status it maps to and a message that is safe to
return to the caller.
"""

from fastapi import status


class CatalogError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Server error, please try again later"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CatalogError):
    """Malformed input or a business-rule violation."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthenticationError(CatalogError):
    """Missing, invalid or expired credential."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authorized, authentication failed"


class AuthorizationError(CatalogError):
    """The actor does not own the resource."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not authorized"


class NotFoundError(CatalogError):
    """The requested resource does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class ServerError(CatalogError):
    """Unexpected storage or verification failure."""
