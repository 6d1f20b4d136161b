"""
Error taxonomy for the Family Connect backend.

API-facing errors carry the HTTP status they map to; the service factory
installs handlers that turn them into ``{"message": ...}`` responses.
Repository errors describe broken references and are never shown to
callers verbatim.
"""

from fastapi import status


class FamilyConnectError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailedError(FamilyConnectError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthenticationError(FamilyConnectError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class AuthorizationError(FamilyConnectError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not authorized"


class RecordNotFoundError(FamilyConnectError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


# ========= Repository errors =========


class StorageError(Exception):
    """Raised by the repository when a write or join cannot be honoured."""


class UnknownUserError(StorageError):
    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"User with ID {user_id} not found")


class DuplicateUsernameError(StorageError):
    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Username '{username}' already exists")


class DataIntegrityError(StorageError):
    """A stored reference points at a row that does not exist."""


class SessionUnavailableError(RuntimeError):
    """The session backend cannot store sessions (fail closed)."""
