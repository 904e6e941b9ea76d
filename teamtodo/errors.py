"""Error types raised by the sync engines and backend client"""

from typing import Optional


class TodoError(Exception):
    """Base class for all application errors"""


class NotAuthenticatedError(TodoError):
    """Raised when an operation needs a signed-in identity"""

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class InvalidInputError(TodoError):
    """Input rejected before any remote call was made"""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class PermissionDeniedError(TodoError):
    """Client-side permission check failed"""

    def __init__(self, role: Optional[str], action: str):
        super().__init__(f"Role '{role}' is not allowed to {action}")
        self.role = role
        self.action = action


class RemoteError(TodoError):
    """Base class for failures reported by, or on the way to, the backend"""


class RequestRejectedError(RemoteError):
    """The backend answered with an error response"""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code

    @property
    def is_not_found(self) -> bool:
        # PGRST116: single-row fetch matched zero rows
        return self.status_code == 404 or self.code == "PGRST116"


class BackendUnavailableError(RemoteError):
    """The backend could not be reached"""
