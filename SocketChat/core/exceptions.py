"""
Error taxonomy shared by the socket layer and the REST surface.

Every failure a client can cause is a ChatError subclass carrying a
human-readable message and the HTTP status the REST layer maps it to.
"""

from contextlib import contextmanager
from typing import Iterator


class ChatError(Exception):
    """Base exception for chat errors."""

    status_code = 500

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class AuthenticationFailed(ChatError):
    """Bad, missing or expired credential."""
    status_code = 401


class NotFound(ChatError):
    """Referenced user or group does not exist."""
    status_code = 404


class Forbidden(ChatError):
    """An authorization rule was violated."""
    status_code = 403


class ValidationFailed(ChatError):
    """Payload shape or length violation."""
    status_code = 400


class PersistenceFailed(ChatError):
    """A repository call errored."""
    status_code = 500


@contextmanager
def persistence_guard(failure_message: str) -> Iterator[None]:
    """
    Re-raise repository failures as PersistenceFailed.

    ChatError subclasses pass through untouched so NotFound/Forbidden raised
    inside the block keep their meaning.

    Args:
        failure_message: Message reported to the client on failure
    """
    try:
        yield
    except ChatError:
        raise
    except Exception as e:
        raise PersistenceFailed(failure_message, {"cause": repr(e)}) from e
