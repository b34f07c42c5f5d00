"""Error taxonomy for the chat client.

Each external collaborator has exactly one failure type:
- AuthError: identity provider operations
- StoreError: CRUD against sessions and message history
- TransportError: the reply endpoint
"""
from typing import Optional


class RevotError(Exception):
    """Base class for every error raised by a gateway."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(RevotError):
    """Identity provider rejected the request or could not be reached."""


class StoreError(RevotError):
    """Conversation store operation failed."""


class TransportError(RevotError):
    """Reply endpoint returned a non-success status or was unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
