"""
Error taxonomy shared by services, routers and the client.
"""

from fastapi import status


class ChatError(Exception):
    """Base class for chat core errors. Carries the HTTP status it maps to."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ChatValidationError(ChatError, ValueError):
    """Malformed or missing input, rejected before any write."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ChatError):
    """Thread, asset or message does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(ChatError):
    """Caller is not a participant of the thread."""

    status_code = status.HTTP_403_FORBIDDEN


class StorageError(ChatError):
    """Unexpected database failure."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class InvalidTransitionError(ChatError):
    """A delivery status change outside the allowed lifecycle."""

    def __init__(self, current, target):
        super().__init__(f"Invalid status transition: {current} -> {target}")
        self.current = current
        self.target = target


class AttachmentDecodeError(ChatValidationError):
    """Encoded attachment is malformed or cannot be made playable."""


class TransportError(ChatError):
    """Network failure or timeout talking to the chat API."""
