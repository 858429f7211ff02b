# backend/core/errors.py

from __future__ import annotations


class ChatError(Exception):
    """
    Base class for errors raised by the chat stores.

    The HTTP layer turns these into ``{"error": message}`` responses using
    ``status_code``. The WebSocket layer drops the offending event instead.
    """

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    """Blank required field, oversized payload or otherwise invalid input."""

    status_code = 400


class NotFoundError(ChatError):
    """Unknown room, identity, or a sender/reader that is not a room member."""

    status_code = 404


class InternalError(ChatError):
    status_code = 500
