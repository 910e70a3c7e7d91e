"""Errors raised by the shiftswap services.

Every error carries the message shown to the API client and the HTTP
status code it maps to. The app factory renders them as ``{"msg": ...}``.
"""

from __future__ import annotations


class ShiftSwapError(Exception):
    """Base class for errors surfaced to the API client."""

    status_code = 400

    def __init__(self, msg: str) -> None:
        """Store the human readable message."""
        super().__init__(msg)
        self.msg = msg


class ValidationError(ShiftSwapError):
    """A business rule or the request body was not satisfied."""

    status_code = 400


class AlreadyProcessedError(ValidationError):
    """The shift exchange is no longer pending."""


class AuthorizationError(ShiftSwapError):
    """The actor is not allowed to perform the operation."""

    status_code = 403


class NotFoundError(ShiftSwapError):
    """A referenced record does not exist."""

    status_code = 404
