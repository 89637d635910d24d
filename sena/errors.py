"""sena/errors.py

Failure taxonomy for a conversational pass.

Completion and decode failures are collapsed by the chat loop into a single
warning message. Persistence failures of the local store escalate to the
caller because the local store is the durability source of truth.
"""

from __future__ import annotations


class SenaError(Exception):
    """Base class for every failure raised by the assistant core."""

    def __init__(self, user_message: str) -> None:
        super().__init__(user_message)
        self.user_message = user_message


class AuthFailure(SenaError):
    """The completion service rejected the credential (HTTP 401)."""

    def __init__(self, user_message: str = "Invalid API key. Check your credentials and try again.") -> None:
        super().__init__(user_message)


class RemoteFailure(SenaError):
    """Any other unsuccessful exchange with the completion service."""

    def __init__(self, user_message: str, status_code: int | None = None) -> None:
        super().__init__(user_message)
        self.status_code = status_code


class DecodeFailure(SenaError):
    """A tool call carried arguments that do not match the capability schema."""

    def __init__(self, user_message: str, capability_name: str | None = None) -> None:
        super().__init__(user_message)
        self.capability_name = capability_name


class PersistenceFailure(SenaError):
    """The local durable store could not be read or written."""
