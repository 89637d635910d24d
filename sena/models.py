"""sena/models.py

Conversation data model shared by the client, the store and the chat loop.
Messages are immutable once built; the conversation is an append-only list.
"""

from __future__ import annotations

# Standard Library
from enum import Enum

# Third-Party Libraries
from pydantic import BaseModel, ConfigDict


class Role(str, Enum):
    """Author of a conversational turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class Mode(str, Enum):
    """Conversation style selected for the session."""

    EXPLANATORY = "Explanatory"
    PROFESSIONAL = "Professional"
    CASUAL = "Casual"

    @classmethod
    def parse(cls, text: str) -> "Mode":
        """Resolve a mode from its name, ignoring case and surrounding space.

        Raises:
            ValueError: If ``text`` names no known mode.
        """
        wanted = text.strip().lower()
        for mode in cls:
            if mode.value.lower() == wanted:
                return mode
        raise ValueError(f"Unknown mode: {text!r}")


class PassState(str, Enum):
    """States of the orchestration state machine."""

    IDLE = "idle"
    AWAITING_FIRST_COMPLETION = "awaiting_first_completion"
    TOOL_DISPATCH = "tool_dispatch"
    AWAITING_SECOND_COMPLETION = "awaiting_second_completion"
    DONE = "done"
    FAILED = "failed"


class ToolCall(BaseModel):
    """A capability invocation requested by the model.

    ``argument_payload`` is kept as the raw JSON text the model produced;
    it is only decoded by the capability registry.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    capability_name: str
    argument_payload: str = "{}"


class Message(BaseModel):
    """One conversational turn."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str = ""
    tool_calls: tuple[ToolCall, ...] | None = None
    tool_call_ref: str | None = None
    capability_name: str | None = None

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=content)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def tool_result(cls, call: ToolCall, content: str) -> "Message":
        """Build the tool-role reply answering ``call``."""
        return cls(
            role=Role.TOOL,
            content=content,
            tool_call_ref=call.id,
            capability_name=call.capability_name,
        )

    @property
    def requests_tools(self) -> bool:
        return self.role is Role.ASSISTANT and bool(self.tool_calls)
