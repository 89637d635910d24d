"""Sena - conversational assistant core."""

from sena.chat import OrchestrationLoop
from sena.models import Message, Mode, PassState, Role, ToolCall

__all__ = ["OrchestrationLoop", "Message", "Mode", "PassState", "Role", "ToolCall"]
