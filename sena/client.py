"""sena/client.py

Single request/response exchange with a Mistral-compatible chat-completions
endpoint. The client composes the system directive, attaches the capability
schemas and maps failures onto the error taxonomy; it does not act on tool
calls returned by the model.
"""

from __future__ import annotations

# Standard Library
import json
import logging
from typing import Any, Sequence

# Third-Party Libraries
import httpx

# Local Modules
from sena.capabilities import CapabilityRegistry
from sena.errors import AuthFailure, RemoteFailure
from sena.models import Message, Mode, Role, ToolCall
from sena.prompts import PromptComposer

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL: str = "https://api.mistral.ai/v1"
DEFAULT_MODEL: str = "open-mistral-7b"


def to_wire(message: Message) -> dict[str, Any]:
    """Convert a ``Message`` into the chat-completions message shape."""
    wire: dict[str, Any] = {"role": message.role.value, "content": message.content}
    if message.tool_calls:
        wire["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {
                    "name": call.capability_name,
                    "arguments": call.argument_payload,
                },
            }
            for call in message.tool_calls
        ]
    if message.role is Role.TOOL:
        wire["tool_call_id"] = message.tool_call_ref
        wire["name"] = message.capability_name
    return wire


def from_wire(raw: dict[str, Any]) -> Message:
    """Build a ``Message`` from a completion choice's ``message`` object.

    Tool-call arguments are kept as JSON text.
    """
    calls: list[ToolCall] = []
    for index, raw_call in enumerate(raw.get("tool_calls") or []):
        function = raw_call.get("function") or {}
        arguments = function.get("arguments", "{}")
        if not isinstance(arguments, str):
            # Some providers send the arguments already decoded.
            arguments = json.dumps(arguments)
        calls.append(
            ToolCall(
                id=str(raw_call.get("id") or f"call_{index}"),
                capability_name=str(function.get("name", "")),
                argument_payload=arguments,
            )
        )

    return Message(
        role=Role(raw.get("role") or Role.ASSISTANT.value),
        content=raw.get("content") or "",
        tool_calls=tuple(calls) or None,
        tool_call_ref=raw.get("tool_call_id"),
        capability_name=raw.get("name") if raw.get("tool_call_id") else None,
    )


def _error_text(response: httpx.Response) -> str:
    """Extract the server-reported error message, else the status text."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        for key in ("message", "detail"):
            if body.get(key):
                return str(body[key])

    return response.reason_phrase or f"HTTP {response.status_code}"


class CompletionClient:
    """Performs one chat-completions exchange per call.

    The HTTP client is injectable so tests can route requests through
    ``httpx.MockTransport``.
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        composer: PromptComposer | None = None,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the completion client.

        Args:
            registry: Source of the capability schemas attached to requests.
            composer: Builds the system directive. Defaults to ``PromptComposer()``.
            model: Model identifier sent with every request.
            base_url: Service root; ``/chat/completions`` is appended.
            timeout: Transport timeout in seconds.
            http_client: Pre-built httpx client. Created when omitted.
        """
        self.registry = registry
        self.composer = composer or PromptComposer()
        self.model = model
        self.completions_url = base_url.rstrip("/") + "/chat/completions"
        self._http = http_client or httpx.Client(timeout=timeout)

    def build_payload(self, history: Sequence[Message], mode: Mode) -> dict[str, Any]:
        """Assemble the request body.

        Any system messages already present in ``history`` are dropped; a
        freshly composed directive always leads the list.
        """
        messages: list[dict[str, Any]] = [to_wire(Message.system(self.composer.compose(mode)))]
        messages.extend(to_wire(m) for m in history if m.role is not Role.SYSTEM)

        return {
            "model": self.model,
            "messages": messages,
            "tools": self.registry.schemas(),
            "tool_choice": "auto",
        }

    def send_turn(self, history: Sequence[Message], mode: Mode, credentials: str) -> Message:
        """Send the conversation and return the model's reply.

        Args:
            history: Ordered conversation to send after the system directive.
            mode: Conversation mode selecting the directive tail.
            credentials: API key used as the bearer token.

        Returns:
            The first choice's message, tool calls included.

        Raises:
            AuthFailure: The service answered 401.
            RemoteFailure: Any other non-success status, a transport error, or
                a response without a usable choice.
        """
        payload = self.build_payload(history, mode)
        headers = {
            "Authorization": f"Bearer {credentials}",
            "Content-Type": "application/json",
        }

        logger.info(
            "[completion] model=%r url=%s messages=%d",
            self.model,
            self.completions_url,
            len(payload["messages"]),
        )
        try:
            response = self._http.post(self.completions_url, json=payload, headers=headers)
        except httpx.RequestError as exc:
            logger.error("[completion] transport error: %s", exc)
            raise RemoteFailure(f"Could not reach the completion service: {exc}") from exc

        if response.status_code == 401:
            logger.warning("[completion] credential rejected")
            raise AuthFailure()
        if response.is_error:
            text = _error_text(response)
            logger.error("[completion] HTTP %d: %s", response.status_code, text)
            raise RemoteFailure(f"API error: {text}", status_code=response.status_code)

        try:
            choices = response.json().get("choices") or []
            raw_message = choices[0].get("message") if choices else None
        except (ValueError, AttributeError) as exc:
            raise RemoteFailure("Empty or unexpected response from the API.") from exc

        if not isinstance(raw_message, dict):
            raise RemoteFailure("Empty or unexpected response from the API.")

        try:
            reply = from_wire(raw_message)
        except (ValueError, TypeError) as exc:
            raise RemoteFailure("Empty or unexpected response from the API.") from exc
        logger.info(
            "[completion] reply length=%d chars, tool_calls=%d",
            len(reply.content),
            len(reply.tool_calls or ()),
        )
        return reply

    def close(self) -> None:
        self._http.close()
