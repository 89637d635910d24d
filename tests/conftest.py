"""tests/conftest.py

Pytest configuration and shared fixtures for the Sena test suite.
"""

from __future__ import annotations

# Standard Library
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable
from unittest.mock import Mock

# Third-Party Libraries
import httpx
import pytest

# Local Modules
from sena.capabilities import CapabilityRegistry
from sena.chat import OrchestrationLoop
from sena.client import CompletionClient
from sena.models import Message, Mode, Role, ToolCall
from sena.store import LocalStore, MessageStore, RemoteMirror

FIXED_NOW = datetime(2026, 2, 23, 12, 0, 0, tzinfo=timezone.utc)


def completion_body(content: str = "", tool_calls: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    """Build a chat-completions success body with a single choice."""
    message: dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls is not None:
        message["tool_calls"] = tool_calls
    return {
        "id": "cmpl-test",
        "model": "open-mistral-7b",
        "choices": [{"index": 0, "message": message, "finish_reason": "stop"}],
    }


def wire_tool_call(call_id: str, name: str, arguments: dict[str, Any] | str) -> dict[str, Any]:
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


def inline_runner(job: Callable[[], None]) -> None:
    """Run a detached job immediately on the calling thread."""
    job()


@pytest.fixture
def registry() -> CapabilityRegistry:
    return CapabilityRegistry()


@pytest.fixture
def local_store(tmp_path: Path) -> LocalStore:
    return LocalStore(tmp_path / "data")


@pytest.fixture
def store(local_store: LocalStore) -> MessageStore:
    """Local-only message store."""
    return MessageStore(local_store, runner=inline_runner, clock=lambda: FIXED_NOW)


@pytest.fixture
def mock_mirror() -> Mock:
    """Mock remote mirror that starts empty and accepts every insert."""
    mirror = Mock(spec=RemoteMirror)
    mirror.fetch.return_value = []
    return mirror


@pytest.fixture
def mirrored_store(local_store: LocalStore, mock_mirror: Mock) -> MessageStore:
    return MessageStore(local_store, mirror=mock_mirror, runner=inline_runner, clock=lambda: FIXED_NOW)


@pytest.fixture
def mock_client() -> Mock:
    """Mock CompletionClient; set ``side_effect`` to script replies."""
    client = Mock(spec=CompletionClient)
    client.model = "open-mistral-7b"
    client.send_turn.return_value = Message.assistant("This is a test response from the mock LLM.")
    return client


@pytest.fixture
def make_loop(mock_client: Mock, registry: CapabilityRegistry, store: MessageStore) -> Callable[..., OrchestrationLoop]:
    def factory(**overrides: Any) -> OrchestrationLoop:
        kwargs: dict[str, Any] = {
            "client": mock_client,
            "registry": registry,
            "store": store,
            "credentials": "test-key",
            "mode": Mode.EXPLANATORY,
        }
        kwargs.update(overrides)
        return OrchestrationLoop(**kwargs)

    return factory


@pytest.fixture
def sample_messages() -> list[Message]:
    """Create sample message history for testing."""
    return [
        Message.user("Hello!"),
        Message.assistant("Hi there! How can I help you?"),
        Message.user("What's the weather like?"),
        Message.assistant("I don't have real-time weather data, but I can help you find it!"),
    ]


@pytest.fixture
def tool_exchange() -> list[Message]:
    """A complete tool exchange as it appears in the log."""
    call = ToolCall(id="call_1", capability_name="generate_image", argument_payload='{"prompt": "a cat"}')
    return [
        Message.user("draw a cat"),
        Message(role=Role.ASSISTANT, content="", tool_calls=(call,)),
        Message.tool_result(call, "![a cat](https://image.pollinations.ai/prompt/a%20cat)"),
        Message.assistant("Here is your cat!"),
    ]


@pytest.fixture
def mock_transport_factory() -> Callable[..., tuple[httpx.Client, list[httpx.Request]]]:
    """Build an httpx client whose requests are answered by ``handler``.

    Returns the client and the list that records every request sent.
    """

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> tuple[httpx.Client, list[httpx.Request]]:
        seen: list[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        return httpx.Client(transport=httpx.MockTransport(recording_handler)), seen

    return factory
