"""tests/test_integration.py

Integration tests for Sena components working together.
The real client, registry, and stores run against httpx.MockTransport
endpoints for the completion service and the remote mirror.
"""

from __future__ import annotations

# Standard Library
import itertools
import json
from datetime import timedelta
from pathlib import Path
from typing import Any

# Third-Party Libraries
import httpx
import pytest

# Local Modules
from sena.capabilities import CapabilityRegistry
from sena.chat import WARNING_MARKER, OrchestrationLoop
from sena.client import CompletionClient
from sena.models import Message, Mode, PassState, Role
from sena.store import LocalStore, MessageStore, MirrorConfig, RemoteMirror
from tests.conftest import FIXED_NOW, completion_body, inline_runner, wire_tool_call


class FakeCompletionService:
    """Scripted chat-completions endpoint recording every request body."""

    def __init__(self, responses: list[httpx.Response]) -> None:
        self.responses = list(responses)
        self.requests: list[dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        return self.responses.pop(0)


class FakeMirrorTable:
    """In-memory PostgREST-style table."""

    def __init__(self, available: bool = True) -> None:
        self.rows: list[dict[str, Any]] = []
        self.available = available

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if not self.available:
            return httpx.Response(503, json={"message": "mirror down"})
        if request.method == "POST":
            self.rows.extend(json.loads(request.content))
            return httpx.Response(201)
        return httpx.Response(200, json=sorted(self.rows, key=lambda r: r["created_at"]))


def build_loop(data_dir: Path, service: FakeCompletionService, table: FakeMirrorTable | None = None) -> OrchestrationLoop:
    registry = CapabilityRegistry()
    client = CompletionClient(
        registry=registry,
        base_url="https://api.example.test/v1",
        http_client=httpx.Client(transport=httpx.MockTransport(service)),
    )
    mirror = None
    if table is not None:
        mirror = RemoteMirror(
            MirrorConfig(url="https://mirror.test", api_key="anon"),
            http_client=httpx.Client(transport=httpx.MockTransport(table)),
        )
    ticks = itertools.count()
    store = MessageStore(
        LocalStore(data_dir),
        mirror=mirror,
        runner=inline_runner,
        clock=lambda: FIXED_NOW + timedelta(seconds=next(ticks)),
    )
    return OrchestrationLoop(client, registry, store, "test-key", mode=Mode.EXPLANATORY)


class TestIntegration:
    """Integration tests for the Sena orchestration core."""

    def test_draw_a_cat_end_to_end(self, tmp_path: Path) -> None:
        service = FakeCompletionService(
            [
                httpx.Response(
                    200,
                    json=completion_body(
                        "", tool_calls=[wire_tool_call("call_1", "generate_image", {"prompt": "a cat"})]
                    ),
                ),
                httpx.Response(
                    200,
                    json=completion_body("Here is your cat! ![a cat](https://image.pollinations.ai/prompt/a%20cat)"),
                ),
            ]
        )
        table = FakeMirrorTable()
        loop = build_loop(tmp_path, service, table)

        assert loop.start_pass("draw a cat") is PassState.DONE

        # The second request carries the tool exchange in issued order.
        second = service.requests[1]["messages"]
        assert [m["role"] for m in second] == ["system", "user", "assistant", "tool"]
        assert second[3]["tool_call_id"] == "call_1"
        assert "a%20cat" in second[3]["content"]

        local = LocalStore(tmp_path).load_messages()
        assert [m.role for m in local] == [Role.USER, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]
        assert "pollinations" in local[3].content
        assert [row["role"] for row in table.rows] == ["user", "assistant", "tool", "assistant"]

    def test_auth_failure_end_to_end(self, tmp_path: Path) -> None:
        service = FakeCompletionService([httpx.Response(401, json={"message": "Unauthorized"})])
        loop = build_loop(tmp_path, service)

        assert loop.start_pass("Hi") is PassState.FAILED

        local = LocalStore(tmp_path).load_messages()
        assert local[0] == Message.user("Hi")
        assert len(local) == 2
        assert local[1].role is Role.ASSISTANT
        assert local[1].content.startswith(WARNING_MARKER)
        assert "API key" in local[1].content

    def test_failure_message_is_sent_on_next_pass(self, tmp_path: Path) -> None:
        """The warning message is part of the log and therefore of later history."""
        service = FakeCompletionService(
            [
                httpx.Response(500, json={"message": "internal error"}),
                httpx.Response(200, json=completion_body("Back online")),
            ]
        )
        loop = build_loop(tmp_path, service)

        loop.start_pass("first")
        loop.start_pass("second")

        history = service.requests[1]["messages"]
        assert [m["role"] for m in history] == ["system", "user", "assistant", "user"]
        assert history[2]["content"] == f"{WARNING_MARKER} API error: internal error"

    def test_conversation_restored_after_restart(self, tmp_path: Path) -> None:
        first = build_loop(tmp_path, FakeCompletionService([httpx.Response(200, json=completion_body("Hello!"))]))
        first.start_pass("Hi")

        restarted = build_loop(tmp_path, FakeCompletionService([]))

        assert [m.content for m in restarted.messages] == ["Hi", "Hello!"]

    def test_mirror_outage_keeps_local_copy(self, tmp_path: Path) -> None:
        table = FakeMirrorTable(available=False)
        loop = build_loop(tmp_path, FakeCompletionService([httpx.Response(200, json=completion_body("ok"))]), table)

        assert loop.start_pass("Hi") is PassState.DONE

        assert table.rows == []
        assert len(LocalStore(tmp_path).load_messages()) == 2
        failures = []
        while not loop.store.mirror_failures.empty():
            failures.append(loop.store.mirror_failures.get_nowait())
        # One failed load at startup, then the user and reply batches.
        assert [f.operation for f in failures] == ["load", "append", "append"]

    @pytest.mark.slow
    def test_mirror_wins_over_diverged_local(self, tmp_path: Path) -> None:
        """After an outage the mirror lacks a batch; load still prefers it."""
        table = FakeMirrorTable()
        service = FakeCompletionService(
            [httpx.Response(200, json=completion_body("one")), httpx.Response(200, json=completion_body("two"))]
        )
        loop = build_loop(tmp_path, service, table)
        loop.start_pass("first")
        table.available = False
        loop.start_pass("second")
        table.available = True

        restarted = build_loop(tmp_path, FakeCompletionService([]), table)

        assert [m.content for m in restarted.messages] == ["first", "one"]
        assert len(LocalStore(tmp_path).load_messages()) == 4

    def test_tool_references_survive_mirror_restart(self, tmp_path: Path) -> None:
        """History restored from the mirror still answers each tool call by id."""
        table = FakeMirrorTable()
        first = build_loop(
            tmp_path,
            FakeCompletionService(
                [
                    httpx.Response(
                        200,
                        json=completion_body(
                            "", tool_calls=[wire_tool_call("call_1", "generate_image", {"prompt": "a cat"})]
                        ),
                    ),
                    httpx.Response(200, json=completion_body("Here is your cat!")),
                ]
            ),
            table,
        )
        first.start_pass("draw a cat")

        service = FakeCompletionService([httpx.Response(200, json=completion_body("You're welcome!"))])
        restarted = build_loop(tmp_path / "fresh", service, table)

        restored = restarted.messages[2]
        assert restored.role is Role.TOOL
        assert (restored.tool_call_ref, restored.capability_name) == ("call_1", "generate_image")

        assert restarted.start_pass("thanks") is PassState.DONE
        tool_wire = [m for m in service.requests[0]["messages"] if m["role"] == "tool"]
        assert tool_wire == [
            {
                "role": "tool",
                "content": "![a cat](https://image.pollinations.ai/prompt/a%20cat)",
                "tool_call_id": "call_1",
                "name": "generate_image",
            }
        ]
