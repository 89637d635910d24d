"""sena/store.py

Dual-backend message persistence.

The local JSON store is always present and is the durability source of
truth: appends block on it and its failures propagate. The remote mirror is
optional; it wins outright on load when it has data, and its writes are
fire-and-forget. A batch missed by the mirror during an outage is never
backfilled.
"""

from __future__ import annotations

# Standard Library
import json
import logging
import os
import queue
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Sequence

# Third-Party Libraries
import httpx
from pydantic import ValidationError

# Local Modules
from sena.errors import PersistenceFailure
from sena.models import Message, Role, ToolCall

logger = logging.getLogger(__name__)

MESSAGES_KEY: str = "sena-messages"

Clock = Callable[[], datetime]
TaskRunner = Callable[[Callable[[], None]], Any]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Secondary: local durable store
# ---------------------------------------------------------------------------


class LocalStore:
    """JSON documents kept under fixed keys inside a data directory.

    Each key maps to ``<data_dir>/<key>.json`` and is fully rewritten on every
    write through a temporary file and an atomic replace.
    """

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir).expanduser()

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def read(self, key: str, default: Any = None) -> Any:
        """Return the decoded document stored under ``key``.

        Raises:
            PersistenceFailure: If the file exists but cannot be read or parsed.
        """
        path = self._path(key)
        if not path.exists():
            return default
        try:
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceFailure(f"Could not read local record {key!r}: {exc}") from exc

    def write(self, key: str, value: Any) -> None:
        """Overwrite the document stored under ``key``.

        Raises:
            PersistenceFailure: If the document cannot be written.
        """
        path = self._path(key)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(value, handle, ensure_ascii=False, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceFailure(f"Could not write local record {key!r}: {exc}") from exc

    def load_messages(self) -> list[Message]:
        raw = self.read(MESSAGES_KEY, default=[])
        try:
            return [Message.model_validate(item) for item in raw]
        except (ValidationError, TypeError) as exc:
            raise PersistenceFailure(f"Local message record is corrupt: {exc}") from exc

    def append_messages(self, batch: Sequence[Message]) -> None:
        """Rewrite the message record as existing entries followed by ``batch``."""
        existing = self.read(MESSAGES_KEY, default=[])
        if not isinstance(existing, list):
            raise PersistenceFailure("Local message record is corrupt: expected a list")
        existing.extend(m.model_dump(mode="json") for m in batch)
        self.write(MESSAGES_KEY, existing)


# ---------------------------------------------------------------------------
# Primary: optional remote mirror
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MirrorConfig:
    """Connection details for the remote mirror table.

    Attributes:
        url: Project root of a PostgREST-style service (``/rest/v1`` is appended).
        api_key: Key sent as both ``apikey`` and bearer token.
        table: Table holding one row per message.
        timeout: Transport timeout in seconds.
    """

    url: str
    api_key: str
    table: str = "messages"
    timeout: float = 10.0


@dataclass(frozen=True)
class MirrorFailure:
    """Observability event recorded when a mirror operation fails."""

    operation: str
    error: str
    batch_size: int = 0
    occurred_at: datetime = field(default_factory=_utc_now)


def to_mirror_record(message: Message, created_at: datetime) -> dict[str, Any]:
    """Row shape stored in the mirror table for one message."""
    tool_calls = (
        json.dumps([call.model_dump() for call in message.tool_calls])
        if message.tool_calls
        else None
    )
    return {
        "role": message.role.value,
        "content": message.content,
        "tool_calls": tool_calls,
        "created_at": created_at.isoformat(),
    }


def from_mirror_record(row: dict[str, Any]) -> Message:
    raw_calls = row.get("tool_calls")
    calls = None
    if raw_calls:
        decoded = json.loads(raw_calls) if isinstance(raw_calls, str) else raw_calls
        calls = tuple(ToolCall.model_validate(c) for c in decoded)
    return Message(role=Role(row["role"]), content=row.get("content") or "", tool_calls=calls)


def relink_tool_messages(messages: Sequence[Message]) -> list[Message]:
    """Restore the call references that mirror rows do not carry.

    Tool messages directly follow the assistant message that requested them,
    one per call and in issued order, so each run of tool messages is paired
    positionally with the preceding assistant's ``tool_calls``. Tool messages
    with no matching call are kept as they are.
    """
    relinked: list[Message] = []
    pending: list[ToolCall] = []
    for message in messages:
        if message.role is Role.TOOL:
            if pending and message.tool_call_ref is None:
                call = pending.pop(0)
                message = message.model_copy(
                    update={"tool_call_ref": call.id, "capability_name": call.capability_name}
                )
        else:
            pending = list(message.tool_calls or ())
        relinked.append(message)
    return relinked


class RemoteMirror:
    """Row-per-message mirror over a PostgREST-style REST API."""

    def __init__(self, config: MirrorConfig, http_client: httpx.Client | None = None) -> None:
        self.config = config
        self.table_url = f"{config.url.rstrip('/')}/rest/v1/{config.table}"
        self._http = http_client or httpx.Client(timeout=config.timeout)

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.config.api_key,
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def fetch(self) -> list[Message]:
        """Return every mirrored message ordered by ``created_at``.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx responses.
            ValueError: If the body is not a list of rows or a row cannot be decoded.
        """
        response = self._http.get(
            self.table_url,
            params={"select": "*", "order": "created_at.asc"},
            headers=self._headers,
        )
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, list) or not all(isinstance(row, dict) for row in body):
            raise ValueError(f"Mirror returned {type(body).__name__}, expected a list of rows")
        return relink_tool_messages([from_mirror_record(row) for row in body])

    def insert(self, records: list[dict[str, Any]]) -> None:
        response = self._http.post(
            self.table_url,
            json=records,
            headers={**self._headers, "Prefer": "return=minimal"},
        )
        response.raise_for_status()


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------


class MessageStore:
    """Load/append facade over the local store and the optional mirror."""

    def __init__(
        self,
        local: LocalStore,
        mirror_config: MirrorConfig | None = None,
        *,
        mirror: RemoteMirror | None = None,
        runner: TaskRunner | None = None,
        clock: Clock = _utc_now,
    ) -> None:
        """Initialize the store.

        Args:
            local: Always-present durable store.
            mirror_config: Remote mirror settings. ``None`` runs local-only.
            mirror: Pre-built mirror, overriding ``mirror_config``.
            runner: Schedules detached mirror writes. Defaults to a
                single-worker thread pool so mirror writes keep batch order.
            clock: Source of ``created_at`` timestamps for mirror rows.
        """
        self.local = local
        self.mirror = mirror or (RemoteMirror(mirror_config) if mirror_config else None)
        self.clock = clock
        self.mirror_failures: queue.Queue[MirrorFailure] = queue.Queue()
        self._executor: ThreadPoolExecutor | None = None
        if runner is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mirror")
            runner = self._executor.submit
        self._runner = runner

    @property
    def mirrored(self) -> bool:
        return self.mirror is not None

    def _record_failure(self, operation: str, exc: BaseException, batch_size: int = 0) -> None:
        logger.warning("[mirror] %s failed: %s", operation, exc)
        self.mirror_failures.put(MirrorFailure(operation=operation, error=str(exc), batch_size=batch_size))

    def load(self) -> list[Message]:
        """Return the conversation, preferring a non-empty mirror."""
        if self.mirror is not None:
            try:
                mirrored = self.mirror.fetch()
            except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
                self._record_failure("load", exc)
            else:
                if mirrored:
                    logger.info("Loaded %d messages from mirror", len(mirrored))
                    return mirrored
                logger.info("Mirror is empty, reading local store")

        messages = self.local.load_messages()
        logger.info("Loaded %d messages from local store", len(messages))
        return messages

    def append(self, batch: Sequence[Message]) -> None:
        """Persist ``batch`` after all existing messages.

        Returns once the local write succeeds. The mirror write is scheduled
        and never awaited.

        Raises:
            PersistenceFailure: If the local write fails.
        """
        batch = list(batch)
        if not batch:
            return

        self.local.append_messages(batch)
        logger.info("Appended %d message(s) to local store", len(batch))

        if self.mirror is not None:
            self._schedule_mirror_write(batch)

    def _schedule_mirror_write(self, batch: list[Message]) -> None:
        base = self.clock()
        records = [
            to_mirror_record(message, base + timedelta(microseconds=offset))
            for offset, message in enumerate(batch)
        ]
        mirror = self.mirror

        def write() -> None:
            try:
                mirror.insert(records)
            except Exception as exc:
                self._record_failure("append", exc, batch_size=len(records))
            else:
                logger.info("[mirror] wrote %d row(s)", len(records))

        try:
            self._runner(write)
        except RuntimeError as exc:
            # Executor already shut down.
            self._record_failure("append", exc, batch_size=len(records))

    def close(self) -> None:
        """Wait for scheduled mirror writes and release the worker thread."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
