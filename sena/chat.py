"""sena/chat.py

Orchestration loop: turns one user input into a complete conversational pass.

A pass persists the user message, asks the completion service for a reply,
runs any requested capabilities in the order the model issued them, asks for
a second reply that sees the tool results, and persists the resulting batch
with a single store append. Completion and decode failures end the pass with
one warning message instead of the batch.
"""

from __future__ import annotations

# Standard Library
import logging
import threading

# Local Modules
from sena.capabilities import CapabilityRegistry
from sena.client import CompletionClient
from sena.config import SenaSettings
from sena.errors import AuthFailure, DecodeFailure, RemoteFailure
from sena.models import Message, Mode, PassState
from sena.prompts import PromptComposer
from sena.store import LocalStore, MessageStore

logger = logging.getLogger(__name__)

WARNING_MARKER: str = "⚠️"
MODE_KEY: str = "sena-mode"


class OrchestrationLoop:
    """Single-flight state machine driving completion passes.

    The view layer reads ``messages`` and ``is_busy`` and calls
    ``start_pass``; it has no other coupling to the loop.
    """

    def __init__(
        self,
        client: CompletionClient,
        registry: CapabilityRegistry,
        store: MessageStore,
        credentials: str,
        mode: Mode = Mode.EXPLANATORY,
    ) -> None:
        """Initialize the loop and load the existing conversation.

        Args:
            client: Completion service client.
            registry: Capabilities available to the model.
            store: Persistence for the conversation log.
            credentials: API key handed to the client on every exchange.
            mode: Initial conversation mode.
        """
        self.client = client
        self.registry = registry
        self.store = store
        self.credentials = credentials
        self.mode = mode
        self.state = PassState.IDLE
        self.last_outcome: PassState | None = None

        self._flight = threading.Lock()
        self._log: list[Message] = store.load()

        logger.info(
            "OrchestrationLoop initialized: mode=%s, messages=%d, mirror=%s",
            self.mode.value,
            len(self._log),
            store.mirrored,
        )

    @classmethod
    def from_settings(cls, settings: SenaSettings) -> "OrchestrationLoop":
        """Wire the full object graph from configuration.

        The saved mode preference, when present and valid, overrides
        ``settings.default_mode``.
        """
        registry = CapabilityRegistry()
        client = CompletionClient(
            registry=registry,
            composer=PromptComposer(),
            model=settings.completion_model,
            base_url=settings.completion_base_url,
            timeout=settings.request_timeout,
        )
        local = LocalStore(settings.data_dir)
        store = MessageStore(local, settings.mirror_config())

        mode = settings.default_mode
        saved = local.read(MODE_KEY)
        if isinstance(saved, str):
            try:
                mode = Mode.parse(saved)
            except ValueError:
                logger.warning("Ignoring unknown saved mode: %r", saved)

        return cls(client, registry, store, settings.mistral_api_key, mode=mode)

    # ------------------------------------------------------------------
    # View-layer surface
    # ------------------------------------------------------------------

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._log)

    @property
    def is_busy(self) -> bool:
        return self._flight.locked()

    def set_mode(self, mode: Mode) -> None:
        """Switch the conversation mode and remember it for the next session."""
        self.mode = mode
        self.store.local.write(MODE_KEY, mode.value)
        logger.info("Conversation mode set to %s", mode.value)

    # ------------------------------------------------------------------
    # Pass execution
    # ------------------------------------------------------------------

    def start_pass(self, raw_user_text: str) -> PassState | None:
        """Run one full pass for ``raw_user_text``.

        Returns:
            ``PassState.DONE`` or ``PassState.FAILED``; ``None`` when the call
            was rejected because a pass is in flight or the text is blank.

        Raises:
            PersistenceFailure: The local store could not be written.
        """
        if not raw_user_text.strip():
            return None
        if not self._flight.acquire(blocking=False):
            logger.info("Pass already in flight, ignoring input")
            return None

        try:
            outcome = self._run_pass(raw_user_text)
            self.last_outcome = outcome
            return outcome
        finally:
            self.state = PassState.IDLE
            self._flight.release()

    def _persist(self, batch: list[Message]) -> None:
        self.store.append(batch)
        self._log.extend(batch)

    def _transition(self, state: PassState) -> None:
        logger.debug("Pass state: %s → %s", self.state.value, state.value)
        self.state = state

    def _run_pass(self, raw_user_text: str) -> PassState:
        user_message = Message.user(raw_user_text)
        self._persist([user_message])

        try:
            batch = self._exchange()
        except (AuthFailure, RemoteFailure, DecodeFailure) as exc:
            logger.warning("Pass failed (%s): %s", type(exc).__name__, exc.user_message)
            self._transition(PassState.FAILED)
            self._persist([Message.assistant(f"{WARNING_MARKER} {exc.user_message}")])
            return PassState.FAILED

        self._persist(batch)
        self._transition(PassState.DONE)
        logger.info("Pass completed with %d new message(s)", len(batch))
        return PassState.DONE

    def _exchange(self) -> list[Message]:
        """Drive the completion exchange and return the batch to persist.

        Nothing is persisted here; the pending batch is discarded by the
        caller on failure.
        """
        self._transition(PassState.AWAITING_FIRST_COMPLETION)
        first = self.client.send_turn(list(self._log), self.mode, self.credentials)

        if not first.requests_tools:
            return [first]

        self._transition(PassState.TOOL_DISPATCH)
        tool_messages: list[Message] = []
        for call in first.tool_calls:
            result = self.registry.execute(call.capability_name, call.argument_payload)
            tool_messages.append(Message.tool_result(call, result))

        working_context = [*self._log, first, *tool_messages]

        self._transition(PassState.AWAITING_SECOND_COMPLETION)
        final = self.client.send_turn(working_context, self.mode, self.credentials)

        return [first, *tool_messages, final]

    def close(self) -> None:
        self.store.close()
        self.client.close()
