"""sena/capabilities.py

Statically declared tools the model may ask Sena to run.

Each capability exposes an OpenAI-style function schema for the completion
request and a pydantic arguments model used to validate the raw JSON the
model sends back. Execution is synchronous and deterministic.
"""

from __future__ import annotations

# Standard Library
import json
import logging
import urllib.parse
from dataclasses import dataclass
from typing import Any, Callable

# Third-Party Libraries
from pydantic import BaseModel, ConfigDict, ValidationError

# Local Modules
from sena.errors import DecodeFailure

logger = logging.getLogger(__name__)

UNKNOWN_CAPABILITY: str = "unknown capability"
IMAGE_SERVICE_URL: str = "https://image.pollinations.ai/prompt/"


class ImageArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prompt: str


class SearchArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    query: str


@dataclass(frozen=True)
class Capability:
    """A named tool with its argument schema and implementation.

    Attributes:
        name: Function name the model uses to request the tool.
        description: Natural-language description shown to the model.
        parameters: Property name → description. Every property is a
            required string.
        arguments_model: Pydantic model validating decoded arguments.
        handler: Callable receiving a validated ``arguments_model`` instance.
    """

    name: str
    description: str
    parameters: dict[str, str]
    arguments_model: type[BaseModel]
    handler: Callable[[Any], str]

    def schema(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {
                        prop: {"type": "string", "description": desc}
                        for prop, desc in self.parameters.items()
                    },
                    "required": list(self.parameters),
                },
            },
        }


def _generate_image(args: ImageArguments) -> str:
    """Return a markdown image directive pointing at the generated picture.

    The reference is derived from the prompt alone, so the same prompt always
    yields the same directive.
    """
    prompt = args.prompt.strip()
    reference = IMAGE_SERVICE_URL + urllib.parse.quote(prompt, safe="")
    return f"![{prompt}]({reference})"


def _web_search(args: SearchArguments) -> str:
    # Placeholder until a search backend is wired in.
    return (
        f"Web search is not available yet. No live results for: {args.query}. "
        "Answer from general knowledge and tell the user the information may be out of date."
    )


DEFAULT_CAPABILITIES: tuple[Capability, ...] = (
    Capability(
        name="generate_image",
        description=(
            "Create an image from a text description. Use this when the user asks "
            "you to draw, paint, illustrate or create a picture."
        ),
        parameters={"prompt": "Short description of the image to create (e.g. 'a cat')."},
        arguments_model=ImageArguments,
        handler=_generate_image,
    ),
    Capability(
        name="web_search",
        description="Search the web for current, real-world information.",
        parameters={"query": "The search query string."},
        arguments_model=SearchArguments,
        handler=_web_search,
    ),
)


class CapabilityRegistry:
    """Fixed set of capabilities keyed by name."""

    def __init__(self, capabilities: tuple[Capability, ...] = DEFAULT_CAPABILITIES) -> None:
        self._capabilities: dict[str, Capability] = {}
        for capability in capabilities:
            self._capabilities[capability.name] = capability
            logger.debug("Registered capability: %s", capability.name)

    def names(self) -> list[str]:
        return list(self._capabilities)

    def schemas(self) -> list[dict[str, Any]]:
        """Return every capability schema in declaration order."""
        return [capability.schema() for capability in self._capabilities.values()]

    def decode_arguments(self, capability: Capability, payload: str | dict[str, Any]) -> BaseModel:
        """Validate a raw argument payload against the capability's model.

        Args:
            capability: The capability whose schema applies.
            payload: JSON text from the model, or an already-decoded object.

        Returns:
            A validated instance of ``capability.arguments_model``.

        Raises:
            DecodeFailure: If the payload is not a JSON object or fails validation.
        """
        if isinstance(payload, str):
            try:
                decoded = json.loads(payload) if payload.strip() else {}
            except json.JSONDecodeError as exc:
                raise DecodeFailure(
                    f"Could not read the arguments for {capability.name}: {exc.msg}",
                    capability_name=capability.name,
                ) from exc
        else:
            decoded = payload

        if not isinstance(decoded, dict):
            raise DecodeFailure(
                f"Arguments for {capability.name} must be a JSON object.",
                capability_name=capability.name,
            )

        try:
            return capability.arguments_model.model_validate(decoded)
        except ValidationError as exc:
            missing = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
            raise DecodeFailure(
                f"Invalid arguments for {capability.name}: {missing}",
                capability_name=capability.name,
            ) from exc

    def execute(self, capability_name: str, argument_payload: str | dict[str, Any]) -> str:
        """Run a capability and return its textual result.

        Unknown names are not an error: they produce the ``UNKNOWN_CAPABILITY``
        sentinel so the model can recover in its next completion.

        Raises:
            DecodeFailure: If the arguments do not match the capability schema.
        """
        capability = self._capabilities.get(capability_name)
        if capability is None:
            logger.warning("Model requested unknown capability: %s", capability_name)
            return UNKNOWN_CAPABILITY

        arguments = self.decode_arguments(capability, argument_payload)
        result = capability.handler(arguments)
        logger.info("Capability executed: %s → %s", capability_name, result[:200])
        return result
