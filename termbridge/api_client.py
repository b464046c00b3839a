"""
Multi-provider model service client.

Supports:
- Anthropic (Claude) via ``messages.stream``, including custom endpoints
- OpenAI via streaming chat completions

Both adapters turn their SDK's stream into the provider-neutral
block-start / block-delta / block-stop events the decoders consume, and
both convert the session's provider-neutral history into their own
message format.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

import anthropic
import openai

from .errors import ServiceError
from .schemas import ToolSpec
from .types import StreamEvent, Turn, TurnRole

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
TOOL_RESULT_ACK = "ok"
TRUNCATION_NOTICE = "[earlier turns truncated to fit the context window]"

# Tool choice values for ModelRequest
TOOL_CHOICE_ANY = "any"


class Provider(Enum):
    """Model service provider."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"


# Model registry with provider info
MODEL_REGISTRY: dict[str, tuple[Provider, str]] = {
    "opus": (Provider.ANTHROPIC, "claude-opus-4-5-20251101"),
    "sonnet": (Provider.ANTHROPIC, "claude-sonnet-4-20250514"),
    "haiku": (Provider.ANTHROPIC, "claude-haiku-4-5-20251001"),
    "gpt-4o": (Provider.OPENAI, "gpt-4o"),
    "gpt-4o-mini": (Provider.OPENAI, "gpt-4o-mini"),
}


def resolve_model(model: str) -> tuple[Provider, str]:
    """Resolve model shorthand to (provider, full_model_id)."""
    if model in MODEL_REGISTRY:
        return MODEL_REGISTRY[model]
    if model.startswith(("gpt-", "o1", "o3", "o4")):
        return (Provider.OPENAI, model)
    # Default to Anthropic
    return (Provider.ANTHROPIC, model)


@dataclass
class ModelRequest:
    """
    One turn's request to the model service.

    ``tool_choice`` is None (free text), ``"any"`` (at least one tool call)
    or the name of the one tool that must be called.
    """

    system: str
    turns: list[Turn]
    tools: list[ToolSpec] = field(default_factory=list)
    tool_choice: str | None = None
    model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    temperature: float | None = None


# -----------------------------------------------------------------------------
# History conversion
# -----------------------------------------------------------------------------


def to_anthropic_messages(turns: list[Turn]) -> list[dict[str, Any]]:
    """
    Convert history turns to Anthropic messages.

    Consecutive turns of the same role are merged. Acknowledgements whose
    tool_use fell out of the window are dropped, and a leading assistant
    message gets a truncation notice in front of it, since the API
    requires the conversation to open with a user message.
    """
    messages: list[dict[str, Any]] = []
    known_ids: set[str] = set()

    for turn in turns:
        blocks: list[dict[str, Any]] = []
        if turn.role is TurnRole.OPERATOR:
            role = "user"
            for call_id in turn.acknowledged:
                if call_id in known_ids:
                    blocks.append({"type": "tool_result", "tool_use_id": call_id, "content": TOOL_RESULT_ACK})
            if turn.text:
                blocks.append({"type": "text", "text": turn.text})
        else:
            role = "assistant"
            if turn.text:
                blocks.append({"type": "text", "text": turn.text})
            for call in turn.calls:
                known_ids.add(call.call_id)
                blocks.append({"type": "tool_use", "id": call.call_id, "name": call.name, "input": call.input_dict()})

        if not blocks:
            continue
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"].extend(blocks)
        else:
            messages.append({"role": role, "content": blocks})

    if messages and messages[0]["role"] == "assistant":
        messages.insert(0, {"role": "user", "content": [{"type": "text", "text": TRUNCATION_NOTICE}]})
    return messages


def to_openai_messages(system: str, turns: list[Turn]) -> list[dict[str, Any]]:
    """Convert history turns to OpenAI chat messages."""
    messages: list[dict[str, Any]] = []
    if system:
        messages.append({"role": "system", "content": system})
    known_ids: set[str] = set()

    for turn in turns:
        if turn.role is TurnRole.OPERATOR:
            for call_id in turn.acknowledged:
                if call_id in known_ids:
                    messages.append({"role": "tool", "tool_call_id": call_id, "content": TOOL_RESULT_ACK})
            if turn.text:
                messages.append({"role": "user", "content": turn.text})
            continue

        if not turn.text and not turn.calls:
            continue
        message: dict[str, Any] = {"role": "assistant", "content": turn.text or None}
        if turn.calls:
            message["tool_calls"] = [
                {
                    "id": call.call_id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.input_dict())},
                }
                for call in turn.calls
            ]
            known_ids.update(call.call_id for call in turn.calls)
        messages.append(message)

    return messages


# -----------------------------------------------------------------------------
# Stream event translation
# -----------------------------------------------------------------------------


def translate_anthropic_event(event: Any) -> list[StreamEvent]:
    """
    Map one Anthropic stream event to provider-neutral events.

    Helper events synthesized by the SDK (``text``, ``input_json``) and
    message-level events are ignored; the raw block events carry
    everything.
    """
    event_type = getattr(event, "type", None)

    if event_type == "content_block_start":
        block = event.content_block
        if block.type == "tool_use":
            return [StreamEvent.start(event.index, name=block.name, call_id=block.id)]
        if block.type == "text":
            events = [StreamEvent.start(event.index)]
            if getattr(block, "text", ""):
                events.append(StreamEvent.delta(event.index, block.text))
            return events
        return []

    if event_type == "content_block_delta":
        delta = event.delta
        if delta.type == "input_json_delta":
            return [StreamEvent.delta(event.index, delta.partial_json)]
        if delta.type == "text_delta":
            return [StreamEvent.delta(event.index, delta.text)]
        return []

    if event_type == "content_block_stop":
        return [StreamEvent.stop(event.index)]

    return []


class OpenAIStreamTracker:
    """
    Turns OpenAI chat completion chunks into block events.

    OpenAI has no explicit block boundaries: text arrives as
    ``delta.content`` and tool calls as ``delta.tool_calls`` fragments
    keyed by index. A block opens when a new text run or tool call index
    appears and closes when the next one opens or the stream ends.
    """

    def __init__(self) -> None:
        self._current: int | None = None
        self._current_is_text = False
        self._next_index = 0
        self._tool_blocks: dict[int, int] = {}

    def feed(self, chunk: Any) -> list[StreamEvent]:
        if not chunk.choices:
            return []
        delta = chunk.choices[0].delta
        events: list[StreamEvent] = []

        if getattr(delta, "content", None):
            if self._current is None or not self._current_is_text:
                events.extend(self._open(text=True))
            events.append(StreamEvent.delta(self._current, delta.content))

        for tool_call in getattr(delta, "tool_calls", None) or []:
            index = self._tool_blocks.get(tool_call.index)
            function = tool_call.function
            if index is None:
                events.extend(
                    self._open(
                        text=False,
                        name=function.name if function else None,
                        call_id=tool_call.id,
                    )
                )
                index = self._current
                self._tool_blocks[tool_call.index] = index
            if function is not None and function.arguments:
                events.append(StreamEvent.delta(index, function.arguments))

        return events

    def finish(self) -> list[StreamEvent]:
        return self._close()

    def _open(self, text: bool, name: str | None = None, call_id: str | None = None) -> list[StreamEvent]:
        events = self._close()
        self._current = self._next_index
        self._current_is_text = text
        self._next_index += 1
        events.append(StreamEvent.start(self._current, name=None if text else name, call_id=call_id))
        return events

    def _close(self) -> list[StreamEvent]:
        if self._current is None:
            return []
        index, self._current = self._current, None
        return [StreamEvent.stop(index)]


# -----------------------------------------------------------------------------
# Services
# -----------------------------------------------------------------------------


class ModelService(ABC):
    """Abstract model service: one request in, a stream of block events out."""

    @abstractmethod
    def stream(self, request: ModelRequest) -> AsyncIterator[StreamEvent]:
        """Stream events for one turn."""
        ...


class AnthropicService(ModelService):
    """Anthropic Claude streaming client."""

    def __init__(self, api_key: str | None = None, base_url: str | None = None):
        # Support both ANTHROPIC_API_KEY and ANTHROPIC_AUTH_TOKEN
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY") or os.environ.get("ANTHROPIC_AUTH_TOKEN")
        if not self.api_key:
            raise ValueError(
                "Anthropic API key required. Set ANTHROPIC_API_KEY or ANTHROPIC_AUTH_TOKEN environment variable."
            )
        # Support custom base URL for alternative endpoints
        self.base_url = base_url or os.environ.get("ANTHROPIC_BASE_URL")
        client_kwargs: dict[str, Any] = {"api_key": self.api_key}
        if self.base_url:
            client_kwargs["base_url"] = self.base_url
        self.client = anthropic.AsyncAnthropic(**client_kwargs)

    @staticmethod
    def build_params(request: ModelRequest) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "system": request.system,
            "messages": to_anthropic_messages(request.turns),
        }
        if request.temperature is not None:
            params["temperature"] = request.temperature
        if request.tools:
            params["tools"] = [spec.to_anthropic() for spec in request.tools]
            if request.tool_choice == TOOL_CHOICE_ANY:
                params["tool_choice"] = {"type": "any"}
            elif request.tool_choice:
                params["tool_choice"] = {"type": "tool", "name": request.tool_choice}
        return params

    async def stream(self, request: ModelRequest) -> AsyncIterator[StreamEvent]:
        params = self.build_params(request)
        try:
            async with self.client.messages.stream(**params) as stream:
                async for event in stream:
                    for translated in translate_anthropic_event(event):
                        yield translated
        except anthropic.APIError as e:
            raise ServiceError(f"Anthropic API error: {e}") from e
        except Exception as e:
            raise ServiceError(f"Model stream failed: {e}") from e


class OpenAIService(ModelService):
    """OpenAI chat completions streaming client."""

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError("OpenAI API key required. Set OPENAI_API_KEY environment variable.")
        self.client = openai.AsyncOpenAI(api_key=self.api_key)

    @staticmethod
    def build_params(request: ModelRequest) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": request.model,
            "messages": to_openai_messages(request.system, request.turns),
            "stream": True,
        }
        # Newer model families take max_completion_tokens instead of max_tokens
        if request.model.startswith(("gpt-5", "o1", "o3", "o4")):
            params["max_completion_tokens"] = request.max_tokens
        else:
            params["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            params["temperature"] = request.temperature
        if request.tools:
            params["tools"] = [spec.to_openai() for spec in request.tools]
            if request.tool_choice == TOOL_CHOICE_ANY:
                params["tool_choice"] = "required"
            elif request.tool_choice:
                params["tool_choice"] = {"type": "function", "function": {"name": request.tool_choice}}
        return params

    async def stream(self, request: ModelRequest) -> AsyncIterator[StreamEvent]:
        params = self.build_params(request)
        tracker = OpenAIStreamTracker()
        try:
            response = await self.client.chat.completions.create(**params)
            async for chunk in response:
                for event in tracker.feed(chunk):
                    yield event
        except openai.APIError as e:
            raise ServiceError(f"OpenAI API error: {e}") from e
        except Exception as e:
            raise ServiceError(f"Model stream failed: {e}") from e
        for event in tracker.finish():
            yield event


class MultiProviderService(ModelService):
    """
    Routes each request to the provider its model belongs to.

    Providers without credentials are skipped; if the requested provider
    is unavailable the first available one is used.
    """

    def __init__(
        self,
        anthropic_key: str | None = None,
        openai_key: str | None = None,
        base_url: str | None = None,
    ):
        self._services: dict[Provider, ModelService] = {}

        try:
            self._services[Provider.ANTHROPIC] = AnthropicService(api_key=anthropic_key, base_url=base_url)
        except ValueError:
            pass  # No Anthropic key available

        try:
            self._services[Provider.OPENAI] = OpenAIService(api_key=openai_key)
        except ValueError:
            pass  # No OpenAI key available

        if not self._services:
            raise ValueError(
                "No model provider available. Set ANTHROPIC_API_KEY or OPENAI_API_KEY environment variable."
            )

    @property
    def providers(self) -> list[Provider]:
        return list(self._services)

    def _get_service(self, model: str) -> tuple[ModelService, str]:
        provider, full_model = resolve_model(model)
        if provider not in self._services:
            fallback = next(iter(self._services))
            logger.warning(f"No {provider.value} credentials for {model}; using {fallback.value}")
            provider = fallback
        return self._services[provider], full_model

    async def stream(self, request: ModelRequest) -> AsyncIterator[StreamEvent]:
        service, full_model = self._get_service(request.model)
        async for event in service.stream(replace(request, model=full_model)):
            yield event


__all__ = [
    "AnthropicService",
    "DEFAULT_MODEL",
    "MODEL_REGISTRY",
    "ModelRequest",
    "ModelService",
    "MultiProviderService",
    "OpenAIService",
    "OpenAIStreamTracker",
    "Provider",
    "TOOL_CHOICE_ANY",
    "resolve_model",
    "to_anthropic_messages",
    "to_openai_messages",
    "translate_anthropic_event",
]
