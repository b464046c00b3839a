"""
Shared test fixtures.

Provides a scripted model service and an in-memory terminal sink so
sessions and decoders can be exercised without a network.
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator

import pytest

from termbridge.api_client import ModelRequest, ModelService
from termbridge.config import BridgeConfig
from termbridge.errors import ServiceError
from termbridge.types import StreamEvent


class RecordingSink:
    """TerminalSink that keeps everything written to it as text."""

    def __init__(self) -> None:
        self.parts: list[str] = []
        self.flushes = 0
        self.drains = 0

    @property
    def text(self) -> str:
        return "".join(self.parts)

    def write(self, text: str) -> None:
        if text:
            self.parts.append(text)

    def flush(self) -> None:
        self.flushes += 1

    def ensure_newline(self) -> None:
        if self.parts and not self.text.endswith("\n"):
            self.parts.append("\n")

    async def drain(self) -> None:
        self.drains += 1


class FakeService(ModelService):
    """
    ModelService replaying scripted turns.

    Each script entry is a list of StreamEvents for one turn, or an
    exception to raise (optionally after the events listed before it when
    given as ``(events, error)``).
    """

    def __init__(self, scripts: list[Any] | None = None):
        self.scripts = list(scripts or [])
        self.requests: list[ModelRequest] = []

    async def stream(self, request: ModelRequest) -> AsyncIterator[StreamEvent]:
        self.requests.append(request)
        script = self.scripts.pop(0) if self.scripts else []
        error = None
        if isinstance(script, BaseException):
            script, error = [], script
        elif isinstance(script, tuple):
            script, error = script
        for event in script:
            yield event
        if error is not None:
            raise error


def call_events(index: int, name: str, arguments: dict[str, Any] | str, call_id: str | None = None, chunk: int = 7):
    """Events for one call block, with the argument JSON split into small fragments."""
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    events = [StreamEvent.start(index, name=name, call_id=call_id or f"toolu_{index}")]
    events.extend(StreamEvent.delta(index, raw[i:i + chunk]) for i in range(0, len(raw), chunk))
    events.append(StreamEvent.stop(index))
    return events


def text_events(index: int, *fragments: str):
    """Events for one plain text block."""
    return [
        StreamEvent.start(index),
        *(StreamEvent.delta(index, fragment) for fragment in fragments),
        StreamEvent.stop(index),
    ]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def config() -> BridgeConfig:
    """Default config isolated from the process environment and cwd."""
    return BridgeConfig.load(path=None, env={"TERMBRIDGE_CONFIG": "/nonexistent/termbridge.json"})


@pytest.fixture
def failing_service() -> FakeService:
    return FakeService([ServiceError("connection reset")])
