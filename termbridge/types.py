"""
Core types shared across the bridge.

Turns, structured calls and provider-neutral stream events. Everything
here is plain data; behaviour lives in the modules that consume it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel


class BridgeMode(str, Enum):
    """How the model service is asked to respond."""

    TEXT = "text"  # free-form text tokens, no tools
    FIELD = "field"  # one forced call with a single string field
    CALLS = "calls"  # any number of structured calls per turn


class CallKind(str, Enum):
    """Registered structured call names (wire names)."""

    FILE_LISTING = "file_listing"
    FILE_CONTENT = "file_content"
    COMMAND_OUTPUT = "command_output"
    PROCESS_LIST = "process_list"
    SYSTEM_STATUS = "system_status"
    REMARK = "remark"
    STATE_UPDATE = "state_update"
    # Single-field mode only
    TERMINAL_OUTPUT = "terminal_output"


class NodeKind(str, Enum):
    """Kind of a virtual filesystem node."""

    FILE = "file"
    DIRECTORY = "dir"
    SYMLINK = "symlink"


class TurnRole(Enum):
    """Who produced a turn."""

    OPERATOR = "operator"
    MODEL = "model"


@dataclass
class StructuredCall:
    """A decoded, schema-validated call emitted by the model."""

    kind: CallKind
    call_id: str
    arguments: BaseModel

    @property
    def name(self) -> str:
        return self.kind.value

    def input_dict(self) -> dict[str, Any]:
        """Arguments as they go back to the provider in history."""
        return self.arguments.model_dump(by_alias=True, exclude_none=True, mode="json")


@dataclass
class Turn:
    """
    One entry of the conversation history.

    Operator turns carry text and/or the ids of calls being acknowledged.
    Model turns carry either free text (text mode) or structured calls.
    """

    role: TurnRole
    text: str = ""
    calls: list[StructuredCall] = field(default_factory=list)
    acknowledged: list[str] = field(default_factory=list)

    @classmethod
    def operator(cls, text: str) -> Turn:
        return cls(role=TurnRole.OPERATOR, text=text)

    @classmethod
    def acknowledgement(cls, calls: list[StructuredCall]) -> Turn:
        return cls(role=TurnRole.OPERATOR, acknowledged=[c.call_id for c in calls])

    @classmethod
    def model_text(cls, text: str) -> Turn:
        return cls(role=TurnRole.MODEL, text=text)

    @classmethod
    def model_calls(cls, calls: list[StructuredCall]) -> Turn:
        return cls(role=TurnRole.MODEL, calls=list(calls))


class StreamEventType(Enum):
    """Provider-neutral stream event kinds."""

    BLOCK_START = "block_start"
    BLOCK_DELTA = "block_delta"
    BLOCK_STOP = "block_stop"


@dataclass
class StreamEvent:
    """
    One event from the model service stream.

    A BLOCK_START with ``name=None`` opens a plain-text block. Deltas carry
    raw argument JSON for call blocks and visible text for text blocks.
    """

    type: StreamEventType
    index: int
    name: str | None = None
    call_id: str | None = None
    text: str = ""

    @classmethod
    def start(cls, index: int, name: str | None = None, call_id: str | None = None) -> StreamEvent:
        return cls(StreamEventType.BLOCK_START, index, name=name, call_id=call_id)

    @classmethod
    def delta(cls, index: int, text: str) -> StreamEvent:
        return cls(StreamEventType.BLOCK_DELTA, index, text=text)

    @classmethod
    def stop(cls, index: int) -> StreamEvent:
        return cls(StreamEventType.BLOCK_STOP, index)


@dataclass
class TurnResult:
    """What a decoder produced for one turn."""

    calls: list[StructuredCall] = field(default_factory=list)
    text: str = ""
    failures: list[str] = field(default_factory=list)


__all__ = [
    "BridgeMode",
    "CallKind",
    "NodeKind",
    "StreamEvent",
    "StreamEventType",
    "StructuredCall",
    "Turn",
    "TurnResult",
    "TurnRole",
]
