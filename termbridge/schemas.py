"""
Tool schema registry.

Static tool definitions sent to the model service, and the pydantic
models used to validate call arguments at the decode boundary. Nothing
downstream of ``decode_call`` ever sees an unvalidated payload.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import DecodeError
from .types import CallKind, NodeKind, StructuredCall


class _Args(BaseModel):
    """Base for call argument models."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Severity(str, Enum):
    """Status panel entry severity."""

    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"
    INACTIVE = "inactive"
    INFO = "info"


# -----------------------------------------------------------------------------
# Argument models
# -----------------------------------------------------------------------------


class ListingEntry(_Args):
    """One row of a directory listing."""

    name: str
    kind: NodeKind = Field(alias="type")
    permissions: str | None = None
    owner: str | None = None
    group: str | None = None
    size: str | None = None
    modified: str | None = None
    link_target: str | None = None


class FileListing(_Args):
    cwd: str
    entries: list[ListingEntry]


class FileContent(_Args):
    path: str
    content: str
    language: str | None = None


class CommandOutput(_Args):
    lines: list[str]


class ProcessEntry(_Args):
    pid: int
    user: str
    command: str
    cpu: str | None = None
    mem: str | None = None
    vsz: str | None = None
    rss: str | None = None
    tty: str | None = None
    stat: str | None = None
    start: str | None = None
    time: str | None = None


class ProcessList(_Args):
    processes: list[ProcessEntry]


class StatusEntry(_Args):
    label: str
    value: str
    status: Severity | None = None


class SystemStatus(_Args):
    title: str
    entries: list[StatusEntry]


class Remark(_Args):
    text: str


class CreateEntry(_Args):
    """A node (and optionally its content) created or updated by a state update."""

    path: str
    kind: NodeKind | None = Field(default=None, alias="type")
    permissions: str | None = None
    owner: str | None = None
    group: str | None = None
    size: str | None = None
    modified: str | None = None
    link_target: str | None = None
    content: str | None = None
    language: str | None = None


class StateUpdate(_Args):
    """Silent mutation batch applied to the session state."""

    cwd: str | None = None
    create: list[CreateEntry] = Field(default_factory=list)
    remove: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class TerminalOutput(_Args):
    output: str


# -----------------------------------------------------------------------------
# Tool definitions
# -----------------------------------------------------------------------------

_STR = {"type": "string"}

_NODE_PROPERTIES: dict[str, Any] = {
    "type": {"type": "string", "enum": [k.value for k in NodeKind]},
    "permissions": {"type": "string", "description": "e.g. rwxr-xr-x"},
    "owner": _STR,
    "group": _STR,
    "size": {"type": "string", "description": "Human-readable, e.g. 4.2K"},
    "modified": {"type": "string", "description": "e.g. Mar 14 09:32"},
    "link_target": {"type": "string", "description": "Symlink target path"},
}


@dataclass(frozen=True)
class ToolSpec:
    """One registered call: wire definition plus its argument model."""

    kind: CallKind
    description: str
    input_schema: dict[str, Any]
    model: type[_Args]

    @property
    def name(self) -> str:
        return self.kind.value

    def to_anthropic(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }

    def to_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }


REGISTRY: dict[CallKind, ToolSpec] = {
    CallKind.FILE_LISTING: ToolSpec(
        kind=CallKind.FILE_LISTING,
        description="Display a directory listing. Used when the operator runs ls.",
        input_schema={
            "type": "object",
            "properties": {
                "cwd": {
                    "type": "string",
                    "description": "Absolute path of the directory being listed",
                },
                "entries": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {"name": _STR, **_NODE_PROPERTIES},
                        "required": ["name", "type"],
                    },
                },
            },
            "required": ["cwd", "entries"],
        },
        model=FileListing,
    ),
    CallKind.FILE_CONTENT: ToolSpec(
        kind=CallKind.FILE_CONTENT,
        description=(
            "Display raw file contents. Used when the operator runs cat. "
            "The content field contains the literal text of the file. "
            "For code files write real, working code. Never describe code. Write it."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Absolute path of the file"},
                "content": {"type": "string", "description": "The raw file content"},
                "language": {
                    "type": "string",
                    "description": "Language identifier, e.g. python, json, yaml",
                },
            },
            "required": ["path", "content"],
        },
        model=FileContent,
    ),
    CallKind.COMMAND_OUTPUT: ToolSpec(
        kind=CallKind.COMMAND_OUTPUT,
        description=(
            "Generic command output. Used for grep, find, echo, whoami, uname, "
            "git, tree and any command not covered by other tools."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "lines": {
                    "type": "array",
                    "items": _STR,
                    "description": "Output lines. One string per terminal line.",
                },
            },
            "required": ["lines"],
        },
        model=CommandOutput,
    ),
    CallKind.PROCESS_LIST: ToolSpec(
        kind=CallKind.PROCESS_LIST,
        description="Display running processes. Used when the operator runs ps.",
        input_schema={
            "type": "object",
            "properties": {
                "processes": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "pid": {"type": "number"},
                            "user": _STR,
                            "cpu": _STR,
                            "mem": _STR,
                            "vsz": _STR,
                            "rss": _STR,
                            "tty": _STR,
                            "stat": _STR,
                            "start": _STR,
                            "time": _STR,
                            "command": _STR,
                        },
                        "required": ["pid", "user", "command"],
                    },
                },
            },
            "required": ["processes"],
        },
        model=ProcessList,
    ),
    CallKind.SYSTEM_STATUS: ToolSpec(
        kind=CallKind.SYSTEM_STATUS,
        description="Display a diagnostics panel with box-drawing borders.",
        input_schema={
            "type": "object",
            "properties": {
                "title": _STR,
                "entries": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "label": _STR,
                            "value": _STR,
                            "status": {"type": "string", "enum": [s.value for s in Severity]},
                        },
                        "required": ["label", "value"],
                    },
                },
            },
            "required": ["title", "entries"],
        },
        model=SystemStatus,
    ),
    CallKind.REMARK: ToolSpec(
        kind=CallKind.REMARK,
        description=(
            "A brief remark from the system itself. Commentary or warnings, "
            "1-3 sentences. Use after other tools, or alone for conversation."
        ),
        input_schema={
            "type": "object",
            "properties": {"text": {"type": "string", "description": "Plain text. No formatting."}},
            "required": ["text"],
        },
        model=Remark,
    ),
    CallKind.STATE_UPDATE: ToolSpec(
        kind=CallKind.STATE_UPDATE,
        description=(
            "Silently record changes to the session: directory changes, files "
            "created or modified, paths removed, environment variables set. "
            "Produces no output. Call it whenever a command changes state."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "cwd": {"type": "string", "description": "New working directory"},
                "create": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "path": _STR,
                            **_NODE_PROPERTIES,
                            "content": {"type": "string", "description": "Full file content"},
                            "language": _STR,
                        },
                        "required": ["path"],
                    },
                },
                "remove": {
                    "type": "array",
                    "items": _STR,
                    "description": "Absolute paths removed, recursively",
                },
                "env": {
                    "type": "object",
                    "additionalProperties": _STR,
                    "description": "Environment variables set or changed",
                },
            },
        },
        model=StateUpdate,
    ),
}

# Single-field mode uses its own tool outside the multi-call registry.
TERMINAL_OUTPUT_TOOL = ToolSpec(
    kind=CallKind.TERMINAL_OUTPUT,
    description=(
        "Write to the operator's terminal. This is the only way to communicate. "
        "The output field is written to the screen verbatim."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "output": {
                "type": "string",
                "description": "Exact terminal output, including the trailing newline",
            },
        },
        "required": ["output"],
    },
    model=TerminalOutput,
)

TERMINAL_OUTPUT_FIELD = "output"

_ALL_SPECS: dict[str, ToolSpec] = {
    **{kind.value: spec for kind, spec in REGISTRY.items()},
    TERMINAL_OUTPUT_TOOL.name: TERMINAL_OUTPUT_TOOL,
}


def get_tool_specs(names: Iterable[str] | None = None) -> list[ToolSpec]:
    """
    Get registered multi-call tools, optionally reduced to ``names``.

    Args:
        names: Wire names to keep (None = all registered tools)

    Returns:
        ToolSpecs in registry order
    """
    if names is None:
        return list(REGISTRY.values())
    wanted = set(names)
    return [spec for spec in REGISTRY.values() if spec.name in wanted]


def lookup_tool_spec(name: str) -> ToolSpec | None:
    """ToolSpec for a wire name, including the single-field tool."""
    return _ALL_SPECS.get(name)


def decode_arguments(name: str, data: Any, call_id: str = "") -> StructuredCall:
    """Validate already-parsed arguments for a call named ``name``."""
    spec = lookup_tool_spec(name)
    if spec is None:
        raise DecodeError(name, "unknown call")
    if not isinstance(data, dict):
        raise DecodeError(name, f"expected an object, got {type(data).__name__}")
    try:
        arguments = spec.model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "<root>"
        raise DecodeError(name, f"{location}: {first['msg']}") from e
    return StructuredCall(kind=spec.kind, call_id=call_id, arguments=arguments)


def decode_call(name: str, call_id: str, raw: str) -> StructuredCall:
    """
    Parse and validate a raw argument buffer accumulated from a stream.

    An empty buffer is treated as an empty object, which then fails
    validation for any call with required fields.

    Raises:
        DecodeError: If the buffer is not JSON or does not match the schema
    """
    text = raw.strip()
    try:
        data = json.loads(text) if text else {}
    except json.JSONDecodeError as e:
        raise DecodeError(name, f"invalid JSON: {e.msg}") from e
    return decode_arguments(name, data, call_id)


__all__ = [
    "CommandOutput",
    "CreateEntry",
    "FileContent",
    "FileListing",
    "ListingEntry",
    "ProcessEntry",
    "ProcessList",
    "REGISTRY",
    "Remark",
    "Severity",
    "StateUpdate",
    "StatusEntry",
    "SystemStatus",
    "TERMINAL_OUTPUT_FIELD",
    "TERMINAL_OUTPUT_TOOL",
    "TerminalOutput",
    "ToolSpec",
    "decode_arguments",
    "decode_call",
    "get_tool_specs",
    "lookup_tool_spec",
]
