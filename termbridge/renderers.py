"""
Terminal renderers.

Each function takes validated call arguments and returns terminal text
with ANSI escape codes. The model never touches this layer; it only fills
in schemas, and every visual decision lives here. Renderers are pure: the
same arguments always give the same text.
"""

from __future__ import annotations

from typing import Any, Callable

from pydantic import BaseModel

from .errors import DecodeError
from .schemas import (
    CommandOutput,
    FileContent,
    FileListing,
    ProcessList,
    Remark,
    Severity,
    SystemStatus,
    TerminalOutput,
    decode_arguments,
    lookup_tool_spec,
)
from .types import CallKind, NodeKind, StructuredCall

# Escape codes
RESET = "\x1b[0m"
BOLD = "\x1b[1m"
DIM = "\x1b[2m"
ITALIC = "\x1b[3m"
RED = "\x1b[31m"
GREEN = "\x1b[32m"
YELLOW = "\x1b[33m"
CYAN = "\x1b[36m"
BRIGHT_BLUE = "\x1b[94m"
BRIGHT_GREEN = "\x1b[92m"

DEFAULT_OWNER = "root"
DEFAULT_MODIFIED = "Jan  1 00:00"
PANEL_WIDTH = 50

SEVERITY_COLORS: dict[Severity, str] = {
    Severity.OK: GREEN,
    Severity.WARNING: YELLOW,
    Severity.CRITICAL: RED,
    Severity.INACTIVE: DIM,
    Severity.INFO: CYAN,
}


def render_file_listing(data: FileListing) -> str:
    """``ls -l`` style listing with computed column widths."""
    if not data.entries:
        return ""

    owners = [e.owner or DEFAULT_OWNER for e in data.entries]
    groups = [e.group or DEFAULT_OWNER for e in data.entries]
    sizes = [e.size or "0" for e in data.entries]
    owner_width = max(len(o) for o in owners)
    group_width = max(len(g) for g in groups)
    size_width = max(len(s) for s in sizes)

    lines = [f"total {len(data.entries)}"]
    for entry, owner, group, size in zip(data.entries, owners, groups, sizes):
        if entry.kind == NodeKind.DIRECTORY:
            type_char = "d"
        elif entry.kind == NodeKind.SYMLINK:
            type_char = "l"
        else:
            type_char = "-"
        perms = entry.permissions or ("rwxr-xr-x" if entry.kind == NodeKind.DIRECTORY else "rw-r--r--")
        modified = entry.modified or DEFAULT_MODIFIED

        if entry.kind == NodeKind.DIRECTORY:
            name = f"{BOLD}{BRIGHT_BLUE}{entry.name}/{RESET}"
        elif entry.kind == NodeKind.SYMLINK:
            name = f"{CYAN}{entry.name}{RESET} -> {entry.link_target or '???'}"
        elif "x" in perms:
            name = f"{BRIGHT_GREEN}{entry.name}{RESET}"
        else:
            name = entry.name

        lines.append(
            f"{type_char}{perms}  1 {owner.ljust(owner_width)} {group.ljust(group_width)} "
            f"{GREEN}{size.rjust(size_width)}{RESET} {modified} {name}"
        )

    return "\n".join(lines)


def render_file_content(data: FileContent) -> str:
    """Numbered file content with a dim gutter."""
    content_lines = data.content.split("\n")
    # A trailing newline ends the last line; it does not start a new one
    if len(content_lines) > 1 and content_lines[-1] == "":
        content_lines.pop()
    width = max(3, len(str(len(content_lines))))
    return "\n".join(
        f"{DIM}{str(number).rjust(width)} {RESET}{DIM}│{RESET} {line}"
        for number, line in enumerate(content_lines, start=1)
    )


def render_command_output(data: CommandOutput) -> str:
    return "\n".join(data.lines)


def render_process_list(data: ProcessList) -> str:
    """``ps aux`` style table."""
    lines = [
        f"{BOLD}USER         PID %CPU %MEM    VSZ   RSS TTY      STAT START   TIME COMMAND{RESET}"
    ]
    for p in data.processes:
        lines.append(
            f"{(p.user or 'root').ljust(12)}{str(p.pid).rjust(5)} "
            f"{(p.cpu or '0.0').rjust(4)} {(p.mem or '0.0').rjust(4)} "
            f"{(p.vsz or '0').rjust(7)} {(p.rss or '0').rjust(5)} "
            f"{(p.tty or '?').ljust(8)} {(p.stat or 'S').ljust(4)} "
            f"{(p.start or '00:00').ljust(7)} {(p.time or '0:00').ljust(7)} {p.command}"
        )
    return "\n".join(lines)


def _center(text: str, width: int) -> str:
    padding = max(0, width - len(text))
    left = padding // 2
    return " " * left + text + " " * (padding - left)


def render_system_status(data: SystemStatus) -> str:
    """Box-drawn diagnostics panel."""
    lines = [
        f"╔{'═' * PANEL_WIDTH}╗",
        f"║{_center(data.title, PANEL_WIDTH)}║",
        f"╠{'═' * PANEL_WIDTH}╣",
    ]
    for entry in data.entries:
        color = SEVERITY_COLORS[entry.status or Severity.INFO]
        # Pad on visible width; escape codes take no columns
        visible = f"  {entry.label}: {entry.value}"
        padding = max(0, PANEL_WIDTH - len(visible))
        lines.append(f"║  {entry.label}: {color}{entry.value}{RESET}{' ' * padding}║")
    lines.append(f"╚{'═' * PANEL_WIDTH}╝")
    return "\n".join(lines)


def render_remark(data: Remark) -> str:
    return f"{ITALIC}{CYAN}{data.text}{RESET}"


def render_terminal_output(data: TerminalOutput) -> str:
    return data.output


def render_state_update(data: Any) -> str:
    return ""


_RENDERERS: dict[CallKind, Callable[[Any], str]] = {
    CallKind.FILE_LISTING: render_file_listing,
    CallKind.FILE_CONTENT: render_file_content,
    CallKind.COMMAND_OUTPUT: render_command_output,
    CallKind.PROCESS_LIST: render_process_list,
    CallKind.SYSTEM_STATUS: render_system_status,
    CallKind.REMARK: render_remark,
    CallKind.STATE_UPDATE: render_state_update,
    CallKind.TERMINAL_OUTPUT: render_terminal_output,
}


def render_tool_call(name: str, arguments: BaseModel | dict[str, Any] | None) -> str:
    """
    Render one call by wire name.

    Total: unknown names and arguments that do not fit the call render a
    bracketed diagnostic instead of raising. Arguments that are not the
    call's own model (a raw dict, say) are validated first.
    """
    try:
        kind = CallKind(name)
    except ValueError:
        return f"[unknown subsystem: {name}]"
    spec = lookup_tool_spec(name)
    if spec is not None and not isinstance(arguments, spec.model):
        data = arguments.model_dump(by_alias=True) if isinstance(arguments, BaseModel) else arguments
        try:
            arguments = decode_arguments(name, data).arguments
        except DecodeError:
            return f"[malformed {name}]"
    return _RENDERERS[kind](arguments)


def render_call(call: StructuredCall) -> str:
    return render_tool_call(call.name, call.arguments)


__all__ = [
    "render_call",
    "render_command_output",
    "render_file_content",
    "render_file_listing",
    "render_process_list",
    "render_remark",
    "render_system_status",
    "render_terminal_output",
    "render_tool_call",
]
