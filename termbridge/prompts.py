"""
System prompt construction.

The prompt is built once per process from the bridge mode and an
optional world description (a text file describing the machine the
operator is logged into).
"""

from __future__ import annotations

from pathlib import Path

from .errors import ConfigError
from .types import BridgeMode

DEFAULT_WORLD = """\
The machine is a long-running research server. Its filesystem holds
projects, logs, configuration and the odd forgotten experiment from
previous operators. It has history; not everything needs explaining."""

BASE_PROMPT = """\
You are the operating system of a remote machine. The user is an operator
connected to its terminal. When the operator types a Unix command (ls, cd,
cat, grep, find, ps, git, ...), respond with realistic terminal output.

World:
{world}

Rules:
- Output plain text only. No markdown. No backticks. No code fences.
- Be consistent with everything you have previously shown.
- The filesystem is revealed through exploration.
- Never print a shell prompt; the terminal draws its own.
- You may add a brief remark after command output. Keep it to 1-3 lines.
"""

MODE_RULES: dict[BridgeMode, str] = {
    BridgeMode.TEXT: """\
- Your reply is written to the terminal verbatim.
- Use \\x1b escape sequences for color if you want color.""",
    BridgeMode.FIELD: """\
- Always use the terminal_output tool. It is the only way to communicate.
- The output field is written to the terminal verbatim; end it with a newline.
- Use \\x1b escape sequences for color if you want color.""",
    BridgeMode.CALLS: """\
- Always respond with tool calls. Free text is never shown.
- Use file_listing for ls, file_content for cat, process_list for ps,
  system_status for diagnostics panels, command_output for everything else,
  and remark for commentary.
- Whenever a command changes state (cd, mkdir, touch, rm, mv, export,
  writing a file), also call state_update so the change is remembered.""",
}

STATE_PREAMBLE = """\
Each operator message starts with a [session state] block listing what has
been established so far: the working directory, every known path (entries
marked [cached] have known content) and environment variables. Treat it as
ground truth."""


def load_world(path: str | Path | None) -> str:
    """
    Read a world description file, falling back to the default world.

    Raises:
        ConfigError: If the file cannot be read
    """
    if path is None:
        return DEFAULT_WORLD
    try:
        text = Path(path).read_text()
    except OSError as e:
        raise ConfigError(f"Cannot read world file {path}: {e}") from e
    return text.strip() or DEFAULT_WORLD


def build_system_prompt(mode: BridgeMode, world: str | None = None, stateful: bool = True) -> str:
    """
    Build the system prompt for a bridge mode.

    Args:
        mode: How the model is asked to respond
        world: World description (default: DEFAULT_WORLD)
        stateful: Whether operator messages carry state snapshots

    Returns:
        System prompt text
    """
    parts = [BASE_PROMPT.format(world=world or DEFAULT_WORLD), MODE_RULES[mode]]
    if stateful:
        parts.append(STATE_PREAMBLE)
    return "\n".join(parts)


def wrap_with_snapshot(text: str, snapshot: str) -> str:
    """Prefix operator input with a serialized state snapshot."""
    return f"[session state]\n{snapshot}\n[/session state]\n\n{text}"


__all__ = ["DEFAULT_WORLD", "build_system_prompt", "load_world", "wrap_with_snapshot"]
