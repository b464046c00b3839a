"""Pure path helpers for the virtual filesystem."""

from __future__ import annotations

ROOT = "/"


def normalize_path(path: str) -> str:
    """
    Normalize an absolute path.

    Drops empty and ``.`` segments, pops one segment per ``..`` (popping
    past root is a no-op) and returns a path with a single leading slash.
    """
    resolved: list[str] = []
    for part in path.split("/"):
        if not part or part == ".":
            continue
        if part == "..":
            if resolved:
                resolved.pop()
            continue
        resolved.append(part)
    return ROOT + "/".join(resolved)


def resolve_path(raw: str | None, cwd: str = ROOT) -> str:
    """
    Resolve a raw operator/model path against ``cwd``.

    Total: malformed or empty input degrades to ``cwd`` instead of raising.

    Args:
        raw: Path as typed or emitted (may be relative, empty or ``~``)
        cwd: Current directory, absolute

    Returns:
        Normalized absolute path
    """
    path = (raw or "").strip()
    if not path or path == ".":
        return normalize_path(cwd or ROOT)
    if path == "~":
        return ROOT
    if path.startswith("~/"):
        return normalize_path(path[1:])
    if path.startswith("/"):
        return normalize_path(path)
    return normalize_path(f"{cwd or ROOT}/{path}")


def join_path(directory: str, name: str) -> str:
    """Child path of ``directory``, normalized."""
    return normalize_path(f"{directory}/{name}")


def basename(path: str) -> str:
    """Last segment of a normalized path (``/`` for root)."""
    return path.rstrip("/").rsplit("/", 1)[-1] or ROOT


def ancestors(path: str) -> list[str]:
    """Proper ancestors of a normalized path, nearest root first, excluding ``/``."""
    parts = [p for p in path.split("/") if p]
    return ["/" + "/".join(parts[:i]) for i in range(1, len(parts))]


__all__ = ["ROOT", "ancestors", "basename", "join_path", "normalize_path", "resolve_path"]
