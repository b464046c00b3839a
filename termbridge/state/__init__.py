"""Virtual session state."""

from .paths import normalize_path, resolve_path
from .store import StateStore, VirtualNode

__all__ = ["StateStore", "VirtualNode", "normalize_path", "resolve_path"]
