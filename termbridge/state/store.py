"""
Virtual session state: fake filesystem, file contents and environment.

One StateStore per connection. The filesystem is explored incrementally:
nodes appear as the model describes them, and later turns see the
accumulated state through ``serialize()``, so ``ls`` then ``cat`` agree
on what exists.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Iterable, Mapping

from ..schemas import ListingEntry, StateUpdate
from ..types import NodeKind
from .paths import ROOT, ancestors, join_path, resolve_path


@dataclass
class VirtualNode:
    """Metadata for one path in the virtual filesystem."""

    path: str
    kind: NodeKind = NodeKind.FILE
    permissions: str | None = None
    owner: str | None = None
    group: str | None = None
    size: str | None = None
    modified: str | None = None
    language: str | None = None
    link_target: str | None = None

    @property
    def is_dir(self) -> bool:
        return self.kind == NodeKind.DIRECTORY


_METADATA_FIELDS = ("permissions", "owner", "group", "size", "modified", "language", "link_target")


class StateStore:
    """
    Path-keyed arena of virtual nodes plus content and environment.

    All operations are total. There is no notion of "not found": unknown
    paths simply have no node yet.
    """

    def __init__(self, cwd: str = ROOT):
        self._cwd = resolve_path(cwd)
        self._nodes: dict[str, VirtualNode] = {}
        self._contents: dict[str, str] = {}
        self._env: dict[str, str] = {}

    # -- reads ---------------------------------------------------------------

    @property
    def cwd(self) -> str:
        return self._cwd

    @property
    def nodes(self) -> Mapping[str, VirtualNode]:
        return MappingProxyType(self._nodes)

    @property
    def environment(self) -> Mapping[str, str]:
        return MappingProxyType(self._env)

    def resolve(self, raw: str | None, cwd: str | None = None) -> str:
        return resolve_path(raw, cwd if cwd is not None else self._cwd)

    def get_node(self, path: str) -> VirtualNode | None:
        return self._nodes.get(self.resolve(path))

    def has_content(self, path: str) -> bool:
        return self.resolve(path) in self._contents

    def get_content(self, path: str) -> str | None:
        return self._contents.get(self.resolve(path))

    # -- writes --------------------------------------------------------------

    def set_cwd(self, path: str | None) -> None:
        """Change directory. Existence is not checked."""
        self._cwd = self.resolve(path)

    def record_listing(self, dir_path: str, entries: Iterable[ListingEntry]) -> None:
        """
        Record the result of listing ``dir_path``.

        Ensures a directory node exists and stores (overwriting) one node per
        entry. ``.`` and ``..`` rows describe the directory and its parent,
        not children, so they are skipped.
        """
        directory = self.resolve(dir_path)
        if directory not in self._nodes:
            self._nodes[directory] = VirtualNode(path=directory, kind=NodeKind.DIRECTORY)
        for entry in entries:
            if entry.name in (".", "..") or not entry.name.strip():
                continue
            child = join_path(directory, entry.name)
            self._nodes[child] = VirtualNode(
                path=child,
                kind=entry.kind,
                permissions=entry.permissions,
                owner=entry.owner,
                group=entry.group,
                size=entry.size,
                modified=entry.modified,
                link_target=entry.link_target,
                # a re-listing carries no language hint; keep what cat learned
                language=self._nodes[child].language if child in self._nodes else None,
            )

    def record_content(self, path: str, text: str, language: str | None = None) -> None:
        """Store file content, creating a minimal file node if none exists."""
        resolved = self.resolve(path)
        self._contents[resolved] = text
        node = self._nodes.get(resolved)
        if node is None:
            self._nodes[resolved] = VirtualNode(path=resolved, kind=NodeKind.FILE, language=language)
        elif language:
            node.language = language

    def apply_mutation_batch(self, batch: StateUpdate) -> None:
        """
        Apply a silent state update.

        Order: directory change, creates/updates, removals, environment
        merge. Work happens on copies that are committed at the end, so a
        batch is applied entirely or not at all.
        """
        cwd = self._cwd
        nodes = {path: replace(node) for path, node in self._nodes.items()}
        contents = dict(self._contents)
        env = dict(self._env)

        if batch.cwd:
            cwd = resolve_path(batch.cwd, cwd)

        for item in batch.create:
            path = resolve_path(item.path, cwd)
            for parent in ancestors(path):
                if parent not in nodes:
                    nodes[parent] = VirtualNode(path=parent, kind=NodeKind.DIRECTORY)
            node = nodes.get(path)
            if node is None:
                node = VirtualNode(path=path, kind=item.kind or NodeKind.FILE)
                nodes[path] = node
            elif item.kind is not None:
                node.kind = item.kind
            for name in _METADATA_FIELDS:
                value = getattr(item, name)
                if value is not None:
                    setattr(node, name, value)
            if item.content is not None:
                contents[path] = item.content

        for raw in batch.remove:
            target = resolve_path(raw, cwd)
            prefix = target.rstrip("/") + "/"
            for path in [p for p in nodes if p == target or p.startswith(prefix)]:
                del nodes[path]
            for path in [p for p in contents if p == target or p.startswith(prefix)]:
                del contents[path]

        env.update(batch.env)

        self._cwd, self._nodes, self._contents, self._env = cwd, nodes, contents, env

    # -- serialization -------------------------------------------------------

    def serialize(self) -> str:
        """
        Compact, deterministic rendering of the state for the model's context.

        Identical state always produces identical text.
        """
        lines = [f"cwd: {self._cwd}"]

        if self._nodes:
            lines.append("known filesystem:")
            for path in sorted(self._nodes):
                node = self._nodes[path]
                suffix = "/" if node.is_dir and path != ROOT else ""
                size = f" ({node.size})" if node.size else ""
                link = f" -> {node.link_target}" if node.link_target else ""
                cached = " [cached]" if path in self._contents else ""
                lines.append(f"  {path}{suffix}{link}{size}{cached}")
        else:
            lines.append("filesystem: unexplored")

        if self._env:
            lines.append("env:")
            for key in sorted(self._env):
                lines.append(f"  {key}={self._env[key]}")

        return "\n".join(lines)


__all__ = ["StateStore", "VirtualNode"]
