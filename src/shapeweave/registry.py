"""Path -> materialized node registry with reference resolution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from shapeweave.nodes import Node

if TYPE_CHECKING:
    from shapeweave.processor import BuildNode
    from shapeweave.scene import TargetAdapter


@dataclass
class RegistryEntry:
    path: str
    node: Node
    build: BuildNode
    parent_path: str = ""

    @property
    def source(self):
        return self.build.source


class SceneRegistry:
    """One entry per materialized path.

    Registering over an occupied path disposes and detaches the previous
    occupant first, so a path never maps to two live nodes.
    """

    def __init__(self, adapter: TargetAdapter):
        self.adapter = adapter
        self._entries: dict[str, RegistryEntry] = {}

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, path: str) -> RegistryEntry | None:
        return self._entries.get(path)

    def paths(self) -> list[str]:
        return list(self._entries)

    def register(self, entry: RegistryEntry) -> None:
        previous = self._entries.get(entry.path)
        if previous is not None and previous.node is not entry.node:
            self.release(entry.path)
        self._entries[entry.path] = entry

    def release(self, path: str) -> int:
        """Dispose and detach the node at ``path``; drop every entry inside it.

        Returns the number of registry entries removed.
        """
        entry = self._entries.get(path)
        if entry is None:
            return 0
        inside = {id(n) for n in entry.node.walk()}
        doomed = [p for p, e in self._entries.items() if id(e.node) in inside]
        self.adapter.detach(entry.node)
        self.adapter.dispose(entry.node)
        for p in doomed:
            del self._entries[p]
        return len(doomed)

    def clear(self) -> None:
        """Dispose every top-level entry and empty the registry."""
        for path in [p for p, e in self._entries.items() if not e.parent_path]:
            self.release(path)
        self._entries.clear()

    def resolve(self, target: str, prefix: str = "") -> RegistryEntry | None:
        """Find the entry a reference ``target`` names, seen from ``prefix``.

        Lookup order: ``target`` under ``prefix`` and then under each of its
        ancestors (innermost first), then ``target`` as an absolute path,
        then any path ending in ``.target`` (shortest, then lexically first).
        """
        scope = prefix
        while scope:
            hit = self._entries.get(f"{scope}.{target}")
            if hit is not None:
                return hit
            scope = scope.rpartition(".")[0]

        hit = self._entries.get(target)
        if hit is not None:
            return hit

        suffix = f".{target}"
        matches = sorted((p for p in self._entries if p.endswith(suffix)), key=lambda p: (len(p), p))
        return self._entries[matches[0]] if matches else None
