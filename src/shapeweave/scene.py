"""Target-tree adapter: the only way the interpreter touches the output tree."""

from __future__ import annotations

from typing import Any, Protocol

from shapeweave.nodes import Container, Drawable, Node


class TargetAdapter(Protocol):
    def create_container(self, name: str) -> Any: ...

    def attach(self, parent: Any, child: Any) -> None: ...

    def detach(self, node: Any) -> None: ...

    def dispose(self, node: Any) -> None: ...

    def clone(self, node: Any) -> Any: ...

    def set_transform(self, node: Any, position=None, rotation=None, scale=None) -> None: ...


class SceneTreeAdapter:
    """In-memory adapter over :mod:`shapeweave.nodes`.

    Keeps a count of live geometries so callers can check that disposal
    released everything a rebuilt subtree used to own.
    """

    def __init__(self) -> None:
        self.live_geometries: set[int] = set()
        self.disposed_geometries = 0

    def create_container(self, name: str) -> Container:
        return Container(name=name)

    def attach(self, parent: Container, child: Node) -> None:
        parent.add(child)
        for n in child.walk():
            if isinstance(n, Drawable) and n.geometry is not None and not n.geometry.disposed:
                self.live_geometries.add(n.geometry.uid)

    def detach(self, node: Node) -> None:
        if node.parent is not None:
            node.parent.remove(node)

    def dispose(self, node: Node) -> None:
        """Release every geometry under ``node``. Safe to call twice."""
        for n in node.walk():
            if isinstance(n, Drawable) and n.geometry is not None and not n.geometry.disposed:
                n.geometry.dispose()
                self.live_geometries.discard(n.geometry.uid)
                self.disposed_geometries += 1
            n.disposed = True

    def clone(self, node: Node) -> Node:
        return node.clone()

    def set_transform(self, node: Node, position=None, rotation=None, scale=None) -> None:
        node.set_transform(position=position, rotation=rotation, scale=scale)

    @property
    def live_count(self) -> int:
        return len(self.live_geometries)
