"""Places BuildNodes into the target tree and records them in the registry."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from shapeweave.errors import HelperExecutionError, HelperNotFoundError
from shapeweave.helpers import invoke
from shapeweave.models import MaterialSpec
from shapeweave.nodes import Container, Material, Node, drawables, is_node
from shapeweave.processor import BuildKind, BuildNode, ReferenceMarker
from shapeweave.registry import RegistryEntry

if TYPE_CHECKING:
    from shapeweave.interpreter import RunState

FALLBACK_MATERIAL = Material(name="__fallback__", color="#808080")


class MaterialTable:
    """Named materials for one run; unknown names fall back to ``default``."""

    def __init__(self, specs: Mapping[str, MaterialSpec] | None = None):
        self._materials: dict[str, Material] = {
            name: Material(name=name, **spec.model_dump()) for name, spec in (specs or {}).items()
        }

    def __contains__(self, name: object) -> bool:
        return name in self._materials

    def get(self, value: Any) -> Material:
        if isinstance(value, Material):
            return value
        if isinstance(value, str):
            if value in self._materials:
                return self._materials[value]
            if value.startswith("#"):
                return self._materials.setdefault(value, Material(name=value, color=value))
        return self._materials.get("default", FALLBACK_MATERIAL)


class Materializer:
    def __init__(self, state: RunState):
        self.state = state
        self.adapter = state.adapter
        self.registry = state.registry
        self.diagnostics = state.diagnostics

    def materialize(self, build: BuildNode, parent: Container, parent_path: str = "") -> Node | None:
        """Insert ``build`` (recursively) under ``parent``; ``None`` if it was dropped."""
        self.registry.release(build.path)
        if build.kind is BuildKind.GROUP:
            return self._group(build, parent, parent_path)
        if build.kind is BuildKind.REFERENCE:
            return self._reference(build, parent, parent_path)
        return self._leaf(build, parent, parent_path)

    def _place(self, node: Node, build: BuildNode, parent: Container, parent_path: str) -> Node:
        node.name = build.name
        self.adapter.set_transform(node, position=build.position, rotation=build.rotation, scale=build.scale)
        if not build.visible:
            node.visible = False
        self.adapter.attach(parent, node)
        self.registry.register(RegistryEntry(path=build.path, node=node, build=build, parent_path=parent_path))
        return node

    def _group(self, build: BuildNode, parent: Container, parent_path: str) -> Node:
        container = self.adapter.create_container(build.name)
        for child in build.children:
            self.materialize(child, container, build.path)
        return self._place(container, build, parent, parent_path)

    def _leaf(self, build: BuildNode, parent: Container, parent_path: str) -> Node | None:
        result = self._invoke_deferred(build, parent_path) if build.deferred else build.result
        node = self._as_node(result, build)
        if node is None:
            return None

        material = self._material(build)
        for drawable in drawables(node):
            if build.material is not None or drawable.material is None:
                drawable.material = material
        return self._place(node, build, parent, parent_path)

    def _reference(self, build: BuildNode, parent: Container, parent_path: str) -> Node | None:
        entry = self.registry.resolve(build.target, parent_path)
        if entry is None:
            self.diagnostics.record("R01", f"reference target {build.target!r} not found", path=build.path)
            return None
        clone = self.adapter.clone(entry.node)
        if build.material is not None:
            material = self._material(build)
            for drawable in drawables(clone):
                drawable.material = material
        return self._place(clone, build, parent, parent_path)

    def _as_node(self, result: Any, build: BuildNode) -> Node | None:
        if result is None:
            return None
        if isinstance(result, (list, tuple)):
            items = [r for r in result if is_node(r)]
            if not items:
                self.diagnostics.record("H02", f"{build.helper} returned no nodes", path=build.path)
                return None
            container = self.adapter.create_container(build.name)
            for item in items:
                self.adapter.attach(container, self._fresh(item))
            return container
        if not is_node(result):
            self.diagnostics.record(
                "H02", f"{build.helper} returned {type(result).__name__}, not a node", path=build.path
            )
            return None
        return self._fresh(result)

    def _fresh(self, node: Node) -> Node:
        # A result already placed elsewhere, or released by an earlier pass, is cloned
        if node.disposed or node.parent is not None:
            return self.adapter.clone(node)
        return node

    def _invoke_deferred(self, build: BuildNode, parent_path: str) -> Any:
        params = self._resolve_markers(build.params, build, parent_path)
        try:
            factory = self.state.helpers.get(build.helper)
        except HelperNotFoundError as e:
            self.diagnostics.record("H01", str(e), path=build.path)
            return None
        try:
            return invoke(factory, build.helper, params)
        except HelperExecutionError as e:
            self.diagnostics.record("H02", str(e), path=build.path)
            return None

    def _resolve_markers(self, value: Any, build: BuildNode, parent_path: str) -> Any:
        if isinstance(value, ReferenceMarker):
            entry = self.registry.resolve(value.target, parent_path)
            if entry is None:
                self.diagnostics.record("R01", f"reference target {value.target!r} not found", path=build.path)
                return None
            return self.adapter.clone(entry.node)
        if isinstance(value, Mapping):
            return {k: self._resolve_markers(v, build, parent_path) for k, v in value.items()}
        if isinstance(value, list):
            return [self._resolve_markers(v, build, parent_path) for v in value]
        return value

    def _material(self, build: BuildNode) -> Material:
        value = build.material
        if isinstance(value, str):
            value = self.state.evaluator.render(value, build.context, path=build.path)
        return self.state.materials.get(value)
