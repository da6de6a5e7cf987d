"""Helper registry: name -> node factory.

A node factory takes a dict of evaluated parameters and returns a node, a
list of nodes, or ``None``. The registry starts from the stock factories
below; schema ``definitions`` add to it once per run.
"""

from __future__ import annotations

import builtins
import math
import textwrap
from collections.abc import Callable, Mapping
from types import SimpleNamespace
from typing import Any

import numpy as np

from shapeweave import nodes as _nodes
from shapeweave.diagnostics import DiagnosticLog
from shapeweave.errors import HelperExecutionError, HelperNotFoundError
from shapeweave.nodes import Container, Curve, Drawable, Field, Geometry, Node
from shapeweave.resolvers import catmull_rom, resolve_curve, resolve_field, resolve_points

Factory = Callable[[dict[str, Any]], Any]

# Names a compiled definition body can see, in argument order.
INJECTED_NAMES = (
    "params",
    "nodes",
    "math",
    "np",
    "log",
    "call",
    "resolve_curve",
    "resolve_points",
    "resolve_field",
    "fonts",
)

_DEFINITION_BUILTINS = {
    name: getattr(builtins, name)
    for name in (
        "abs", "all", "any", "bool", "dict", "enumerate", "filter", "float", "int",
        "isinstance", "len", "list", "map", "max", "min", "range", "reversed", "round",
        "sorted", "str", "sum", "tuple", "zip", "ValueError", "TypeError", "KeyError",
    )
}


def _num(params: Mapping[str, Any], key: str, default: float) -> float:
    value = params.get(key, default)
    return float(default if value is None else value)


def _named(node: Node, params: Mapping[str, Any], fallback: str) -> Node:
    node.name = str(params.get("id") or params.get("name") or fallback)
    return node


def _mesh(kind: str, params: Mapping[str, Any], dims: dict[str, Any]) -> Drawable:
    return _named(Drawable(geometry=Geometry(kind=kind, params=dims)), params, kind)


# ---------------------------------------------------------------------------
# Stock factories
# ---------------------------------------------------------------------------


def create_box(params):
    return _mesh(
        "box",
        params,
        {
            "width": _num(params, "width", 1),
            "height": _num(params, "height", 1),
            "depth": _num(params, "depth", 1),
        },
    )


def create_sphere(params):
    return _mesh(
        "sphere",
        params,
        {
            "radius": _num(params, "radius", 0.5),
            "widthSegments": int(_num(params, "widthSegments", 32)),
            "heightSegments": int(_num(params, "heightSegments", 16)),
        },
    )


def create_cylinder(params):
    radius = _num(params, "radius", 0.5)
    return _mesh(
        "cylinder",
        params,
        {
            "radiusTop": _num(params, "radiusTop", radius),
            "radiusBottom": _num(params, "radiusBottom", radius),
            "height": _num(params, "height", 1),
            "radialSegments": int(_num(params, "radialSegments", 32)),
        },
    )


def create_cone(params):
    return _mesh(
        "cone",
        params,
        {
            "radius": _num(params, "radius", 0.5),
            "height": _num(params, "height", 1),
            "radialSegments": int(_num(params, "radialSegments", 32)),
        },
    )


def create_plane(params):
    return _mesh(
        "plane",
        params,
        {"width": _num(params, "width", 1), "height": _num(params, "height", 1)},
    )


def create_torus(params):
    return _mesh(
        "torus",
        params,
        {
            "radius": _num(params, "radius", 1),
            "tube": _num(params, "tube", 0.25),
            "radialSegments": int(_num(params, "radialSegments", 16)),
            "tubularSegments": int(_num(params, "tubularSegments", 48)),
        },
    )


def create_extrude(params):
    """Extrude a 2D outline (points or a curve) by ``depth``."""
    shape = params.get("shape", params.get("points"))
    outline = [p[:2] for p in resolve_points(shape, divisions=int(_num(params, "divisions", 32)))]
    if len(outline) < 3:
        raise ValueError("createExtrude needs an outline of at least 3 points")
    holes = [[p[:2] for p in resolve_points(h)] for h in params.get("holes") or []]
    return _mesh(
        "extrude",
        params,
        {"shape": outline, "holes": holes, "depth": _num(params, "depth", 1)},
    )


def create_line_path(params):
    points = resolve_points(params.get("points"))
    if len(points) < 2:
        raise ValueError("createLinePath needs at least 2 points")
    return _named(Curve(points=points, closed=bool(params.get("closed", False))), params, "line")


def create_spline_path(params):
    points = params.get("points") or []
    if len(points) < 2:
        raise ValueError("createSplinePath needs at least 2 points")
    closed = bool(params.get("closed", False))
    sampled = catmull_rom(points, segments=int(_num(params, "segments", 16)), closed=closed)
    return _named(Curve(points=sampled, closed=closed), params, "spline")


def create_vector_field(params):
    """Vectors on a regular grid.

    ``mode`` is ``uniform`` (constant ``direction``), ``radial`` (away from
    the origin) or ``swirl`` (around the Y axis).
    """
    size = _num(params, "size", 2)
    resolution = max(1, int(_num(params, "resolution", 4)))
    strength = _num(params, "strength", 1)
    mode = params.get("mode", "uniform")
    axis = np.linspace(-size / 2, size / 2, resolution)
    gx, gy, gz = np.meshgrid(axis, axis, axis, indexing="ij")
    origins = np.column_stack([gx.ravel(), gy.ravel(), gz.ravel()])
    if mode == "radial":
        vectors = origins.copy()
    elif mode == "swirl":
        vectors = np.column_stack([-origins[:, 2], np.zeros(len(origins)), origins[:, 0]])
    else:
        direction = np.asarray(params.get("direction") or [0, 1, 0], dtype=float)
        vectors = np.tile(direction, (len(origins), 1))
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    vectors = np.divide(vectors, norms, out=np.zeros_like(vectors), where=norms > 0) * strength
    return _named(Field(origins=origins.tolist(), vectors=vectors.tolist()), params, "field")


def create_group(params):
    group = _named(Container(), params, "group")
    for child in params.get("children") or []:
        for node in child if isinstance(child, list) else [child]:
            if isinstance(node, Node):
                group.add(node)
    return group


STOCK_FACTORIES: dict[str, Factory] = {
    "createBox": create_box,
    "createSphere": create_sphere,
    "createCylinder": create_cylinder,
    "createCone": create_cone,
    "createPlane": create_plane,
    "createTorus": create_torus,
    "createExtrude": create_extrude,
    "createLinePath": create_line_path,
    "createSplinePath": create_spline_path,
    "createVectorField": create_vector_field,
    "group": create_group,
}


def invoke(factory: Factory, name: str, params: dict[str, Any]) -> Any:
    """Call ``factory``; any failure surfaces as HelperExecutionError."""
    try:
        return factory(params)
    except Exception as e:
        raise HelperExecutionError(f"{name}: {e}") from e


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class HelperRegistry:
    """Closed name -> factory map owned by one interpreter run."""

    def __init__(self, factories: Mapping[str, Factory] | None = None, *, stock: bool = True):
        self._factories: dict[str, Factory] = dict(STOCK_FACTORIES) if stock else {}
        if factories:
            self._factories.update(factories)

    def register(self, name: str, factory: Factory) -> None:
        if not callable(factory):
            raise TypeError(f"helper {name!r} is not callable")
        self._factories[name] = factory

    def get(self, name: str) -> Factory:
        try:
            return self._factories[name]
        except KeyError:
            raise HelperNotFoundError(f"helper not found: {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def names(self) -> list[str]:
        return sorted(self._factories)

    def copy(self) -> HelperRegistry:
        return HelperRegistry(self._factories, stock=False)

    def call(self, name: str, params: Mapping[str, Any] | None = None) -> Any:
        return self.get(name)(dict(params or {}))

    def compile_definitions(
        self,
        definitions: Mapping[str, Any],
        *,
        diagnostics: DiagnosticLog,
        fonts: Mapping[str, Any] | None = None,
    ) -> list[str]:
        """Compile schema definitions into factories; return the names added.

        A definition is a Python function body (or ``{"code": body}``) that
        reads ``params`` and returns a node. It runs with only the names in
        ``INJECTED_NAMES`` plus a small set of builtins. A definition that
        fails to compile is recorded as H03 and skipped.
        """
        added: list[str] = []
        for name, definition in definitions.items():
            body = definition.get("code") if isinstance(definition, Mapping) else definition
            if not isinstance(body, str) or not body.strip():
                diagnostics.record("H03", f"definition {name!r}: no code found")
                continue
            try:
                fn = _compile_body(name, body)
            except SyntaxError as e:
                diagnostics.record("H03", f"definition {name!r} failed to compile: {e}")
                continue
            self.register(name, self._bind(name, fn, diagnostics, fonts or {}))
            added.append(name)
        return added

    def _bind(self, name: str, fn: Callable[..., Any], diagnostics: DiagnosticLog, fonts) -> Factory:
        def log(*args: Any) -> None:
            # log(text) or log(level, text)
            level, text = ("info", args[0]) if len(args) == 1 else (args[0], args[1])
            if level in ("warn", "warning", "error"):
                diagnostics.record("H02", f"{name}: {text}", level="warning" if level != "error" else "error")
            else:
                diagnostics.info(f"{name}: {text}")

        namespace = SimpleNamespace(
            Container=Container,
            Drawable=Drawable,
            Curve=Curve,
            Field=Field,
            Geometry=Geometry,
            count_leaves=_nodes.count_leaves,
        )

        def factory(params: dict[str, Any]) -> Any:
            return fn(
                params,
                namespace,
                math,
                np,
                log,
                self.call,
                resolve_curve,
                resolve_points,
                resolve_field,
                fonts,
            )

        factory.__name__ = name
        return factory


def _compile_body(name: str, body: str) -> Callable[..., Any]:
    source = f"def __definition__({', '.join(INJECTED_NAMES)}):\n" + textwrap.indent(
        textwrap.dedent(body), "    "
    )
    namespace: dict[str, Any] = {"__builtins__": _DEFINITION_BUILTINS}
    exec(compile(source, f"<definition {name}>", "exec"), namespace)
    return namespace["__definition__"]
