"""Scene node variants produced by node factories.

A factory returns a :class:`Container`, :class:`Drawable`, :class:`Curve`
or :class:`Field` (or a list of them, or ``None``). Drawables own a
:class:`Geometry`, which is the disposable resource the interpreter tracks.
"""

from __future__ import annotations

import itertools
import math
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import numpy as np

_geometry_ids = itertools.count(1)


def _vec3(value: Any, default: float) -> list[float]:
    if value is None:
        return [default, default, default]
    if isinstance(value, (int, float)):
        return [float(value)] * 3
    vals = [float(v) for v in list(value)[:3]]
    return vals + [default] * (3 - len(vals))


@dataclass(eq=False)
class Geometry:
    """Opaque geometry buffer description owned by one Drawable."""

    kind: str
    params: dict[str, Any] = field(default_factory=dict)
    uid: int = field(default_factory=lambda: next(_geometry_ids))
    disposed: bool = False

    def dispose(self) -> None:
        self.disposed = True

    def copy(self) -> Geometry:
        return Geometry(kind=self.kind, params=dict(self.params))


@dataclass(eq=False)
class Material:
    name: str
    color: str = "#cccccc"
    roughness: float = 0.5
    metalness: float = 0.0
    transparent: bool = False
    opacity: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "color": self.color,
            "roughness": self.roughness,
            "metalness": self.metalness,
            "transparent": self.transparent,
            "opacity": self.opacity,
        }


@dataclass(eq=False)
class Node:
    """Common transform and bookkeeping shared by every variant."""

    name: str = ""
    position: list[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])
    rotation: list[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])
    scale: list[float] = field(default_factory=lambda: [1.0, 1.0, 1.0])
    visible: bool = True
    user_data: dict[str, Any] = field(default_factory=dict)
    parent: Container | None = field(default=None, repr=False)
    disposed: bool = field(default=False, repr=False)

    kind = "node"

    def set_transform(self, position=None, rotation=None, scale=None) -> None:
        if position is not None:
            self.position = _vec3(position, 0.0)
        if rotation is not None:
            self.rotation = _vec3(rotation, 0.0)
        if scale is not None:
            self.scale = _vec3(scale, 1.0)

    def walk(self) -> Iterator[Node]:
        yield self

    def _copy_base(self, other: Node) -> None:
        other.name = self.name
        other.position = list(self.position)
        other.rotation = list(self.rotation)
        other.scale = list(self.scale)
        other.visible = self.visible
        other.user_data = dict(self.user_data)


@dataclass(eq=False)
class Container(Node):
    children: list[Node] = field(default_factory=list)

    kind = "container"

    def add(self, child: Node) -> None:
        if child.parent is not None:
            child.parent.remove(child)
        child.parent = self
        self.children.append(child)

    def remove(self, child: Node) -> None:
        if child in self.children:
            self.children.remove(child)
        child.parent = None

    def walk(self) -> Iterator[Node]:
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, name: str) -> Node | None:
        for node in self.walk():
            if node.name == name:
                return node
        return None

    def clone(self) -> Container:
        out = Container()
        self._copy_base(out)
        for child in self.children:
            out.add(child.clone())
        return out


@dataclass(eq=False)
class Drawable(Node):
    geometry: Geometry | None = None
    material: Material | None = None

    kind = "drawable"

    def clone(self) -> Drawable:
        out = Drawable(
            geometry=self.geometry.copy() if self.geometry is not None else None,
            material=self.material,
        )
        self._copy_base(out)
        return out


@dataclass(eq=False)
class Curve(Node):
    """Polyline in 3D. 2D points are lifted onto the XY plane."""

    points: list[list[float]] = field(default_factory=list)
    closed: bool = False

    kind = "curve"

    def __post_init__(self) -> None:
        self.points = [_vec3(list(p) + [0.0] * (3 - len(p)), 0.0) for p in self.points]

    def length(self) -> float:
        pts = self._polyline()
        if len(pts) < 2:
            return 0.0
        return float(np.linalg.norm(np.diff(pts, axis=0), axis=1).sum())

    def point_at(self, t: float) -> list[float]:
        """Point at arc-length fraction ``t`` in [0, 1]."""
        pts = self._polyline()
        if len(pts) == 0:
            return [0.0, 0.0, 0.0]
        if len(pts) == 1:
            return pts[0].tolist()
        seg = np.linalg.norm(np.diff(pts, axis=0), axis=1)
        cum = np.concatenate([[0.0], np.cumsum(seg)])
        target = min(max(t, 0.0), 1.0) * cum[-1]
        i = int(np.searchsorted(cum, target, side="right")) - 1
        i = min(max(i, 0), len(seg) - 1)
        local = 0.0 if seg[i] == 0 else (target - cum[i]) / seg[i]
        return (pts[i] + (pts[i + 1] - pts[i]) * local).tolist()

    def _polyline(self) -> np.ndarray:
        pts = np.asarray(self.points, dtype=float).reshape(-1, 3)
        if self.closed and len(pts) > 1:
            pts = np.vstack([pts, pts[:1]])
        return pts

    def clone(self) -> Curve:
        out = Curve(points=[list(p) for p in self.points], closed=self.closed)
        self._copy_base(out)
        return out


@dataclass(eq=False)
class Field(Node):
    """Sampled vector field: parallel lists of origins and vectors."""

    origins: list[list[float]] = field(default_factory=list)
    vectors: list[list[float]] = field(default_factory=list)

    kind = "field"

    def magnitude_range(self) -> tuple[float, float]:
        if not self.vectors:
            return (0.0, 0.0)
        mags = [math.sqrt(sum(c * c for c in v)) for v in self.vectors]
        return (min(mags), max(mags))

    def clone(self) -> Field:
        out = Field(origins=[list(p) for p in self.origins], vectors=[list(v) for v in self.vectors])
        self._copy_base(out)
        return out


NODE_TYPES = (Container, Drawable, Curve, Field)


def is_node(value: Any) -> bool:
    return isinstance(value, NODE_TYPES)


def drawables(node: Node) -> Iterator[Drawable]:
    for n in node.walk():
        if isinstance(n, Drawable):
            yield n


def find_curve(value: Any) -> Curve | None:
    """The Curve carried by ``value``: itself, its ``curve`` user data, or a descendant."""
    if isinstance(value, Curve):
        return value
    if isinstance(value, Node):
        stored = value.user_data.get("curve")
        if isinstance(stored, Curve):
            return stored
        for n in value.walk():
            if isinstance(n, Curve):
                return n
    return None


def find_field(value: Any) -> Field | None:
    if isinstance(value, Field):
        return value
    if isinstance(value, Node):
        for n in value.walk():
            if isinstance(n, Field):
                return n
    return None


def count_leaves(node: Node) -> int:
    """Number of non-container nodes under (and including) ``node``."""
    return sum(1 for n in node.walk() if not isinstance(n, Container))
