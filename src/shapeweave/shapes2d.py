"""2D path generators.

Every generator returns a plain list of ``[x, y]`` float pairs so results can
be spliced into parameter arrays, serialized, or fed to expressions.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import numpy as np

Points = list[list[float]]


def _as_points(arr: np.ndarray) -> Points:
    return [[float(x), float(y)] for x, y in arr]


def _as_array(points: Sequence[Sequence[float]]) -> np.ndarray:
    arr = np.asarray(points, dtype=float)
    if arr.ndim != 2 or arr.shape[1] < 2:
        raise ValueError("expected a list of [x, y] points")
    return arr[:, :2]


def _rotate(arr: np.ndarray, cx: float, cy: float, rotation: float) -> np.ndarray:
    if rotation == 0:
        return arr
    c, s = math.cos(rotation), math.sin(rotation)
    dx, dy = arr[:, 0] - cx, arr[:, 1] - cy
    return np.column_stack([cx + dx * c - dy * s, cy + dx * s + dy * c])


def arc2d(cx, cy, r, a0, a1, clockwise=False, segments=12) -> Points:
    segments = int(segments)
    delta = (a0 - a1) / segments if clockwise else (a1 - a0) / segments
    steps = np.arange(segments + 1)
    angles = a0 - steps * delta if clockwise else a0 + steps * delta
    return _as_points(np.column_stack([cx + r * np.cos(angles), cy + r * np.sin(angles)]))


def bezier2d(points, segments=24) -> Points:
    """Quadratic (3 control points) or cubic (4) Bezier curve."""
    ctrl = _as_array(points)
    t = np.linspace(0.0, 1.0, int(segments) + 1)[:, None]
    if len(ctrl) == 3:
        p0, p1, p2 = ctrl
        out = (1 - t) ** 2 * p0 + 2 * (1 - t) * t * p1 + t**2 * p2
    elif len(ctrl) == 4:
        p0, p1, p2, p3 = ctrl
        out = (1 - t) ** 3 * p0 + 3 * (1 - t) ** 2 * t * p1 + 3 * (1 - t) * t**2 * p2 + t**3 * p3
    else:
        raise ValueError(f"bezier2d needs 3 or 4 control points, got {len(ctrl)}")
    return _as_points(out)


def polygon2d(cx, cy, r, sides=3, rotation=0) -> Points:
    sides = int(sides)
    angles = rotation + np.arange(sides) * 2 * math.pi / sides
    return _as_points(np.column_stack([cx + r * np.cos(angles), cy + r * np.sin(angles)]))


def ellipse2d(cx, cy, rx, ry, a0=0, a1=2 * math.pi, segments=24) -> Points:
    angles = np.linspace(a0, a1, int(segments) + 1)
    return _as_points(np.column_stack([cx + rx * np.cos(angles), cy + ry * np.sin(angles)]))


def catmull_rom2d(points, segments=32, tension=0.5) -> Points:
    """Cardinal spline through ``points``, endpoints clamped."""
    pts = _as_array(points)
    if len(pts) < 2:
        return _as_points(pts)
    t = np.linspace(0.0, 1.0, int(segments) + 1)[:, None]
    t2, t3 = t * t, t * t * t
    a0 = -tension * t3 + 2 * tension * t2 - tension * t
    a1 = (2 - tension) * t3 + (tension - 3) * t2 + 1
    a2 = (tension - 2) * t3 + (3 - 2 * tension) * t2 + tension * t
    a3 = tension * t3 - tension * t2
    chunks = []
    for i in range(len(pts) - 1):
        p0 = pts[i - 1] if i > 0 else pts[i]
        p1, p2 = pts[i], pts[i + 1]
        p3 = pts[i + 2] if i + 2 < len(pts) else p2
        chunks.append(a0 * p0 + a1 * p1 + a2 * p2 + a3 * p3)
    return _as_points(np.vstack(chunks))


def koch_snowflake2d(p0, p1, level=3) -> Points:
    """Koch curve over the single segment p0 -> p1."""

    def recur(a, b, lvl):
        if lvl == 0:
            return [a, b]
        ab = (a[0] + (b[0] - a[0]) / 3, a[1] + (b[1] - a[1]) / 3)
        bb = (a[0] + (b[0] - a[0]) * 2 / 3, a[1] + (b[1] - a[1]) * 2 / 3)
        angle = math.atan2(b[1] - a[1], b[0] - a[0]) - math.pi / 3
        length = math.hypot(bb[0] - ab[0], bb[1] - ab[1])
        peak = (ab[0] + math.cos(angle) * length, ab[1] + math.sin(angle) * length)
        return (
            recur(a, ab, lvl - 1)
            + recur(ab, peak, lvl - 1)[1:]
            + recur(peak, bb, lvl - 1)[1:]
            + recur(bb, b, lvl - 1)[1:]
        )

    start = (float(p0[0]), float(p0[1]))
    end = (float(p1[0]), float(p1[1]))
    return [[x, y] for x, y in recur(start, end, int(level))]


def spiral2d(cx, cy, r0, turns, expansion=1, points_per_turn=24) -> Points:
    """Circle when ``expansion`` is 1, logarithmic spiral otherwise."""
    steps = math.ceil(turns * points_per_turn)
    i = np.arange(steps + 1)
    theta = 2 * math.pi * i / points_per_turn
    r = r0 * np.power(float(expansion), i / points_per_turn)
    return _as_points(np.column_stack([cx + r * np.cos(theta), cy + r * np.sin(theta)]))


def transform2d(points, matrix) -> Points:
    """Apply a 3x3 affine matrix (nested or flat row-major) to ``points``."""
    m = np.asarray(matrix, dtype=float).reshape(-1)
    if m.size not in (6, 9):
        raise ValueError("transform2d needs a 3x3 (or 2x3) matrix")
    m = m[:6].reshape(2, 3)
    pts = _as_array(points)
    homogeneous = np.column_stack([pts, np.ones(len(pts))])
    return _as_points(homogeneous @ m.T)


def mirror2d(points, axis="x", value=0) -> Points:
    pts = _as_array(points).copy()
    col = 0 if axis == "x" else 1
    pts[:, col] = 2 * value - pts[:, col]
    return _as_points(pts)


def offset2d(points, distance) -> Points:
    """Offset a closed polygon along averaged edge normals."""
    pts = _as_array(points)
    prev = np.roll(pts, 1, axis=0)
    nxt = np.roll(pts, -1, axis=0)
    v0, v1 = pts - prev, nxt - pts
    n0 = np.column_stack([v0[:, 1], -v0[:, 0]])
    n1 = np.column_stack([v1[:, 1], -v1[:, 0]])
    n0 /= np.linalg.norm(n0, axis=1, keepdims=True)
    n1 /= np.linalg.norm(n1, axis=1, keepdims=True)
    n = (n0 + n1) * 0.5
    n /= np.linalg.norm(n, axis=1, keepdims=True)
    return _as_points(pts + n * distance)


def rounded_rect2d(cx, cy, width, height, r, segments=8, rotation=0) -> Points:
    segments = int(segments)
    r = min(r, width / 2, height / 2)
    hw, hh = width / 2 - r, height / 2 - r
    centers = [(cx + hw, cy + hh), (cx - hw, cy + hh), (cx - hw, cy - hh), (cx + hw, cy - hh)]
    chunks = []
    for corner, (ccx, ccy) in enumerate(centers):
        a = corner * math.pi / 2 + np.arange(segments) / segments * (math.pi / 2)
        chunks.append(np.column_stack([ccx + r * np.cos(a), ccy + r * np.sin(a)]))
    out = _rotate(np.vstack(chunks), cx, cy, rotation)
    out = np.vstack([out, out[:1]])
    return _as_points(out)


def rect2d(cx, cy, width, height, rotation=0) -> Points:
    hw, hh = width / 2, height / 2
    corners = np.array([[-hw, -hh], [hw, -hh], [hw, hh], [-hw, hh]], dtype=float)
    corners += (cx, cy)
    return _as_points(_rotate(corners, cx, cy, rotation))


def regular_star2d(cx, cy, r_outer, r_inner, points, rotation=0) -> Points:
    points = int(points)
    i = np.arange(points * 2)
    r = np.where(i % 2 == 0, r_outer, r_inner)
    a = i * math.pi / points + rotation
    out = np.column_stack([cx + r * np.cos(a), cy + r * np.sin(a)])
    return _as_points(np.vstack([out, out[:1]]))


def polyline2d(points) -> Points:
    return _as_points(_as_array(points))


def line2d(p0, p1, segments=1) -> Points:
    t = np.linspace(0.0, 1.0, int(segments) + 1)[:, None]
    a = np.asarray(p0[:2], dtype=float)
    b = np.asarray(p1[:2], dtype=float)
    return _as_points(a * (1 - t) + b * t)


# Descriptor kind -> generator; used for ``{"kind": ...}`` entries in point arrays.
GENERATORS: dict[str, Callable[..., Points]] = {
    "arc": arc2d,
    "bezier": bezier2d,
    "ellipse": ellipse2d,
    "polygon": polygon2d,
    "spline": catmull_rom2d,
    "line": line2d,
    "polyline": polyline2d,
    "star": regular_star2d,
    "rect": rect2d,
    "roundedrect": rounded_rect2d,
    "offset": offset2d,
    "mirror": mirror2d,
    "transform": transform2d,
    "spiral": spiral2d,
    "kochsnowflake": koch_snowflake2d,
}

# Names the generators are callable as from expressions.
EXPRESSION_FUNCTIONS: dict[str, Callable[..., Points]] = {
    "arc2d": arc2d,
    "bezier2d": bezier2d,
    "ellipse2d": ellipse2d,
    "polygon2d": polygon2d,
    "catmullRom2d": catmull_rom2d,
    "spline2d": catmull_rom2d,
    "line2d": line2d,
    "polyline2d": polyline2d,
    "regularStar2d": regular_star2d,
    "rect2d": rect2d,
    "roundedRect2d": rounded_rect2d,
    "offset2d": offset2d,
    "mirror2d": mirror2d,
    "transform2d": transform2d,
    "spiral2d": spiral2d,
    "kochSnowflake2d": koch_snowflake2d,
}

# camelCase descriptor keys accepted alongside the keyword names
_KEY_ALIASES = {
    "rOuter": "r_outer",
    "rInner": "r_inner",
    "pointsPerTurn": "points_per_turn",
}


def is_path_descriptor(value: Any) -> bool:
    return isinstance(value, Mapping) and value.get("kind") in GENERATORS


def expand_descriptor(descriptor: Mapping[str, Any]) -> Points:
    """Run the generator a ``{"kind": ..., **args}`` descriptor names."""
    kind = descriptor["kind"]
    kwargs = {_KEY_ALIASES.get(k, k): v for k, v in descriptor.items() if k != "kind"}
    return GENERATORS[kind](**kwargs)


def expand_point_array(items: Sequence[Any]) -> list[Any]:
    """Splice the points of every path descriptor into the array, in order."""
    out: list[Any] = []
    for item in items:
        if is_path_descriptor(item):
            out.extend(expand_descriptor(item))
        else:
            out.append(item)
    return out
