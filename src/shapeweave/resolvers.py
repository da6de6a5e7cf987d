"""Input normalization for helpers: curves, point lists and fields."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np

from shapeweave.nodes import Curve, Field, find_curve, find_field
from shapeweave.shapes2d import expand_point_array


def catmull_rom(points: Sequence[Sequence[float]], segments: int = 16, closed: bool = False) -> list[list[float]]:
    """Uniform Catmull-Rom spline through 3D ``points``."""
    pts = np.asarray([list(p) + [0.0] * (3 - len(p)) for p in points], dtype=float)
    n = len(pts)
    if n < 2:
        return pts.tolist()
    t = np.linspace(0.0, 1.0, int(segments), endpoint=False)[:, None]
    t2, t3 = t * t, t * t * t
    spans = n if closed else n - 1
    chunks = []
    for i in range(spans):
        if closed:
            p0, p1, p2, p3 = pts[(i - 1) % n], pts[i], pts[(i + 1) % n], pts[(i + 2) % n]
        else:
            p0 = pts[max(i - 1, 0)]
            p1, p2 = pts[i], pts[i + 1]
            p3 = pts[min(i + 2, n - 1)]
        chunks.append(
            0.5
            * (
                2 * p1
                + (-p0 + p2) * t
                + (2 * p0 - 5 * p1 + 4 * p2 - p3) * t2
                + (-p0 + 3 * p1 - 3 * p2 + p3) * t3
            )
        )
    out = np.vstack(chunks)
    out = np.vstack([out, pts[:1] if closed else pts[-1:]])
    return out.tolist()


def resolve_curve(value: Any) -> Curve | None:
    """A Curve from a curve, a node carrying one, or a list of >= 2 points."""
    curve = find_curve(value)
    if curve is not None:
        return curve
    if isinstance(value, (list, tuple)) and len(value) >= 2:
        return Curve(points=catmull_rom(value))
    return None


def resolve_points(value: Any, divisions: int = 32) -> list[list[float]]:
    """Sample a curve-like value into ``[x, y, z]`` points.

    Raw lists pass through, with any path descriptor spliced in as its points.
    """
    if value is None:
        return []
    curve = find_curve(value)
    if curve is not None:
        if divisions <= 0:
            return [list(p) for p in curve.points]
        return [curve.point_at(i / divisions) for i in range(divisions + 1)]
    if isinstance(value, (list, tuple)):
        points = expand_point_array(value)
        for p in points:
            if isinstance(p, Mapping):
                raise TypeError(f"unknown path descriptor kind {p.get('kind')!r}")
        return [[float(c) for c in p] + [0.0] * (3 - len(p)) for p in points]
    raise TypeError(f"cannot resolve points from {type(value).__name__}")


def resolve_field(value: Any) -> Field | None:
    return find_field(value)
