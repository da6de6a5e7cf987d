"""Placement strategies for ``repeat`` instances.

A distribution maps an instance count to one ``[x, y, z]`` offset per
instance. Options are evaluated against the repeat's context, so spacing
and radii may be expressions.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from typing import Any

import numpy as np

from shapeweave.context import Context
from shapeweave.expressions import ExpressionEvaluator
from shapeweave.nodes import Curve, find_curve

Positions = list[list[float]]
Distribution = Callable[[Mapping[str, Any], int, Context, ExpressionEvaluator], Positions]

_AXES = {"x": 0, "y": 1, "z": 2}


def _opt(options: Mapping[str, Any], ctx: Context, evaluator: ExpressionEvaluator, *keys, default=None):
    for key in keys:
        value = options.get(key)
        if value is not None:
            return evaluator.evaluate(value, ctx)
    return default


def linear(options, count, ctx, evaluator) -> Positions:
    spacing = float(_opt(options, ctx, evaluator, "spacing", default=1))
    axis = _AXES.get(options.get("axis", "x"), 0)
    centered = options.get("centered", True) is not False
    offset = -spacing * (count - 1) / 2 if centered else 0.0
    out = np.zeros((count, 3))
    out[:, axis] = offset + np.arange(count) * spacing
    return out.tolist()


def grid(options, count, ctx, evaluator) -> Positions:
    """Row-major grid in the XZ plane, ``ceil(sqrt(count))`` columns by default."""
    spacing_x = float(_opt(options, ctx, evaluator, "spacingX", "spacing", default=1))
    spacing_z = float(_opt(options, ctx, evaluator, "spacingZ", "spacing", default=1))
    columns = _opt(options, ctx, evaluator, "columns")
    columns = int(columns) if columns else max(1, math.ceil(math.sqrt(count)))
    i = np.arange(count)
    out = np.zeros((count, 3))
    out[:, 0] = (i % columns) * spacing_x
    out[:, 2] = (i // columns) * spacing_z
    return out.tolist()


def radial(options, count, ctx, evaluator) -> Positions:
    """Points on a circle around ``axis``, from ``startAngle`` to ``endAngle`` inclusive."""
    radius = float(_opt(options, ctx, evaluator, "radius", default=1))
    start = float(_opt(options, ctx, evaluator, "startAngle", default=0))
    end = float(_opt(options, ctx, evaluator, "endAngle", default=2 * math.pi))
    axis = options.get("axis", "y")
    t = np.zeros(count) if count <= 1 else np.arange(count) / (count - 1)
    angle = start + (end - start) * t
    a, b = radius * np.cos(angle), radius * np.sin(angle)
    zeros = np.zeros(count)
    if axis == "x":
        out = np.column_stack([zeros, a, b])
    elif axis == "z":
        out = np.column_stack([a, b, zeros])
    else:
        out = np.column_stack([a, zeros, b])
    return out.tolist()


def along_curve(options, count, ctx, evaluator) -> Positions:
    """Evenly spaced (by parameter) points along a curve.

    ``curve`` may be an expression yielding a :class:`Curve`, a node holding
    one, or a raw point list. Without a usable curve every instance sits at
    the origin.
    """
    source = options.get("curve")
    if isinstance(source, str):
        source = evaluator.evaluate(source, ctx)
    curve = find_curve(source) if source is not None else None
    if curve is None and isinstance(source, (list, tuple)) and source:
        curve = Curve(points=[list(p) for p in source])
    if curve is None:
        return [[0.0, 0.0, 0.0] for _ in range(count)]
    t = [0.0] * count if count <= 1 else [i / (count - 1) for i in range(count)]
    return [curve.point_at(v) for v in t]


def random(options, count, ctx, evaluator) -> Positions:
    """Uniform scatter inside a box of ``size`` (default 1) centered on the origin."""
    seed = _opt(options, ctx, evaluator, "seed", default=0)
    size = options.get("size", 1)
    if isinstance(size, (list, tuple)):
        extent = np.array([float(evaluator.evaluate(s, ctx)) for s in size])
    else:
        extent = np.full(3, float(evaluator.evaluate(size, ctx)))
    rng = np.random.default_rng(int(seed))
    return ((rng.random((count, 3)) - 0.5) * extent).tolist()


DISTRIBUTIONS: dict[str, Distribution] = {
    "linear": linear,
    "grid": grid,
    "radial": radial,
    "along_curve": along_curve,
    "random": random,
}


def distribute(
    options: Mapping[str, Any] | None,
    count: int,
    ctx: Context,
    evaluator: ExpressionEvaluator,
) -> Positions:
    """Positions for ``count`` instances; the origin when no distribution applies."""
    strategy = DISTRIBUTIONS.get((options or {}).get("type", ""))
    if strategy is None:
        return [[0.0, 0.0, 0.0] for _ in range(count)]
    return strategy(options, count, ctx, evaluator)
