"""Function library and constants visible to every expression."""

from __future__ import annotations

import colorsys
import math
from collections.abc import Callable, Sequence

from shapeweave.shapes2d import EXPRESSION_FUNCTIONS as _PATH_FUNCTIONS

CONSTANTS: dict[str, float] = {
    "pi": math.pi,
    "tau": math.tau,
    "e": math.e,
}


def _spread(args: Sequence) -> Sequence:
    # min([1, 2, 3]) and min(1, 2, 3) both work
    if len(args) == 1 and isinstance(args[0], (list, tuple)):
        return args[0]
    return args


def _min(*args):
    return min(_spread(args))


def _max(*args):
    return max(_spread(args))


def _round(x):
    """Round half up, matching the usual spreadsheet/JS behaviour."""
    return math.floor(x + 0.5)


def _sign(x):
    return (x > 0) - (x < 0)


def _sqrt(x):
    if x < 0:
        raise ValueError(f"sqrt({x}): domain error (negative argument)")
    return math.sqrt(x)


def _mod(a, b):
    """Modulo whose result takes the sign of the divisor."""
    return ((a % b) + b) % b


def hsv_to_hex(h, s, v) -> str:
    """HSV to ``#rrggbb``; ``h`` in [0, 1] is read as a turn fraction, else degrees."""
    if h <= 1:
        h *= 360
    h = ((h % 360) + 360) % 360
    r, g, b = colorsys.hsv_to_rgb(h / 360, s, v)
    return "#{:02x}{:02x}{:02x}".format(*(round(c * 255) for c in (r, g, b)))


def alternating(i, *values):
    return values[int(i) % len(values)]


def nth(arr, i):
    if isinstance(arr, (list, tuple)):
        return arr[int(i) % len(arr)]
    return arr


FUNCTIONS: dict[str, Callable] = {
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "asin": math.asin,
    "acos": math.acos,
    "atan": math.atan,
    "atan2": math.atan2,
    "abs": abs,
    "sqrt": _sqrt,
    "pow": math.pow,
    "exp": math.exp,
    "log": math.log,
    "min": _min,
    "max": _max,
    "floor": math.floor,
    "ceil": math.ceil,
    "round": _round,
    "sign": _sign,
    "clamp": lambda x, lo, hi: max(lo, min(hi, x)),
    "lerp": lambda a, b, t: a + (b - a) * t,
    "mod": _mod,
    "deg2rad": math.radians,
    "rad2deg": math.degrees,
    "hsv_to_hex": hsv_to_hex,
    "alternating": alternating,
    "nth": nth,
    "len": len,
    **_PATH_FUNCTIONS,
}
