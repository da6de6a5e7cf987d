"""Tests for repeat distributions."""

import math

import numpy as np
import numpy.testing as npt

from shapeweave.context import Context
from shapeweave.distribution import distribute
from shapeweave.nodes import Curve


class TestLinear:
    def test_centered(self, evaluator, ctx):
        out = distribute({"type": "linear", "spacing": 2}, 3, ctx, evaluator)
        npt.assert_allclose(out, [[-2, 0, 0], [0, 0, 0], [2, 0, 0]])

    def test_not_centered_on_z(self, evaluator, ctx):
        out = distribute({"type": "linear", "spacing": 2, "axis": "z", "centered": False}, 3, ctx, evaluator)
        npt.assert_allclose(out, [[0, 0, 0], [0, 0, 2], [0, 0, 4]])

    def test_spacing_expression(self, evaluator):
        out = distribute({"type": "linear", "spacing": "$gap"}, 3, Context({"gap": 1.5}), evaluator)
        npt.assert_allclose([p[0] for p in out], [-1.5, 0, 1.5])


class TestGrid:
    def test_square_by_default(self, evaluator, ctx):
        out = distribute({"type": "grid", "spacing": 1}, 4, ctx, evaluator)
        npt.assert_allclose(out, [[0, 0, 0], [1, 0, 0], [0, 0, 1], [1, 0, 1]])

    def test_columns_and_axis_spacing(self, evaluator, ctx):
        options = {"type": "grid", "columns": 3, "spacingX": 2, "spacingZ": 3}
        out = distribute(options, 4, ctx, evaluator)
        npt.assert_allclose(out, [[0, 0, 0], [2, 0, 0], [4, 0, 0], [0, 0, 3]])


class TestRadial:
    def test_half_circle(self, evaluator, ctx):
        options = {"type": "radial", "radius": 2, "startAngle": 0, "endAngle": math.pi}
        out = distribute(options, 3, ctx, evaluator)
        npt.assert_allclose(out, [[2, 0, 0], [0, 0, 2], [-2, 0, 0]], atol=1e-12)

    def test_single_instance(self, evaluator, ctx):
        out = distribute({"type": "radial", "radius": 2}, 1, ctx, evaluator)
        npt.assert_allclose(out, [[2, 0, 0]])

    def test_angles_as_expressions(self, evaluator, ctx):
        options = {"type": "radial", "radius": 1, "endAngle": "pi / 2", "axis": "z"}
        out = distribute(options, 2, ctx, evaluator)
        npt.assert_allclose(out, [[1, 0, 0], [0, 1, 0]], atol=1e-12)


class TestAlongCurve:
    def test_curve_object(self, evaluator, ctx):
        curve = Curve(points=[[0, 0, 0], [4, 0, 0]])
        out = distribute({"type": "along_curve", "curve": curve}, 3, ctx, evaluator)
        npt.assert_allclose(out, [[0, 0, 0], [2, 0, 0], [4, 0, 0]])

    def test_point_list(self, evaluator, ctx):
        out = distribute({"type": "along_curve", "curve": [[0, 0], [0, 4]]}, 3, ctx, evaluator)
        npt.assert_allclose(out, [[0, 0, 0], [0, 2, 0], [0, 4, 0]])

    def test_curve_from_context(self, evaluator):
        scope = Context({"rail": Curve(points=[[0, 0, 0], [0, 0, 6]])})
        out = distribute({"type": "along_curve", "curve": "$rail"}, 2, scope, evaluator)
        npt.assert_allclose(out, [[0, 0, 0], [0, 0, 6]])

    def test_missing_curve_gives_origins(self, evaluator, ctx):
        out = distribute({"type": "along_curve"}, 2, ctx, evaluator)
        assert out == [[0.0, 0.0, 0.0], [0.0, 0.0, 0.0]]


class TestRandom:
    def test_seeded_is_reproducible(self, evaluator, ctx):
        options = {"type": "random", "seed": 7, "size": 2}
        a = distribute(options, 5, ctx, evaluator)
        b = distribute(options, 5, ctx, evaluator)
        assert a == b
        assert np.all(np.abs(np.asarray(a)) <= 1.0)

    def test_seeds_differ(self, evaluator, ctx):
        a = distribute({"type": "random", "seed": 1}, 3, ctx, evaluator)
        b = distribute({"type": "random", "seed": 2}, 3, ctx, evaluator)
        assert a != b

    def test_per_axis_size(self, evaluator, ctx):
        out = np.asarray(distribute({"type": "random", "size": [2, 0, 2]}, 10, ctx, evaluator))
        npt.assert_allclose(out[:, 1], 0)


class TestDistribute:
    def test_no_options(self, evaluator, ctx):
        assert distribute(None, 2, ctx, evaluator) == [[0.0, 0.0, 0.0], [0.0, 0.0, 0.0]]

    def test_unknown_type(self, evaluator, ctx):
        assert distribute({"type": "spiral-ish"}, 1, ctx, evaluator) == [[0.0, 0.0, 0.0]]
