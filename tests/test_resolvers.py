"""Tests for curve/point/field input resolvers."""

import numpy.testing as npt
import pytest

from shapeweave.nodes import Container, Curve, Field
from shapeweave.resolvers import catmull_rom, resolve_curve, resolve_field, resolve_points


class TestCatmullRom:
    def test_open_hits_control_points(self):
        out = catmull_rom([[0, 0], [1, 1], [2, 0]], segments=2)
        assert len(out) == 5
        npt.assert_allclose(out[0], [0, 0, 0])
        npt.assert_allclose(out[2], [1, 1, 0])
        npt.assert_allclose(out[-1], [2, 0, 0])

    def test_closed_returns_to_start(self):
        out = catmull_rom([[0, 0], [1, 0], [1, 1]], segments=3, closed=True)
        assert len(out) == 10
        npt.assert_allclose(out[-1], out[0])

    def test_single_point(self):
        assert catmull_rom([[1, 2, 3]]) == [[1.0, 2.0, 3.0]]


class TestResolvers:
    def test_curve_passthrough(self):
        curve = Curve(points=[[0, 0], [1, 0]])
        assert resolve_curve(curve) is curve

    def test_curve_from_container(self):
        curve = Curve(points=[[0, 0], [1, 0]])
        holder = Container()
        holder.add(curve)
        assert resolve_curve(holder) is curve

    def test_curve_from_points(self):
        curve = resolve_curve([[0, 0], [2, 0]])
        assert isinstance(curve, Curve)
        assert curve.length() == pytest.approx(2)

    def test_curve_from_nothing(self):
        assert resolve_curve(None) is None
        assert resolve_curve([[0, 0]]) is None

    def test_points_sampled_from_curve(self):
        pts = resolve_points(Curve(points=[[0, 0], [4, 0]]), divisions=2)
        npt.assert_allclose(pts, [[0, 0, 0], [2, 0, 0], [4, 0, 0]])

    def test_points_raw_list_lifted(self):
        assert resolve_points([[1, 2]]) == [[1.0, 2.0, 0.0]]

    def test_points_descriptor_spliced(self):
        pts = resolve_points([[9, 9], {"kind": "rect", "cx": 0, "cy": 0, "width": 2, "height": 2}])
        assert len(pts) == 5
        assert pts[0] == [9.0, 9.0, 0.0]
        npt.assert_allclose(pts[1], [-1, -1, 0])

    def test_points_unknown_descriptor_kind(self):
        with pytest.raises(TypeError, match="unknown path descriptor kind 'rect2d'"):
            resolve_points([[0, 0], {"kind": "rect2d", "width": 2}])

    def test_points_none(self):
        assert resolve_points(None) == []

    def test_points_rejects_scalars(self):
        with pytest.raises(TypeError):
            resolve_points(5)

    def test_field(self):
        field = Field()
        holder = Container()
        holder.add(field)
        assert resolve_field(holder) is field
        assert resolve_field("nope") is None
