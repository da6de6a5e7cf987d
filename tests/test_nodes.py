"""Tests for scene node variants and the in-memory target adapter."""

import pytest

from shapeweave.nodes import (
    Container,
    Curve,
    Drawable,
    Field,
    Geometry,
    Material,
    count_leaves,
    drawables,
    find_curve,
    find_field,
    is_node,
)
from shapeweave.scene import SceneTreeAdapter


def _box(name="box"):
    return Drawable(name=name, geometry=Geometry(kind="box", params={"width": 1}))


class TestContainer:
    def test_add_reparents(self):
        a, b = Container(name="a"), Container(name="b")
        child = _box()
        a.add(child)
        b.add(child)
        assert child.parent is b
        assert a.children == []
        assert b.children == [child]

    def test_remove_clears_parent(self):
        group = Container()
        child = _box()
        group.add(child)
        group.remove(child)
        assert child.parent is None
        assert group.children == []

    def test_walk_and_find(self):
        root = Container(name="root")
        inner = Container(name="inner")
        inner.add(_box("leaf"))
        root.add(inner)
        assert [n.name for n in root.walk()] == ["root", "inner", "leaf"]
        assert root.find("leaf").name == "leaf"
        assert root.find("missing") is None

    def test_clone_is_deep(self):
        root = Container(name="root", position=[1, 2, 3])
        root.add(_box())
        copy = root.clone()
        assert copy.position == [1, 2, 3]
        assert copy.children[0] is not root.children[0]
        assert copy.children[0].parent is copy
        assert copy.children[0].geometry.uid != root.children[0].geometry.uid

    def test_set_transform_scalar_scale(self):
        node = Container()
        node.set_transform(position=[1, 2], scale=2)
        assert node.position == [1.0, 2.0, 0.0]
        assert node.scale == [2.0, 2.0, 2.0]
        assert node.rotation == [0.0, 0.0, 0.0]


class TestDrawable:
    def test_clone_copies_geometry_shares_material(self):
        mat = Material(name="oak")
        box = _box()
        box.material = mat
        copy = box.clone()
        assert copy.geometry is not box.geometry
        assert copy.geometry.params == {"width": 1}
        assert copy.material is mat

    def test_material_to_dict(self):
        assert Material(name="m", color="#ff0000").to_dict()["color"] == "#ff0000"


class TestCurve:
    def test_points_lifted_to_3d(self):
        assert Curve(points=[[1, 2]]).points == [[1.0, 2.0, 0.0]]

    def test_length_and_point_at(self):
        curve = Curve(points=[[0, 0], [3, 4]])
        assert curve.length() == pytest.approx(5)
        assert curve.point_at(0.5) == pytest.approx([1.5, 2.0, 0.0])
        assert curve.point_at(2) == pytest.approx([3.0, 4.0, 0.0])

    def test_closed_length(self):
        square = Curve(points=[[0, 0], [1, 0], [1, 1], [0, 1]], closed=True)
        assert square.length() == pytest.approx(4)

    def test_empty_curve(self):
        assert Curve().point_at(0.5) == [0.0, 0.0, 0.0]
        assert Curve().length() == 0.0


class TestField:
    def test_magnitude_range(self):
        field = Field(origins=[[0, 0, 0], [1, 0, 0]], vectors=[[0, 3, 4], [1, 0, 0]])
        assert field.magnitude_range() == (1.0, 5.0)
        assert Field().magnitude_range() == (0.0, 0.0)


class TestQueries:
    def test_leaves_and_drawables(self):
        root = Container()
        root.add(_box("a"))
        root.add(Curve(points=[[0, 0], [1, 0]]))
        inner = Container()
        inner.add(_box("b"))
        root.add(inner)
        assert count_leaves(root) == 3
        assert [d.name for d in drawables(root)] == ["a", "b"]

    def test_find_curve_via_user_data(self):
        curve = Curve(points=[[0, 0], [1, 0]])
        holder = _box()
        holder.user_data["curve"] = curve
        assert find_curve(holder) is curve
        assert find_curve(5) is None

    def test_find_field_in_descendants(self):
        root = Container()
        field = Field()
        root.add(field)
        assert find_field(root) is field

    def test_is_node(self):
        assert is_node(Container())
        assert not is_node({"name": "x"})


class TestSceneTreeAdapter:
    def test_attach_tracks_live_geometry(self):
        adapter = SceneTreeAdapter()
        root = adapter.create_container("root")
        adapter.attach(root, _box())
        assert adapter.live_count == 1

    def test_dispose_is_idempotent(self):
        adapter = SceneTreeAdapter()
        root = adapter.create_container("root")
        box = _box()
        adapter.attach(root, box)
        adapter.dispose(box)
        adapter.dispose(box)
        assert adapter.disposed_geometries == 1
        assert adapter.live_count == 0
        assert box.disposed
        assert box.geometry.disposed

    def test_detach(self):
        adapter = SceneTreeAdapter()
        root = adapter.create_container("root")
        box = _box()
        adapter.attach(root, box)
        adapter.detach(box)
        adapter.detach(box)
        assert root.children == []

    def test_clone_is_not_live_until_attached(self):
        adapter = SceneTreeAdapter()
        root = adapter.create_container("root")
        box = _box()
        adapter.attach(root, box)
        copy = adapter.clone(box)
        assert adapter.live_count == 1
        adapter.attach(root, copy)
        assert adapter.live_count == 2

    def test_set_transform(self):
        adapter = SceneTreeAdapter()
        node = adapter.create_container("n")
        adapter.set_transform(node, rotation=[0, 1, 0])
        assert node.rotation == [0.0, 1.0, 0.0]
