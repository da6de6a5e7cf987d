"""Tests for material lookup and BuildNode placement."""

from shapeweave.materializer import FALLBACK_MATERIAL, Materializer, MaterialTable
from shapeweave.models import MaterialSpec
from shapeweave.nodes import Material


class TestMaterialTable:
    def test_named(self):
        table = MaterialTable({"oak": MaterialSpec(color="#aa7744", roughness=0.9)})
        oak = table.get("oak")
        assert oak.name == "oak"
        assert oak.roughness == 0.9
        assert "oak" in table

    def test_fallback(self):
        assert MaterialTable().get("nope") is FALLBACK_MATERIAL
        assert MaterialTable().get(None) is FALLBACK_MATERIAL

    def test_default_entry_wins_over_fallback(self):
        table = MaterialTable({"default": MaterialSpec(color="#ffffff")})
        assert table.get("nope").color == "#ffffff"

    def test_hex_color_cached(self):
        table = MaterialTable()
        red = table.get("#ff0000")
        assert red.color == "#ff0000"
        assert table.get("#ff0000") is red

    def test_material_instance_passthrough(self):
        mat = Material(name="custom")
        assert MaterialTable().get(mat) is mat


class TestMaterializer:
    def test_dispose_then_rematerialize(self, interp, adapter, grid_schema):
        interp.execute(grid_schema)
        before = sorted(interp.paths())
        build = interp.registry.get("root").build

        interp.registry.release("root")
        assert adapter.live_count == 0
        assert interp.paths() == []

        Materializer(interp.state).materialize(build, interp.root)
        assert sorted(interp.paths()) == before
        assert adapter.live_count == 4

    def test_materialize_replaces_existing_path(self, interp, adapter, grid_schema):
        interp.execute(grid_schema)
        build = interp.registry.get("root.ball").build
        parent = interp.registry.get("root").node

        Materializer(interp.state).materialize(build, parent, "root")
        assert adapter.live_count == 4
        assert len(parent.children) == 2

    def test_override_material_applied(self, interp):
        interp.execute(
            {
                "materials": {"steel": {"color": "#9999aa", "metalness": 1}},
                "actions": [
                    {"do": "createBox", "id": "a", "material": "steel"},
                    {"type": "reference", "id": "b", "target": "a", "material": "#00ff00"},
                ],
            }
        )
        assert interp.registry.get("a").node.material.name == "steel"
        assert interp.registry.get("b").node.material.color == "#00ff00"

    def test_list_result_wrapped(self, interp):
        interp.execute(
            {
                "definitions": {
                    "pair": "return [call('createBox', {}), call('createSphere', {}), 'junk']",
                },
                "actions": [{"do": "pair", "id": "p"}],
            }
        )
        node = interp.registry.get("p").node
        assert [c.geometry.kind for c in node.children] == ["box", "sphere"]

    def test_hidden_node(self, interp):
        interp.execute({"actions": [{"do": "createBox", "id": "ghost", "visible": "1 > 2"}]})
        assert interp.registry.get("ghost").node.visible is False
