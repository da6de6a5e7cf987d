"""Tests for schema loading, models and dialect normalization."""

import json

import pytest

from shapeweave.diagnostics import DiagnosticLog, WarningPolicy
from shapeweave.errors import SchemaError
from shapeweave.models import (
    GeometryAction,
    GroupAction,
    HelperAction,
    IfAction,
    LoopAction,
    MaterialSpec,
    ReferenceAction,
    RepeatAction,
    Schema,
    TemplateAction,
)
from shapeweave.normalize import Normalizer, normalize_schema, rewrite_legacy_expression
from shapeweave.parser import load_schema_data, load_value, parse_schema


@pytest.fixture
def quiet_log():
    return DiagnosticLog(WarningPolicy(suppress=frozenset({"N01"})))


class TestParseSchema:
    def test_yaml_text(self, shelf_yaml):
        schema = parse_schema(shelf_yaml)
        assert schema.intent == "Shelf"
        assert schema.version == 4.0
        assert schema.global_parameters["shelves"] == {"value": 3}
        assert schema.materials["wood"].roughness == 0.8

    def test_json_text(self):
        schema = parse_schema(json.dumps({"version": 4, "actions": []}))
        assert schema.actions == []

    def test_from_file(self, shelf_yaml, tmp_path):
        f = tmp_path / "shelf.yaml"
        f.write_text(shelf_yaml)
        assert parse_schema(f).intent == "Shelf"

    def test_dict_and_schema_passthrough(self):
        schema = parse_schema({"actions": []})
        assert parse_schema(schema) is schema

    def test_reject_invalid_yaml(self):
        with pytest.raises(SchemaError, match="Invalid schema document"):
            parse_schema("{{{{not valid yaml")

    def test_reject_non_mapping(self):
        with pytest.raises(SchemaError, match="mapping"):
            parse_schema("- a\n- b\n")

    def test_duplicate_keys_rejected(self):
        with pytest.raises(SchemaError, match="Invalid schema document"):
            parse_schema("actions: []\nactions: []\n")

    def test_missing_body(self):
        with pytest.raises(SchemaError, match="actions"):
            parse_schema({"version": 4})

    def test_missing_file(self, tmp_path):
        with pytest.raises(SchemaError, match="Cannot read"):
            parse_schema(tmp_path / "missing.yaml")

    def test_load_schema_data_copies_mapping(self):
        data = {"actions": []}
        assert load_schema_data(data) == data
        assert load_schema_data(data) is not data

    def test_load_value(self):
        assert load_value("3") == 3
        assert load_value("true") is True
        assert load_value("[1, 2]") == [1, 2]
        assert load_value("oak") == "oak"


class TestSchemaModel:
    @pytest.mark.parametrize("raw, expected", [("4.1", 4.1), ("v3", 3.0), ("3.2.0", 3.2), (None, 4.0)])
    def test_version_parsing(self, raw, expected):
        assert Schema.model_validate({"version": raw, "actions": []}).version == expected

    def test_dialects(self):
        assert Schema.model_validate({"actions": []}).dialect == "v4"
        assert Schema.model_validate({"template": []}).dialect == "v4"
        legacy = Schema.model_validate({"procedures": [{"name": "main", "steps": []}]})
        assert legacy.dialect == "legacy"

    def test_version_selects_dialect(self):
        both = {"procedures": [{"name": "main", "steps": []}], "actions": []}
        assert Schema.model_validate({"version": 3.2, **both}).dialect == "legacy"
        assert Schema.model_validate({"version": 4, **both}).dialect == "v4"
        assert Schema.model_validate({"version": 3, "actions": []}).dialect == "v4"

    def test_integer_color(self):
        assert MaterialSpec.model_validate({"color": 0xFF0000}).color == "#ff0000"

    def test_font_mapping(self):
        schema = Schema.model_validate({"actions": [], "fonts": {"main": "a.json"}})
        assert schema.fonts == ["a.json"]


class TestLegacyRewrite:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("ctx.rows * 2", "$rows * 2"),
            ("Math.PI / 2", "pi / 2"),
            ("Math.sin(ctx.a)", "sin($a)"),
            ("ctx.i === 0", "$i == 0"),
            ("ctx.i !== 0", "$i != 0"),
            ("$already", "$already"),
        ],
    )
    def test_rewrite(self, raw, expected):
        assert rewrite_legacy_expression(raw) == expected


class TestNormalizeTypeTree:
    def test_group_with_children(self, quiet_log):
        action = Normalizer(quiet_log).action(
            {"type": "group", "id": "g", "children": [{"type": "box", "dimensions": [1, 2, 3]}]}, "a"
        )
        assert isinstance(action, GroupAction)
        assert isinstance(action.children[0], GeometryAction)
        assert action.children[0].shape == "box"

    def test_parametric_template(self, quiet_log):
        action = Normalizer(quiet_log).action(
            {
                "type": "parametric_template",
                "id": "t",
                "parameters": {"n": {"value": 2}},
                "template": [{"type": "helper", "helper": "createBox"}],
            },
            "a",
        )
        assert isinstance(action, TemplateAction)
        assert isinstance(action.template[0], HelperAction)

    def test_conditional(self, quiet_log):
        action = Normalizer(quiet_log).action(
            {
                "type": "conditional",
                "condition": "$n > 1",
                "then": [{"type": "sphere"}],
                "else": [{"type": "cone"}],
            },
            "a",
        )
        assert isinstance(action, IfAction)
        assert action.then[0].shape == "sphere"
        assert action.else_[0].shape == "cone"

    def test_transform_lifted(self, quiet_log):
        action = Normalizer(quiet_log).action(
            {"type": "helper3d", "helper": "createBox", "transform": {"position": [1, 2, 3], "scale": 2}},
            "a",
        )
        assert isinstance(action, HelperAction)
        assert action.position == [1, 2, 3]
        assert action.scale == 2

    def test_dimensions_without_type_is_box(self, quiet_log):
        action = Normalizer(quiet_log).action({"dimensions": [1, 1, 1]}, "a")
        assert isinstance(action, GeometryAction)
        assert action.shape == "box"

    def test_unknown_type(self, quiet_log):
        assert Normalizer(quiet_log).action({"type": "banana"}, "a") is None
        assert quiet_log.count("N01") == 1

    def test_not_a_mapping(self, quiet_log):
        assert Normalizer(quiet_log).action("box", "a") is None
        assert quiet_log.count("N01") == 1

    def test_invalid_fields(self, quiet_log):
        assert Normalizer(quiet_log).action({"type": "reference"}, "a") is None
        assert quiet_log.count("N01") == 1

    def test_thought_only(self, quiet_log):
        assert Normalizer(quiet_log).action({"thought": "planning"}, "a") is None
        assert quiet_log.count("N01") == 0

    def test_bad_children_dropped_siblings_kept(self, quiet_log):
        action = Normalizer(quiet_log).action(
            {"type": "group", "children": [{"type": "banana"}, {"type": "sphere"}]}, "a"
        )
        assert len(action.children) == 1
        assert quiet_log.count("N01") == 1


class TestNormalizeDoDialect:
    def test_helper(self, quiet_log):
        action = Normalizer(quiet_log).action(
            {"do": "createSphere", "params": {"radius": 1}, "as": "ball", "transform": {"position": [1, 0, 0]}},
            "a",
        )
        assert isinstance(action, HelperAction)
        assert action.helper == "createSphere"
        assert action.id == "ball"
        assert action.store == "ball"
        assert action.position == [1, 0, 0]

    def test_loop(self, quiet_log):
        action = Normalizer(quiet_log).action(
            {"do": "loop", "var": "k", "from": 1, "to": 4, "body": [{"do": "createBox"}]}, "a"
        )
        assert isinstance(action, LoopAction)
        assert action.var == "k"
        assert action.from_ == 1
        assert isinstance(action.body[0], HelperAction)

    def test_repeat(self, quiet_log):
        action = Normalizer(quiet_log).action({"do": "repeat", "count": 3, "body": [{"do": "createBox"}]}, "a")
        assert isinstance(action, RepeatAction)
        assert len(action.children) == 1

    def test_clone(self, quiet_log):
        action = Normalizer(quiet_log).action({"do": "clone", "params": {"id": "ball"}}, "a")
        assert isinstance(action, ReferenceAction)
        assert action.target == "ball"

    def test_clone_without_source(self, quiet_log):
        assert Normalizer(quiet_log).action({"do": "clone", "params": {}}, "a") is None
        assert quiet_log.count("N01") == 1

    def test_legacy_expressions_rewritten(self, quiet_log):
        action = Normalizer(quiet_log).action({"do": "createBox", "params": {"width": "ctx.w * 2"}}, "a")
        assert action.params["width"] == "$w * 2"


class TestNormalizeSchema:
    def test_template_body(self, quiet_log):
        schema = parse_schema({"template": [{"type": "sphere"}]})
        actions = normalize_schema(schema, quiet_log)
        assert isinstance(actions[0], GeometryAction)

    def test_legacy_procedures(self, quiet_log):
        schema = parse_schema(
            {
                "version": 3,
                "procedures": [
                    {"name": "main", "steps": [{"helper": "createBox", "params": {"width": 2}, "store": "b1"}]}
                ],
            }
        )
        actions = normalize_schema(schema, quiet_log)
        assert isinstance(actions[0], HelperAction)
        assert actions[0].id == "b1"
        assert actions[0].store == "b1"
