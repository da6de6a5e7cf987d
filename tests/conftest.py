"""Shared fixtures for shapeweave tests."""

from __future__ import annotations

import pytest

from shapeweave.context import Context
from shapeweave.diagnostics import DiagnosticLog
from shapeweave.expressions import ExpressionEvaluator
from shapeweave.interpreter import Interpreter
from shapeweave.scene import SceneTreeAdapter


@pytest.fixture
def log():
    return DiagnosticLog()


@pytest.fixture
def evaluator(log):
    return ExpressionEvaluator(diagnostics=log)


@pytest.fixture
def ctx():
    return Context()


@pytest.fixture
def adapter():
    return SceneTreeAdapter()


@pytest.fixture
def interp(adapter):
    return Interpreter(adapter=adapter)


@pytest.fixture
def grid_schema():
    """A group holding a parametric template that repeats boxes ``count`` times."""
    return {
        "version": 4,
        "intent": "Grid",
        "materials": {"wood": {"color": "#8b5a2b"}},
        "actions": [
            {
                "type": "group",
                "id": "root",
                "children": [
                    {
                        "type": "template",
                        "id": "g",
                        "parameters": {"count": {"value": 3}},
                        "template": [
                            {
                                "type": "repeat",
                                "id": "item",
                                "count": "$count",
                                "distribution": {"type": "linear", "spacing": 2},
                                "children": [
                                    {
                                        "type": "helper",
                                        "helper": "createBox",
                                        "params": {"width": 1},
                                        "material": "wood",
                                    }
                                ],
                            }
                        ],
                    },
                    {"type": "helper", "helper": "createSphere", "id": "ball", "params": {"radius": 2}},
                ],
            }
        ],
    }


@pytest.fixture
def shelf_yaml():
    return """\
version: 4
intent: Shelf
materials:
  wood: {color: "#8b5a2b", roughness: 0.8}
globalParameters:
  shelves: {value: 3}
actions:
  - type: group
    id: shelf
    children:
      - type: loop
        var: i
        from: 0
        to: $shelves
        body:
          - type: helper
            helper: createBox
            id: board_$i
            params: {width: 2, height: 0.05, depth: 0.4}
            position: [0, "$i * 0.5", 0]
            material: wood
"""
