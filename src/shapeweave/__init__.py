"""shapeweave: schema-driven procedural scene interpreter."""

__version__ = "0.1.0"

from shapeweave.context import Context
from shapeweave.diagnostics import DiagnosticLog, WarningPolicy
from shapeweave.errors import (
    DiagnosticError,
    ExportError,
    ExpressionError,
    HelperExecutionError,
    HelperNotFoundError,
    LimitExceededError,
    ReferenceResolutionError,
    SchemaError,
    ShapeweaveError,
)
from shapeweave.expressions import ExpressionEvaluator
from shapeweave.helpers import HelperRegistry
from shapeweave.interpreter import Interpreter, InterpreterConfig
from shapeweave.nodes import Container, Curve, Drawable, Field, Geometry, Material, Node
from shapeweave.scene import SceneTreeAdapter

__all__ = [
    "Container",
    "Context",
    "Curve",
    "DiagnosticError",
    "DiagnosticLog",
    "Drawable",
    "ExportError",
    "ExpressionError",
    "ExpressionEvaluator",
    "Field",
    "Geometry",
    "HelperExecutionError",
    "HelperNotFoundError",
    "HelperRegistry",
    "Interpreter",
    "InterpreterConfig",
    "LimitExceededError",
    "Material",
    "Node",
    "ReferenceResolutionError",
    "SceneTreeAdapter",
    "SchemaError",
    "ShapeweaveError",
    "WarningPolicy",
    "__version__",
]
