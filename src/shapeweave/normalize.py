"""Dialect normalization: v4 ``do`` actions, type-style trees and legacy procedures.

Every dialect is folded into the action models in :mod:`shapeweave.models`
before walking. Nodes that cannot be normalized are recorded as N01 and
dropped; the rest of the tree is kept.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from shapeweave.diagnostics import DiagnosticLog
from shapeweave.models import (
    GEOMETRY_SHAPES,
    Action,
    GeometryAction,
    GroupAction,
    HelperAction,
    IfAction,
    LoopAction,
    ReferenceAction,
    RepeatAction,
    Schema,
    TemplateAction,
)

logger = logging.getLogger(__name__)

_CTX_RE = re.compile(r"\bctx\.([A-Za-z_][A-Za-z0-9_]*)")
_MATH_CONST_RE = re.compile(r"\bMath\.(PI|E)\b")
_MATH_CALL_RE = re.compile(r"\bMath\.([A-Za-z_][A-Za-z0-9_]*)\s*\(")

_TRANSFORM_KEYS = ("position", "rotation", "scale")


def rewrite_legacy_expression(text: str) -> str:
    """Rewrite the older JS-flavoured expression dialect.

    ``ctx.rows`` -> ``$rows``, ``Math.PI`` -> ``pi``, ``Math.sin(`` ->
    ``sin(``, ``===`` / ``!==`` -> ``==`` / ``!=``.
    """
    if "ctx." in text:
        text = _CTX_RE.sub(r"$\1", text)
    if "Math." in text:
        text = _MATH_CONST_RE.sub(lambda m: "pi" if m.group(1) == "PI" else "e", text)
        text = _MATH_CALL_RE.sub(r"\1(", text)
    return text.replace("===", "==").replace("!==", "!=")


def rewrite_legacy_deep(value: Any) -> Any:
    if isinstance(value, str):
        return rewrite_legacy_expression(value)
    if isinstance(value, list):
        return [rewrite_legacy_deep(v) for v in value]
    if isinstance(value, Mapping):
        return {k: rewrite_legacy_deep(v) for k, v in value.items()}
    return value


class Normalizer:
    """Converts raw action dicts into validated action models."""

    def __init__(self, diagnostics: DiagnosticLog):
        self.diagnostics = diagnostics

    def actions(self, raw_items: Any, where: str) -> list[Action]:
        if raw_items is None:
            return []
        if not isinstance(raw_items, list):
            raw_items = [raw_items]
        out: list[Action] = []
        for i, raw in enumerate(raw_items):
            action = self.action(raw, f"{where}[{i}]")
            if action is not None:
                out.append(action)
        return out

    def action(self, raw: Any, where: str) -> Action | None:
        if not isinstance(raw, Mapping):
            self.diagnostics.record("N01", f"{where}: action must be a mapping, got {type(raw).__name__}")
            return None
        raw = rewrite_legacy_deep(dict(raw))

        thought = raw.pop("thought", None)
        if thought:
            logger.debug("%s: %s", where, thought)
            if not raw:
                return None

        try:
            if "do" in raw:
                return self._from_do(raw, where)
            return self._from_type(raw, where)
        except PydanticValidationError as e:
            self.diagnostics.record("N01", f"{where}: invalid {raw.get('type') or raw.get('do')!r} node: {e}")
            return None

    # -- v4 ``do`` dialect -------------------------------------------------

    def _from_do(self, raw: dict, where: str) -> Action | None:
        name = raw["do"]
        fields = _transform_fields(raw)
        if name == "loop":
            return LoopAction.model_validate(
                {**raw, **fields, "body": self.actions(raw.get("body"), f"{where}.body")}
            )
        if name == "if":
            return IfAction.model_validate(
                {
                    **raw,
                    **fields,
                    "then": self.actions(raw.get("then"), f"{where}.then"),
                    "else": self.actions(raw.get("else"), f"{where}.else"),
                }
            )
        if name == "repeat":
            return RepeatAction.model_validate(
                {**raw, **fields, "children": self.actions(raw.get("body", raw.get("children")), f"{where}.body")}
            )
        if name == "clone":
            params = raw.get("params") or {}
            target = params.get("id") or raw.get("target")
            if not target:
                self.diagnostics.record("N01", f"{where}: clone without a source id")
                return None
            return ReferenceAction.model_validate(
                {"id": raw.get("id"), "target": target, "material": raw.get("material"), **fields}
            )
        if not isinstance(name, str) or not name:
            self.diagnostics.record("N01", f"{where}: 'do' must name a helper")
            return None
        return HelperAction.model_validate(
            {
                "id": raw.get("id") or raw.get("as"),
                "helper": name,
                "params": raw.get("params") or {},
                "material": raw.get("material"),
                "as": raw.get("as"),
                "visible": raw.get("visible", True),
                **fields,
            }
        )

    # -- type-style tree ---------------------------------------------------

    def _from_type(self, raw: dict, where: str) -> Action | None:
        kind = raw.get("type")
        if kind is None and "helper" in raw:
            return self._from_step(raw, where)
        if kind is None and "dimensions" in raw:
            kind = "box"

        fields = _transform_fields(raw)
        if kind == "group":
            return GroupAction.model_validate(
                {**raw, **fields, "children": self.actions(raw.get("children"), f"{where}.children")}
            )
        if kind in ("template", "parametric_template"):
            body = raw.get("template", raw.get("children"))
            return TemplateAction.model_validate(
                {**raw, **fields, "type": "template", "template": self.actions(body, f"{where}.template")}
            )
        if kind == "repeat":
            return RepeatAction.model_validate(
                {**raw, **fields, "children": self.actions(raw.get("children"), f"{where}.children")}
            )
        if kind == "loop":
            return LoopAction.model_validate(
                {**raw, **fields, "body": self.actions(raw.get("body", raw.get("children")), f"{where}.body")}
            )
        if kind in ("if", "conditional"):
            return IfAction.model_validate(
                {
                    **raw,
                    **fields,
                    "type": "if",
                    "then": self.actions(raw.get("then"), f"{where}.then"),
                    "else": self.actions(raw.get("else"), f"{where}.else"),
                }
            )
        if kind in ("helper", "helper3d", "helperCall"):
            return HelperAction.model_validate({**raw, **fields, "type": "helper"})
        if kind == "reference":
            return ReferenceAction.model_validate({**raw, **fields})
        if kind == "geometry" or kind in GEOMETRY_SHAPES:
            shape = raw.get("shape", "box") if kind == "geometry" else kind
            return GeometryAction.model_validate(
                {
                    **raw,
                    **fields,
                    "type": "geometry",
                    "shape": shape,
                }
            )

        self.diagnostics.record("N01", f"{where}: unknown node type {kind!r}; skipped")
        return None

    # -- legacy procedures -------------------------------------------------

    def _from_step(self, raw: dict, where: str) -> Action | None:
        return HelperAction.model_validate(
            {
                "id": raw.get("id") or raw.get("store"),
                "helper": raw["helper"],
                "params": raw.get("params") or {},
                "material": raw.get("material"),
                "as": raw.get("store"),
                **_transform_fields(raw),
            }
        )


def _transform_fields(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Lift ``transform: {position, rotation, scale}`` onto the action itself."""
    fields = {k: raw[k] for k in _TRANSFORM_KEYS if raw.get(k) is not None}
    transform = raw.get("transform")
    if isinstance(transform, Mapping):
        for key in _TRANSFORM_KEYS:
            if transform.get(key) is not None:
                fields[key] = transform[key]
    return fields


def normalize_schema(schema: Schema, diagnostics: DiagnosticLog) -> list[Action]:
    """Fold the schema body (whichever dialect) into one action list."""
    normalizer = Normalizer(diagnostics)
    if schema.dialect == "v4":
        if schema.actions is not None:
            return normalizer.actions(schema.actions, "actions")
        return normalizer.actions(schema.template, "template")

    steps = schema.procedures[0].steps if schema.procedures else []
    out: list[Action] = []
    for i, step in enumerate(steps):
        action = normalizer.action(step, f"procedures[0].steps[{i}]")
        if action is not None:
            out.append(action)
    return out
