"""Action walker: expands normalized actions into immutable BuildNodes.

The walk is depth-first and left-to-right. Helpers are invoked here, once
per node; the materializer only places what the walk produced.
"""

from __future__ import annotations

import enum
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from shapeweave.context import Context, resolve_params
from shapeweave.distribution import distribute
from shapeweave.errors import HelperExecutionError, HelperNotFoundError, LimitExceededError
from shapeweave.expressions import is_number_text, looks_like_expression
from shapeweave.helpers import invoke
from shapeweave.models import (
    SHAPE_FACTORIES,
    Action,
    GeometryAction,
    GroupAction,
    HelperAction,
    IfAction,
    LoopAction,
    ReferenceAction,
    RepeatAction,
    TemplateAction,
)
from shapeweave.nodes import Node
from shapeweave.shapes2d import expand_descriptor, is_path_descriptor

if TYPE_CHECKING:
    from shapeweave.interpreter import RunState


class BuildKind(str, enum.Enum):
    GROUP = "group"
    HELPER_CALL = "helperCall"
    REFERENCE = "reference"
    RAW_GEOMETRY = "rawGeometry"


@dataclass(frozen=True)
class ReferenceMarker:
    """Placeholder for a ``reference`` descriptor nested in helper params."""

    target: str


@dataclass(frozen=True)
class BuildNode:
    path: str
    name: str
    kind: BuildKind
    params: Mapping[str, Any] = field(default_factory=dict)
    position: Any = None
    rotation: Any = None
    scale: Any = None
    material: Any = None
    visible: bool = True
    children: tuple[BuildNode, ...] = ()
    # helperCall / rawGeometry
    helper: str | None = None
    result: Any = None
    deferred: bool = False
    # reference
    target: str | None = None
    # late evaluation and regeneration
    context: Context | None = field(default=None, repr=False, compare=False)
    scope: tuple[dict[str, Any], ...] = field(default=(), repr=False, compare=False)
    source: Any = field(default=None, repr=False, compare=False)
    instance: int | None = None
    anchor: bool = False

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


def join_path(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


class _Names:
    """Hands out sibling-unique names: ``box``, ``box_1``, ``box_2`` ..."""

    def __init__(self) -> None:
        self.seen: dict[str, int] = {}

    def claim(self, name: str) -> str:
        n = self.seen.get(name, 0)
        self.seen[name] = n + 1
        return name if n == 0 else f"{name}_{n}"


class TemplateProcessor:
    def __init__(self, state: RunState):
        self.state = state
        self.evaluator = state.evaluator
        self.diagnostics = state.diagnostics

    # -- public --------------------------------------------------------

    def process(self, children: list[Action], context: Context, prefix: str = "") -> list[BuildNode]:
        out: list[BuildNode] = []
        self._walk(children, context, prefix, _Names(), out)
        return out

    def rebuild(self, source: Action, context: Context, prefix: str, name: str, instance: int | None = None) -> BuildNode | None:
        """Re-walk one action that produced the node ``name`` under ``prefix``."""
        if isinstance(source, RepeatAction) and instance is not None:
            count = self._count(source, context, join_path(prefix, name))
            if count is None or instance >= count:
                return None
            positions = distribute(self._distribution(source, context, prefix), count, context, self.evaluator)
            return self._repeat_instance(source, instance, positions[instance], context, prefix, name)
        out: list[BuildNode] = []
        self._dispatch(source, context, prefix, _Names(), out, name=name)
        return out[0] if out else None

    # -- walking -------------------------------------------------------

    def _walk(self, children: list[Action], ctx: Context, prefix: str, names: _Names, out: list[BuildNode]) -> None:
        for action in children:
            self._dispatch(action, ctx, prefix, names, out)

    def _dispatch(self, action, ctx, prefix, names, out, name: str | None = None) -> None:
        if isinstance(action, GroupAction):
            out.append(self._group(action, ctx, prefix, name or self._name(action, "group", ctx, names)))
        elif isinstance(action, TemplateAction):
            out.append(self._template(action, ctx, prefix, name or self._name(action, "template", ctx, names)))
        elif isinstance(action, RepeatAction):
            out.extend(self._repeat(action, ctx, prefix, names))
        elif isinstance(action, LoopAction):
            self._loop(action, ctx, prefix, names, out)
        elif isinstance(action, IfAction):
            self._conditional(action, ctx, prefix, names, out)
        elif isinstance(action, HelperAction):
            node = self._helper(action, ctx, prefix, names, name)
            if node is not None:
                out.append(node)
        elif isinstance(action, ReferenceAction):
            out.append(self._reference(action, ctx, prefix, name or self._name(action, f"ref_{action.target}", ctx, names)))
        elif isinstance(action, GeometryAction):
            node = self._geometry(action, ctx, prefix, names, name)
            if node is not None:
                out.append(node)
        else:
            self.diagnostics.record("N01", f"unknown action {type(action).__name__}; skipped", path=prefix or None)

    def _name(self, action: Action, fallback: str, ctx: Context, names: _Names) -> str:
        label = self.evaluator.render(action.id, ctx) if action.id is not None else fallback
        return names.claim(str(label))

    def _common(self, action: Action, ctx: Context, path: str) -> dict[str, Any]:
        return {
            "position": self._vector(action.position, ctx, path),
            "rotation": self._vector(action.rotation, ctx, path),
            "scale": self._vector(action.scale, ctx, path),
            "visible": self._visible(action.visible, ctx, path),
            "context": ctx.freeze(),
            "scope": ctx.layers_above(self.state.global_context),
            "source": action,
        }

    def _group(self, action: GroupAction, ctx: Context, prefix: str, name: str) -> BuildNode:
        path = join_path(prefix, name)
        children: list[BuildNode] = []
        self._walk(action.children, ctx, path, _Names(), children)
        return BuildNode(path=path, name=name, kind=BuildKind.GROUP, children=tuple(children), **self._common(action, ctx, path))

    def _template(self, action: TemplateAction, ctx: Context, prefix: str, name: str) -> BuildNode:
        path = join_path(prefix, name)
        local = resolve_params(
            action.parameters,
            ctx,
            self.evaluator,
            expressions=action.expressions,
            overrides=self.state.overrides_for(path),
        )
        children: list[BuildNode] = []
        self._walk(action.template, local, path, _Names(), children)
        return BuildNode(
            path=path,
            name=name,
            kind=BuildKind.GROUP,
            children=tuple(children),
            anchor=True,
            **self._common(action, ctx, path),
        )

    def _count(self, action: RepeatAction, ctx: Context, where: str) -> int | None:
        raw = self.evaluator.evaluate(action.count, ctx, path=where)
        try:
            raw = float(raw)
        except (TypeError, ValueError):
            self.diagnostics.record("X01", f"repeat count {action.count!r} is not a number", path=where)
            return None
        if not math.isfinite(raw):
            self.diagnostics.record("L01", f"repeat count {raw} is not finite; skipped", path=where)
            return None
        count = max(0, int(raw))
        try:
            return _within_limit(count, self.state.config.repeat_limit, "repeat")
        except LimitExceededError as e:
            self.diagnostics.record("L01", str(e), path=where)
            return None

    def _repeat(self, action: RepeatAction, ctx: Context, prefix: str, names: _Names) -> list[BuildNode]:
        base = str(self.evaluator.render(action.id, ctx)) if action.id is not None else "repeat"
        count = self._count(action, ctx, join_path(prefix, base))
        if count is None:
            return []
        try:
            positions = distribute(self._distribution(action, ctx, prefix), count, ctx, self.evaluator)
        except (TypeError, ValueError) as e:
            self.diagnostics.record("X01", f"bad distribution option: {e}", path=join_path(prefix, base))
            return []
        return [
            self._repeat_instance(action, i, positions[i], ctx, prefix, names.claim(f"{base}_{i}"))
            for i in range(count)
        ]

    def _distribution(self, action: RepeatAction, ctx: Context, where: str) -> dict[str, Any] | None:
        options = action.distribution
        if options and isinstance(options.get("curve"), str):
            # a stored `as` name or an expression
            options = {**options, "curve": self._evaluate_string(options["curve"], ctx, where)}
        return options

    def _repeat_instance(self, action, i, position, ctx, prefix, name) -> BuildNode:
        path = join_path(prefix, name)
        sub = ctx.child({"index": i})
        for key, expr in action.instance_parameters.items():
            sub.set(key, self.evaluator.evaluate(expr, sub, path=path))
        offset = self._vector(action.position, ctx, path)
        if offset is not None:
            position = [float(p) + float(o) for p, o in zip(position, offset)]
        children: list[BuildNode] = []
        self._walk(action.children, sub, path, _Names(), children)
        common = self._common(action, ctx, path)
        common["position"] = position
        return BuildNode(
            path=path,
            name=name,
            kind=BuildKind.GROUP,
            children=tuple(children),
            instance=i,
            **common,
        )

    def _loop(self, action: LoopAction, ctx: Context, prefix: str, names: _Names, out: list[BuildNode]) -> None:
        where = join_path(prefix, f"loop({action.var})")
        start = self.evaluator.evaluate(action.from_, ctx, path=where)
        stop = self.evaluator.evaluate(action.to, ctx, path=where)
        step = self.evaluator.evaluate(action.step, ctx, path=where)
        try:
            start, stop, step = float(start), float(stop), float(step)
        except (TypeError, ValueError):
            self.diagnostics.record("X01", f"loop bounds are not numbers: {start!r}..{stop!r}", path=where)
            return
        if not all(math.isfinite(v) for v in (start, stop, step)):
            self.diagnostics.record("L01", f"loop bounds are not finite: {start}..{stop}; skipped", path=where)
            return
        if step == 0:
            self.diagnostics.record("L01", "loop step is 0; skipped", path=where)
            return
        try:
            count = max(0, math.ceil((stop - start) / step))
            iterations = _within_limit(count, self.state.config.loop_limit, "loop")
        except LimitExceededError as e:
            self.diagnostics.record("L01", str(e), path=where)
            return

        scope = ctx.child()
        for n in range(iterations):
            value = start + n * step
            if value.is_integer():
                value = int(value)
            with scope.bind(action.var, value):
                self._walk(action.body, scope, prefix, names, out)

    def _conditional(self, action: IfAction, ctx: Context, prefix: str, names: _Names, out: list[BuildNode]) -> None:
        cond = self.evaluator.evaluate(action.condition, ctx, path=prefix or None)
        self._walk(action.then if cond else action.else_, ctx, prefix, names, out)

    def _helper(self, action: HelperAction, ctx, prefix, names, name) -> BuildNode | None:
        where = join_path(prefix, str(action.id or action.helper))
        try:
            factory = self.state.helpers.get(action.helper)
        except HelperNotFoundError as e:
            self.diagnostics.record("H01", str(e), path=where)
            return None

        params = self.evaluate_param(action.params, ctx, where)
        label = action.id if action.id is not None else params.get("id")
        if name is None:
            name = names.claim(str(self.evaluator.render(label, ctx)) if label is not None else action.helper)
        path = join_path(prefix, name)

        deferred = _contains_marker(params)
        result = None
        if not deferred:
            try:
                result = invoke(factory, action.helper, params)
            except HelperExecutionError as e:
                self.diagnostics.record("H02", str(e), path=path)
                return None
            if result is None:
                return None
            if action.store:
                self.state.stored[action.store] = result

        return BuildNode(
            path=path,
            name=name,
            kind=BuildKind.HELPER_CALL,
            params=params,
            helper=action.helper,
            result=result,
            deferred=deferred,
            material=action.material,
            **self._common(action, ctx, path),
        )

    def _reference(self, action: ReferenceAction, ctx: Context, prefix: str, name: str) -> BuildNode:
        path = join_path(prefix, name)
        target = self.evaluator.render(action.target, ctx, path=path)
        return BuildNode(
            path=path,
            name=name,
            kind=BuildKind.REFERENCE,
            target=str(target),
            material=action.material,
            **self._common(action, ctx, path),
        )

    def _geometry(self, action: GeometryAction, ctx, prefix, names, name) -> BuildNode | None:
        helper = SHAPE_FACTORIES.get(action.shape, action.shape)
        if name is None:
            name = self._name(action, action.shape, ctx, names)
        path = join_path(prefix, name)
        try:
            factory = self.state.helpers.get(helper)
        except HelperNotFoundError as e:
            self.diagnostics.record("H01", str(e), path=path)
            return None

        dims = self._deep_evaluate(action.dimensions, ctx, path)
        if isinstance(dims, list):
            params = dict(zip(("width", "height", "depth"), dims))
        elif isinstance(dims, Mapping):
            params = dict(dims)
            if "outer" in params:
                params["shape"] = params.pop("outer")
        else:
            params = {}
        params.setdefault("id", name)

        try:
            result = invoke(factory, helper, params)
        except HelperExecutionError as e:
            self.diagnostics.record("H02", str(e), path=path)
            return None
        if result is None:
            return None
        return BuildNode(
            path=path,
            name=name,
            kind=BuildKind.RAW_GEOMETRY,
            params=params,
            helper=helper,
            result=result,
            material=action.material,
            **self._common(action, ctx, path),
        )

    # -- value evaluation ----------------------------------------------

    def evaluate_param(self, value: Any, ctx: Context, where: str) -> Any:
        """Evaluate a helper parameter value recursively.

        Nested helper descriptors are invoked and replaced by their result;
        nested references become :class:`ReferenceMarker`; path descriptors
        (``{"kind": "arc", ...}``) expand into point lists.
        """
        if isinstance(value, Mapping):
            if _is_helper_descriptor(value):
                return self._nested_helper(value, ctx, where)
            if value.get("type") == "reference" and "target" in value:
                return ReferenceMarker(str(self.evaluator.render(value["target"], ctx, path=where)))
            evaluated = {k: self.evaluate_param(v, ctx, where) for k, v in value.items() if k != "kind"}
            if is_path_descriptor(value):
                evaluated["kind"] = value["kind"]
                return self._expand(evaluated, where)
            if "kind" in value:
                evaluated["kind"] = value["kind"]
            return evaluated
        if isinstance(value, list):
            items: list[Any] = []
            for item in value:
                if is_path_descriptor(item):
                    items.extend(self.evaluate_param(item, ctx, where))
                else:
                    items.append(self.evaluate_param(item, ctx, where))
            return items
        if isinstance(value, str):
            return self._evaluate_string(value, ctx, where)
        return value

    def _evaluate_string(self, value: str, ctx: Context, where: str) -> Any:
        if value.startswith("font:"):
            font_path = value[len("font:") :]
            font = self.state.fonts.get(font_path)
            if font is None:
                self.diagnostics.record("A01", f"font not loaded: {font_path}", path=where)
            return font
        if value in self.state.stored:
            stored = self.state.stored[value]
            if isinstance(stored, Node):
                return stored.user_data.get("curve", stored)
            return stored
        if looks_like_expression(value):
            return self.evaluator.evaluate(value, ctx, path=where)
        return value

    def _nested_helper(self, descriptor: Mapping[str, Any], ctx: Context, where: str) -> Any:
        name = descriptor.get("helper") or descriptor.get("do")
        try:
            factory = self.state.helpers.get(name)
        except HelperNotFoundError as e:
            self.diagnostics.record("H01", f"nested {e}", path=where)
            return None
        params = self.evaluate_param(descriptor.get("params") or {}, ctx, where)
        try:
            return invoke(factory, name, params)
        except HelperExecutionError as e:
            self.diagnostics.record("H02", f"nested {e}", path=where)
            return None

    def _expand(self, descriptor: Mapping[str, Any], where: str) -> list[Any]:
        try:
            return expand_descriptor(descriptor)
        except Exception as e:
            self.diagnostics.record("X01", f"{descriptor.get('kind')} path: {e}", path=where)
            return []

    def _deep_evaluate(self, value: Any, ctx: Context, where: str) -> Any:
        """Dimension evaluation: numeric-looking strings and context names are evaluated too."""
        if isinstance(value, Mapping):
            evaluated = {
                k: v if k == "kind" else self._deep_evaluate(v, ctx, where) for k, v in value.items()
            }
            if is_path_descriptor(evaluated):
                return self._expand(evaluated, where)
            return evaluated
        if isinstance(value, list):
            items: list[Any] = []
            for item in value:
                evaluated = self._deep_evaluate(item, ctx, where)
                if is_path_descriptor(item):
                    items.extend(evaluated)
                else:
                    items.append(evaluated)
            return items
        if isinstance(value, str):
            text = value.strip()
            if looks_like_expression(text) or is_number_text(text) or text in ctx:
                return self.evaluator.evaluate(text, ctx, path=where)
        return value

    def _vector(self, value: Any, ctx: Context, where: str) -> list[Any] | None:
        if value is None:
            return None
        if isinstance(value, str):
            value = self.evaluator.evaluate(value, ctx, path=where)
        if isinstance(value, (int, float)):
            return [value, value, value]
        if isinstance(value, (list, tuple)):
            return [_as_float(self.evaluator.evaluate(v, ctx, path=where)) for v in value]
        return None

    def _visible(self, value: Any, ctx: Context, where: str) -> bool:
        if isinstance(value, str):
            value = self.evaluator.evaluate(value, ctx, path=where)
        if value is None:
            return True
        return bool(value)


def _within_limit(n: int, limit: int, construct: str) -> int:
    if n > limit:
        raise LimitExceededError(f"{construct} of {n} iterations exceeds limit {limit}; skipped")
    return n


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _is_helper_descriptor(value: Mapping[str, Any]) -> bool:
    if value.get("type") in ("helper", "helper3d", "helperCall") and "helper" in value:
        return True
    return isinstance(value.get("do"), str) and "params" in value


def _contains_marker(value: Any) -> bool:
    if isinstance(value, ReferenceMarker):
        return True
    if isinstance(value, Mapping):
        return any(_contains_marker(v) for v in value.values())
    if isinstance(value, list):
        return any(_contains_marker(v) for v in value)
    return False
