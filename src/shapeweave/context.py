"""Layered evaluation contexts and parameter resolution."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from shapeweave.expressions import ExpressionEvaluator

_UNSET = object()


class Context(Mapping):
    """An ordered symbol table layered over an optional parent.

    Lookups fall through to the parent chain; writes only ever touch the
    local layer, so binding a name in a child never changes its parent.
    """

    def __init__(self, bindings: Mapping[str, Any] | None = None, parent: Context | None = None):
        self._parent = parent
        self._local: dict[str, Any] = dict(bindings or {})

    @property
    def parent(self) -> Context | None:
        return self._parent

    def __getitem__(self, name: str) -> Any:
        if name in self._local:
            return self._local[name]
        if self._parent is not None:
            return self._parent[name]
        raise KeyError(name)

    def __contains__(self, name: object) -> bool:
        if name in self._local:
            return True
        return self._parent is not None and name in self._parent

    def __iter__(self) -> Iterator[str]:
        return iter(self.flatten())

    def __len__(self) -> int:
        return len(self.flatten())

    def __repr__(self) -> str:
        return f"Context({self.flatten()!r})"

    def child(self, bindings: Mapping[str, Any] | None = None) -> Context:
        """Return a new overlay whose parent is this context."""
        return Context(bindings, parent=self)

    def set(self, name: str, value: Any) -> None:
        """Bind ``name`` in the local layer, shadowing any outer binding."""
        self._local[name] = value

    @contextmanager
    def bind(self, name: str, value: Any):
        """Shadow ``name`` for the duration of the block, then restore it.

        Usage:
            with ctx.bind("i", 3):
                ...  # $i evaluates to 3 here
        """
        previous = self._local.get(name, _UNSET)
        self._local[name] = value
        try:
            yield self
        finally:
            if previous is _UNSET:
                del self._local[name]
            else:
                self._local[name] = previous

    def flatten(self) -> dict[str, Any]:
        """Collapse the chain into one dict, inner bindings winning."""
        layers: list[dict[str, Any]] = []
        node: Context | None = self
        while node is not None:
            layers.append(node._local)
            node = node._parent
        flat: dict[str, Any] = {}
        for layer in reversed(layers):
            flat.update(layer)
        return flat

    def freeze(self) -> Context:
        """Return a detached single-layer copy of the current bindings."""
        return Context(self.flatten())

    def layers_above(self, root: Context) -> tuple[dict[str, Any], ...]:
        """Copies of the layers stacked on ``root`` (exclusive), outermost first."""
        layers: list[dict[str, Any]] = []
        node: Context | None = self
        while node is not None and node is not root:
            layers.append(dict(node._local))
            node = node._parent
        return tuple(reversed(layers))

    @staticmethod
    def stack(root: Context, layers: tuple[dict[str, Any], ...]) -> Context:
        """Rebuild a chain by overlaying ``layers`` onto ``root``."""
        ctx = root
        for layer in layers:
            ctx = ctx.child(layer)
        return ctx


def build_global_context(
    global_parameters: Mapping[str, Any],
    constants: Mapping[str, Any],
    overrides: Mapping[str, Any] | None = None,
) -> Context:
    """Layer globals (with caller overrides) under schema-level constants.

    Schema ``context`` constants never replace a global parameter of the
    same name.
    """
    overrides = overrides or {}
    bindings: dict[str, Any] = {}
    for name, spec in global_parameters.items():
        if name in overrides and overrides[name] is not None:
            bindings[name] = overrides[name]
        else:
            bindings[name] = parameter_default(spec)
    for name, value in overrides.items():
        bindings.setdefault(name, value)
    for name, value in constants.items():
        bindings.setdefault(name, value)
    return Context(bindings)


def parameter_default(spec: Any) -> Any:
    """Return the literal default of a parameter spec (model, dict or scalar)."""
    value = getattr(spec, "value", _UNSET)
    if value is not _UNSET:
        return value
    if isinstance(spec, Mapping):
        return spec.get("value")
    return spec


def resolve_params(
    param_specs: Mapping[str, Any],
    parent: Context,
    evaluator: ExpressionEvaluator,
    *,
    expressions: Mapping[str, Any] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Context:
    """Resolve declared parameters into a child of ``parent``.

    Single left-to-right pass: a parameter with a literal ``value`` is taken
    as-is, anything else is evaluated against the parent extended with the
    parameters resolved so far. ``expressions`` supplies defining expressions
    for parameters declared without a value; ``overrides`` win over both.
    """
    expressions = expressions or {}
    overrides = overrides or {}
    scope = parent.child()
    for name, spec in param_specs.items():
        if name in overrides:
            scope.set(name, overrides[name])
            continue
        literal = None if isinstance(spec, str) else parameter_default(spec)
        if literal is not None:
            scope.set(name, literal)
            continue
        expr = _defining_expression(spec)
        if expr is None:
            expr = expressions.get(name)
        scope.set(name, evaluator.evaluate(expr, scope) if expr is not None else 0)
    for name, expr in expressions.items():
        if name not in param_specs:
            scope.set(name, evaluator.evaluate(expr, scope))
    return scope


def _defining_expression(spec: Any) -> Any:
    expr = getattr(spec, "expression", None)
    if expr is not None:
        return expr
    if isinstance(spec, Mapping):
        return spec.get("expression")
    if isinstance(spec, (str, int, float)) and not isinstance(spec, bool):
        return spec
    return None
