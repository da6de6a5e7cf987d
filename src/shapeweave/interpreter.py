"""Public entry points: execute a schema, regenerate a subtree."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from shapeweave.context import Context, build_global_context
from shapeweave.diagnostics import DiagnosticLog, WarningPolicy
from shapeweave.errors import ReferenceResolutionError, SchemaError
from shapeweave.expressions import ExpressionEvaluator
from shapeweave.helpers import HelperRegistry
from shapeweave.materializer import Materializer, MaterialTable
from shapeweave.models import Schema
from shapeweave.nodes import Container, Node
from shapeweave.normalize import normalize_schema
from shapeweave.parser import load_schema_data, parse_schema
from shapeweave.processor import TemplateProcessor
from shapeweave.registry import SceneRegistry
from shapeweave.scene import SceneTreeAdapter, TargetAdapter

logger = logging.getLogger(__name__)

FontLoader = Callable[[str], Any]


@dataclass(frozen=True)
class InterpreterConfig:
    loop_limit: int = 1000
    repeat_limit: int = 10000
    if_passes: int = 10
    message_cap: int = 200


async def load_font_file(path: str) -> Any:
    """Default font loader: a JSON/YAML font description read from disk."""
    text = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
    return load_schema_data(text)


class RunState:
    """All mutable state of one interpreter: no module-level registries."""

    def __init__(
        self,
        config: InterpreterConfig,
        policy: WarningPolicy | None,
        helpers: HelperRegistry,
        adapter: TargetAdapter,
        functions: Mapping[str, Callable[..., Any]] | None = None,
    ):
        self.config = config
        self.diagnostics = DiagnosticLog(policy, cap=config.message_cap)
        self.evaluator = ExpressionEvaluator(
            functions=functions,
            diagnostics=self.diagnostics,
            max_if_passes=config.if_passes,
        )
        self.helpers = helpers.copy()
        self.adapter = adapter
        self.registry = SceneRegistry(adapter)
        self.materials = MaterialTable()
        self.stored: dict[str, Any] = {}
        self.fonts: dict[str, Any] = {}
        self.schema: Schema | None = None
        self.parameters: dict[str, Any] = {}
        self.path_overrides: dict[str, dict[str, Any]] = {}
        self.global_context = Context()
        self.root: Container | None = None

    def overrides_for(self, path: str) -> dict[str, Any]:
        return self.path_overrides.get(path, {})

    def rebuild_global_context(self) -> Context:
        schema = self.schema
        self.global_context = build_global_context(
            schema.global_parameters if schema else {},
            schema.context if schema else {},
            self.parameters,
        )
        return self.global_context


class Interpreter:
    """Runs schemas against a target tree and keeps what regeneration needs.

    One interpreter owns one tree at a time. Calls must not overlap: the run
    state (context, cache, registry) has a single writer.
    """

    def __init__(
        self,
        *,
        config: InterpreterConfig | None = None,
        policy: WarningPolicy | None = None,
        helpers: HelperRegistry | None = None,
        adapter: TargetAdapter | None = None,
        font_loader: FontLoader | None = None,
        functions: Mapping[str, Callable[..., Any]] | None = None,
    ):
        self.config = config or InterpreterConfig()
        self.policy = policy
        self.base_helpers = helpers or HelperRegistry()
        self.adapter = adapter or SceneTreeAdapter()
        self.font_loader = font_loader or load_font_file
        self.functions = dict(functions or {})
        self.state = self._new_state()

    def _new_state(self) -> RunState:
        return RunState(self.config, self.policy, self.base_helpers, self.adapter, self.functions)

    # -- convenience ---------------------------------------------------

    @property
    def diagnostics(self) -> DiagnosticLog:
        return self.state.diagnostics

    @property
    def registry(self) -> SceneRegistry:
        return self.state.registry

    @property
    def evaluator(self) -> ExpressionEvaluator:
        return self.state.evaluator

    @property
    def root(self) -> Container | None:
        return self.state.root

    def paths(self) -> list[str]:
        return self.state.registry.paths()

    # -- execution -----------------------------------------------------

    def execute(self, schema: Any, parameters: Mapping[str, Any] | None = None) -> Container:
        """Run ``schema`` and return the root container.

        A schema that fails to load yields an empty root and an S01 record.
        Use :meth:`execute_async` when already inside an event loop.
        """
        return asyncio.run(self.execute_async(schema, parameters))

    async def execute_async(self, schema: Any, parameters: Mapping[str, Any] | None = None) -> Container:
        if self.state.root is not None:
            self.state.registry.clear()
        state = self.state = self._new_state()

        try:
            parsed = parse_schema(schema)
        except SchemaError as e:
            state.diagnostics.record("S01", str(e), level="error")
            state.root = self.adapter.create_container("Generated")
            return state.root

        state.schema = parsed
        state.parameters = dict(parameters or {})
        state.materials = MaterialTable(parsed.materials)
        await self._preload_fonts(parsed.fonts)
        state.helpers.compile_definitions(parsed.definitions, diagnostics=state.diagnostics, fonts=state.fonts)

        global_ctx = state.rebuild_global_context()
        actions = normalize_schema(parsed, state.diagnostics)
        logger.info("executing %s (%d top-level actions)", parsed.intent or "schema", len(actions))

        root = state.root = self.adapter.create_container(parsed.intent or "Generated")
        builds = TemplateProcessor(state).process(actions, global_ctx)
        materializer = Materializer(state)
        for build in builds:
            materializer.materialize(build, root)
        return root

    async def _preload_fonts(self, fonts: list[str]) -> None:
        if not fonts:
            return

        async def _load(path: str) -> Any:
            loaded = self.font_loader(path)
            if inspect.isawaitable(loaded):
                loaded = await loaded
            return loaded

        results = await asyncio.gather(*(_load(p) for p in fonts), return_exceptions=True)
        for path, result in zip(fonts, results):
            if isinstance(result, BaseException):
                self.state.diagnostics.record("A01", f"font {path!r} failed to load: {result}")
            elif result is None:
                self.state.diagnostics.record("A01", f"font {path!r} loaded nothing")
            else:
                self.state.fonts[path] = result

    # -- regeneration --------------------------------------------------

    def set_parameter(self, name: str, value: Any, path: str | None = None) -> None:
        """Override a parameter globally, or for the template at ``path`` only.

        Takes effect on the next :meth:`regenerate`; :meth:`execute` starts fresh.
        """
        if path is None:
            self.state.parameters[name] = value
        else:
            self.state.path_overrides.setdefault(path, {})[name] = value
        self.state.evaluator.clear_cache()

    def regenerate(self, path: str) -> Node | None:
        """Dispose and rebuild the subtree at ``path``; siblings are untouched.

        Raises:
            ReferenceResolutionError: if nothing is registered at ``path``.
        """
        state = self.state
        entry = state.registry.get(path)
        if entry is None:
            raise ReferenceResolutionError(f"nothing materialized at path {path!r}")

        state.evaluator.clear_cache()
        parent = entry.node.parent
        if parent is None:
            parent = state.root
        build = entry.build

        state.registry.release(path)

        global_ctx = state.rebuild_global_context()
        ctx = Context.stack(global_ctx, build.scope)
        prefix = entry.parent_path
        rebuilt = TemplateProcessor(state).rebuild(build.source, ctx, prefix, build.name, instance=build.instance)
        if rebuilt is None:
            logger.info("regenerate %s: source produced nothing", path)
            return None
        return Materializer(state).materialize(rebuilt, parent, prefix)
