"""Click CLI entry point for the shapeweave interpreter."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
from ruamel.yaml.error import YAMLError

from shapeweave import __version__
from shapeweave.diagnostics import DiagnosticLog, WarningPolicy, parse_code_list
from shapeweave.errors import ShapeweaveError
from shapeweave.exporter import export_scene, scene_to_dict
from shapeweave.expressions import ExpressionEvaluator
from shapeweave.interpreter import Interpreter
from shapeweave.manifest import build_manifest
from shapeweave.nodes import count_leaves
from shapeweave.parser import load_value


def _build_warning_policy(
    warn_as_error: str | None, suppress_warning: str | None
) -> WarningPolicy | None:
    """Parse CLI warning options into a WarningPolicy, or None if unset."""
    if warn_as_error is None and suppress_warning is None:
        return None
    try:
        wae = parse_code_list(warn_as_error) if warn_as_error else frozenset()
        sup = parse_code_list(suppress_warning) if suppress_warning else frozenset()
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    return WarningPolicy(warn_as_error=wae, suppress=sup)


def _setup_logging(enabled: bool) -> None:
    """Send interpreter logging to stderr when ``--log`` is given."""
    if not enabled:
        return
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _parse_assignments(items: tuple[str, ...], option: str) -> dict[str, Any]:
    """Parse ``name=value`` pairs; values are read as YAML scalars or flow lists."""
    out: dict[str, Any] = {}
    for item in items:
        name, sep, raw = item.partition("=")
        name = name.strip()
        if not sep or not name:
            raise click.BadParameter(f"expected name=value, got {item!r}", param_hint=option)
        try:
            value = load_value(raw) if raw.strip() else ""
        except YAMLError:
            value = raw
        out[name] = value
    return out


def _echo_diagnostics(diagnostics: DiagnosticLog) -> None:
    for entry in diagnostics.messages:
        if entry.level in ("warning", "error"):
            where = f" at {entry.path}" if entry.path else ""
            click.echo(f"{entry.level}: [{entry.code}] {entry.text}{where}", err=True)


def _finish(interp: Interpreter, output: Path | None) -> None:
    """Apply the warning policy, then write or print the scene."""
    try:
        interp.diagnostics.raise_for_policy()
    except ShapeweaveError as e:
        raise click.ClickException(str(e)) from e

    if output is None:
        click.echo(json.dumps(scene_to_dict(interp.root), indent=2))
        return
    try:
        export_scene(interp.root, output)
    except ShapeweaveError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Wrote: {output}", err=True)


_warn_as_error_option = click.option(
    "--warn-as-error",
    "warn_as_error",
    type=str,
    default=None,
    help="Comma-separated diagnostic codes to treat as errors (e.g. X01,R01).",
)
_suppress_warning_option = click.option(
    "--suppress-warning",
    "suppress_warning",
    type=str,
    default=None,
    help="Comma-separated diagnostic codes to silence (e.g. X02).",
)
_param_option = click.option(
    "-p",
    "--param",
    "params",
    multiple=True,
    help="Override a global parameter: name=value. May be repeated.",
)
_log_option = click.option(
    "--log/--no-log",
    "log_enabled",
    default=False,
    help="Print interpreter logging to stderr.",
)


@click.group()
@click.version_option(version=__version__, prog_name="shapeweave")
def main() -> None:
    """shapeweave: schema-driven procedural scene generation."""


@main.command()
@click.argument("schema_file", type=click.Path(exists=True, path_type=Path))
@_param_option
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    default=None,
    help="Write the scene to .json, .gltf or .glb. Prints JSON to stdout when omitted.",
)
@_warn_as_error_option
@_suppress_warning_option
@_log_option
@click.option(
    "--emit-manifest",
    "emit_manifest",
    type=click.Path(path_type=Path),
    default=None,
    help="Write a JSON run manifest to this path.",
)
def run(
    schema_file: Path,
    params: tuple[str, ...] = (),
    output: Path | None = None,
    warn_as_error: str | None = None,
    suppress_warning: str | None = None,
    log_enabled: bool = False,
    emit_manifest: Path | None = None,
) -> None:
    """Execute a schema and output the generated scene."""
    _setup_logging(log_enabled)
    policy = _build_warning_policy(warn_as_error, suppress_warning)
    parameters = _parse_assignments(params, "-p")

    interp = Interpreter(policy=policy)
    root = interp.execute(schema_file, parameters)
    _echo_diagnostics(interp.diagnostics)
    _finish(interp, output)

    if emit_manifest is not None:
        manifest = build_manifest(
            input_path=schema_file,
            root=root,
            diagnostics=interp.diagnostics,
            output_path=output,
            parameters=parameters,
        )
        emit_manifest.write_text(json.dumps(manifest, indent=2, default=str), encoding="utf-8")


@main.command("eval")
@click.argument("expression")
@click.option(
    "-c",
    "--context",
    "bindings",
    multiple=True,
    help="Bind a variable: name=value. May be repeated.",
)
def eval_(expression: str, bindings: tuple[str, ...] = ()) -> None:
    """Evaluate one expression and print the result."""
    diagnostics = DiagnosticLog()
    evaluator = ExpressionEvaluator(diagnostics=diagnostics)
    result = evaluator.evaluate(expression, _parse_assignments(bindings, "-c"))
    _echo_diagnostics(diagnostics)
    click.echo(json.dumps(result, default=str) if not isinstance(result, str) else result)


@main.command()
@click.argument("schema_file", type=click.Path(exists=True, path_type=Path))
@_param_option
def paths(schema_file: Path, params: tuple[str, ...] = ()) -> None:
    """List the registry paths a schema materializes."""
    interp = Interpreter()
    interp.execute(schema_file, _parse_assignments(params, "-p"))
    _echo_diagnostics(interp.diagnostics)
    for path in interp.paths():
        click.echo(path)


@main.command()
@click.argument("schema_file", type=click.Path(exists=True, path_type=Path))
@click.argument("path")
@click.option(
    "-s",
    "--set",
    "assignments",
    multiple=True,
    help="Parameter to change before rebuilding: name=value. May be repeated.",
)
@click.option(
    "--global",
    "global_scope",
    is_flag=True,
    default=False,
    help="Apply --set values as global parameters instead of to the template at PATH.",
)
@_param_option
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    default=None,
    help="Write the whole scene after regeneration (.json, .gltf or .glb).",
)
@_log_option
def regenerate(
    schema_file: Path,
    path: str,
    assignments: tuple[str, ...] = (),
    global_scope: bool = False,
    params: tuple[str, ...] = (),
    output: Path | None = None,
    log_enabled: bool = False,
) -> None:
    """Execute a schema, change parameters, and rebuild the subtree at PATH."""
    _setup_logging(log_enabled)
    interp = Interpreter()
    interp.execute(schema_file, _parse_assignments(params, "-p"))

    for name, value in _parse_assignments(assignments, "-s").items():
        interp.set_parameter(name, value, path=None if global_scope else path)
    try:
        node = interp.regenerate(path)
    except ShapeweaveError as e:
        raise click.ClickException(str(e)) from e
    _echo_diagnostics(interp.diagnostics)

    leaves = count_leaves(node) if node is not None else 0
    click.echo(f"Regenerated: {path} ({leaves} leaves)", err=output is None)
    _finish(interp, output)
