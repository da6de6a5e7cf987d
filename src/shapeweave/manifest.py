"""Run manifest for ``shapeweave run`` output."""

from __future__ import annotations

import hashlib
import sys
from datetime import datetime, timezone
from pathlib import Path

from shapeweave import __version__
from shapeweave.diagnostics import DiagnosticLog
from shapeweave.nodes import Container, count_leaves


def _sha256_of_file(path: Path) -> str:
    """Return the hex SHA-256 digest of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(65536)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def build_manifest(
    *,
    input_path: Path,
    root: Container,
    diagnostics: DiagnosticLog,
    output_path: Path | None = None,
    parameters: dict | None = None,
) -> dict:
    """Build a manifest dict describing one run.

    Should be called *after* the output file has been written.
    """
    manifest: dict = {
        "manifest_version": 1,
        "tool": {
            "name": "shapeweave",
            "version": __version__,
            "python": sys.version.split()[0],
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "input": {
            "path": str(input_path),
            "sha256": _sha256_of_file(input_path),
        },
        "scene": {
            "root": root.name,
            "nodes": sum(1 for _ in root.walk()),
            "leaves": count_leaves(root),
        },
        "diagnostics": dict(sorted(diagnostics.counts.items())),
    }

    if output_path is not None and output_path.exists():
        manifest["output"] = {
            "path": str(output_path),
            "sha256": _sha256_of_file(output_path),
        }

    if parameters:
        manifest["parameters"] = parameters

    return manifest
