"""Scene export: plain dict/JSON and a glTF node hierarchy."""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any

import pygltflib

from shapeweave.errors import ExportError
from shapeweave.nodes import Container, Curve, Drawable, Field, Material, Node


def scene_to_dict(node: Node) -> dict[str, Any]:
    """Serialize a scene tree into JSON-compatible dicts."""
    out: dict[str, Any] = {
        "name": node.name,
        "kind": node.kind,
        "position": list(node.position),
        "rotation": list(node.rotation),
        "scale": list(node.scale),
    }
    if not node.visible:
        out["visible"] = False
    if isinstance(node, Drawable):
        if node.geometry is not None:
            out["geometry"] = {"kind": node.geometry.kind, **node.geometry.params}
        if node.material is not None:
            out["material"] = node.material.name
    elif isinstance(node, Curve):
        out["points"] = [list(p) for p in node.points]
        out["closed"] = node.closed
    elif isinstance(node, Field):
        out["origins"] = [list(p) for p in node.origins]
        out["vectors"] = [list(v) for v in node.vectors]
    elif isinstance(node, Container):
        out["children"] = [scene_to_dict(c) for c in node.children]
    return out


def _euler_to_quat(rx: float, ry: float, rz: float) -> list[float]:
    """Euler angles (radians, XYZ order) to a glTF quaternion [x, y, z, w]."""
    cx, sx = math.cos(rx / 2), math.sin(rx / 2)
    cy, sy = math.cos(ry / 2), math.sin(ry / 2)
    cz, sz = math.cos(rz / 2), math.sin(rz / 2)

    qx = sx * cy * cz + cx * sy * sz
    qy = cx * sy * cz - sx * cy * sz
    qz = cx * cy * sz + sx * sy * cz
    qw = cx * cy * cz - sx * sy * sz

    # Sign rule: if w < 0, negate all
    if qw < 0:
        qx, qy, qz, qw = -qx, -qy, -qz, -qw
    return [qx, qy, qz, qw]


def _hex_to_rgba(color: str, opacity: float) -> list[float]:
    text = color.lstrip("#")
    if len(text) == 3:
        text = "".join(c * 2 for c in text)
    try:
        r, g, b = (int(text[i : i + 2], 16) / 255 for i in (0, 2, 4))
    except ValueError:
        r = g = b = 0.5
    return [r, g, b, float(opacity)]


def _build_material(mat: Material) -> pygltflib.Material:
    rgba = _hex_to_rgba(mat.color, mat.opacity)
    return pygltflib.Material(
        name=mat.name,
        pbrMetallicRoughness=pygltflib.PbrMetallicRoughness(
            baseColorFactor=rgba,
            metallicFactor=float(mat.metalness),
            roughnessFactor=float(mat.roughness),
        ),
        alphaMode="BLEND" if mat.transparent or rgba[3] < 1.0 else "OPAQUE",
    )


def scene_to_gltf(root: Node) -> pygltflib.GLTF2:
    """Build a glTF document holding the node hierarchy.

    Geometry is not tessellated: each node carries its TRS, and drawables,
    curves and fields describe themselves in ``extras``. Materials become
    glTF materials referenced by index from node extras.
    """
    gltf = pygltflib.GLTF2(
        scene=0,
        scenes=[pygltflib.Scene(nodes=[])],
        nodes=[],
        materials=[],
    )
    material_map: dict[int, int] = {}

    def _material_index(mat: Material) -> int:
        key = id(mat)
        if key not in material_map:
            material_map[key] = len(gltf.materials)
            gltf.materials.append(_build_material(mat))
        return material_map[key]

    def _build_node(node: Node) -> int:
        idx = len(gltf.nodes)
        extras: dict[str, Any] = {"kind": node.kind}
        if not node.visible:
            extras["visible"] = False
        if isinstance(node, Drawable):
            if node.geometry is not None:
                extras["geometry"] = {"kind": node.geometry.kind, **node.geometry.params}
            if node.material is not None:
                extras["material"] = _material_index(node.material)
                extras["materialName"] = node.material.name
        elif isinstance(node, Curve):
            extras["points"] = [list(p) for p in node.points]
            extras["closed"] = node.closed
        elif isinstance(node, Field):
            extras["sampleCount"] = len(node.origins)

        gltf.nodes.append(
            pygltflib.Node(
                name=node.name,
                translation=[float(v) for v in node.position],
                rotation=_euler_to_quat(*node.rotation),
                scale=[float(v) for v in node.scale],
                extras=extras,
            )
        )
        if isinstance(node, Container) and node.children:
            gltf.nodes[idx].children = [_build_node(c) for c in node.children]
        return idx

    gltf.scenes[0].nodes = [_build_node(root)]
    return gltf


def export_scene(root: Node, output_path: Path) -> None:
    """Write ``root`` as ``.json``, ``.gltf`` or ``.glb`` depending on the suffix."""
    suffix = output_path.suffix.lower()
    try:
        if suffix == ".json":
            output_path.write_text(json.dumps(scene_to_dict(root), indent=2) + "\n", encoding="utf-8")
        elif suffix == ".gltf":
            output_path.write_text(scene_to_gltf(root).to_json(), encoding="utf-8")
        elif suffix == ".glb":
            gltf = scene_to_gltf(root)
            # BIN chunk of 4 zero bytes
            gltf.buffers = [pygltflib.Buffer(byteLength=4)]
            gltf.set_binary_blob(bytes(4))
            output_path.write_bytes(b"".join(gltf.save_to_bytes()))
        else:
            raise ExportError(f"Unsupported output format: {output_path.suffix!r} (use .json, .gltf or .glb)")
    except ExportError:
        raise
    except Exception as e:
        raise ExportError(f"Failed to export scene: {e}") from e
