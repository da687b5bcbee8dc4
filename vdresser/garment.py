"""Garment model references (.glb / .gltf).

The container header is checked by hand, then the document is read with
pygltflib for its metadata. Meshes are never rendered here.
"""

from __future__ import annotations

import json
from pathlib import Path
import struct
from typing import Any, Union
from urllib.parse import unquote, urlparse

import pygltflib

from .errors import GarmentLoadError
from .models import GarmentModel


SUPPORTED_SUFFIXES = (".glb", ".gltf")
_GLB_MAGIC = b"glTF"
_GLB_HEADER = struct.Struct("<4sII")


def _is_url(ref: str) -> bool:
    return urlparse(ref).scheme in ("http", "https")


def _kind_for(name: str) -> str:
    suffix = Path(name).suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise GarmentLoadError(f"Unsupported model format '{suffix or name}'. Use .glb or .gltf.")
    return suffix.lstrip(".")


def _check_glb(path: Path) -> dict:
    size = path.stat().st_size
    with path.open("rb") as f:
        header = f.read(_GLB_HEADER.size)
    if len(header) < _GLB_HEADER.size:
        raise GarmentLoadError(f"{path.name} is too short to be a GLB file.")
    magic, version, length = _GLB_HEADER.unpack(header)
    if magic != _GLB_MAGIC:
        raise GarmentLoadError(f"{path.name} is not a GLB file (bad magic).")
    if version != 2:
        raise GarmentLoadError(f"{path.name} uses glTF container version {version}; only version 2 is supported.")
    if length > size:
        raise GarmentLoadError(f"{path.name} is truncated ({size} of {length} bytes).")
    return {"container_version": version, "declared_length": length}


def _check_gltf(path: Path) -> dict:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise GarmentLoadError(f"{path.name} is not valid glTF JSON: {exc}") from exc
    asset = payload.get("asset") if isinstance(payload, dict) else None
    version = str(asset.get("version", "")) if isinstance(asset, dict) else ""
    if not version.startswith("2"):
        raise GarmentLoadError(f"{path.name} is missing a glTF 2.x asset version.")
    return {}


def _read_document(path: Path) -> Any:
    try:
        doc = pygltflib.GLTF2().load(str(path))
    except Exception as exc:
        raise GarmentLoadError(f"Could not parse {path.name}: {exc}") from exc
    if doc is None:
        raise GarmentLoadError(f"Could not parse {path.name}.")
    return doc


def load_garment(ref: Union[str, Path]) -> GarmentModel:
    text = str(ref).strip()
    if not text:
        raise GarmentLoadError("No model selected.")

    if _is_url(text):
        name = Path(unquote(urlparse(text).path)).name
        if not name:
            raise GarmentLoadError(f"Could not infer a model name from {text}.")
        return GarmentModel(name=name, uri=text, kind=_kind_for(name), is_remote=True)

    path = Path(text).expanduser()
    kind = _kind_for(path.name)
    if not path.is_file():
        raise GarmentLoadError(f"Model file not found: {path}")
    try:
        meta = _check_glb(path) if kind == "glb" else _check_gltf(path)
        size = path.stat().st_size
    except OSError as exc:
        raise GarmentLoadError(f"Could not read {path}: {exc}") from exc

    doc = _read_document(path)
    asset = getattr(doc, "asset", None)
    meta["asset_version"] = str(getattr(asset, "version", "") or "")
    meta["mesh_count"] = len(doc.meshes or [])
    meta["node_count"] = len(doc.nodes or [])
    return GarmentModel(
        name=path.name,
        uri=str(path.resolve()),
        kind=kind,
        size_bytes=size,
        meta=meta,
    )
