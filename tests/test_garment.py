from __future__ import annotations

import json
from pathlib import Path
import struct
import tempfile
import unittest

from vdresser.errors import GarmentLoadError
from vdresser.garment import load_garment


def _json_chunk(doc: dict) -> bytes:
    raw = json.dumps(doc).encode("utf-8")
    raw += b" " * (-len(raw) % 4)
    return struct.pack("<I4s", len(raw), b"JSON") + raw


def _glb_bytes(magic: bytes = b"glTF", version: int = 2, length: int | None = None, body: bytes | None = None) -> bytes:
    if body is None:
        body = _json_chunk({"asset": {"version": "2.0"}, "meshes": [{"name": "shirt"}], "nodes": [{"mesh": 0}]})
    total = 12 + len(body) if length is None else length
    return struct.pack("<4sII", magic, version, total) + body


class LoadGarmentTests(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.root = Path(tmp.name)

    def test_valid_glb(self) -> None:
        path = self.root / "shirt.glb"
        data = _glb_bytes()
        path.write_bytes(data)
        garment = load_garment(path)
        self.assertEqual(garment.name, "shirt.glb")
        self.assertEqual(garment.kind, "glb")
        self.assertEqual(garment.size_bytes, len(data))
        self.assertFalse(garment.is_remote)
        self.assertEqual(garment.meta["container_version"], 2)
        self.assertEqual(garment.meta["mesh_count"], 1)
        self.assertEqual(garment.meta["node_count"], 1)

    def test_bad_magic_is_rejected(self) -> None:
        path = self.root / "fake.glb"
        path.write_bytes(_glb_bytes(magic=b"PK\x03\x04"))
        with self.assertRaises(GarmentLoadError) as ctx:
            load_garment(path)
        self.assertIn("bad magic", str(ctx.exception))

    def test_container_version_one_is_rejected(self) -> None:
        path = self.root / "old.glb"
        path.write_bytes(_glb_bytes(version=1))
        with self.assertRaises(GarmentLoadError):
            load_garment(path)

    def test_truncated_glb_is_rejected(self) -> None:
        path = self.root / "cut.glb"
        path.write_bytes(_glb_bytes(length=len(_glb_bytes()) + 4096))
        with self.assertRaises(GarmentLoadError) as ctx:
            load_garment(path)
        self.assertIn("truncated", str(ctx.exception))

    def test_short_file_is_rejected(self) -> None:
        path = self.root / "tiny.glb"
        path.write_bytes(b"glTF")
        with self.assertRaises(GarmentLoadError):
            load_garment(path)

    def test_gltf_json_records_mesh_count(self) -> None:
        path = self.root / "pants.gltf"
        path.write_text(json.dumps({"asset": {"version": "2.0"}, "meshes": [{}, {}]}), encoding="utf-8")
        garment = load_garment(str(path))
        self.assertEqual(garment.kind, "gltf")
        self.assertEqual(garment.meta["mesh_count"], 2)
        self.assertEqual(garment.meta["asset_version"], "2.0")

    def test_gltf_without_asset_version_is_rejected(self) -> None:
        path = self.root / "broken.gltf"
        path.write_text(json.dumps({"meshes": []}), encoding="utf-8")
        with self.assertRaises(GarmentLoadError):
            load_garment(path)

    def test_gltf_that_is_not_json_is_rejected(self) -> None:
        path = self.root / "notjson.gltf"
        path.write_text("{nope", encoding="utf-8")
        with self.assertRaises(GarmentLoadError):
            load_garment(path)

    def test_url_is_kept_as_remote_reference(self) -> None:
        garment = load_garment("https://example.com/models/red%20dress.glb")
        self.assertTrue(garment.is_remote)
        self.assertEqual(garment.name, "red dress.glb")
        self.assertEqual(garment.kind, "glb")
        self.assertIsNone(garment.size_bytes)

    def test_unsupported_suffix_is_rejected(self) -> None:
        path = self.root / "shirt.obj"
        path.write_text("v 0 0 0\n", encoding="utf-8")
        with self.assertRaises(GarmentLoadError) as ctx:
            load_garment(path)
        self.assertIn(".obj", str(ctx.exception))

    def test_missing_file_and_empty_reference(self) -> None:
        with self.assertRaises(GarmentLoadError) as ctx:
            load_garment(self.root / "missing.glb")
        self.assertIn("not found", str(ctx.exception))
        with self.assertRaises(GarmentLoadError):
            load_garment("   ")


if __name__ == "__main__":
    unittest.main()
