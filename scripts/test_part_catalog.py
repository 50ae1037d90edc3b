#!/usr/bin/env python3
"""Part Catalog Tests

Tests cover:
  - Comment stripping (line, block, URLs kept intact)
  - Template parsing: mesh, links, rail/magazine/barrel specs, modifiers
  - "extends" inheritance and abstract bases
  - Format errors raised as CatalogFormatError
  - Loading the shipped example catalog
"""

import shutil
import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from attachment_types import (
    AttachmentCategory,
    BulletType,
    CatalogFormatError,
    MagazineType,
    PartKind,
    StatModType,
    WeaponStat,
)
from mount_geometry import Vec3
from part_catalog import PartCatalog, parse_template, strip_json_comments

EXAMPLE_CATALOG = Path(__file__).resolve().parent.parent / "configs" / "example_catalog.json"


# =========================================================================
# Mock Data Builders
# =========================================================================

def _mock_parts() -> dict:
    return {
        "parts": {
            "rcv": {
                "category": "UpperReceiver",
                "mesh": {"name": "SK_Rcv", "sockets": ["Barrel", "Rail"], "extents": [10, 2, 3]},
                "links": [
                    {"children": "brl", "offset": {"location": [20, 0, 1], "yaw": 90}},
                    {"children": ["rail"], "start_slot": 2},
                ],
            },
            "brl": {"category": "Barrel", "kind": "barrel", "barrel": {"pellets": 8}},
            "rail": {
                "category": "RAIL",
                "kind": "rail",
                "rail": {"num_slots": 12, "slot_spacing": 2.0, "path": [[0, 0, 0], [22, 0, 0]]},
            },
            "mag": {
                "category": "Magazine",
                "kind": "magazine",
                "magazine": {"type": "promag_drum_50", "preload": "tracer"},
            },
            "base_optic": {
                "abstract": True, "category": "Optic", "size": 3, "use_rail": True,
                "modifiers": [{"stat": "ergonomics", "type": "flat", "value": -1}],
            },
            "red_dot": {"extends": "base_optic", "size": 2},
        }
    }


# =========================================================================
# Comment Stripping
# =========================================================================

class TestStripComments(unittest.TestCase):

    def test_line_and_block_comments(self):
        text = '{\n  // line\n  "a": 1, /* block\n spanning */ "b": 2\n}'
        stripped = strip_json_comments(text)
        self.assertNotIn("line", stripped)
        self.assertNotIn("spanning", stripped)
        self.assertIn('"b": 2', stripped)

    def test_urls_survive(self):
        text = '{"doc": "https://example.com/a", "local": "file:///tmp/x"} // trailing'
        stripped = strip_json_comments(text)
        self.assertIn("https://example.com/a", stripped)
        self.assertIn("file:///tmp/x", stripped)
        self.assertNotIn("trailing", stripped)


# =========================================================================
# Parsing
# =========================================================================

class TestParseTemplate(unittest.TestCase):

    def setUp(self):
        self.catalog = PartCatalog.from_dict(_mock_parts())

    def test_mesh_and_links(self):
        rcv = self.catalog.get("rcv")
        self.assertIs(rcv.category, AttachmentCategory.UPPER_RECEIVER)
        self.assertEqual(rcv.mesh.sockets, frozenset({"Barrel", "Rail"}))
        self.assertEqual(rcv.mesh.extents, Vec3(10, 2, 3))
        self.assertEqual(rcv.links[0].child_ids, ("brl",))
        self.assertEqual(rcv.links[0].offset.location, Vec3(20, 0, 1))
        self.assertEqual(rcv.links[0].offset.yaw, 90.0)
        self.assertEqual(rcv.links[1].start_slot, 2)
        self.assertTrue(rcv.links[1].offset.is_identity())

    def test_kind_specs(self):
        self.assertIs(self.catalog.get("brl").kind, PartKind.BARREL)
        self.assertEqual(self.catalog.get("brl").barrel.pellets, 8)

        rail = self.catalog.get("rail")
        self.assertIs(rail.category, AttachmentCategory.RAIL)
        self.assertEqual(rail.rail.num_slots, 12)
        self.assertEqual(rail.rail.path[-1], Vec3(22, 0, 0))

        mag = self.catalog.get("mag").magazine
        self.assertIs(mag.magazine_type, MagazineType.PROMAG_DRUM_50)
        self.assertEqual(mag.capacity, 50)
        self.assertIs(mag.preload, BulletType.TRACER)

    def test_defaults(self):
        brl = self.catalog.get("brl")
        self.assertIsNone(brl.mesh)
        self.assertEqual(brl.size, 1)
        self.assertEqual(brl.durability, 100.0)
        self.assertFalse(brl.use_rail)
        self.assertEqual(brl.links, ())

    def test_extends(self):
        base = self.catalog.get("base_optic")
        red_dot = self.catalog.get("red_dot")
        self.assertTrue(base.abstract)
        self.assertFalse(red_dot.abstract)
        self.assertIs(red_dot.category, AttachmentCategory.OPTIC)
        self.assertEqual(red_dot.size, 2)
        self.assertTrue(red_dot.use_rail)
        self.assertEqual(red_dot.modifiers[0].stat, WeaponStat.ERGONOMICS)
        self.assertIs(red_dot.modifiers[0].mod_type, StatModType.FLAT)

    def test_lookup_helpers(self):
        self.assertIn("rcv", self.catalog)
        self.assertIsNone(self.catalog.get("missing"))
        self.assertEqual(len(self.catalog), 6)
        optics = self.catalog.by_category(AttachmentCategory.OPTIC)
        self.assertEqual(sorted(t.template_id for t in optics), ["base_optic", "red_dot"])


class TestFormatErrors(unittest.TestCase):

    def test_missing_category(self):
        with self.assertRaises(CatalogFormatError):
            parse_template("x", {"kind": "generic"})

    def test_bad_category(self):
        with self.assertRaises(CatalogFormatError):
            parse_template("x", {"category": "Bayonet"})

    def test_bad_modifier_stat(self):
        with self.assertRaises(CatalogFormatError):
            parse_template("x", {"category": "Optic", "modifiers": [{"stat": "luck", "value": 1}]})

    def test_bad_extents(self):
        with self.assertRaises(CatalogFormatError):
            parse_template("x", {"category": "Optic", "mesh": {"extents": [1, 2]}})

    def test_wrong_shaped_fields(self):
        bad_fields = [
            {"mesh": "SK_Optic"},
            {"mesh": {"sockets": 7}},
            {"modifiers": ["x"]},
            {"modifiers": {"stat": "weight"}},
            {"modifiers": [{"stat": "weight", "value": "heavy"}]},
            {"links": ["x"]},
            {"links": [{"children": ["a"], "offset": [1, 2, 3]}]},
            {"links": [{"children": ["a"], "offset": {"yaw": "left"}}]},
            {"links": [{"children": ["a"], "start_slot": "front"}]},
            {"rail": [15, 2.54]},
            {"rail": {"num_slots": "many"}},
            {"magazine": "moe"},
            {"magazine": {"capacity": "thirty"}},
            {"barrel": 8},
            {"barrel": {"pellets": None}},
            {"size": "big"},
            {"start_slot": [1]},
            {"durability": "high"},
        ]
        for fields in bad_fields:
            raw = {"category": "Optic", **fields}
            with self.subTest(fields=fields), self.assertRaises(CatalogFormatError):
                parse_template("x", raw)

    def test_wrong_shaped_field_in_file_data(self):
        with self.assertRaises(CatalogFormatError) as ctx:
            PartCatalog.from_dict({"parts": {"a": {"category": "Optic", "durability": "high"}}})
        self.assertIn("durability", str(ctx.exception))

    def test_missing_parts(self):
        with self.assertRaises(CatalogFormatError):
            PartCatalog.from_dict({"templates": {}})

    def test_extends_unknown(self):
        with self.assertRaises(CatalogFormatError):
            PartCatalog.from_dict({"parts": {"a": {"extends": "b", "category": "Optic"}}})

    def test_extends_cycle(self):
        with self.assertRaises(CatalogFormatError):
            PartCatalog.from_dict({"parts": {
                "a": {"extends": "b", "category": "Optic"},
                "b": {"extends": "a", "category": "Optic"},
            }})


# =========================================================================
# Files
# =========================================================================

class TestFromFile(unittest.TestCase):

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp(prefix="catalog_"))

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_commented_file(self):
        path = self.tmp / "parts.json"
        path.write_text('// parts\n{"parts": {/* one */ "grip": {"category": "HandGrip"}}}\n',
                        encoding='utf-8')
        catalog = PartCatalog.from_file(path)
        self.assertEqual(catalog.ids(), ["grip"])
        self.assertEqual(catalog.source, str(path))

    def test_missing_file(self):
        with self.assertRaises(CatalogFormatError):
            PartCatalog.from_file(self.tmp / "nope.json")

    def test_invalid_json(self):
        path = self.tmp / "broken.json"
        path.write_text('{"parts": {', encoding='utf-8')
        with self.assertRaises(CatalogFormatError) as ctx:
            PartCatalog.from_file(path)
        self.assertIn("invalid JSON", str(ctx.exception))

    def test_top_level_array(self):
        path = self.tmp / "array.json"
        path.write_text('[]', encoding='utf-8')
        with self.assertRaises(CatalogFormatError):
            PartCatalog.from_file(path)

    def test_example_catalog(self):
        catalog = PartCatalog.from_file(EXAMPLE_CATALOG)
        self.assertIn("ak_receiver", catalog)
        acog = catalog.get("acog_4x")
        self.assertEqual(acog.size, 4)
        self.assertEqual(acog.mesh.name, "SK_ACOG")
        self.assertTrue(catalog.get("base_optic").abstract)
        self.assertEqual(catalog.get("holo_sight").size, 3)


# =========================================================================
# Run
# =========================================================================

if __name__ == '__main__':
    unittest.main(verbosity=2)
