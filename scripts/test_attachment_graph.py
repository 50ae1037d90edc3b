#!/usr/bin/env python3
"""Attachment Graph Tests

Tests cover:
  - Breadth-first build: roots, socket attach, link offsets, capabilities
  - Rail placement through the slot sweep, rejection destroys the child
  - Invalid templates (unknown / abstract) and missing meshes are skipped
  - Template cycles are cut and the build terminates
  - clear() is idempotent; rebuilds start clean
  - find_by_category, GraphBuilt emission, dedup law over random trees
  - InstantiatedGraphStrategy reaches the same parts as the default strategy
  - Runtime place_on_rail / remove_from_rail
"""

import random
import sys
import unittest
from pathlib import Path
from typing import Dict, List

sys.path.insert(0, str(Path(__file__).resolve().parent))

from attachment_graph import (
    AttachmentGraph,
    GraphBuilt,
    InstantiatedGraphStrategy,
    TemplateSpawnStrategy,
)
from attachment_types import (
    AttachmentCategory,
    AttachmentTemplate,
    BulletType,
    FailureKind,
    LinkSpec,
    MagazineSpec,
    MeshHandle,
    PartKind,
    RailSpec,
)
from mount_geometry import Bounds, BoxOverlapWorld, Transform, Vec3


# =========================================================================
# Mock Data Builders
# =========================================================================

def _mesh(name: str, *sockets: str, extents=(1.0, 1.0, 1.0)) -> MeshHandle:
    return MeshHandle(name=name, sockets=frozenset(sockets), extents=Vec3(*extents))


def _link(*child_ids: str, at=(0.0, 0.0, 0.0)) -> LinkSpec:
    return LinkSpec(child_ids=tuple(child_ids), offset=Transform(location=Vec3(*at)))


def _mock_catalog() -> Dict[str, AttachmentTemplate]:
    """
    receiver
      +- barrel (Barrel socket)        -> muzzle
      +- mag (Magazine socket)
      +- rail (Rail socket, 10 slots @ 2.5) -> optic_a (3), optic_b (3), optic_c (5, does not fit)
      +- stock (no Stock socket on the receiver)
    """
    templates = [
        AttachmentTemplate(
            "receiver", AttachmentCategory.UPPER_RECEIVER,
            mesh=_mesh("rcv", "Barrel", "Magazine", "Rail"),
            links=(_link("barrel", at=(20, 0, 0)), _link("mag", at=(4, 0, -5)),
                   _link("rail", at=(10, 0, 3)), _link("stock", at=(-15, 0, 0))),
            durability=100.0,
        ),
        AttachmentTemplate(
            "barrel", AttachmentCategory.BARREL, kind=PartKind.BARREL,
            mesh=_mesh("brl", "MuzzleDevice"), links=(_link("muzzle", at=(15, 0, 0)),),
            durability=80.0,
        ),
        AttachmentTemplate("muzzle", AttachmentCategory.MUZZLE_DEVICE, mesh=_mesh("mz"), durability=60.0),
        AttachmentTemplate(
            "mag", AttachmentCategory.MAGAZINE, kind=PartKind.MAGAZINE, mesh=_mesh("mag"),
            magazine=MagazineSpec(capacity=30, preload=BulletType.STANDARD_FMJ),
        ),
        AttachmentTemplate(
            "rail", AttachmentCategory.RAIL, kind=PartKind.RAIL,
            mesh=_mesh("rail", "Optic"), rail=RailSpec(num_slots=10, slot_spacing=2.5),
            links=(_link("optic_a"), _link("optic_b"), _link("optic_c")),
        ),
        AttachmentTemplate("optic_a", AttachmentCategory.OPTIC, mesh=_mesh("oa"), size=3, use_rail=True),
        AttachmentTemplate("optic_b", AttachmentCategory.OPTIC, mesh=_mesh("ob"), size=3, use_rail=True),
        AttachmentTemplate("optic_c", AttachmentCategory.OPTIC, mesh=_mesh("oc"), size=5, use_rail=True),
        AttachmentTemplate("stock", AttachmentCategory.STOCK, mesh=_mesh("stk", "RecoilPad"),
                           links=(_link("pad"),)),
        AttachmentTemplate("pad", AttachmentCategory.RECOIL_PAD, mesh=_mesh("pad")),
        AttachmentTemplate("base_grip", AttachmentCategory.FOREGRIP, abstract=True),
    ]
    return {t.template_id: t for t in templates}


def _ids(graph: AttachmentGraph) -> List[str]:
    return sorted(n.template_id for n in graph.spawned_nodes())


# =========================================================================
# Build
# =========================================================================

class TestBuild(unittest.TestCase):

    def setUp(self):
        self.graph = AttachmentGraph(_mock_catalog())
        self.report = self.graph.build(["receiver"])

    def test_placed_parts(self):
        self.assertEqual(_ids(self.graph),
                         ["barrel", "mag", "muzzle", "optic_a", "optic_b", "rail", "receiver"])
        self.assertEqual(self.report.placed, 7)

    def test_rejections_reported(self):
        rejected = {(r.template_id, r.kind) for r in self.report.rejections}
        self.assertIn(("optic_c", FailureKind.PLACEMENT_REJECTED), rejected)
        self.assertIn(("stock", FailureKind.PLACEMENT_REJECTED), rejected)
        self.assertFalse(self.report.ok)

    def test_rejected_nodes_destroyed(self):
        live = {n.template_id for n in self.graph.arena}
        self.assertNotIn("optic_c", live)
        self.assertNotIn("stock", live)
        # Children of a rejected part are never spawned
        self.assertNotIn("pad", live)
        self.assertEqual(len(self.graph.arena), len(self.graph.spawned))

    def test_rail_slots_assigned(self):
        rail = self.graph.find_by_category(AttachmentCategory.RAIL)
        optics = {n.template_id: n for n in self.graph.spawned_nodes() if n.category is AttachmentCategory.OPTIC}
        self.assertEqual(optics["optic_a"].start_slot, 0)
        self.assertEqual(optics["optic_b"].start_slot, 3)
        self.assertEqual(rail.rail.free_slots(), [6, 7, 8, 9])
        self.assertTrue(rail.rail.verify())

    def test_world_transforms(self):
        barrel = self.graph.find_by_category(AttachmentCategory.BARREL)
        muzzle = self.graph.find_by_category(AttachmentCategory.MUZZLE_DEVICE)
        self.assertEqual(self.graph.world_transform(barrel.handle).location, Vec3(20, 0, 0))
        self.assertEqual(self.graph.world_transform(muzzle.handle).location, Vec3(35, 0, 0))
        optic_b = next(n for n in self.graph.spawned_nodes() if n.template_id == "optic_b")
        loc = self.graph.world_transform(optic_b.handle).location
        self.assertAlmostEqual(loc.x, 10 + 3 * 2.5)
        self.assertAlmostEqual(loc.z, 3.0)

    def test_parent_side_table(self):
        muzzle = self.graph.find_by_category(AttachmentCategory.MUZZLE_DEVICE)
        self.assertEqual(self.graph.parent_of(muzzle.handle).template_id, "barrel")
        root = self.graph.find_by_category(AttachmentCategory.UPPER_RECEIVER)
        self.assertIsNone(self.graph.parent_of(root.handle))
        self.assertEqual(self.graph.arena.socket[muzzle.handle], "MuzzleDevice")

    def test_capabilities_by_kind(self):
        mag = self.graph.find_by_category(AttachmentCategory.MAGAZINE)
        barrel = self.graph.find_by_category(AttachmentCategory.BARREL)
        muzzle = self.graph.find_by_category(AttachmentCategory.MUZZLE_DEVICE)
        self.assertEqual(mag.magazine.count, 30)
        self.assertIsNotNone(barrel.chamber)
        self.assertFalse(barrel.chamber.has_round())
        self.assertIsNone(muzzle.rail)
        self.assertIsNone(muzzle.magazine)
        self.assertIsNone(muzzle.chamber)

    def test_find_by_category_missing(self):
        self.assertIsNone(self.graph.find_by_category(AttachmentCategory.SUPPRESSOR))

    def test_iter_tree_depths(self):
        depths = {node.template_id: depth for depth, node in self.graph.iter_tree()}
        self.assertEqual(depths["receiver"], 0)
        self.assertEqual(depths["rail"], 1)
        self.assertEqual(depths["optic_a"], 2)
        self.assertEqual(depths["muzzle"], 2)


class TestInvalidTemplates(unittest.TestCase):

    def test_unknown_and_abstract_skipped(self):
        graph = AttachmentGraph(_mock_catalog())
        report = graph.build(["nope", "base_grip", "muzzle"])
        self.assertEqual(_ids(graph), ["muzzle"])
        self.assertEqual(report.count(FailureKind.INVALID_TEMPLATE), 2)
        self.assertEqual(sorted(report.skipped), ["base_grip", "nope"])

    def test_missing_mesh(self):
        catalog = _mock_catalog()
        catalog["bare"] = AttachmentTemplate("bare", AttachmentCategory.BARREL)
        catalog["host"] = AttachmentTemplate("host", AttachmentCategory.UPPER_RECEIVER,
                                             mesh=_mesh("h", "Barrel"), links=(_link("bare"),))
        graph = AttachmentGraph(catalog)
        report = graph.build(["host"])
        self.assertEqual(_ids(graph), ["host"])
        self.assertEqual(report.count(FailureKind.MISSING_COLLABORATOR), 1)

    def test_cycle_is_cut(self):
        catalog = {
            "loop": AttachmentTemplate("loop", AttachmentCategory.MOUNT,
                                       mesh=_mesh("l", "Mount"), links=(_link("loop"),)),
        }
        graph = AttachmentGraph(catalog)
        report = graph.build(["loop"])
        self.assertEqual(_ids(graph), ["loop"])
        self.assertEqual(report.count(FailureKind.INVALID_TEMPLATE), 1)


class TestClear(unittest.TestCase):

    def test_clear_before_build(self):
        graph = AttachmentGraph(_mock_catalog())
        graph.clear()
        graph.clear()
        self.assertEqual(graph.spawned, [])

    def test_clear_is_idempotent(self):
        graph = AttachmentGraph(_mock_catalog())
        graph.build(["receiver"])
        graph.clear()
        self.assertEqual(graph.spawned, [])
        self.assertEqual(graph.roots, [])
        self.assertEqual(len(graph.arena), 0)
        graph.clear()
        self.assertEqual(len(graph.arena), 0)

    def test_rebuild_starts_clean(self):
        graph = AttachmentGraph(_mock_catalog())
        graph.build(["receiver"])
        first = set(graph.spawned)
        graph.build(["receiver"])
        self.assertEqual(len(graph.spawned), 7)
        self.assertFalse(first & set(graph.spawned))
        rail = graph.find_by_category(AttachmentCategory.RAIL)
        self.assertEqual(len(rail.rail.mounted), 2)


class TestEvents(unittest.TestCase):

    def test_graph_built_emitted_once(self):
        events: List[GraphBuilt] = []
        graph = AttachmentGraph(_mock_catalog())
        graph.listeners.append(events.append)
        graph.build(["receiver"])
        self.assertEqual(len(events), 1)
        self.assertEqual(sorted(n.template_id for n in events[0].spawned), _ids(graph))

    def test_empty_build_still_emits(self):
        events: List[GraphBuilt] = []
        graph = AttachmentGraph(_mock_catalog())
        graph.listeners.append(events.append)
        graph.build([])
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].spawned, ())


class TestDedup(unittest.TestCase):

    def _random_catalog(self, rng: random.Random) -> Dict[str, AttachmentTemplate]:
        """Random part tables where links repeat ids and may point back up."""
        ids = [f"p{i}" for i in range(6)]
        sockets = [c.value for c in AttachmentCategory]
        catalog = {}
        for template_id in ids:
            links = tuple(_link(*rng.sample(ids, rng.randint(1, 2))) for _ in range(rng.randint(0, 2)))
            catalog[template_id] = AttachmentTemplate(
                template_id, rng.choice([AttachmentCategory.MOUNT, AttachmentCategory.CHARM]),
                mesh=_mesh(template_id, *rng.sample(sockets, 10)), links=links,
            )
        return catalog

    def test_no_node_registered_twice(self):
        rng = random.Random(7)
        for _ in range(60):
            catalog = self._random_catalog(rng)
            for strategy in (TemplateSpawnStrategy(), InstantiatedGraphStrategy()):
                graph = AttachmentGraph(catalog, strategy=strategy)
                events: List[GraphBuilt] = []
                graph.listeners.append(events.append)
                graph.build(rng.sample(list(catalog), 2))
                handles = [n.handle for n in events[0].spawned]
                self.assertEqual(len(handles), len(set(handles)))
                self.assertEqual(len(graph.spawned), len(set(graph.spawned)))


class TestStrategies(unittest.TestCase):

    def test_instantiated_graph_matches_default(self):
        default = AttachmentGraph(_mock_catalog())
        default.build(["receiver"])
        walked = AttachmentGraph(_mock_catalog(), strategy=InstantiatedGraphStrategy())
        report = walked.build(["receiver"])
        self.assertEqual(_ids(walked), _ids(default))
        self.assertEqual(report.placed, 7)
        # Subtree under the rejected stock is discarded with it
        self.assertEqual(len(walked.arena), len(walked.spawned))


class TestOverlap(unittest.TestCase):

    def test_blocked_region_skipped(self):
        world = BoxOverlapWorld()
        world.add("fixture", Bounds(Vec3(12.5, 0, 3), Vec3(3.0, 1, 1)))  # covers rail x in [9.5, 15.5]
        graph = AttachmentGraph(_mock_catalog(), overlap=world)
        graph.build(["receiver"])
        optic_a = next(n for n in graph.spawned_nodes() if n.template_id == "optic_a")
        # Candidates at x=10, 12.5, 15 hit the fixture, x=17.5 (slot 3) is clear
        self.assertEqual(optic_a.start_slot, 3)

    def test_world_tracks_placed_parts(self):
        world = BoxOverlapWorld()
        graph = AttachmentGraph(_mock_catalog(), overlap=world)
        graph.build(["receiver"])
        self.assertEqual(len(world), len(graph.spawned))
        graph.clear()
        self.assertEqual(len(world), 0)


class TestRuntimeRail(unittest.TestCase):

    def setUp(self):
        catalog = _mock_catalog()
        catalog["laser"] = AttachmentTemplate("laser", AttachmentCategory.OPTIC, mesh=_mesh("lz"),
                                              size=2, use_rail=True, start_slot=8)
        self.graph = AttachmentGraph(catalog)
        self.graph.build(["receiver"])
        self.rail = self.graph.find_by_category(AttachmentCategory.RAIL)

    def test_place_at_explicit_slot(self):
        node = self.graph.place_on_rail(self.rail.handle, "optic_c", start_slot=6)
        self.assertIsNone(node)  # 6 + 5 > 10
        node = self.graph.place_on_rail(self.rail.handle, "laser", start_slot=6)
        self.assertIsNotNone(node)
        self.assertIn(node.handle, self.graph.spawned)
        self.assertTrue(self.rail.rail.is_occupied(7))

    def test_template_default_slot(self):
        node = self.graph.place_on_rail(self.rail.handle, "laser")
        self.assertEqual(node.start_slot, 8)

    def test_occupied_slot_rejected_without_leftovers(self):
        before = len(self.graph.arena)
        self.assertIsNone(self.graph.place_on_rail(self.rail.handle, "laser", start_slot=1))
        self.assertEqual(len(self.graph.arena), before)

    def test_remove_restores_mask(self):
        before = self.rail.rail.mask
        node = self.graph.place_on_rail(self.rail.handle, "laser", start_slot=7)
        self.assertTrue(self.graph.remove_from_rail(node.handle))
        self.assertEqual(self.rail.rail.mask, before)
        self.assertNotIn(node.handle, self.graph.spawned)
        self.assertFalse(self.graph.remove_from_rail(node.handle))

    def test_placed_part_mounts_its_links(self):
        catalog = self.graph.catalog
        catalog["optic_mount"] = AttachmentTemplate(
            "optic_mount", AttachmentCategory.OPTIC, mesh=_mesh("om", "Laser"), size=2, use_rail=True,
            links=(_link("laser_module", at=(0, 0, 1)), _link("light_module")),
        )
        catalog["laser_module"] = AttachmentTemplate("laser_module", AttachmentCategory.LASER,
                                                     mesh=_mesh("lm"))
        catalog["light_module"] = AttachmentTemplate("light_module", AttachmentCategory.FLASHLIGHT,
                                                     mesh=_mesh("fl"))

        before = self.rail.rail.mask
        mount = self.graph.place_on_rail(self.rail.handle, "optic_mount", start_slot=7)
        self.assertIsNotNone(mount)
        laser = next(n for n in self.graph.spawned_nodes() if n.template_id == "laser_module")
        self.assertIs(self.graph.parent_of(laser.handle), mount)
        self.assertEqual(self.graph.world_transform(laser.handle).location,
                         self.graph.world_transform(mount.handle).location + Vec3(0, 0, 1))
        # The mount exposes no Flashlight socket
        self.assertNotIn("light_module", _ids(self.graph))
        self.assertEqual(len(self.graph.arena), len(self.graph.spawned))

        self.assertTrue(self.graph.remove_from_rail(mount.handle))
        self.assertNotIn("laser_module", _ids(self.graph))
        self.assertEqual(self.rail.rail.mask, before)

    def test_not_a_rail(self):
        barrel = self.graph.find_by_category(AttachmentCategory.BARREL)
        self.assertIsNone(self.graph.place_on_rail(barrel.handle, "laser", start_slot=0))


# =========================================================================
# Run
# =========================================================================

if __name__ == '__main__':
    unittest.main(verbosity=2)
