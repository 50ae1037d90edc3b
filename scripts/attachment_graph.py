"""
Attachment Graph - Runtime part tree with fallible placement

This module spawns attachment nodes from templates, mounts each one on its
parent (socket attach, or slot search on rail parents), and tears the tree
down again. It is the single owner of every spawned node.

Architecture:
    - AttachmentNode: runtime part instance (kind tag selects its capability)
    - ChildLink: parent-owned link holding the live child handles
    - NodeArena: integer handles + side tables (parent, world transform, socket)
    - BuildReport: placed count, rejections and skipped templates for one build
    - TemplateSpawnStrategy: breadth-first spawn from templates (default)
    - InstantiatedGraphStrategy: instantiate the whole template tree, then
      walk the connected graph depth-first and mount what fits
    - AttachmentGraph: build / clear / find_by_category / rail placement API

Placement rules (both strategies):
    - Rail parent + rail child: slot sweep along the rail path
      (SlotAllocator.find_placement); the child takes the first free slot
    - Otherwise: attach when the parent mesh exposes the child's category
      socket, at the link offset
    - A child that fails placement is destroyed at once and never registered

Usage:
    graph = AttachmentGraph(catalog, overlap=BoxOverlapWorld(1.2))
    graph.listeners.append(on_built)
    report = graph.build(["ak_receiver"])
    print(report.summary())
    barrel = graph.find_by_category(AttachmentCategory.BARREL)
    graph.clear()

Author: Weapon Attachment Assembler
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Iterator, List, Optional, Protocol, Sequence, Set, Tuple

from ammo_buffer import AmmoBuffer, ChamberState
from attachment_types import (
    DEFAULT_MAGAZINE_CAPACITY,
    DEFAULT_RAIL_SEARCH_STEP,
    AttachmentCategory,
    AttachmentTemplate,
    FailureKind,
    LinkSpec,
    MeshHandle,
    PartKind,
    socket_for_category,
)
from mount_geometry import (
    Bounds,
    BoxOverlapWorld,
    OverlapPredicate,
    Transform,
    Vec3,
    never_overlaps,
)
from rail_slots import SlotAllocator

logger = logging.getLogger(__name__)

NodeHandle = int


# =============================================================================
# External Collaborators
# =============================================================================

class TemplateCatalog(Protocol):
    """Keyed part table. A plain dict of id -> template satisfies this."""
    def get(self, template_id: str) -> Optional[AttachmentTemplate]:
        ...


class SocketProbe(Protocol):
    """Answers whether a mesh exposes a named socket."""
    def __call__(self, mesh: Optional[MeshHandle], socket: str) -> bool:
        ...


def mesh_has_socket(mesh: Optional[MeshHandle], socket: str) -> bool:
    """Default socket probe: read the socket list carried by the mesh handle."""
    return mesh is not None and socket in mesh.sockets


# =============================================================================
# Nodes
# =============================================================================

@dataclass
class ChildLink:
    """Outgoing link of a spawned node. children is empty until built."""
    child_ids: Tuple[str, ...]
    offset: Transform = field(default_factory=Transform.identity)
    start_slot: int = 0
    children: List[NodeHandle] = field(default_factory=list)
    manual: bool = False  # created by place_on_rail, dropped when emptied

    @classmethod
    def from_spec(cls, spec: LinkSpec) -> ChildLink:
        return cls(child_ids=tuple(spec.child_ids), offset=spec.offset, start_slot=spec.start_slot)


@dataclass
class AttachmentNode:
    """
    One spawned part.

    Exactly one of rail / magazine / chamber is set for RAIL / MAGAZINE /
    BARREL kinds; GENERIC nodes carry none.
    """
    handle: NodeHandle
    template: AttachmentTemplate
    category: AttachmentCategory
    size: int
    start_slot: int
    mesh: Optional[MeshHandle]
    durability: float
    links: List[ChildLink] = field(default_factory=list)
    rail: Optional[SlotAllocator] = None
    magazine: Optional[AmmoBuffer] = None
    chamber: Optional[ChamberState] = None
    pellets: int = 1

    @property
    def template_id(self) -> str:
        return self.template.template_id

    @property
    def kind(self) -> PartKind:
        return self.template.kind

    @property
    def uses_rail(self) -> bool:
        return self.template.use_rail

    def child_handles(self) -> List[NodeHandle]:
        return [h for link in self.links for h in link.children]

    def __repr__(self) -> str:
        return f"AttachmentNode(#{self.handle} {self.template_id}, {self.category.value})"


def spawn_node(handle: NodeHandle, template: AttachmentTemplate) -> AttachmentNode:
    """Create a node and the capability its kind calls for."""
    node = AttachmentNode(
        handle=handle,
        template=template,
        category=template.category,
        size=template.size,
        start_slot=template.start_slot,
        mesh=template.mesh,
        durability=template.durability,
        links=[ChildLink.from_spec(spec) for spec in template.links],
    )

    if template.kind is PartKind.RAIL:
        spec = template.rail
        if spec is None:
            node.rail = SlotAllocator(name=template.template_id)
        else:
            node.rail = SlotAllocator.from_points(spec.num_slots, spec.slot_spacing, spec.path,
                                                  name=template.template_id)
    elif template.kind is PartKind.MAGAZINE:
        spec = template.magazine
        capacity = spec.capacity if spec else DEFAULT_MAGAZINE_CAPACITY
        if spec and spec.magazine_type is not None:
            capacity = spec.magazine_type.capacity
        node.magazine = AmmoBuffer(capacity)
        if spec and spec.preload.is_valid():
            node.magazine.fill(spec.preload)
    elif template.kind is PartKind.BARREL:
        node.chamber = ChamberState()
        node.pellets = max(1, template.barrel.pellets) if template.barrel else 1

    return node


class NodeArena:
    """
    Handle-addressed node storage.

    Handles are never reused within one arena. Side tables are keyed by the
    same handle: parent (None for roots), world transform and mount socket.
    """

    def __init__(self):
        self._nodes: Dict[NodeHandle, AttachmentNode] = {}
        self._next_handle: NodeHandle = 1
        self.parent: Dict[NodeHandle, Optional[NodeHandle]] = {}
        self.world: Dict[NodeHandle, Transform] = {}
        self.socket: Dict[NodeHandle, str] = {}

    def spawn(self, template: AttachmentTemplate) -> AttachmentNode:
        node = spawn_node(self._next_handle, template)
        self._nodes[node.handle] = node
        self._next_handle += 1
        return node

    def destroy(self, handle: NodeHandle) -> None:
        self._nodes.pop(handle, None)
        self.parent.pop(handle, None)
        self.world.pop(handle, None)
        self.socket.pop(handle, None)

    def get(self, handle: NodeHandle) -> Optional[AttachmentNode]:
        return self._nodes.get(handle)

    def __getitem__(self, handle: NodeHandle) -> AttachmentNode:
        return self._nodes[handle]

    def __contains__(self, handle: object) -> bool:
        return handle in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[AttachmentNode]:
        return iter(list(self._nodes.values()))

    def ancestors(self, handle: NodeHandle) -> List[NodeHandle]:
        """Parent chain, nearest first. Stops on a repeated handle."""
        chain: List[NodeHandle] = []
        current = self.parent.get(handle)
        while current is not None and current not in chain:
            chain.append(current)
            current = self.parent.get(current)
        return chain


# =============================================================================
# Build Results & Events
# =============================================================================

@dataclass
class Rejection:
    template_id: str
    kind: FailureKind
    reason: str

    def __repr__(self) -> str:
        return f"Rejection({self.template_id}: {self.kind.value} - {self.reason})"


@dataclass
class BuildReport:
    """Outcome of one build. A forwarded (non-authoritative) build is pending."""
    placed: int = 0
    rejections: List[Rejection] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    pending: bool = False

    def reject(self, template_id: str, kind: FailureKind, reason: str) -> None:
        self.rejections.append(Rejection(template_id, kind, reason))
        if kind is FailureKind.INVALID_TEMPLATE:
            self.skipped.append(template_id)

    @property
    def ok(self) -> bool:
        return not self.rejections and not self.pending

    def count(self, kind: FailureKind) -> int:
        return sum(1 for r in self.rejections if r.kind is kind)

    def summary(self) -> str:
        if self.pending:
            return "Build forwarded to authority (pending)"
        return (f"Placed {self.placed} part(s), {len(self.rejections)} rejection(s), "
                f"{len(self.skipped)} skipped template(s)")


@dataclass(frozen=True)
class GraphBuilt:
    """Emitted at the end of every build with the final spawned nodes."""
    spawned: Tuple[AttachmentNode, ...]


# =============================================================================
# Build Strategies
# =============================================================================

class BuildStrategy(Protocol):
    def build(self, graph: AttachmentGraph, root_ids: Sequence[str], report: BuildReport) -> None:
        ...


class TemplateSpawnStrategy:
    """
    Breadth-first build straight from templates.

    Roots are spawned and mounted at the weapon mount point. Each dequeued
    node spawns the children its links name (only for links that have no
    live children yet), places them and enqueues the ones that stuck. A
    visited set keeps any node from being expanded twice.
    """

    def build(self, graph: AttachmentGraph, root_ids: Sequence[str], report: BuildReport) -> None:
        queue: Deque[NodeHandle] = deque()
        visited: Set[NodeHandle] = set()

        for template_id in root_ids:
            root = graph._spawn(template_id, report)
            if root is None:
                continue
            graph._mount_root(root)
            queue.append(root.handle)
            visited.add(root.handle)
            graph._register(root, report)

        while queue:
            current = graph.arena.get(queue.popleft())
            if current is None:
                continue
            for child in graph._expand_links(current, report):
                if child.handle not in visited:
                    visited.add(child.handle)
                    queue.append(child.handle)


class InstantiatedGraphStrategy:
    """
    Two-phase build over an already-instantiated graph.

    Phase one instantiates every template reachable from the roots and links
    the instances (cycles in the template data are cut). Phase two walks the
    connected instance graph depth-first with a visited set and mounts each
    child under the same placement rules; a child that does not fit is
    destroyed together with the subtree instantiated under it.
    """

    def build(self, graph: AttachmentGraph, root_ids: Sequence[str], report: BuildReport) -> None:
        roots: List[AttachmentNode] = []
        for template_id in root_ids:
            root = graph._spawn(template_id, report)
            if root is None:
                continue
            self._instantiate(graph, root, report)
            roots.append(root)

        visited: Set[NodeHandle] = set()
        for root in roots:
            graph._mount_root(root)
            graph._register(root, report)
            self._walk(graph, root, visited, report)

    def _instantiate(self, graph: AttachmentGraph, node: AttachmentNode, report: BuildReport) -> None:
        for link in node.links:
            if link.children:
                continue
            for child_id in link.child_ids:
                if graph._would_cycle(node, child_id, report):
                    continue
                child = graph._spawn(child_id, report)
                if child is None:
                    continue
                link.children.append(child.handle)
                graph.arena.parent[child.handle] = node.handle
                self._instantiate(graph, child, report)

    def _walk(self, graph: AttachmentGraph, node: AttachmentNode,
              visited: Set[NodeHandle], report: BuildReport) -> None:
        if node.handle in visited:
            return
        visited.add(node.handle)

        for link in node.links:
            for child_handle in list(link.children):
                child = graph.arena.get(child_handle)
                if child is None:
                    continue
                if not graph._place_child(node, link, child, report):
                    continue
                graph._register(child, report)
                self._walk(graph, child, visited, report)


# =============================================================================
# Graph
# =============================================================================

class AttachmentGraph:
    """
    Owner of every spawned attachment node.

    build() always starts from a clean graph. Placement failures are
    recorded in the returned BuildReport and never abort the build.
    """

    def __init__(self, catalog: TemplateCatalog,
                 socket_probe: SocketProbe = mesh_has_socket,
                 overlap: OverlapPredicate = never_overlaps,
                 mount_point: Optional[Transform] = None,
                 search_step: float = DEFAULT_RAIL_SEARCH_STEP,
                 strategy: Optional[BuildStrategy] = None):
        self.catalog = catalog
        self.socket_probe = socket_probe
        self.overlap = overlap
        self.mount_point = mount_point or Transform.identity()
        self.search_step = search_step
        self.strategy: BuildStrategy = strategy or TemplateSpawnStrategy()

        self.arena = NodeArena()
        self.roots: List[NodeHandle] = []
        self.spawned: List[NodeHandle] = []
        self._spawned_set: Set[NodeHandle] = set()
        self.listeners: List[Callable[[GraphBuilt], None]] = []

    def __repr__(self) -> str:
        return f"AttachmentGraph(roots={len(self.roots)}, spawned={len(self.spawned)})"

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def node(self, handle: NodeHandle) -> Optional[AttachmentNode]:
        return self.arena.get(handle)

    def spawned_nodes(self) -> List[AttachmentNode]:
        return [self.arena[h] for h in self.spawned if h in self.arena]

    def parent_of(self, handle: NodeHandle) -> Optional[AttachmentNode]:
        parent = self.arena.parent.get(handle)
        return self.arena.get(parent) if parent is not None else None

    def world_transform(self, handle: NodeHandle) -> Optional[Transform]:
        return self.arena.world.get(handle)

    def find_by_category(self, category: AttachmentCategory) -> Optional[AttachmentNode]:
        """Depth-first search from the roots over spawned nodes; first match wins."""
        visited: Set[NodeHandle] = set()
        starts = self.roots + [h for h in self.spawned if h not in self.roots]
        for start in starts:
            stack = [start]
            while stack:
                handle = stack.pop()
                if handle in visited or handle not in self._spawned_set:
                    continue
                visited.add(handle)
                node = self.arena.get(handle)
                if node is None:
                    continue
                if node.category is category:
                    return node
                stack.extend(reversed(node.child_handles()))
        return None

    def find_all(self, kind: PartKind) -> List[AttachmentNode]:
        return [n for n in self.spawned_nodes() if n.kind is kind]

    def iter_tree(self) -> Iterator[Tuple[int, AttachmentNode]]:
        """Yield (depth, node) for spawned nodes in depth-first order."""
        visited: Set[NodeHandle] = set()
        stack: List[Tuple[int, NodeHandle]] = [(0, h) for h in reversed(self.roots)]
        while stack:
            depth, handle = stack.pop()
            if handle in visited or handle not in self._spawned_set:
                continue
            visited.add(handle)
            node = self.arena[handle]
            yield depth, node
            stack.extend((depth + 1, h) for h in reversed(node.child_handles()))

    # -------------------------------------------------------------------------
    # Build / Clear
    # -------------------------------------------------------------------------

    def build(self, root_ids: Sequence[str]) -> BuildReport:
        """Build the tree for root_ids and emit GraphBuilt."""
        if self.spawned or len(self.arena):
            self.clear()

        report = BuildReport()
        logger.info(f"  [Graph] Building from {len(root_ids)} root(s) "
                    f"with {type(self.strategy).__name__}")
        self.strategy.build(self, list(root_ids), report)

        # Anything spawned but never placed (e.g. under a rejected parent) goes now
        for node in self.arena:
            if node.handle not in self._spawned_set:
                self._destroy(node.handle)

        logger.info(f"  [Graph] {report.summary()}")
        event = GraphBuilt(tuple(self.spawned_nodes()))
        for listener in list(self.listeners):
            listener(event)
        return report

    def clear(self) -> None:
        """Destroy every node, children first. Safe to call repeatedly."""
        visited: Set[NodeHandle] = set()
        for handle in list(self.roots) + list(self.spawned):
            self._destroy_subtree(handle, visited)
        for node in self.arena:
            self._destroy(node.handle)
        if visited:
            logger.info(f"  [Graph] Cleared {len(visited)} node(s)")
        self.roots.clear()
        self.spawned.clear()
        self._spawned_set.clear()

    # -------------------------------------------------------------------------
    # Runtime Rail Placement
    # -------------------------------------------------------------------------

    def place_on_rail(self, rail_handle: NodeHandle, template_id: str,
                      start_slot: Optional[int] = None) -> Optional[AttachmentNode]:
        """
        Mount a new part on a built rail at an explicit slot.

        start_slot defaults to the template's start slot. Parts the new one
        links to are spawned and mounted under it the way build() does.
        Returns the node, or None (nothing left behind) when the slot is
        taken, out of bounds, the rail lacks the socket or the spot overlaps
        another part.
        """
        rail_node = self.arena.get(rail_handle)
        if rail_node is None or rail_node.rail is None or rail_handle not in self._spawned_set:
            logger.warning(f"  [Rail] #{rail_handle} is not a built rail")
            return None

        report = BuildReport()
        child = self._spawn(template_id, report)
        if child is None:
            return None
        if start_slot is not None:
            child.start_slot = start_slot

        rail = rail_node.rail
        socket = socket_for_category(child.category)
        local = rail.slot_transform(child.start_slot)
        world = self._world_of(rail_node).compose(local)
        extents = self._extents(child)
        if not (rail.can_place(child.start_slot, child.size)
                and self.socket_probe(rail_node.mesh, socket)
                and not self.overlap(world, extents, self._ignore_for(rail_node, child))
                and rail.place(child)):
            logger.warning(f"  [Rail] Rejected {template_id} at slot {child.start_slot} on {rail_node.template_id}")
            self._destroy(child.handle)
            return None

        link = ChildLink(child_ids=(template_id,), start_slot=child.start_slot,
                         children=[child.handle], manual=True)
        rail_node.links.append(link)
        self._commit(rail_node, child, socket, world)
        self._register(child, report)

        # The new part brings its own subtree, mounted under the usual rules
        pending: Deque[AttachmentNode] = deque([child])
        expanded: Set[NodeHandle] = set()
        while pending:
            current = pending.popleft()
            if current.handle in expanded:
                continue
            expanded.add(current.handle)
            pending.extend(self._expand_links(current, report))

        logger.info(f"  [Rail] Placed {template_id} at slot {child.start_slot} on {rail_node.template_id} "
                    f"({report.placed} part(s), {len(report.rejections)} rejection(s))")
        return child

    def remove_from_rail(self, handle: NodeHandle) -> bool:
        """Unmount a rail child and destroy it with its subtree."""
        parent = self.parent_of(handle)
        if parent is None or parent.rail is None or handle not in parent.rail.mounted:
            return False
        self._destroy_subtree(handle, set())
        for link in parent.links:
            if handle in link.children:
                link.children.remove(handle)
        parent.links = [link for link in parent.links if link.children or not link.manual]
        return True

    # -------------------------------------------------------------------------
    # Internals shared by the strategies
    # -------------------------------------------------------------------------

    def _spawn(self, template_id: str, report: BuildReport) -> Optional[AttachmentNode]:
        template = self.catalog.get(template_id)
        if template is None:
            logger.warning(f"  [Graph] Unknown template '{template_id}', skipped")
            report.reject(template_id, FailureKind.INVALID_TEMPLATE, "unknown template")
            return None
        if template.abstract:
            logger.warning(f"  [Graph] Abstract template '{template_id}', skipped")
            report.reject(template_id, FailureKind.INVALID_TEMPLATE, "abstract template")
            return None
        node = self.arena.spawn(template)
        logger.debug(f"  [Graph] Spawned {node}")
        return node

    def _would_cycle(self, parent: AttachmentNode, child_id: str, report: BuildReport) -> bool:
        chain = [parent.template_id] + [self.arena[h].template_id
                                        for h in self.arena.ancestors(parent.handle) if h in self.arena]
        if child_id in chain:
            logger.warning(f"  [Graph] Cycle through '{child_id}' under {parent.template_id}, cut")
            report.reject(child_id, FailureKind.INVALID_TEMPLATE, "template cycle")
            return True
        return False

    def _expand_links(self, node: AttachmentNode, report: BuildReport) -> List[AttachmentNode]:
        """
        Spawn the children named by node's empty links and mount them.

        Returns the children that are now placed and registered, in link
        order. Children that do not fit are destroyed.
        """
        placed: List[AttachmentNode] = []
        for link in node.links:
            if not link.children:
                for child_id in link.child_ids:
                    if self._would_cycle(node, child_id, report):
                        continue
                    child = self._spawn(child_id, report)
                    if child is not None:
                        link.children.append(child.handle)

            for child_handle in list(link.children):
                child = self.arena.get(child_handle)
                if child is None:
                    continue
                if not self._place_child(node, link, child, report):
                    continue
                self._register(child, report)
                placed.append(child)
        return placed

    def _mount_root(self, root: AttachmentNode) -> None:
        self.arena.parent[root.handle] = None
        self.arena.world[root.handle] = self.mount_point.compose(Transform.identity())
        self.roots.append(root.handle)
        self._track_bounds(root)

    def _register(self, node: AttachmentNode, report: BuildReport) -> None:
        if node.handle in self._spawned_set:
            return
        self._spawned_set.add(node.handle)
        self.spawned.append(node.handle)
        report.placed += 1

    def _place_child(self, parent: AttachmentNode, link: ChildLink,
                     child: AttachmentNode, report: BuildReport) -> bool:
        """Mount child on parent; destroy it on failure."""
        if child.handle in self._spawned_set:
            return True

        socket = socket_for_category(child.category)
        parent_world = self._world_of(parent)

        if parent.rail is not None and child.uses_rail:
            rail = parent.rail
            placement = rail.find_placement(
                child.size,
                socket_exists=self.socket_probe(parent.mesh, socket),
                overlap=lambda t, e, ig: self.overlap(parent_world.compose(t), e, ig),
                extents=self._extents(child),
                ignore=self._ignore_for(parent, child),
                step=self.search_step,
                label=child.template_id,
            )
            if placement is not None:
                child.start_slot = placement.slot
                if rail.place(child):
                    self._commit(parent, child, socket, parent_world.compose(placement.transform))
                    logger.info(f"  [Graph] Attached {child.template_id} at slot {placement.slot} "
                                f"(d={placement.distance:.2f}) on rail {parent.template_id}")
                    return True
            self._reject(child, link, report, FailureKind.PLACEMENT_REJECTED,
                         f"no free slot on rail {parent.template_id}")
            return False

        if child.mesh is None or parent.mesh is None:
            self._reject(child, link, report, FailureKind.MISSING_COLLABORATOR,
                         f"no mesh to attach {child.template_id} to {parent.template_id}")
            return False
        if not self.socket_probe(parent.mesh, socket):
            self._reject(child, link, report, FailureKind.PLACEMENT_REJECTED,
                         f"{parent.template_id} has no '{socket}' socket")
            return False

        self._commit(parent, child, socket, parent_world.compose(link.offset))
        logger.debug(f"  [Graph] Attached {child.template_id} to {parent.template_id} at '{socket}'")
        return True

    def _commit(self, parent: AttachmentNode, child: AttachmentNode, socket: str, world: Transform) -> None:
        self.arena.parent[child.handle] = parent.handle
        self.arena.world[child.handle] = world
        self.arena.socket[child.handle] = socket
        self._track_bounds(child)

    def _reject(self, child: AttachmentNode, link: ChildLink, report: BuildReport,
                kind: FailureKind, reason: str) -> None:
        logger.warning(f"  [Graph] Rejected {child.template_id}: {reason}")
        report.reject(child.template_id, kind, reason)
        if child.handle in link.children:
            link.children.remove(child.handle)
        self._destroy_subtree(child.handle, set())

    def _world_of(self, node: AttachmentNode) -> Transform:
        return self.arena.world.get(node.handle, self.mount_point)

    def _extents(self, node: AttachmentNode) -> Vec3:
        return node.mesh.extents if node.mesh is not None else Vec3(1.0, 1.0, 1.0)

    def _ignore_for(self, rail_node: AttachmentNode, child: AttachmentNode) -> Set[NodeHandle]:
        """The rail, the candidate and the weapon roots never count as overlaps."""
        return {rail_node.handle, child.handle, *self.roots}

    def _track_bounds(self, node: AttachmentNode) -> None:
        if isinstance(self.overlap, BoxOverlapWorld) and node.handle in self.arena.world:
            self.overlap.add(node.handle, Bounds(self.arena.world[node.handle].location, self._extents(node)))

    def _destroy_subtree(self, handle: NodeHandle, visited: Set[NodeHandle]) -> None:
        if handle in visited:
            return
        visited.add(handle)
        node = self.arena.get(handle)
        if node is None:
            return
        for child_handle in node.child_handles():
            self._destroy_subtree(child_handle, visited)
        self._destroy(handle)

    def _destroy(self, handle: NodeHandle) -> None:
        node = self.arena.get(handle)
        if node is None:
            return
        parent = self.parent_of(handle)
        if parent is not None and parent.rail is not None:
            parent.rail.remove_handle(handle)
        if isinstance(self.overlap, BoxOverlapWorld):
            self.overlap.remove(handle)
        if handle in self._spawned_set:
            self._spawned_set.discard(handle)
            self.spawned.remove(handle)
        if handle in self.roots:
            self.roots.remove(handle)
        self.arena.destroy(handle)
        logger.debug(f"  [Graph] Destroyed {node}")


__all__ = [
    'NodeHandle',
    'TemplateCatalog',
    'SocketProbe',
    'mesh_has_socket',
    'ChildLink',
    'AttachmentNode',
    'spawn_node',
    'NodeArena',
    'Rejection',
    'BuildReport',
    'GraphBuilt',
    'BuildStrategy',
    'TemplateSpawnStrategy',
    'InstantiatedGraphStrategy',
    'AttachmentGraph',
]
