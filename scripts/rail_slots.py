"""
Rail Slots - Bitmask occupancy tracking for rail-type mounts

A rail exposes a row of discrete slots along a 1-D placement path. Each
mounted part covers the contiguous range [start, start + size); the rail
keeps one 64-bit occupancy mask where bit i is set exactly when some mounted
part covers slot i.

Architecture:
    - make_mask(): contiguous run of bits for a slot range
    - SlotOccupant: what the allocator needs to know about a part
    - SlotAllocator: mask + mounted set + slot <-> path mapping
    - RailPlacement: result of the extended placement search

Usage:
    rail = SlotAllocator(num_slots=15, slot_spacing=2.54)
    if rail.can_place(3, 2):
        rail.place(node)          # node.start_slot == 3, node.size == 2
    rail.remove(node)

    placement = rail.find_placement(occupant_size, overlap=world,
                                    extents=mesh.extents, ignore={rail_handle})

Author: Weapon Attachment Assembler
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Collection, Dict, Hashable, List, Optional, Protocol, Sequence, Tuple

from attachment_types import (
    DEFAULT_RAIL_SEARCH_STEP,
    DEFAULT_RAIL_SLOTS,
    DEFAULT_SLOT_SPACING,
    RAIL_MASK_WIDTH,
)
from mount_geometry import OverlapPredicate, PlacementPath, Transform, Vec3, never_overlaps

logger = logging.getLogger(__name__)

FULL_MASK = (1 << RAIL_MASK_WIDTH) - 1


# =============================================================================
# Mask Helpers
# =============================================================================

def make_mask(start: int, size: int) -> int:
    """
    Build the occupancy bits for the slot range [start, start + size).

    Returns 0 for size <= 0 and all 64 bits for size >= 64. Otherwise the run
    of `size` bits is shifted left by `start` and truncated to 64 bits, so a
    run pushed past the word boundary loses its high bits. A negative start
    has no meaningful range and yields 0.
    """
    if size <= 0:
        return 0
    if size >= RAIL_MASK_WIDTH:
        return FULL_MASK
    if start < 0 or start >= RAIL_MASK_WIDTH:
        return 0
    return (((1 << size) - 1) << start) & FULL_MASK


def mask_to_slots(mask: int) -> List[int]:
    """List the slot indices set in a mask."""
    return [i for i in range(RAIL_MASK_WIDTH) if mask & (1 << i)]


def format_mask(mask: int, num_slots: int) -> str:
    """Render a mask as a slot strip, slot 0 first ('#' occupied, '.' free)."""
    return ''.join('#' if mask & (1 << i) else '.' for i in range(num_slots))


# =============================================================================
# Allocator
# =============================================================================

class SlotOccupant(Protocol):
    """Anything that can be mounted on a rail."""
    handle: Hashable
    start_slot: int
    size: int


@dataclass(frozen=True)
class RailPlacement:
    """Slot and world transform chosen by the placement sweep."""
    slot: int
    distance: float
    transform: Transform


class SlotAllocator:
    """
    Occupancy tracker for one rail.

    The mounted set records the range each occupant was placed with, so
    remove() clears exactly the bits place() set even if the occupant's
    start slot is edited afterwards.
    """

    def __init__(self, num_slots: int = DEFAULT_RAIL_SLOTS,
                 slot_spacing: float = DEFAULT_SLOT_SPACING,
                 path: Optional[PlacementPath] = None,
                 name: str = "rail"):
        if num_slots > RAIL_MASK_WIDTH:
            logger.warning(f"  [Rail] {name}: {num_slots} slots exceeds mask width, "
                           f"clamping to {RAIL_MASK_WIDTH}")
            num_slots = RAIL_MASK_WIDTH
        self.name = name
        self.num_slots = max(0, num_slots)
        self.slot_spacing = slot_spacing
        if path is None or not path.points:
            path = PlacementPath.straight(max(0, self.num_slots - 1) * max(0.0, slot_spacing))
        self.path = path
        self.mask = 0
        self.mounted: Dict[Hashable, Tuple[int, int]] = {}

    @classmethod
    def from_points(cls, num_slots: int, slot_spacing: float,
                    points: Sequence[Vec3], name: str = "rail") -> SlotAllocator:
        return cls(num_slots, slot_spacing, PlacementPath(points), name=name)

    def __repr__(self) -> str:
        return (f"SlotAllocator({self.name}, slots={self.num_slots}, "
                f"mask={format_mask(self.mask, self.num_slots)}, mounted={len(self.mounted)})")

    # -------------------------------------------------------------------------
    # Occupancy
    # -------------------------------------------------------------------------

    def can_place(self, start: int, size: int) -> bool:
        if start < 0 or start + size > self.num_slots:
            return False
        return (self.mask & make_mask(start, size)) == 0

    def place(self, occupant: SlotOccupant) -> bool:
        """Mount at occupant.start_slot. Returns False with no state change on failure."""
        if occupant.handle in self.mounted:
            logger.debug(f"  [Rail] {self.name}: {occupant.handle} already mounted")
            return False
        start, size = occupant.start_slot, occupant.size
        if not self.can_place(start, size):
            return False
        self.mask |= make_mask(start, size)
        self.mounted[occupant.handle] = (start, size)
        logger.debug(f"  [Rail] {self.name}: mounted {occupant.handle} at [{start}, {start + size})")
        return True

    def remove(self, occupant: SlotOccupant) -> None:
        """Unmount; no-op if the occupant is not mounted."""
        self.remove_handle(occupant.handle)

    def remove_handle(self, handle: Hashable) -> None:
        placed = self.mounted.pop(handle, None)
        if placed is None:
            return
        start, size = placed
        self.mask &= ~make_mask(start, size) & FULL_MASK
        logger.debug(f"  [Rail] {self.name}: removed {handle} from [{start}, {start + size})")

    def clear(self) -> None:
        self.mask = 0
        self.mounted.clear()

    def is_occupied(self, index: int) -> bool:
        if index < 0 or index >= self.num_slots:
            return False
        return bool(self.mask & (1 << index))

    def free_slots(self) -> List[int]:
        return [i for i in range(self.num_slots) if not self.mask & (1 << i)]

    def verify(self) -> bool:
        """Check the mask against the mounted ranges (no overlaps, no stray bits)."""
        expected = 0
        for handle, (start, size) in self.mounted.items():
            bits = make_mask(start, size)
            if expected & bits:
                logger.warning(f"  [Rail] {self.name}: overlapping range for {handle}")
                return False
            expected |= bits
        if expected != self.mask:
            logger.warning(f"  [Rail] {self.name}: mask {self.mask:#x} != mounted ranges {expected:#x}")
            return False
        return True

    # -------------------------------------------------------------------------
    # Path Mapping
    # -------------------------------------------------------------------------

    def clamp_slot(self, index: int) -> int:
        return min(max(index, 0), max(0, self.num_slots - 1))

    def slot_transform(self, index: int) -> Transform:
        """World placement of a slot: the path evaluated at clamp(index) * spacing."""
        return self.path.transform_at(self.clamp_slot(index) * self.slot_spacing)

    def slot_from_distance(self, distance: float) -> int:
        """Nearest slot for a distance along the path (0 when spacing is not positive)."""
        if self.slot_spacing <= 0.0:
            return 0
        return self.clamp_slot(int(math.floor(distance / self.slot_spacing + 0.5)))

    @property
    def length(self) -> float:
        return self.path.length

    # -------------------------------------------------------------------------
    # Extended Placement Search
    # -------------------------------------------------------------------------

    def find_placement(self, size: int,
                       socket_exists: bool = True,
                       overlap: OverlapPredicate = never_overlaps,
                       extents: Optional[Vec3] = None,
                       ignore: Collection[Hashable] = (),
                       socket_height: Optional[float] = None,
                       step: float = DEFAULT_RAIL_SEARCH_STEP,
                       label: str = "part") -> Optional[RailPlacement]:
        """
        Sweep the path from 0 to its length and return the first free slot.

        A candidate distance is accepted when its mapped slot is in bounds,
        its range is free in the mask, the parent socket exists and the
        overlap predicate reports no collision at that spot. The sweep makes
        at most length / step + 1 overlap queries. When socket_height is
        given, candidate transforms take that height.

        Returns:
            RailPlacement, or None when no distance passes every check
        """
        if step <= 0.0:
            logger.warning(f"  [Rail] {self.name}: non-positive search step {step}, using default")
            step = DEFAULT_RAIL_SEARCH_STEP
        if extents is None:
            extents = Vec3(1.0, 1.0, 1.0)

        length = self.length
        candidates = int(length // step) + 1
        for i in range(candidates):
            distance = i * step
            slot = self.slot_from_distance(distance)
            transform = self.path.transform_at(distance)
            if socket_height is not None:
                transform = transform.with_location(transform.location.with_z(socket_height))

            in_bounds = slot >= 0 and slot + size <= self.num_slots
            mask_free = in_bounds and self.can_place(slot, size)
            collision_free = (mask_free and socket_exists
                              and not overlap(transform, extents, ignore))
            logger.debug(f"  [Rail] {self.name}: {label} d={distance:.2f} slot={slot}/{self.num_slots - 1} "
                         f"bounds={in_bounds} mask={mask_free} socket={socket_exists} "
                         f"free={collision_free}")
            if collision_free:
                return RailPlacement(slot=slot, distance=distance, transform=transform)

        logger.warning(f"  [Rail] {self.name}: no valid slot for {label} (size {size})")
        return None


__all__ = [
    'FULL_MASK',
    'make_mask',
    'mask_to_slots',
    'format_mask',
    'SlotOccupant',
    'RailPlacement',
    'SlotAllocator',
]
