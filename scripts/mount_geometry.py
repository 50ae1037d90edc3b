"""
Mount Geometry - Transforms, bounds and placement paths for attachment mounting

This module carries the small amount of 3D math the assembler needs to place
parts: where a rail slot sits along its path, where a child lands relative to
its parent socket, and whether a candidate box overlaps an already placed part.

COORDINATE SYSTEM:
    Right-handed, parts are authored along +X:
    - X: Along the barrel axis (+forward toward the muzzle)
    - Y: Lateral (+right)
    - Z: Vertical (+up)
    Rotations are yaw-only (about Z), in degrees. Rail placement never needs
    more than that; full orientation belongs to the rendering side.

ARCHITECTURE:
    - Vec3: immutable 3D vector
    - Transform: location + yaw + uniform scale, composable parent -> child
    - Bounds: axis-aligned box (center + half extents)
    - PlacementPath: polyline parametrized by distance (the rail's 1-D path)
    - OverlapPredicate: host-supplied "does this candidate collide" check
    - BoxOverlapWorld: reference AABB implementation of the predicate

Author: Weapon Attachment Assembler
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Collection, Dict, Hashable, List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class Vec3:
    """3D vector for part locations and bounding extents."""
    x: float
    y: float
    z: float

    def __add__(self, other: Vec3) -> Vec3:
        return Vec3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Vec3) -> Vec3:
        return Vec3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, scalar: float) -> Vec3:
        return Vec3(self.x * scalar, self.y * scalar, self.z * scalar)

    def magnitude(self) -> float:
        """Euclidean magnitude."""
        return math.sqrt(self.x**2 + self.y**2 + self.z**2)

    def lerp(self, other: Vec3, t: float) -> Vec3:
        """Linear interpolation, t in [0, 1]."""
        return self + (other - self) * t

    def rotated_yaw(self, degrees: float) -> Vec3:
        """Rotate about the Z axis."""
        if degrees == 0.0:
            return self
        rad = math.radians(degrees)
        c, s = math.cos(rad), math.sin(rad)
        return Vec3(self.x * c - self.y * s, self.x * s + self.y * c, self.z)

    def with_z(self, z: float) -> Vec3:
        return Vec3(self.x, self.y, z)

    def to_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    @classmethod
    def zero(cls) -> Vec3:
        return cls(0.0, 0.0, 0.0)

    @classmethod
    def from_list(cls, coords: Sequence[float]) -> Vec3:
        """Create from a [x, y, z] list."""
        if len(coords) != 3:
            raise ValueError(f"Expected 3 coordinates, got {len(coords)}")
        return cls(float(coords[0]), float(coords[1]), float(coords[2]))

    def __repr__(self) -> str:
        return f"Vec3({self.x:.4f}, {self.y:.4f}, {self.z:.4f})"


@dataclass(frozen=True)
class Transform:
    """
    Placement of a part: location, yaw (degrees) and uniform scale.

    compose() maps a child transform expressed in this transform's space into
    the parent space, the way a child mesh snaps onto its parent socket.
    """
    location: Vec3 = field(default_factory=Vec3.zero)
    yaw: float = 0.0
    scale: float = 1.0

    @classmethod
    def identity(cls) -> Transform:
        return cls()

    def is_identity(self) -> bool:
        return self.location == Vec3.zero() and self.yaw == 0.0 and self.scale == 1.0

    def compose(self, child: Transform) -> Transform:
        """Return child expressed in this transform's parent space."""
        location = self.location + child.location.rotated_yaw(self.yaw) * self.scale
        return Transform(location=location, yaw=self.yaw + child.yaw, scale=self.scale * child.scale)

    def with_location(self, location: Vec3) -> Transform:
        return Transform(location=location, yaw=self.yaw, scale=self.scale)

    def __repr__(self) -> str:
        return f"Transform(loc={self.location}, yaw={self.yaw:.1f}, scale={self.scale:.2f})"


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned box given by its center and half extents."""
    center: Vec3
    extents: Vec3

    @property
    def min_corner(self) -> Vec3:
        return self.center - self.extents

    @property
    def max_corner(self) -> Vec3:
        return self.center + self.extents

    def inflated(self, factor: float) -> Bounds:
        """Scale the extents about the center."""
        return Bounds(self.center, self.extents * factor)

    def overlaps(self, other: Bounds) -> bool:
        """Strict overlap; boxes that only share a face do not overlap."""
        a_min, a_max = self.min_corner, self.max_corner
        b_min, b_max = other.min_corner, other.max_corner
        return (
            a_min.x < b_max.x and b_min.x < a_max.x and
            a_min.y < b_max.y and b_min.y < a_max.y and
            a_min.z < b_max.z and b_min.z < a_max.z
        )

    def contains_point(self, point: Vec3, margin: float = 0.0) -> bool:
        """
        Check if a point is inside the box.

        Args:
            point: Position to check
            margin: Positive shrinks check region, negative expands
        """
        min_c, max_c = self.min_corner, self.max_corner
        return (
            min_c.x + margin <= point.x <= max_c.x - margin and
            min_c.y + margin <= point.y <= max_c.y - margin and
            min_c.z + margin <= point.z <= max_c.z - margin
        )


class PlacementPath:
    """
    A polyline evaluated by distance along it.

    Distances outside [0, length] are clamped to the end points. An empty
    path evaluates to the origin and has zero length.
    """

    def __init__(self, points: Sequence[Vec3] = ()):
        self.points: List[Vec3] = list(points)
        self._cumulative: List[float] = [0.0]
        for a, b in zip(self.points, self.points[1:]):
            self._cumulative.append(self._cumulative[-1] + (b - a).magnitude())

    @classmethod
    def straight(cls, length: float, origin: Optional[Vec3] = None) -> PlacementPath:
        """A straight path along +X starting at origin."""
        start = origin or Vec3.zero()
        return cls([start, start + Vec3(length, 0.0, 0.0)])

    @property
    def length(self) -> float:
        return self._cumulative[-1] if self.points else 0.0

    def location_at(self, distance: float) -> Vec3:
        if not self.points:
            return Vec3.zero()
        if distance <= 0.0 or len(self.points) == 1:
            return self.points[0]
        if distance >= self.length:
            return self.points[-1]

        for i in range(1, len(self._cumulative)):
            if distance <= self._cumulative[i]:
                seg_len = self._cumulative[i] - self._cumulative[i - 1]
                if seg_len <= 0.0:
                    return self.points[i]
                t = (distance - self._cumulative[i - 1]) / seg_len
                return self.points[i - 1].lerp(self.points[i], t)
        return self.points[-1]

    def transform_at(self, distance: float) -> Transform:
        """Location at distance, with yaw following the segment direction."""
        location = self.location_at(distance)
        yaw = 0.0
        if len(self.points) >= 2:
            ahead = self.location_at(min(distance + 1e-3, self.length))
            behind = self.location_at(max(distance - 1e-3, 0.0))
            direction = ahead - behind
            if abs(direction.x) > 1e-9 or abs(direction.y) > 1e-9:
                yaw = math.degrees(math.atan2(direction.y, direction.x))
        return Transform(location=location, yaw=yaw)

    def __repr__(self) -> str:
        return f"PlacementPath(points={len(self.points)}, length={self.length:.2f})"


# ============================================================================
# OVERLAP QUERIES
# ============================================================================

class OverlapPredicate(Protocol):
    """
    Host-supplied spatial query used by the rail placement sweep.

    Returns True when a box of the given half extents placed at transform
    overlaps something other than the ignored owners.
    """
    def __call__(self, transform: Transform, extents: Vec3, ignore: Collection[Hashable]) -> bool:
        ...


def never_overlaps(transform: Transform, extents: Vec3, ignore: Collection[Hashable]) -> bool:
    """Predicate for hosts without collision data."""
    return False


class BoxOverlapWorld:
    """
    Reference overlap predicate: a registry of placed axis-aligned boxes.

    Boxes are keyed by an owner (a node handle in practice) so the query can
    ignore the rail being searched, the candidate itself and the weapon root.
    Candidate extents are inflated by `inflation`.
    """

    def __init__(self, inflation: float = 1.0):
        self.inflation = inflation
        self._boxes: Dict[Hashable, Bounds] = {}

    def add(self, owner: Hashable, bounds: Bounds) -> None:
        self._boxes[owner] = bounds

    def remove(self, owner: Hashable) -> None:
        self._boxes.pop(owner, None)

    def clear(self) -> None:
        self._boxes.clear()

    def __len__(self) -> int:
        return len(self._boxes)

    def __call__(self, transform: Transform, extents: Vec3, ignore: Collection[Hashable]) -> bool:
        candidate = Bounds(transform.location, extents * (transform.scale * self.inflation))
        hits = [
            owner for owner, box in self._boxes.items()
            if owner not in ignore and candidate.overlaps(box)
        ]
        if hits:
            logger.debug(f"  [Overlap] {transform.location} hits {hits}")
        return bool(hits)


__all__ = [
    'Vec3',
    'Transform',
    'Bounds',
    'PlacementPath',
    'OverlapPredicate',
    'never_overlaps',
    'BoxOverlapWorld',
]
