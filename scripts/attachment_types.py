"""
Attachment Types - Shared vocabulary for the weapon attachment assembler

This module holds the closed enumerations, immutable part templates and
constants used by every other module of the assembler. Nothing here mutates
state; templates are looked up from an external table (see part_catalog.py)
and are never modified after construction.

Architecture:
    - AttachmentCategory: closed set of part categories (doubles as socket names)
    - PartKind: sealed kind tag selecting the capability of a spawned node
    - BulletType / MagazineType: ammunition vocabulary
    - AttachmentTemplate: frozen definition of a part, plus its link specs
    - FailureKind: taxonomy of non-fatal outcomes reported by the core
    - AttachmentSystemError: exceptions raised only at file/format boundaries

Author: Weapon Attachment Assembler
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from mount_geometry import Transform, Vec3


# =============================================================================
# Constants
# =============================================================================

DEFAULT_MAGAZINE_CAPACITY = 30
DURABILITY_MIN = 0.0
DURABILITY_MAX = 100.0
DURABILITY_PER_SHOT = 0.5

RAIL_MASK_WIDTH = 64
DEFAULT_RAIL_SLOTS = 15
DEFAULT_SLOT_SPACING = 2.54     # ~1 inch between rail bumps
DEFAULT_RAIL_SEARCH_STEP = 2.5  # distance step used by the placement sweep

# Candidate bounds are inflated so "almost touching" still counts as overlap
OVERLAP_INFLATION = 1.2


# =============================================================================
# Custom Exceptions
# =============================================================================

class AttachmentSystemError(Exception):
    """Base exception for file and format errors at the assembler boundary."""
    pass


class CatalogFormatError(AttachmentSystemError):
    """Raised when a part catalog file is malformed."""
    def __init__(self, source: str, reason: str):
        super().__init__(f"Malformed part catalog {source}: {reason}")
        self.source = source
        self.reason = reason


class ConfigFormatError(AttachmentSystemError):
    """Raised when a weapon configuration file is malformed."""
    def __init__(self, source: str, reason: str):
        super().__init__(f"Malformed weapon config {source}: {reason}")
        self.source = source
        self.reason = reason


# =============================================================================
# Enums
# =============================================================================

class AttachmentCategory(Enum):
    """
    Functional category of a part.

    The value is the canonical socket name a parent mesh must expose for a
    child of this category to mount on it.
    """
    # Core firearm components
    MONOLITHIC_RECEIVER = "MonolithicReceiver"
    UPPER_RECEIVER = "UpperReceiver"
    LOWER_RECEIVER = "LowerReceiver"
    # Pistol core components
    PISTOL_SLIDE = "PistolSlide"
    PISTOL_FRAME = "PistolFrame"
    # Sights and optics
    OPTIC = "Optic"
    IRON_SIGHTS = "IronSights"
    # Barrels and muzzle devices
    BARREL = "Barrel"
    MUZZLE_DEVICE = "MuzzleDevice"
    SUPPRESSOR = "Suppressor"
    GAS_BLOCK = "GasBlock"
    # Underbarrel and forward attachments
    UNDERBARREL = "Underbarrel"
    FOREGRIP = "Foregrip"
    TACTICAL_DEVICE = "TacticalDevice"
    LASER = "Laser"
    FLASHLIGHT = "Flashlight"
    # Internal and operational components
    TRIGGER = "Trigger"
    FIRING_CONTROL_GROUP = "FiringControlGroup"
    ACTION_RETURN_SPRING_ASSEMBLY = "ActionReturnSpringAssembly"
    BUFFER_TUBE = "BufferTube"
    CHARGING_HANDLE = "ChargingHandle"
    BOLT_CARRIER_GROUP = "BoltCarrierGroup"
    # Stocks and grips
    STOCK = "Stock"
    HAND_GRIP = "HandGrip"
    PISTOL_GRIP_INSERT = "PistolGripInsert"
    RECOIL_PAD = "RecoilPad"
    # Feeding
    MAGAZINE = "Magazine"
    # Rails and mounting
    RAIL = "Rail"
    RAIL_COVER = "RailCover"
    MOUNT = "Mount"
    OPTIC_MOUNT = "OpticMount"
    # Small parts
    EJECTION_PORT_COVER = "EjectionPortCover"
    CHARM = "Charm"

    @classmethod
    def parse(cls, text: str) -> AttachmentCategory:
        """Parse either the socket name ("OpticMount") or the member name ("OPTIC_MOUNT")."""
        try:
            return cls(text)
        except ValueError:
            pass
        try:
            return cls[text.upper()]
        except KeyError:
            raise ValueError(f"Unknown attachment category '{text}'") from None


def socket_for_category(category: AttachmentCategory) -> str:
    """Deterministic socket name for a part category."""
    return category.value


class PartKind(Enum):
    """Sealed kind tag: selects which capability a spawned node carries."""
    GENERIC = "generic"
    RAIL = "rail"           # slot allocator
    BARREL = "barrel"       # chamber
    MAGAZINE = "magazine"   # ammo buffer


class BulletType(Enum):
    """Ammunition variants. NONE is the empty sentinel."""
    NONE = "none"
    STANDARD_FMJ = "standard_fmj"
    ARMOR_PIERCING = "armor_piercing"
    HOLLOW_POINT_SP = "hollow_point_sp"
    TRACER = "tracer"
    SUBSONIC = "subsonic"
    HUNTING_JSP = "hunting_jsp"

    @property
    def display_name(self) -> str:
        return BULLET_DISPLAY_NAMES[self]

    def is_valid(self) -> bool:
        return self is not BulletType.NONE


BULLET_DISPLAY_NAMES: Dict[BulletType, str] = {
    BulletType.NONE: "None (Empty)",
    BulletType.STANDARD_FMJ: "Standard FMJ (Ball)",
    BulletType.ARMOR_PIERCING: "Armor Piercing (Black Tip)",
    BulletType.HOLLOW_POINT_SP: "Hollow/Soft Point",
    BulletType.TRACER: "Tracer (Green Tip)",
    BulletType.SUBSONIC: "Subsonic",
    BulletType.HUNTING_JSP: "Jacketed Soft Point",
}


class MagazineType(Enum):
    """Known 7.62x39mm magazine models. See MAGAZINE_CAPACITIES."""
    MAGPUL_MOE_30 = "magpul_moe_30"
    MAGPUL_M3_30_REINFORCED = "magpul_m3_30_reinforced"
    ARSENAL_WAFFLE_30 = "arsenal_waffle_30"
    XTECH_MAG47_30 = "xtech_mag47_30"
    USPALM_AK30R_30 = "uspalm_ak30r_30"
    PROMAG_STANDARD_30 = "promag_standard_30"
    MAGPUL_MOE_10 = "magpul_moe_10"
    MAGPUL_MOE_20 = "magpul_moe_20"
    PROMAG_STANDARD_20 = "promag_standard_20"
    ARSENAL_WAFFLE_40 = "arsenal_waffle_40"
    PROMAG_STANDARD_40 = "promag_standard_40"
    ATI_SCHMEISSER_S60 = "ati_schmeisser_s60"
    PROMAG_DRUM_50 = "promag_drum_50"
    KCI_DRUM_75 = "kci_drum_75"
    CHINESE_DRUM_75 = "chinese_drum_75"
    SURPLUS_STEEL_30 = "surplus_steel_30"
    SURPLUS_STEEL_40_RPK = "surplus_steel_40_rpk"

    @property
    def capacity(self) -> int:
        return MAGAZINE_CAPACITIES[self]


MAGAZINE_CAPACITIES: Dict[MagazineType, int] = {
    MagazineType.MAGPUL_MOE_30: 30,
    MagazineType.MAGPUL_M3_30_REINFORCED: 30,
    MagazineType.ARSENAL_WAFFLE_30: 30,
    MagazineType.XTECH_MAG47_30: 30,
    MagazineType.USPALM_AK30R_30: 30,
    MagazineType.PROMAG_STANDARD_30: 30,
    MagazineType.MAGPUL_MOE_10: 10,
    MagazineType.MAGPUL_MOE_20: 20,
    MagazineType.PROMAG_STANDARD_20: 20,
    MagazineType.ARSENAL_WAFFLE_40: 40,
    MagazineType.PROMAG_STANDARD_40: 40,
    MagazineType.ATI_SCHMEISSER_S60: 60,
    MagazineType.PROMAG_DRUM_50: 50,
    MagazineType.KCI_DRUM_75: 75,
    MagazineType.CHINESE_DRUM_75: 75,
    MagazineType.SURPLUS_STEEL_30: 30,
    MagazineType.SURPLUS_STEEL_40_RPK: 40,
}


class DurabilityMode(Enum):
    """How weapon durability is aggregated from its parts."""
    UNSPECIFIED = "unspecified"  # use the weapon's configured default
    AVERAGE = "average"
    MINIMUM = "minimum"          # weakest part
    MAXIMUM = "maximum"          # strongest part


class StatModType(Enum):
    """How a stat modifier is applied."""
    FLAT = "flat"               # adds a constant
    PERCENTAGE = "percentage"   # multiplies (0.85 == -15%)
    OVERRIDE = "override"       # replaces the value


class WeaponStat(Enum):
    VERTICAL_RECOIL = "vertical_recoil"
    HORIZONTAL_RECOIL = "horizontal_recoil"
    CAMERA_RECOIL = "camera_recoil"
    ERGONOMICS = "ergonomics"
    WEIGHT = "weight"
    ACCURACY = "accuracy"
    MUZZLE_VELOCITY = "muzzle_velocity"
    RANGE = "range"
    ROUNDS_PER_MINUTE = "rounds_per_minute"
    CONVERGENCE = "convergence"
    DISPERSION = "dispersion"


class FailureKind(Enum):
    """Non-fatal outcomes the core reports instead of raising."""
    PLACEMENT_REJECTED = "placement_rejected"
    BUFFER_FULL = "buffer_full"
    BUFFER_EMPTY = "buffer_empty"
    INVALID_TEMPLATE = "invalid_template"
    AUTHORITY_VIOLATION = "authority_violation"
    MISSING_COLLABORATOR = "missing_collaborator"


# =============================================================================
# Templates
# =============================================================================

@dataclass(frozen=True)
class StatModifier:
    """One stat change a part applies to the weapon."""
    stat: WeaponStat
    mod_type: StatModType
    value: float = 0.0


@dataclass(frozen=True)
class MeshHandle:
    """
    Opaque reference to a part's mesh.

    Only the parts the assembler needs are modelled: the mesh name, the
    sockets it exposes and the half-size of its bounding box.
    """
    name: str
    sockets: FrozenSet[str] = frozenset()
    extents: Vec3 = field(default_factory=lambda: Vec3(1.0, 1.0, 1.0))


@dataclass(frozen=True)
class LinkSpec:
    """Static description of one outgoing child link of a template."""
    child_ids: Tuple[str, ...]
    offset: Transform = field(default_factory=Transform.identity)
    start_slot: int = 0


@dataclass(frozen=True)
class RailSpec:
    """Rail geometry: slot count, spacing and the placement path points."""
    num_slots: int = DEFAULT_RAIL_SLOTS
    slot_spacing: float = DEFAULT_SLOT_SPACING
    path: Tuple[Vec3, ...] = ()


@dataclass(frozen=True)
class MagazineSpec:
    capacity: int = DEFAULT_MAGAZINE_CAPACITY
    preload: BulletType = BulletType.NONE
    magazine_type: Optional[MagazineType] = None


@dataclass(frozen=True)
class BarrelSpec:
    # More than one models shotgun-shell pellets
    pellets: int = 1


@dataclass(frozen=True)
class AttachmentTemplate:
    """
    Immutable definition of a part, as found in the part table.

    Attributes:
        template_id: Lookup key in the part table
        category: Functional category (also selects the mount socket)
        kind: Capability tag for spawned nodes
        mesh: Opaque mesh handle (sockets + bounds)
        size: Number of rail slots occupied
        start_slot: Default start slot on a rail
        use_rail: Whether rail parents place this part through the slot search
        durability: Base durability copied into each spawned node
        modifiers: Stat modifiers applied while the part is attached
        links: Child link specs copied into each spawned node
        abstract: Abstract templates are never spawned
    """
    template_id: str
    category: AttachmentCategory
    kind: PartKind = PartKind.GENERIC
    mesh: Optional[MeshHandle] = None
    size: int = 1
    start_slot: int = 0
    use_rail: bool = False
    durability: float = DURABILITY_MAX
    modifiers: Tuple[StatModifier, ...] = ()
    links: Tuple[LinkSpec, ...] = ()
    display_name: str = ""
    description: str = ""
    rail: Optional[RailSpec] = None
    magazine: Optional[MagazineSpec] = None
    barrel: Optional[BarrelSpec] = None
    abstract: bool = False

    def __repr__(self) -> str:
        return (f"AttachmentTemplate({self.template_id}, {self.category.value}, "
                f"kind={self.kind.value}, links={len(self.links)})")


# =============================================================================
# Module Info
# =============================================================================

__all__ = [
    # Constants
    'DEFAULT_MAGAZINE_CAPACITY',
    'DURABILITY_MIN',
    'DURABILITY_MAX',
    'DURABILITY_PER_SHOT',
    'RAIL_MASK_WIDTH',
    'DEFAULT_RAIL_SLOTS',
    'DEFAULT_SLOT_SPACING',
    'DEFAULT_RAIL_SEARCH_STEP',
    'OVERLAP_INFLATION',

    # Exceptions
    'AttachmentSystemError',
    'CatalogFormatError',
    'ConfigFormatError',

    # Enums
    'AttachmentCategory',
    'PartKind',
    'BulletType',
    'MagazineType',
    'DurabilityMode',
    'StatModType',
    'WeaponStat',
    'FailureKind',
    'BULLET_DISPLAY_NAMES',
    'MAGAZINE_CAPACITIES',
    'socket_for_category',

    # Templates
    'StatModifier',
    'MeshHandle',
    'LinkSpec',
    'RailSpec',
    'MagazineSpec',
    'BarrelSpec',
    'AttachmentTemplate',
]
