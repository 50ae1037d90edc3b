"""
Fire Controller - Chamber / magazine / durability state machine

Architecture:
    - ReloadStage: staged reload steps (NONE -> REMOVE -> INSERT -> RACK -> NONE)
    - WeaponRuntimeState: durability, reload stage, magazine flag, spawned parts
    - Fired: event carrying the rounds of one shot
    - FireController: fire(), chambering, staged reload, durability aggregation

The controller never raises for gameplay outcomes. A dry fire returns an
empty list; a missing magazine or barrel makes chambering return False.

Usage:
    controller = FireController()
    controller.set_barrel(ChamberState())
    controller.reload_magazine(AmmoBuffer.filled(30, BulletType.STANDARD_FMJ))
    rounds = controller.fire()

    stage = controller.begin_staged_reload()        # REMOVE_MAGAZINE
    stage = controller.process_stage(stage)         # INSERT_MAGAZINE
    stage = controller.process_stage(stage, fresh)  # RACK_HANDLE or NONE

Author: Weapon Attachment Assembler
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from ammo_buffer import AmmoBuffer, ChamberState
from attachment_types import (
    DURABILITY_MAX,
    DURABILITY_MIN,
    DURABILITY_PER_SHOT,
    BulletType,
    DurabilityMode,
)

logger = logging.getLogger(__name__)


class ReloadStage(Enum):
    NONE = "none"
    REMOVE_MAGAZINE = "remove_magazine"
    INSERT_MAGAZINE = "insert_magazine"
    RACK_HANDLE = "rack_handle"


@dataclass(frozen=True)
class Fired:
    """Emitted once per shot that actually fired."""
    rounds: Tuple[BulletType, ...]


@dataclass
class WeaponRuntimeState:
    """
    Mutable per-weapon state owned by the controller.

    spawned is replaced wholesale after every graph build; anything with a
    `durability` attribute counts as a part.
    """
    durability: float = DURABILITY_MAX
    reload_stage: ReloadStage = ReloadStage.NONE
    magazine_attached: bool = False
    spawned: List = field(default_factory=list)


def clamp_durability(value: float) -> float:
    return min(max(value, DURABILITY_MIN), DURABILITY_MAX)


class FireController:
    """
    Coordinates the chamber, the active magazine and weapon durability.

    Args:
        default_durability_mode: Mode used when get_durability() is asked
            for DurabilityMode.UNSPECIFIED
        retry_failed_rack: When True a RACK_HANDLE step that fails to
            chamber stays in RACK_HANDLE instead of ending the reload
    """

    def __init__(self, default_durability_mode: DurabilityMode = DurabilityMode.AVERAGE,
                 retry_failed_rack: bool = False):
        if default_durability_mode is DurabilityMode.UNSPECIFIED:
            default_durability_mode = DurabilityMode.AVERAGE
        self.default_durability_mode = default_durability_mode
        self.retry_failed_rack = retry_failed_rack

        self.state = WeaponRuntimeState()
        self.magazine: Optional[AmmoBuffer] = None
        self.chamber: Optional[ChamberState] = None
        self.pellets = 1
        self.listeners: List[Callable[[Fired], None]] = []

    def __repr__(self) -> str:
        return (f"FireController(ammo={self.ammo_count}, chambered={self.chambered_rounds}, "
                f"stage={self.state.reload_stage.value}, durability={self.state.durability:.1f})")

    # -------------------------------------------------------------------------
    # Wiring
    # -------------------------------------------------------------------------

    def set_barrel(self, chamber: Optional[ChamberState], pellets: int = 1) -> None:
        """Install (or with None, remove) the barrel's chamber."""
        self.chamber = chamber
        self.pellets = max(1, pellets)

    def set_spawned(self, nodes: Sequence) -> None:
        self.state.spawned = list(nodes)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def ammo_count(self) -> int:
        return self.magazine.count if self.magazine is not None else 0

    @property
    def chambered_rounds(self) -> int:
        return len(self.chamber) if self.chamber is not None else 0

    def is_chambered(self) -> bool:
        return self.chamber is not None and self.chamber.has_round()

    # -------------------------------------------------------------------------
    # Firing
    # -------------------------------------------------------------------------

    def fire(self) -> List[BulletType]:
        """Fire the chambered rounds. Returns [] on a dry fire."""
        return self._fire(allow_chamber=True)

    def _fire(self, allow_chamber: bool) -> List[BulletType]:
        if self.chamber is None:
            logger.warning("  [Weapon] Fire with no barrel")
            return []

        if self.chamber.has_round():
            rounds = self.chamber.take_all()
            self.try_chamber_from_magazine()
            self.modify_durability(-DURABILITY_PER_SHOT)
            event = Fired(tuple(rounds))
            for listener in list(self.listeners):
                listener(event)
            logger.debug(f"  [Weapon] Fired {len(rounds)} round(s), {self.ammo_count} left")
            return rounds

        if allow_chamber and self.try_chamber_from_magazine():
            return self._fire(allow_chamber=False)

        logger.debug("  [Weapon] Dry fire")
        return []

    def try_chamber_from_magazine(self) -> bool:
        """Load one magazine item into the chamber. True if already chambered."""
        if self.chamber is None:
            return False
        if self.chamber.has_round():
            return True
        if self.magazine is None or not self.state.magazine_attached:
            return False

        item = self.magazine.get()
        if item is None:
            logger.debug("  [Magazine] Empty, nothing to chamber")
            return False
        # One shell becomes `pellets` rounds
        self.chamber.set_rounds([item] * self.pellets)
        return True

    # -------------------------------------------------------------------------
    # Reloading
    # -------------------------------------------------------------------------

    def reload_magazine(self, magazine: Optional[AmmoBuffer]) -> None:
        """Swap the active magazine; None removes it."""
        self.magazine = magazine
        self.state.magazine_attached = magazine is not None
        logger.debug(f"  [Magazine] {'Attached ' + repr(magazine) if magazine is not None else 'Removed'}")

    def begin_staged_reload(self) -> ReloadStage:
        """
        Start a staged reload.

        A magazine in the well has to come out first; otherwise go straight
        to inserting one. The chamber does not affect the first step.
        """
        if self.state.magazine_attached:
            stage = ReloadStage.REMOVE_MAGAZINE
        else:
            stage = ReloadStage.INSERT_MAGAZINE
        self.state.reload_stage = stage
        return stage

    def process_stage(self, stage: ReloadStage,
                      new_magazine: Optional[AmmoBuffer] = None) -> ReloadStage:
        """Run one reload step and return the stage it advanced to."""
        if stage is ReloadStage.REMOVE_MAGAZINE:
            self.reload_magazine(None)
            next_stage = ReloadStage.INSERT_MAGAZINE
        elif stage is ReloadStage.INSERT_MAGAZINE:
            if new_magazine is not None:
                self.reload_magazine(new_magazine)
            next_stage = ReloadStage.NONE if self.is_chambered() else ReloadStage.RACK_HANDLE
        elif stage is ReloadStage.RACK_HANDLE:
            if self.try_chamber_from_magazine():
                next_stage = ReloadStage.NONE
            else:
                logger.warning("  [Weapon] Rack handle failed to chamber a round")
                next_stage = ReloadStage.RACK_HANDLE if self.retry_failed_rack else ReloadStage.NONE
        else:
            next_stage = ReloadStage.NONE

        self.state.reload_stage = next_stage
        return next_stage

    def cancel_reload(self) -> None:
        self.state.reload_stage = ReloadStage.NONE

    # -------------------------------------------------------------------------
    # Durability
    # -------------------------------------------------------------------------

    def get_durability(self, mode: DurabilityMode = DurabilityMode.UNSPECIFIED) -> float:
        """
        Aggregate part durability and store it as the weapon durability.

        Returns 0 when no parts are spawned.
        """
        if mode is DurabilityMode.UNSPECIFIED:
            mode = self.default_durability_mode

        values = [part.durability for part in self.state.spawned]
        if not values:
            return 0.0

        if mode is DurabilityMode.MINIMUM:
            result = min(values)
        elif mode is DurabilityMode.MAXIMUM:
            result = max(values)
        else:
            result = sum(values) / len(values)

        self.state.durability = clamp_durability(result)
        return self.state.durability

    def modify_durability(self, delta: float) -> float:
        self.state.durability = clamp_durability(self.state.durability + delta)
        return self.state.durability


__all__ = [
    'ReloadStage',
    'Fired',
    'WeaponRuntimeState',
    'clamp_durability',
    'FireController',
]
