"""
Replication - Authority gate, intent queue and state snapshots

Exactly one participant (the authority) mutates a weapon. Everyone else turns
a mutating call into an Intent on a shared IntentQueue and gets a pending
result back. The authority drains its intents, applies them and publishes a
WeaponStateSnapshot on a SnapshotChannel; observers apply snapshots verbatim
and drop any whose sequence number is not newer than the last one applied.

Architecture:
    - IntentAction / Intent: a forwarded request
    - IntentQueue: FIFO of intents shared by all participants
    - WeaponStateSnapshot: minimal replicated state with a sequence number
    - SnapshotChannel: per-weapon publish / subscribe
    - SnapshotReplica: observer-side copy with stale filtering
    - AuthorityGate: decides whether a call runs locally or is forwarded

Nothing here uses threads; draining and publishing are plain calls.

Author: Weapon Attachment Assembler
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from attachment_types import FailureKind
from fire_controller import ReloadStage

logger = logging.getLogger(__name__)


# =============================================================================
# Intents
# =============================================================================

class IntentAction(Enum):
    BUILD = "build"
    CLEAR = "clear"
    FIRE = "fire"
    RELOAD_MAGAZINE = "reload_magazine"
    BEGIN_STAGED_RELOAD = "begin_staged_reload"
    PROCESS_STAGE = "process_stage"
    CANCEL_RELOAD = "cancel_reload"
    FULL_RELOAD = "full_reload"


@dataclass(frozen=True)
class Intent:
    """A mutation requested by a non-authoritative participant."""
    weapon_id: str
    action: IntentAction
    args: Tuple[Any, ...] = ()
    issued_by: str = ""

    def __repr__(self) -> str:
        return f"Intent({self.weapon_id}.{self.action.value}, args={len(self.args)})"


class IntentQueue:
    """FIFO of intents for any number of weapons."""

    def __init__(self):
        self._intents: Deque[Intent] = deque()

    def submit(self, intent: Intent) -> None:
        self._intents.append(intent)
        logger.debug(f"  [Authority] Queued {intent}")

    def drain(self, weapon_id: Optional[str] = None) -> List[Intent]:
        """Remove and return intents in submission order (optionally for one weapon)."""
        if weapon_id is None:
            drained = list(self._intents)
            self._intents.clear()
            return drained
        drained = [i for i in self._intents if i.weapon_id == weapon_id]
        self._intents = deque(i for i in self._intents if i.weapon_id != weapon_id)
        return drained

    def pending(self, weapon_id: Optional[str] = None) -> int:
        if weapon_id is None:
            return len(self._intents)
        return sum(1 for i in self._intents if i.weapon_id == weapon_id)

    def __len__(self) -> int:
        return len(self._intents)


# =============================================================================
# Snapshots
# =============================================================================

@dataclass(frozen=True)
class WeaponStateSnapshot:
    """The replicated view of one weapon."""
    weapon_id: str
    sequence: int
    ammo_count: int = 0
    chambered_count: int = 0
    reload_stage: ReloadStage = ReloadStage.NONE
    magazine_attached: bool = False
    durability: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'weapon_id': self.weapon_id,
            'sequence': self.sequence,
            'ammo_count': self.ammo_count,
            'chambered_count': self.chambered_count,
            'reload_stage': self.reload_stage.value,
            'magazine_attached': self.magazine_attached,
            'durability': self.durability,
        }


SnapshotListener = Callable[[WeaponStateSnapshot], None]


class SnapshotChannel:
    """Per-weapon broadcast of snapshots. Remembers the latest one per weapon."""

    def __init__(self):
        self._subscribers: Dict[str, List[SnapshotListener]] = {}
        self._latest: Dict[str, WeaponStateSnapshot] = {}

    def subscribe(self, weapon_id: str, listener: SnapshotListener) -> None:
        self._subscribers.setdefault(weapon_id, []).append(listener)

    def unsubscribe(self, weapon_id: str, listener: SnapshotListener) -> None:
        listeners = self._subscribers.get(weapon_id, [])
        if listener in listeners:
            listeners.remove(listener)

    def publish(self, snapshot: WeaponStateSnapshot) -> None:
        self._latest[snapshot.weapon_id] = snapshot
        for listener in list(self._subscribers.get(snapshot.weapon_id, [])):
            listener(snapshot)

    def latest(self, weapon_id: str) -> Optional[WeaponStateSnapshot]:
        return self._latest.get(weapon_id)


@dataclass
class SnapshotReplica:
    """Observer-side state, applied verbatim from snapshots."""
    weapon_id: str
    current: Optional[WeaponStateSnapshot] = None
    applied: int = 0
    dropped: int = 0

    def apply(self, snapshot: WeaponStateSnapshot) -> bool:
        """Take the snapshot unless it is for another weapon or not newer."""
        if snapshot.weapon_id != self.weapon_id:
            return False
        if self.current is not None and snapshot.sequence <= self.current.sequence:
            self.dropped += 1
            logger.debug(f"  [Authority] Stale snapshot {snapshot.sequence} for {self.weapon_id} "
                         f"(have {self.current.sequence})")
            return False
        self.current = snapshot
        self.applied += 1
        return True


# =============================================================================
# Authority
# =============================================================================

@dataclass
class AuthorityGate:
    """
    Routes mutating calls.

    allow() returns True on the authority. On anyone else it queues the
    intent, records an AUTHORITY_VIOLATION and returns False; the caller
    reports a pending result.
    """
    weapon_id: str
    is_authority: bool = True
    queue: IntentQueue = field(default_factory=IntentQueue)
    participant: str = "local"
    forwarded: int = 0
    last_failure: Optional[FailureKind] = None

    def allow(self, action: IntentAction, *args: Any) -> bool:
        if self.is_authority:
            return True
        self.queue.submit(Intent(self.weapon_id, action, tuple(args), self.participant))
        self.forwarded += 1
        self.last_failure = FailureKind.AUTHORITY_VIOLATION
        logger.info(f"  [Authority] {self.participant} forwarded {action.value} on {self.weapon_id}")
        return False


__all__ = [
    'IntentAction',
    'Intent',
    'IntentQueue',
    'WeaponStateSnapshot',
    'SnapshotListener',
    'SnapshotChannel',
    'SnapshotReplica',
    'AuthorityGate',
]
