"""
Ammo Buffer - Fixed-capacity FIFO magazine storage and chamber state

Architecture:
    - AmmoBuffer: ring buffer with exact capacity semantics (put/get/remove_many)
    - ChamberState: zero or more rounds waiting to be fired

A full buffer refuses put() and an empty buffer returns None from get();
neither raises. Capacity is fixed at construction.

Usage:
    mag = AmmoBuffer(30)
    mag.fill(BulletType.STANDARD_FMJ)     # 30 rounds
    round_ = mag.get()                    # oldest round first

Author: Weapon Attachment Assembler
"""

from __future__ import annotations

import logging
from typing import Generic, List, Optional, TypeVar

from attachment_types import DEFAULT_MAGAZINE_CAPACITY

logger = logging.getLogger(__name__)

T = TypeVar('T')


class AmmoBuffer(Generic[T]):
    """
    Circular FIFO buffer.

    Storage is a preallocated list of `capacity` cells; `_head` indexes the
    oldest item and `_count` the number held, so the next free cell is
    (_head + _count) % capacity.
    """

    def __init__(self, capacity: int = DEFAULT_MAGAZINE_CAPACITY):
        if capacity < 0:
            raise ValueError(f"Buffer capacity must be non-negative, got {capacity}")
        self._capacity = capacity
        self._cells: List[Optional[T]] = [None] * capacity
        self._head = 0
        self._count = 0

    @classmethod
    def filled(cls, capacity: int, item: T) -> AmmoBuffer[T]:
        """New buffer loaded to capacity with one item type."""
        buffer: AmmoBuffer[T] = cls(capacity)
        buffer.fill(item)
        return buffer

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def count(self) -> int:
        return self._count

    def is_empty(self) -> bool:
        return self._count == 0

    def is_full(self) -> bool:
        return self._count == self._capacity

    def __len__(self) -> int:
        return self._count

    def __repr__(self) -> str:
        return f"AmmoBuffer({self._count}/{self._capacity})"

    def peek(self) -> Optional[T]:
        """Oldest item without removing it."""
        if self._count == 0:
            return None
        return self._cells[self._head]

    def snapshot(self) -> List[T]:
        """Contents oldest-first, without mutation."""
        return [self._cells[(self._head + i) % self._capacity] for i in range(self._count)]

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def put(self, item: T) -> bool:
        """Append an item. Returns False (no mutation) when full."""
        if self._count == self._capacity:
            logger.debug(f"  [Magazine] Full ({self._capacity}), refused {item}")
            return False
        tail = (self._head + self._count) % self._capacity
        self._cells[tail] = item
        self._count += 1
        return True

    def get(self) -> Optional[T]:
        """Remove and return the oldest item, or None when empty."""
        if self._count == 0:
            return None
        item = self._cells[self._head]
        self._cells[self._head] = None
        self._head = (self._head + 1) % self._capacity
        self._count -= 1
        return item

    def remove_many(self, n: int) -> List[T]:
        """
        Drain up to n items, oldest first.

        Best-effort: removes min(n, count) items and returns them. n <= 0
        removes nothing.
        """
        taken: List[T] = []
        for _ in range(min(max(n, 0), self._count)):
            taken.append(self.get())
        return taken

    def fill(self, item: T, n: Optional[int] = None) -> int:
        """
        Put `item` up to n times (default: until full).

        Stops at the first refused put. Returns the number added.
        """
        wanted = self._capacity - self._count if n is None else n
        added = 0
        while added < wanted and self.put(item):
            added += 1
        return added

    def clear(self) -> None:
        self._cells = [None] * self._capacity
        self._head = 0
        self._count = 0


class ChamberState(Generic[T]):
    """
    Rounds in the chamber.

    More than one round models the pellets of a single shotgun shell. The
    absence of a barrel is represented by the owner holding no ChamberState
    at all, which is distinct from an empty chamber.
    """

    def __init__(self):
        self._rounds: List[T] = []

    def set_rounds(self, rounds: List[T]) -> None:
        """Replace the contents; an empty list clears the chamber."""
        self._rounds = list(rounds)

    def clear(self) -> None:
        self._rounds = []

    def has_round(self) -> bool:
        return bool(self._rounds)

    def rounds(self) -> List[T]:
        return list(self._rounds)

    def take_all(self) -> List[T]:
        """Remove and return every chambered round."""
        taken, self._rounds = self._rounds, []
        return taken

    def __len__(self) -> int:
        return len(self._rounds)

    def __repr__(self) -> str:
        return f"ChamberState({len(self._rounds)} round(s))"


__all__ = [
    'AmmoBuffer',
    'ChamberState',
]
