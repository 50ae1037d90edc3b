"""
Weapon Stats - Aggregate part stat modifiers into final weapon stats

Per stat:
    - OVERRIDE: the last override applied replaces everything else
    - otherwise: (base + sum(FLAT)) * product(PERCENTAGE)

Stats with no base value start at 0.

Author: Weapon Attachment Assembler
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from attachment_types import StatModifier, StatModType, WeaponStat

logger = logging.getLogger(__name__)


def collect_modifiers(parts: Iterable) -> List[StatModifier]:
    """Modifiers of every part, in part order. Parts expose .template.modifiers."""
    modifiers: List[StatModifier] = []
    for part in parts:
        modifiers.extend(part.template.modifiers)
    return modifiers


def compute_weapon_stats(base: Mapping[WeaponStat, float],
                         modifiers: Iterable[StatModifier]) -> Dict[WeaponStat, float]:
    """
    Apply modifiers on top of base stats.

    Returns a dict holding every stat that has a base value or a modifier.
    """
    flat: Dict[WeaponStat, float] = {}
    factor: Dict[WeaponStat, float] = {}
    override: Dict[WeaponStat, float] = {}

    for mod in modifiers:
        if mod.mod_type is StatModType.FLAT:
            flat[mod.stat] = flat.get(mod.stat, 0.0) + mod.value
        elif mod.mod_type is StatModType.PERCENTAGE:
            factor[mod.stat] = factor.get(mod.stat, 1.0) * mod.value
        elif mod.mod_type is StatModType.OVERRIDE:
            override[mod.stat] = mod.value

    stats: Dict[WeaponStat, float] = {}
    for stat in WeaponStat:
        touched = stat in base or stat in flat or stat in factor or stat in override
        if not touched:
            continue
        if stat in override:
            stats[stat] = override[stat]
            continue
        stats[stat] = (base.get(stat, 0.0) + flat.get(stat, 0.0)) * factor.get(stat, 1.0)

    logger.debug(f"  [Weapon] Stats from {len(base)} base value(s): "
                 f"{len(flat)} flat, {len(factor)} percentage, {len(override)} override")
    return stats


def parse_base_stats(raw: Optional[Mapping[str, float]]) -> Dict[WeaponStat, float]:
    """Read {"ergonomics": 50, ...}; unknown names and non-numeric values are skipped with a warning."""
    stats: Dict[WeaponStat, float] = {}
    for name, value in (raw or {}).items():
        try:
            stat = WeaponStat(str(name).lower())
        except ValueError:
            logger.warning(f"  [Weapon] Unknown base stat '{name}', ignored")
            continue
        try:
            stats[stat] = float(value)
        except (TypeError, ValueError):
            logger.warning(f"  [Weapon] Non-numeric value {value!r} for base stat '{name}', ignored")
    return stats


def format_stats(stats: Mapping[WeaponStat, float]) -> str:
    width = max((len(s.value) for s in stats), default=0)
    return '\n'.join(f"{stat.value:<{width}}  {value:10.2f}" for stat, value in stats.items())


__all__ = [
    'collect_modifiers',
    'compute_weapon_stats',
    'parse_base_stats',
    'format_stats',
]
