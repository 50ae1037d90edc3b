"""
Weapon Assembly - Top-level weapon facade, configuration and CLI

Wires the attachment graph, the fire controller and the authority gate for
one weapon, and exposes build / clear / fire / reload operations. On the
authority every mutation runs locally and a state snapshot is published;
elsewhere the call is queued as an intent and answered with a pending
result, while reads come from the last applied snapshot.

Architecture:
    - SpareMagazine / WeaponConfig: JSON configuration (comments allowed)
    - WeaponAssembly: facade over AttachmentGraph + FireController + replication
    - main(): `weapon-assembly build|fire|stats` command line

Usage:
    catalog = PartCatalog.from_file("configs/example_catalog.json")
    config = WeaponConfig.from_file("configs/example_weapon.json")
    weapon = WeaponAssembly("ak-01", catalog, config)
    weapon.build()
    weapon.fire()

    # Remote participant sharing the queue and channel
    remote = WeaponAssembly("ak-01", catalog, config, is_authority=False,
                            queue=weapon.gate.queue, channel=weapon.channel)
    remote.fire()            # queued
    weapon.apply_intents()   # applied on the authority, snapshot published

Author: Weapon Attachment Assembler
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from ammo_buffer import AmmoBuffer
from attachment_graph import (
    AttachmentGraph,
    AttachmentNode,
    BuildReport,
    BuildStrategy,
    GraphBuilt,
    SocketProbe,
    TemplateCatalog,
    mesh_has_socket,
)
from attachment_types import (
    DEFAULT_MAGAZINE_CAPACITY,
    DEFAULT_RAIL_SEARCH_STEP,
    OVERLAP_INFLATION,
    AttachmentSystemError,
    BulletType,
    ConfigFormatError,
    DurabilityMode,
    MagazineType,
    WeaponStat,
)
from fire_controller import FireController, ReloadStage
from mount_geometry import BoxOverlapWorld, OverlapPredicate
from part_catalog import PartCatalog, load_json_with_comments
from rail_slots import format_mask
from replication import (
    AuthorityGate,
    Intent,
    IntentAction,
    IntentQueue,
    SnapshotChannel,
    SnapshotReplica,
    WeaponStateSnapshot,
)
from weapon_stats import collect_modifiers, compute_weapon_stats, format_stats, parse_base_stats

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class SpareMagazine:
    """Magazine handed to the weapon by reloads (CLI and scripted reloads)."""
    capacity: int = DEFAULT_MAGAZINE_CAPACITY
    bullet: BulletType = BulletType.STANDARD_FMJ
    magazine_type: Optional[MagazineType] = None

    def make(self) -> AmmoBuffer:
        capacity = self.magazine_type.capacity if self.magazine_type else self.capacity
        return AmmoBuffer.filled(capacity, self.bullet)


@dataclass
class WeaponConfig:
    """
    Per-weapon settings.

    Attributes:
        root_parts: Template ids mounted at the weapon mount point
        default_durability_mode: Used when durability is asked for UNSPECIFIED
        rail_search_step: Distance step of the rail placement sweep
        retry_failed_rack: Keep RACK_HANDLE after a failed rack instead of ending the reload
        base_stats: Stats of the bare weapon before part modifiers
        spare_magazine: Magazine used by reloads, None for no spare
        catalog_file: Part catalog path (relative paths resolve against the config file)
        overlap_inflation: Scale applied to candidate bounds in overlap tests
    """
    root_parts: List[str] = field(default_factory=list)
    default_durability_mode: DurabilityMode = DurabilityMode.AVERAGE
    rail_search_step: float = DEFAULT_RAIL_SEARCH_STEP
    retry_failed_rack: bool = False
    base_stats: Dict[WeaponStat, float] = field(default_factory=dict)
    spare_magazine: Optional[SpareMagazine] = field(default_factory=SpareMagazine)
    catalog_file: Optional[Path] = None
    overlap_inflation: float = OVERLAP_INFLATION

    @classmethod
    def defaults(cls) -> WeaponConfig:
        return cls()

    @classmethod
    def from_file(cls, path: Union[Path, str]) -> WeaponConfig:
        """Load a config from JSON (with comment support)."""
        path = Path(path)
        data = load_json_with_comments(path, ConfigFormatError)
        config = cls.from_dict(data, source=str(path))
        if config.catalog_file is not None and not config.catalog_file.is_absolute():
            config.catalog_file = path.parent / config.catalog_file
        return config

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: str = "<memory>") -> WeaponConfig:
        roots = data.get("root_parts", [])
        if isinstance(roots, str):
            roots = [roots]
        if not isinstance(roots, list):
            raise ConfigFormatError(source, "'root_parts' must be a list of part ids")

        mode_str = str(data.get("default_durability_mode", "average"))
        try:
            mode = DurabilityMode(mode_str.lower())
        except ValueError:
            logger.warning(f"Unknown durability mode '{mode_str}', using AVERAGE")
            mode = DurabilityMode.AVERAGE

        try:
            step = float(data.get("rail_search_step", DEFAULT_RAIL_SEARCH_STEP))
            inflation = float(data.get("overlap_inflation", OVERLAP_INFLATION))
        except (TypeError, ValueError) as e:
            raise ConfigFormatError(source, f"numeric setting expected ({e})") from e
        if step <= 0:
            logger.warning(f"Non-positive rail_search_step {step}, using {DEFAULT_RAIL_SEARCH_STEP}")
            step = DEFAULT_RAIL_SEARCH_STEP

        spare = SpareMagazine()
        if "spare_magazine" in data:
            spare = cls._parse_spare(data["spare_magazine"], source)

        base_stats = data.get("base_stats")
        if base_stats is not None and not isinstance(base_stats, dict):
            raise ConfigFormatError(source, "'base_stats' must be an object")

        catalog = data.get("catalog")
        return cls(
            root_parts=[str(r) for r in roots],
            default_durability_mode=mode,
            rail_search_step=step,
            retry_failed_rack=bool(data.get("retry_failed_rack", False)),
            base_stats=parse_base_stats(base_stats),
            spare_magazine=spare,
            catalog_file=Path(catalog) if catalog else None,
            overlap_inflation=inflation,
        )

    @staticmethod
    def _parse_spare(raw: Any, source: str) -> Optional[SpareMagazine]:
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise ConfigFormatError(source, "'spare_magazine' must be an object or null")

        bullet_str = str(raw.get("bullet", "standard_fmj"))
        try:
            bullet = BulletType(bullet_str.lower())
        except ValueError:
            logger.warning(f"Unknown bullet type '{bullet_str}', using STANDARD_FMJ")
            bullet = BulletType.STANDARD_FMJ

        mag_type = None
        if raw.get("type"):
            try:
                mag_type = MagazineType(str(raw["type"]).lower())
            except ValueError:
                logger.warning(f"Unknown magazine type '{raw['type']}', using capacity")

        try:
            capacity = int(raw.get("capacity", DEFAULT_MAGAZINE_CAPACITY))
        except (TypeError, ValueError) as e:
            raise ConfigFormatError(source, f"'spare_magazine.capacity' must be a number ({e})") from e

        return SpareMagazine(
            capacity=capacity,
            bullet=bullet,
            magazine_type=mag_type,
        )


# =============================================================================
# Weapon Facade
# =============================================================================

class WeaponAssembly:
    """
    One weapon: graph, controller, authority gate and snapshot channel.

    On a non-authoritative assembly mutating calls return pending values:
    build() a pending BuildReport, fire() an empty list, stage calls the
    last replicated stage.
    """

    def __init__(self, weapon_id: str, catalog: TemplateCatalog,
                 config: Optional[WeaponConfig] = None,
                 is_authority: bool = True,
                 queue: Optional[IntentQueue] = None,
                 channel: Optional[SnapshotChannel] = None,
                 overlap: Optional[OverlapPredicate] = None,
                 socket_probe: SocketProbe = mesh_has_socket,
                 strategy: Optional[BuildStrategy] = None,
                 participant: str = "local"):
        self.weapon_id = weapon_id
        self.config = config or WeaponConfig.defaults()

        self.graph = AttachmentGraph(
            catalog,
            socket_probe=socket_probe,
            overlap=overlap if overlap is not None else BoxOverlapWorld(self.config.overlap_inflation),
            search_step=self.config.rail_search_step,
            strategy=strategy,
        )
        self.controller = FireController(self.config.default_durability_mode,
                                         self.config.retry_failed_rack)
        self.gate = AuthorityGate(weapon_id, is_authority,
                                  queue if queue is not None else IntentQueue(), participant)
        self.channel = channel if channel is not None else SnapshotChannel()
        self.replica = SnapshotReplica(weapon_id)
        self._sequence = 0

        self.magazine_node: Optional[AttachmentNode] = None
        self.barrel_node: Optional[AttachmentNode] = None

        self.graph.listeners.append(self._on_graph_built)
        if not is_authority:
            self.channel.subscribe(weapon_id, self.replica.apply)

    def __repr__(self) -> str:
        role = "authority" if self.is_authority else "observer"
        return f"WeaponAssembly({self.weapon_id}, {role}, parts={len(self.graph.spawned)})"

    @property
    def is_authority(self) -> bool:
        return self.gate.is_authority

    # -------------------------------------------------------------------------
    # Graph
    # -------------------------------------------------------------------------

    def build(self, root_ids: Optional[Sequence[str]] = None) -> BuildReport:
        roots = list(root_ids) if root_ids is not None else list(self.config.root_parts)
        if not self.gate.allow(IntentAction.BUILD, tuple(roots)):
            return BuildReport(pending=True)
        report = self.graph.build(roots)
        self._publish()
        return report

    def clear(self) -> None:
        if not self.gate.allow(IntentAction.CLEAR):
            return
        self.graph.clear()
        self.magazine_node = None
        self.barrel_node = None
        self.controller.set_spawned([])
        self.controller.reload_magazine(None)
        self.controller.set_barrel(None)
        self._publish()

    def _on_graph_built(self, event: GraphBuilt) -> None:
        """Index the first magazine-like and barrel-like parts and wire them in."""
        self.magazine_node = next((n for n in event.spawned if n.magazine is not None), None)
        self.barrel_node = next((n for n in event.spawned if n.chamber is not None), None)

        self.controller.set_spawned(event.spawned)
        self.controller.reload_magazine(self.magazine_node.magazine if self.magazine_node else None)
        if self.barrel_node is not None:
            self.controller.set_barrel(self.barrel_node.chamber, self.barrel_node.pellets)
        else:
            self.controller.set_barrel(None)
        self.controller.cancel_reload()
        self.controller.get_durability()

        logger.info(f"  [Weapon] {self.weapon_id}: {len(event.spawned)} part(s), "
                    f"magazine={'yes' if self.magazine_node else 'no'}, "
                    f"barrel={'yes' if self.barrel_node else 'no'}")

    # -------------------------------------------------------------------------
    # Firing & Reloading
    # -------------------------------------------------------------------------

    def fire(self) -> List[BulletType]:
        if not self.gate.allow(IntentAction.FIRE):
            return []
        rounds = self.controller.fire()
        self._publish()
        return rounds

    def reload_magazine(self, magazine: Optional[AmmoBuffer]) -> None:
        if not self.gate.allow(IntentAction.RELOAD_MAGAZINE, magazine):
            return
        self.controller.reload_magazine(magazine)
        self._publish()

    def begin_staged_reload(self) -> ReloadStage:
        if not self.gate.allow(IntentAction.BEGIN_STAGED_RELOAD):
            return self.reload_stage
        stage = self.controller.begin_staged_reload()
        self._publish()
        return stage

    def process_stage(self, stage: ReloadStage,
                      new_magazine: Optional[AmmoBuffer] = None) -> ReloadStage:
        if not self.gate.allow(IntentAction.PROCESS_STAGE, stage, new_magazine):
            return self.reload_stage
        next_stage = self.controller.process_stage(stage, new_magazine)
        self._publish()
        return next_stage

    def cancel_reload(self) -> None:
        if not self.gate.allow(IntentAction.CANCEL_RELOAD):
            return
        self.controller.cancel_reload()
        self._publish()

    def full_reload(self, magazine: Optional[AmmoBuffer] = None) -> ReloadStage:
        """
        Run the staged reload to completion with `magazine` (default: a spare).

        On an observer the whole reload is forwarded as one intent and the
        last replicated stage is returned.
        """
        if magazine is None and self.config.spare_magazine is not None:
            magazine = self.config.spare_magazine.make()
        if not self.gate.allow(IntentAction.FULL_RELOAD, magazine):
            return self.reload_stage
        stage = self.begin_staged_reload()
        for _ in range(len(ReloadStage)):
            if stage is ReloadStage.NONE:
                break
            stage = self.process_stage(stage, magazine if stage is ReloadStage.INSERT_MAGAZINE else None)
        return stage

    # -------------------------------------------------------------------------
    # Durability & Stats
    # -------------------------------------------------------------------------

    def get_durability(self, mode: DurabilityMode = DurabilityMode.UNSPECIFIED) -> float:
        if not self.is_authority:
            return self.durability
        value = self.controller.get_durability(mode)
        self._publish()
        return value

    def stats(self) -> Dict[WeaponStat, float]:
        return compute_weapon_stats(self.config.base_stats,
                                    collect_modifiers(self.graph.spawned_nodes()))

    # -------------------------------------------------------------------------
    # Replicated View
    # -------------------------------------------------------------------------

    def snapshot(self) -> WeaponStateSnapshot:
        """Current authoritative state, or the last applied snapshot on observers."""
        if self.is_authority:
            state = self.controller.state
            return WeaponStateSnapshot(
                weapon_id=self.weapon_id,
                sequence=self._sequence,
                ammo_count=self.controller.ammo_count,
                chambered_count=self.controller.chambered_rounds,
                reload_stage=state.reload_stage,
                magazine_attached=state.magazine_attached,
                durability=state.durability,
            )
        if self.replica.current is not None:
            return self.replica.current
        return WeaponStateSnapshot(weapon_id=self.weapon_id, sequence=0)

    @property
    def ammo_count(self) -> int:
        return self.snapshot().ammo_count

    @property
    def reload_stage(self) -> ReloadStage:
        return self.snapshot().reload_stage

    @property
    def magazine_attached(self) -> bool:
        return self.snapshot().magazine_attached

    @property
    def durability(self) -> float:
        return self.snapshot().durability

    def _publish(self) -> None:
        self._sequence += 1
        self.channel.publish(self.snapshot())

    def apply_intents(self) -> int:
        """Drain and apply this weapon's queued intents. Authority only."""
        if not self.is_authority:
            return 0
        intents = self.gate.queue.drain(self.weapon_id)
        for intent in intents:
            self._apply(intent)
        if intents:
            logger.info(f"  [Authority] Applied {len(intents)} intent(s) to {self.weapon_id}")
        return len(intents)

    def _apply(self, intent: Intent) -> None:
        action = intent.action
        if action is IntentAction.BUILD:
            self.build(*intent.args)
        elif action is IntentAction.CLEAR:
            self.clear()
        elif action is IntentAction.FIRE:
            self.fire()
        elif action is IntentAction.RELOAD_MAGAZINE:
            self.reload_magazine(*intent.args)
        elif action is IntentAction.BEGIN_STAGED_RELOAD:
            self.begin_staged_reload()
        elif action is IntentAction.PROCESS_STAGE:
            self.process_stage(*intent.args)
        elif action is IntentAction.CANCEL_RELOAD:
            self.cancel_reload()
        elif action is IntentAction.FULL_RELOAD:
            self.full_reload(*intent.args)

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def describe_tree(self) -> List[str]:
        lines = []
        for depth, node in self.graph.iter_tree():
            label = node.template.display_name or node.template_id
            extra = ""
            parent = self.graph.parent_of(node.handle)
            if parent is not None and parent.rail is not None and node.handle in parent.rail.mounted:
                extra = f" @slot {node.start_slot}"
            if node.rail is not None:
                extra += f" [{format_mask(node.rail.mask, node.rail.num_slots)}]"
            if node.magazine is not None:
                extra += f" ({node.magazine.count}/{node.magazine.capacity})"
            lines.append(f"{'  ' * depth}- {label} <{node.category.value}>{extra}")
        return lines


# =============================================================================
# CLI
# =============================================================================

def _load(args: argparse.Namespace) -> WeaponAssembly:
    config = WeaponConfig.from_file(args.config) if args.config else WeaponConfig.defaults()
    catalog_path = args.catalog or config.catalog_file
    if catalog_path is None:
        raise ConfigFormatError(str(args.config or "<defaults>"), "no part catalog given (--catalog)")
    catalog = PartCatalog.from_file(catalog_path)
    if args.root:
        config.root_parts = list(args.root)
    weapon = WeaponAssembly(args.weapon_id, catalog, config)
    report = weapon.build()
    for rejection in report.rejections:
        print(f"  ! {rejection.template_id}: {rejection.kind.value} - {rejection.reason}")
    print(report.summary())
    return weapon


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Assemble modular weapons from a part catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Build and print the part tree
  weapon-assembly build --config configs/example_weapon.json

  # Build, then fire 40 shots reloading from the spare magazine
  weapon-assembly fire --config configs/example_weapon.json --shots 40 --reload

  # Print aggregated stats
  weapon-assembly stats --catalog configs/example_catalog.json --root ak_receiver
        """
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=Path, help="Weapon config JSON")
    common.add_argument("--catalog", type=Path, help="Part catalog JSON (overrides config)")
    common.add_argument("--root", action="append", help="Root part id (repeatable, overrides config)")
    common.add_argument("--weapon-id", default="weapon", help="Weapon identifier")
    common.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    subparsers.add_parser("build", parents=[common], help="Build and print the part tree")
    fire_parser = subparsers.add_parser("fire", parents=[common], help="Build, then fire")
    fire_parser.add_argument("--shots", type=int, default=5, help="Number of trigger pulls")
    fire_parser.add_argument("--reload", action="store_true", help="Reload from the spare magazine when empty")
    subparsers.add_parser("stats", parents=[common], help="Print aggregated weapon stats")

    args = parser.parse_args(argv)

    log_level = logging.DEBUG if getattr(args, 'verbose', False) else logging.INFO
    logging.basicConfig(level=log_level, format="%(message)s")

    if not args.command:
        parser.print_help()
        return 1

    try:
        weapon = _load(args)

        if args.command == "build":
            print()
            for line in weapon.describe_tree():
                print(line)
            print(f"\nDurability: {weapon.durability:.1f}")
            return 0

        elif args.command == "fire":
            for shot in range(1, args.shots + 1):
                rounds = weapon.fire()
                if not rounds and args.reload and weapon.config.spare_magazine is not None:
                    print(f"  #{shot}: click - reloading")
                    weapon.full_reload()
                    rounds = weapon.fire()
                names = ', '.join(r.display_name for r in rounds) if rounds else "click"
                print(f"  #{shot}: {names}")
            print(f"\n{weapon.snapshot().to_dict()}")
            return 0

        elif args.command == "stats":
            stats = weapon.stats()
            print()
            print(format_stats(stats) if stats else "(no stats)")
            return 0

    except AttachmentSystemError as e:
        print(f"Error: {e}")
        return 1
    except Exception as e:
        print(f"Error: {e}")
        logger.exception("Unexpected error")
        return 1

    return 1


__all__ = [
    'SpareMagazine',
    'WeaponConfig',
    'WeaponAssembly',
    'main',
]


if __name__ == "__main__":
    exit(main())
