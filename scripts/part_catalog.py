"""
Part Catalog - JSON part table loader

Reads attachment templates from a JSON file that may contain // and /* */
comments. The loaded catalog is the template lookup the attachment graph
consumes (get(template_id) -> template or None).

File format:
    {
        "parts": {
            "ak_receiver": {
                "category": "UpperReceiver",
                "mesh": {"name": "SK_AK", "sockets": ["Barrel", "Magazine"],
                         "extents": [10, 2, 3]},
                "links": [{"children": ["ak_barrel"], "offset": {"location": [20, 0, 1]}}],
                "modifiers": [{"stat": "ergonomics", "type": "flat", "value": 5}]
            },
            "ak_barrel": {"category": "Barrel", "kind": "barrel", ...}
        }
    }

A part may name another with "extends"; its keys are laid over the base
part's keys (nested objects are replaced, not merged). "abstract" parts are
loadable bases that the graph refuses to spawn.

Author: Weapon Attachment Assembler
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Set, Union

from attachment_types import (
    DEFAULT_MAGAZINE_CAPACITY,
    DEFAULT_RAIL_SLOTS,
    DEFAULT_SLOT_SPACING,
    DURABILITY_MAX,
    AttachmentCategory,
    AttachmentTemplate,
    BarrelSpec,
    BulletType,
    CatalogFormatError,
    LinkSpec,
    MagazineSpec,
    MagazineType,
    MeshHandle,
    PartKind,
    RailSpec,
    StatModifier,
    StatModType,
    WeaponStat,
)
from mount_geometry import Transform, Vec3

logger = logging.getLogger(__name__)


# =============================================================================
# Comment Stripping
# =============================================================================

def strip_json_comments(content: str) -> str:
    """
    Remove // line comments and /* */ block comments.

    URL schemes are protected with placeholders first so "https://..." in a
    string value is not cut.
    """
    content = content.replace('https://', '<<<HTTPS_SCHEME>>>')
    content = content.replace('http://', '<<<HTTP_SCHEME>>>')
    content = content.replace('file://', '<<<FILE_SCHEME>>>')

    content = re.sub(r'(?<!/)/\*[\s\S]*?\*/', '', content, flags=re.DOTALL)
    content = re.sub(r'//.*$', '', content, flags=re.MULTILINE)

    content = content.replace('<<<HTTPS_SCHEME>>>', 'https://')
    content = content.replace('<<<HTTP_SCHEME>>>', 'http://')
    content = content.replace('<<<FILE_SCHEME>>>', 'file://')
    return content


def load_json_with_comments(path: Path, error_cls: type) -> Dict[str, Any]:
    """Read a commented JSON object; raise error_cls(source, reason) on failure."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            content = f.read()
    except OSError as e:
        raise error_cls(str(path), f"cannot read file ({e})") from e

    try:
        data = json.loads(strip_json_comments(content))
    except json.JSONDecodeError as e:
        raise error_cls(str(path), f"invalid JSON at line {e.lineno}: {e.msg}") from e

    if not isinstance(data, dict):
        raise error_cls(str(path), "top level must be an object")
    return data


# =============================================================================
# Field Parsers
# =============================================================================

def _vec3(value: Any, source: str, where: str) -> Vec3:
    try:
        return Vec3.from_list(value)
    except (TypeError, ValueError) as e:
        raise CatalogFormatError(source, f"{where}: expected [x, y, z] ({e})") from e


def _number(conv: Callable[[Any], Any], value: Any, source: str, where: str):
    """int() / float() a field, reporting bad values as a format error."""
    if isinstance(value, bool):
        raise CatalogFormatError(source, f"{where}: expected a number, got {value!r}")
    try:
        return conv(value)
    except (TypeError, ValueError):
        raise CatalogFormatError(source, f"{where}: expected a number, got {value!r}") from None


def _object(value: Any, source: str, where: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise CatalogFormatError(source, f"{where}: expected an object, got {type(value).__name__}")
    return value


def _objects(value: Any, source: str, where: str) -> List[Mapping[str, Any]]:
    if not isinstance(value, list):
        raise CatalogFormatError(source, f"{where}: expected a list, got {type(value).__name__}")
    return [_object(item, source, f"{where}[{i}]") for i, item in enumerate(value)]


def _names(value: Any, source: str, where: str) -> List[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise CatalogFormatError(source, f"{where}: expected a list of names, got {type(value).__name__}")
    return [str(item) for item in value]


def _transform(raw: Any, source: str, where: str) -> Transform:
    if not raw:
        return Transform.identity()
    raw = _object(raw, source, where)
    location = _vec3(raw.get("location", [0, 0, 0]), source, f"{where}.location")
    return Transform(location=location,
                     yaw=_number(float, raw.get("yaw", 0.0), source, f"{where}.yaw"),
                     scale=_number(float, raw.get("scale", 1.0), source, f"{where}.scale"))


def _enum(enum_cls: type, value: Any, source: str, where: str):
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        raise CatalogFormatError(source, f"{where}: unknown {enum_cls.__name__} '{value}'") from None


def parse_template(template_id: str, raw: Mapping[str, Any], source: str = "<memory>") -> AttachmentTemplate:
    """
    Build one template from its (already inheritance-resolved) JSON object.

    Any field of the wrong shape (an object that is not one, a number that
    does not parse) raises CatalogFormatError naming the part and field.
    """
    where = f"part '{template_id}'"
    if "category" not in raw:
        raise CatalogFormatError(source, f"{where} has no category")
    try:
        category = AttachmentCategory.parse(str(raw["category"]))
    except ValueError as e:
        raise CatalogFormatError(source, f"{where}: {e}") from None

    kind = _enum(PartKind, raw.get("kind", "generic"), source, f"{where}.kind")

    mesh = None
    if raw.get("mesh") is not None:
        mesh_raw = _object(raw["mesh"], source, f"{where}.mesh")
        mesh = MeshHandle(
            name=str(mesh_raw.get("name", template_id)),
            sockets=frozenset(_names(mesh_raw.get("sockets", []), source, f"{where}.mesh.sockets")),
            extents=_vec3(mesh_raw.get("extents", [1, 1, 1]), source, f"{where}.mesh.extents"),
        )

    modifiers = tuple(
        StatModifier(
            stat=_enum(WeaponStat, m.get("stat"), source, f"{where}.modifiers[{i}].stat"),
            mod_type=_enum(StatModType, m.get("type", "flat"), source, f"{where}.modifiers[{i}].type"),
            value=_number(float, m.get("value", 0.0), source, f"{where}.modifiers[{i}].value"),
        )
        for i, m in enumerate(_objects(raw.get("modifiers", []), source, f"{where}.modifiers"))
    )

    links = []
    for i, link in enumerate(_objects(raw.get("links", []), source, f"{where}.links")):
        links.append(LinkSpec(
            child_ids=tuple(_names(link.get("children", []), source, f"{where}.links[{i}].children")),
            offset=_transform(link.get("offset"), source, f"{where}.links[{i}].offset"),
            start_slot=_number(int, link.get("start_slot", 0), source, f"{where}.links[{i}].start_slot"),
        ))

    rail = None
    if raw.get("rail") is not None:
        rail_raw = _object(raw["rail"], source, f"{where}.rail")
        path = rail_raw.get("path", [])
        if not isinstance(path, list):
            raise CatalogFormatError(source, f"{where}.rail.path: expected a list of points")
        rail = RailSpec(
            num_slots=_number(int, rail_raw.get("num_slots", DEFAULT_RAIL_SLOTS), source, f"{where}.rail.num_slots"),
            slot_spacing=_number(float, rail_raw.get("slot_spacing", DEFAULT_SLOT_SPACING),
                                 source, f"{where}.rail.slot_spacing"),
            path=tuple(_vec3(p, source, f"{where}.rail.path") for p in path),
        )

    magazine = None
    if raw.get("magazine") is not None:
        mag_raw = _object(raw["magazine"], source, f"{where}.magazine")
        mag_type = None
        if mag_raw.get("type"):
            mag_type = _enum(MagazineType, mag_raw["type"], source, f"{where}.magazine.type")
        if mag_type:
            capacity = mag_type.capacity
        else:
            capacity = _number(int, mag_raw.get("capacity", DEFAULT_MAGAZINE_CAPACITY),
                               source, f"{where}.magazine.capacity")
        magazine = MagazineSpec(
            capacity=capacity,
            preload=_enum(BulletType, mag_raw.get("preload", "none"), source, f"{where}.magazine.preload"),
            magazine_type=mag_type,
        )

    barrel = None
    if raw.get("barrel") is not None:
        barrel_raw = _object(raw["barrel"], source, f"{where}.barrel")
        barrel = BarrelSpec(pellets=_number(int, barrel_raw.get("pellets", 1), source, f"{where}.barrel.pellets"))

    return AttachmentTemplate(
        template_id=template_id,
        category=category,
        kind=kind,
        mesh=mesh,
        size=_number(int, raw.get("size", 1), source, f"{where}.size"),
        start_slot=_number(int, raw.get("start_slot", 0), source, f"{where}.start_slot"),
        use_rail=bool(raw.get("use_rail", False)),
        durability=_number(float, raw.get("durability", DURABILITY_MAX), source, f"{where}.durability"),
        modifiers=modifiers,
        links=tuple(links),
        display_name=str(raw.get("display_name", "")),
        description=str(raw.get("description", "")),
        rail=rail,
        magazine=magazine,
        barrel=barrel,
        abstract=bool(raw.get("abstract", False)),
    )


# =============================================================================
# Catalog
# =============================================================================

class PartCatalog:
    """Template table keyed by template id."""

    def __init__(self, templates: Optional[Mapping[str, AttachmentTemplate]] = None,
                 source: str = "<memory>"):
        self._templates: Dict[str, AttachmentTemplate] = dict(templates or {})
        self.source = source

    @classmethod
    def from_file(cls, path: Union[Path, str]) -> PartCatalog:
        path = Path(path)
        data = load_json_with_comments(path, CatalogFormatError)
        catalog = cls.from_dict(data, source=str(path))
        logger.info(f"  [Catalog] Loaded {len(catalog)} part(s) from {path.name}")
        return catalog

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], source: str = "<memory>") -> PartCatalog:
        parts = data.get("parts")
        if not isinstance(parts, dict):
            raise CatalogFormatError(source, "missing 'parts' object")

        resolved: Dict[str, Dict[str, Any]] = {}
        for part_id in parts:
            resolved[part_id] = cls._resolve(part_id, parts, source, set())

        templates = {part_id: parse_template(part_id, raw, source) for part_id, raw in resolved.items()}
        return cls(templates, source=source)

    @staticmethod
    def _resolve(part_id: str, parts: Mapping[str, Any], source: str, seen: Set[str]) -> Dict[str, Any]:
        """Flatten the "extends" chain of a part."""
        if part_id in seen:
            raise CatalogFormatError(source, f"'extends' cycle through '{part_id}'")
        seen.add(part_id)

        raw = parts.get(part_id)
        if not isinstance(raw, dict):
            raise CatalogFormatError(source, f"part '{part_id}' must be an object")

        base_id = raw.get("extends")
        if base_id is None:
            merged = {}
        elif base_id not in parts:
            raise CatalogFormatError(source, f"part '{part_id}' extends unknown part '{base_id}'")
        else:
            merged = PartCatalog._resolve(base_id, parts, source, seen)
            # Abstractness is not inherited
            merged.pop("abstract", None)

        merged.update({k: v for k, v in raw.items() if k != "extends"})
        return merged

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get(self, template_id: str) -> Optional[AttachmentTemplate]:
        return self._templates.get(template_id)

    def add(self, template: AttachmentTemplate) -> None:
        if template.template_id in self._templates:
            logger.debug(f"  [Catalog] Replacing {template.template_id}")
        self._templates[template.template_id] = template

    def ids(self) -> List[str]:
        return sorted(self._templates)

    def by_category(self, category: AttachmentCategory) -> List[AttachmentTemplate]:
        return [t for t in self._templates.values() if t.category is category]

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)

    def __iter__(self) -> Iterator[AttachmentTemplate]:
        return iter(self._templates.values())

    def __repr__(self) -> str:
        return f"PartCatalog({len(self)} parts from {self.source})"


__all__ = [
    'strip_json_comments',
    'load_json_with_comments',
    'parse_template',
    'PartCatalog',
]
