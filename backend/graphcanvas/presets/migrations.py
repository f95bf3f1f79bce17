"""Preset format migrations.

Each step is a pure dict-to-dict transform between two adjacent format versions,
registered with ``@migration``. Steps run on a deep copy, so the caller's input
is never modified. The chain is checked at import time: versions strictly
increase, adjacent steps connect, and the last step lands on the current format.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from graphcanvas.errors import MigratedPresetInvalid, MigrationError, UnsupportedVersion
from graphcanvas.models.preset import CURRENT_PRESET_VERSION, Preset
from graphcanvas.presets.validator import validate

logger = logging.getLogger(__name__)

Transform = Callable[[dict[str, Any]], dict[str, Any]]


@dataclass(frozen=True)
class MigrationStep:
    from_version: str
    to_version: str
    transform: Transform
    description: str = ""

    def __str__(self) -> str:
        return f"{self.from_version} -> {self.to_version}"


_registered: list[MigrationStep] = []


def migration(from_version: str, to_version: str) -> Callable[[Transform], Transform]:
    """Decorator that registers *func* as the step from *from_version* to *to_version*."""

    def decorator(func: Transform) -> Transform:
        doc = (func.__doc__ or "").strip().splitlines()
        _registered.append(MigrationStep(from_version, to_version, func, doc[0] if doc else ""))
        return func

    return decorator


def parse_version(version: str) -> tuple[int, ...]:
    try:
        return tuple(int(part) for part in version.split("."))
    except (AttributeError, ValueError):
        raise UnsupportedVersion(str(version), f"'{version}' is not a semantic version") from None


# ---------------------------------------------------------------------------
# Helpers shared by the steps
# ---------------------------------------------------------------------------

_LEGACY_PROPERTY_TYPES = {
    "text": "string",
    "textarea": "string",
    "select": "enum",
    "checkbox": "boolean",
    "link": "url",
}


def _rename(obj: dict[str, Any], old: str, new: str) -> None:
    if old not in obj:
        return
    value = obj.pop(old)
    obj.setdefault(new, value)


def _dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _humanize(key: str) -> str:
    return key.replace("-", " ").replace("_", " ").strip().capitalize() or key


def _convert_property(prop: dict[str, Any]) -> dict[str, Any]:
    if "key" not in prop:
        return prop
    key = prop["key"]
    converted = {
        "id": key,
        "name": prop.get("label") or prop.get("name") or _humanize(str(key)),
        "type": _LEGACY_PROPERTY_TYPES.get(prop.get("type", "string"), prop.get("type", "string")),
        "required": bool(prop.get("required", False)),
        "default": prop.get("value"),
    }
    if "options" in prop:
        converted["options"] = prop["options"]
    return converted


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


@migration("0.9.0", "1.0.0")
def _fill_defaults(data: dict[str, Any]) -> dict[str, Any]:
    """Fill in sections that 0.9.0 presets were allowed to omit."""
    behavior = data.get("behavior")
    if not isinstance(behavior, dict):
        data["behavior"] = {"snapToGrid": False, "gridSize": 10, "maxNodes": 1000, "maxEdges": 2000}
    else:
        behavior.setdefault("maxNodes", 1000)
        behavior.setdefault("maxEdges", 2000)

    if not isinstance(data.get("styling"), dict):
        data["styling"] = {
            "theme": "light",
            "primaryColor": "#3b82f6",
            "backgroundColor": "#ffffff",
            "gridColor": "#e5e7eb",
            "fontFamily": "Inter, sans-serif",
        }

    for node_type in _dicts(data.get("nodeTypes")):
        node_type.setdefault("style", {"backgroundColor": "#3b82f6", "borderColor": "#2563eb"})
        node_type.setdefault("properties", [])
        node_type.setdefault("validationRules", [])
        node_type.setdefault("ontologyMappings", [])

    for rel in _dicts(data.get("relationshipTypes", data.get("relationships"))):
        rel.setdefault("style", {"strokeColor": "#3b82f6", "strokeWidth": 2})
        rel.setdefault("directionality", "directed")
        rel.setdefault("multiplicity", "one-to-many")
        rel.setdefault("properties", [])

    return data


@migration("1.0.0", "1.1.0")
def _rename_fields(data: dict[str, Any]) -> dict[str, Any]:
    """Move to the current field names and the structured property shape."""
    _rename(data, "label", "name")
    _rename(data, "relationshipTypes", "relationships")

    for node_type in _dicts(data.get("nodeTypes")):
        _rename(node_type, "label", "name")
        style = node_type.get("style")
        if not isinstance(style, dict):
            style = node_type["style"] = {}
        color = node_type.pop("color", None)
        if color:
            style["color"] = color
        elif "color" not in style:
            style["color"] = style.get("backgroundColor", "#3b82f6")
        node_type["properties"] = [_convert_property(p) for p in _dicts(node_type.get("properties"))]

    for rel in _dicts(data.get("relationships")):
        _rename(rel, "label", "name")
        _rename(rel, "sourceNodeTypes", "sourceTypes")
        _rename(rel, "targetNodeTypes", "targetTypes")
        rel["properties"] = [_convert_property(p) for p in _dicts(rel.get("properties"))]

    return data


@migration("1.1.0", "2.0.0")
def _lift_ontology(data: dict[str, Any]) -> dict[str, Any]:
    """Lift per-node ontology mappings to the top level and add inference settings."""
    mappings = data.get("ontologyMappings")
    if not isinstance(mappings, list):
        mappings = data["ontologyMappings"] = []

    for node_type in _dicts(data.get("nodeTypes")):
        _rename(node_type, "d3fendClass", "ontologyClass")
        _rename(node_type, "allowedRelationships", "outgoingRelationships")
        node_id = node_type.get("id", "node")
        for position, mapping in enumerate(_dicts(node_type.pop("ontologyMappings", None)), start=1):
            if "rule" in mapping:
                lifted = {k: v for k, v in mapping.items() if k not in ("sourceType", "ontologyClass", "d3fendClass")}
                lifted.setdefault("id", f"{node_id}-mapping-{position}")
                lifted["sourceType"] = node_id
                mappings.append(lifted)
                continue
            ontology_class = mapping.get("d3fendClass") or mapping.get("ontologyClass")
            if ontology_class and not node_type.get("ontologyClass"):
                node_type["ontologyClass"] = ontology_class
            else:
                logger.info("Dropping ontology mapping %d of node type %s: no rule to lift", position, node_id)

    behavior = data.get("behavior")
    if not isinstance(behavior, dict):
        behavior = data["behavior"] = {}
    behavior.setdefault("historyLimit", 100)
    behavior.setdefault("enableInference", False)

    return data


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------


MIGRATIONS: tuple[MigrationStep, ...] = tuple(sorted(_registered, key=lambda s: parse_version(s.from_version)))


def _verify_chain(steps: tuple[MigrationStep, ...]) -> None:
    for step in steps:
        if parse_version(step.to_version) <= parse_version(step.from_version):
            raise MigrationError(f"Migration {step} does not increase the version")
    for previous, following in zip(steps, steps[1:]):
        if previous.to_version != following.from_version:
            raise MigrationError(f"Migration chain is broken between {previous} and {following}")
    if steps and steps[-1].to_version != CURRENT_PRESET_VERSION:
        raise MigrationError(f"Migration chain ends at {steps[-1].to_version}, not {CURRENT_PRESET_VERSION}")


_verify_chain(MIGRATIONS)

SUPPORTED_VERSIONS: tuple[str, ...] = tuple(s.from_version for s in MIGRATIONS) + (CURRENT_PRESET_VERSION,)


def _steps_between(from_version: str, to_version: str) -> list[MigrationStep]:
    if from_version not in SUPPORTED_VERSIONS:
        raise UnsupportedVersion(from_version)
    if to_version not in SUPPORTED_VERSIONS:
        raise UnsupportedVersion(to_version)
    if parse_version(to_version) < parse_version(from_version):
        raise UnsupportedVersion(from_version, f"Cannot downgrade a preset from {from_version} to {to_version}")
    start = SUPPORTED_VERSIONS.index(from_version)
    end = SUPPORTED_VERSIONS.index(to_version)
    return list(MIGRATIONS[start:end])


def migrate_raw(raw: dict[str, Any], from_version: str, to_version: str = CURRENT_PRESET_VERSION) -> dict[str, Any]:
    """Run the pure chain from *from_version* to *to_version* on a copy of *raw*."""
    data = copy.deepcopy(raw)
    for step in _steps_between(from_version, to_version):
        data = step.transform(data)
        data["version"] = step.to_version
    return data


def _version_of(raw: Any) -> Optional[str]:
    if isinstance(raw, dict) and isinstance(raw.get("version"), str):
        return raw["version"]
    return None


def needs_migration(raw: Any) -> bool:
    version = _version_of(raw)
    return version is not None and version != CURRENT_PRESET_VERSION and version in SUPPORTED_VERSIONS


def migration_path(raw: Any) -> list[str]:
    """Human-readable list of the steps ``migrate`` would run for *raw*."""
    version = _version_of(raw)
    if version is None:
        raise UnsupportedVersion("<missing>", "Preset declares no version")
    return [str(step) for step in _steps_between(version, CURRENT_PRESET_VERSION)]


def migrate(raw: Any, declared_version: Optional[str] = None) -> Preset:
    """Upgrade *raw* to the current format and validate the result."""
    if not isinstance(raw, dict):
        raise MigrationError("Preset must be a JSON object")
    version = declared_version or _version_of(raw)
    if version is None:
        raise UnsupportedVersion("<missing>", "Preset declares no version")

    migrated = migrate_raw(raw, version, CURRENT_PRESET_VERSION)
    if version != CURRENT_PRESET_VERSION:
        logger.info("Migrated preset %r: %s", raw.get("id"), " | ".join(migration_path({"version": version})))

    result = validate(migrated)
    if isinstance(result, Preset):
        return result
    raise MigratedPresetInvalid(result)
