"""Preset validation: structural checks via pydantic plus cross-field checks on the raw candidate.

Every violation is collected; nothing short-circuits, so a caller can show a
complete report for a hand-edited preset file in one go.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterator

from pydantic import ValidationError as PydanticValidationError

from graphcanvas.errors import ValidationError
from graphcanvas.models.preset import CURRENT_PRESET_VERSION, SEMVER_PATTERN, WILDCARD, Preset

logger = logging.getLogger(__name__)

_RULES_NEEDING_VIA = {"neighbors", "path", "transitive"}
_OPTION_TYPES = {"enum", "multiselect"}
_NUMERIC_RULES = {"min", "max", "min-length", "max-length"}


def validate(candidate: Any) -> Preset | list[ValidationError]:
    """Return a ``Preset`` when *candidate* is valid, otherwise the full list of violations."""
    if isinstance(candidate, Preset):
        candidate = candidate.model_dump(by_alias=True)
    if not isinstance(candidate, dict):
        return [ValidationError(path="root", message="Preset must be a JSON object", code="invalid-type")]

    errors: list[ValidationError] = []
    preset: Preset | None = None

    try:
        preset = Preset.model_validate(candidate)
    except PydanticValidationError as exc:
        errors.extend(_from_pydantic(exc))

    errors.extend(_cross_field_errors(candidate))

    version = candidate.get("version")
    if isinstance(version, str) and re.match(SEMVER_PATTERN, version) and version != CURRENT_PRESET_VERSION:
        errors.append(ValidationError(
            path="version",
            message=f"Preset version {version} must be migrated to {CURRENT_PRESET_VERSION} before use",
            code="unsupported-version",
        ))

    if errors or preset is None:
        logger.info("Preset %r rejected with %d error(s)", candidate.get("id"), len(errors))
        return errors

    for warning in _warnings(preset):
        logger.warning("Preset %s: %s", preset.id, warning)
    return preset


def is_valid(candidate: Any) -> bool:
    return isinstance(validate(candidate), Preset)


# ---------------------------------------------------------------------------
# Structural errors
# ---------------------------------------------------------------------------


def _from_pydantic(exc: PydanticValidationError) -> list[ValidationError]:
    return [
        ValidationError(
            path=".".join(str(part) for part in err["loc"]) or "root",
            message=err["msg"],
            code=err["type"],
        )
        for err in exc.errors()
    ]


# ---------------------------------------------------------------------------
# Cross-field errors (tolerant of structurally broken input)
# ---------------------------------------------------------------------------


def _get(obj: dict[str, Any], camel: str, snake: str | None = None) -> Any:
    if camel in obj:
        return obj[camel]
    return obj.get(snake) if snake else None


def _items(obj: dict[str, Any], camel: str, snake: str | None = None) -> Iterator[tuple[int, dict[str, Any]]]:
    value = _get(obj, camel, snake)
    if not isinstance(value, list):
        return
    for index, item in enumerate(value):
        if isinstance(item, dict):
            yield index, item


def _strings(value: Any) -> Iterator[tuple[int, str]]:
    if isinstance(value, list):
        for index, item in enumerate(value):
            if isinstance(item, str):
                yield index, item


def _duplicates(entries: list[tuple[int, dict[str, Any]]], prefix: str, label: str) -> list[ValidationError]:
    errors = []
    seen: set[str] = set()
    for index, entry in entries:
        entry_id = entry.get("id")
        if not isinstance(entry_id, str):
            continue
        if entry_id in seen:
            errors.append(ValidationError(
                path=f"{prefix}.{index}.id",
                message=f"Duplicate {label} id '{entry_id}'",
                code="duplicate-id",
            ))
        seen.add(entry_id)
    return errors


def _cross_field_errors(raw: dict[str, Any]) -> list[ValidationError]:
    errors: list[ValidationError] = []

    node_types = list(_items(raw, "nodeTypes", "node_types"))
    relationships = list(_items(raw, "relationships"))
    mappings = list(_items(raw, "ontologyMappings", "ontology_mappings"))

    node_ids = {nt["id"] for _, nt in node_types if isinstance(nt.get("id"), str)}
    rel_ids = {r["id"] for _, r in relationships if isinstance(r.get("id"), str)}
    ontology_classes = {
        cls for _, nt in node_types
        if isinstance(cls := _get(nt, "ontologyClass", "ontology_class"), str)
    }

    errors.extend(_duplicates(node_types, "nodeTypes", "node type"))
    errors.extend(_duplicates(relationships, "relationships", "relationship"))
    errors.extend(_duplicates(mappings, "ontologyMappings", "ontology mapping"))

    for index, rel in relationships:
        for field, snake in (("sourceTypes", "source_types"), ("targetTypes", "target_types")):
            for pos, type_id in _strings(_get(rel, field, snake)):
                if type_id != WILDCARD and type_id not in node_ids:
                    errors.append(ValidationError(
                        path=f"relationships.{index}.{field}.{pos}",
                        message=f"Relationship '{rel.get('id')}' references undeclared node type '{type_id}'",
                        code="unknown-node-type",
                    ))

    for index, node_type in node_types:
        errors.extend(_node_type_errors(index, node_type, rel_ids))

    for index, mapping in mappings:
        errors.extend(_mapping_errors(index, mapping, node_ids, rel_ids, ontology_classes))

    return errors


def _node_type_errors(index: int, node_type: dict[str, Any], rel_ids: set[str]) -> list[ValidationError]:
    errors: list[ValidationError] = []
    prefix = f"nodeTypes.{index}"

    properties = list(_items(node_type, "properties"))
    errors.extend(_duplicates(properties, f"{prefix}.properties", "property"))
    property_ids = {p["id"] for _, p in properties if isinstance(p.get("id"), str)}

    for pos, prop in properties:
        if prop.get("type") in _OPTION_TYPES and not prop.get("options"):
            errors.append(ValidationError(
                path=f"{prefix}.properties.{pos}.options",
                message=f"Property '{prop.get('id')}' of type {prop.get('type')} must declare options",
                code="missing-options",
            ))

    for pos, rule in _items(node_type, "validationRules", "validation_rules"):
        rule_path = f"{prefix}.validationRules.{pos}"
        target = rule.get("property")
        if isinstance(target, str) and target not in property_ids:
            errors.append(ValidationError(
                path=f"{rule_path}.property",
                message=f"Validation rule references undeclared property '{target}'",
                code="unknown-property",
            ))
        kind, value = rule.get("rule"), rule.get("value")
        if kind == "pattern":
            try:
                re.compile(str(value))
            except re.error as exc:
                errors.append(ValidationError(path=f"{rule_path}.value", message=f"Invalid pattern: {exc}", code="invalid-pattern"))
        elif kind in _NUMERIC_RULES and (isinstance(value, bool) or not isinstance(value, (int, float))):
            errors.append(ValidationError(path=f"{rule_path}.value", message=f"Rule '{kind}' needs a numeric value", code="invalid-rule-value"))
        elif kind == "one-of" and not isinstance(value, list):
            errors.append(ValidationError(path=f"{rule_path}.value", message="Rule 'one-of' needs a list value", code="invalid-rule-value"))

    for field, snake in (("incomingRelationships", "incoming_relationships"), ("outgoingRelationships", "outgoing_relationships")):
        for pos, rel_id in _strings(_get(node_type, field, snake)):
            if rel_id not in rel_ids:
                errors.append(ValidationError(
                    path=f"{prefix}.{field}.{pos}",
                    message=f"Node type '{node_type.get('id')}' allows undeclared relationship '{rel_id}'",
                    code="unknown-relationship",
                ))

    return errors


def _mapping_errors(
    index: int,
    mapping: dict[str, Any],
    node_ids: set[str],
    rel_ids: set[str],
    ontology_classes: set[str],
) -> list[ValidationError]:
    errors: list[ValidationError] = []
    prefix = f"ontologyMappings.{index}"

    source_type = _get(mapping, "sourceType", "source_type")
    ontology_class = _get(mapping, "ontologyClass", "ontology_class")
    if (source_type is None) == (ontology_class is None):
        errors.append(ValidationError(
            path=prefix,
            message="Ontology mapping must declare exactly one of sourceType or ontologyClass",
            code="ambiguous-mapping-source",
        ))
    if isinstance(source_type, str) and source_type not in node_ids:
        errors.append(ValidationError(path=f"{prefix}.sourceType", message=f"Undeclared node type '{source_type}'", code="unknown-node-type"))
    if isinstance(ontology_class, str) and ontology_class not in ontology_classes:
        errors.append(ValidationError(
            path=f"{prefix}.ontologyClass",
            message=f"No node type carries ontology class '{ontology_class}'",
            code="unknown-ontology-class",
        ))

    rule = mapping.get("rule")
    if not isinstance(rule, dict):
        return errors
    rule_path = f"{prefix}.rule"
    kind = rule.get("kind")

    derived = _get(rule, "derivedRelationship", "derived_relationship")
    if isinstance(derived, str) and derived not in rel_ids:
        errors.append(ValidationError(path=f"{rule_path}.derivedRelationship", message=f"Undeclared relationship '{derived}'", code="unknown-relationship"))
    if derived is None and not rule.get("attributes"):
        errors.append(ValidationError(path=rule_path, message="Rule derives neither a relationship nor attributes", code="empty-rule"))

    steps = list(_items(rule, "via"))
    for pos, step in steps:
        rel_id = step.get("relationship")
        if isinstance(rel_id, str) and rel_id not in rel_ids:
            errors.append(ValidationError(path=f"{rule_path}.via.{pos}.relationship", message=f"Undeclared relationship '{rel_id}'", code="unknown-relationship"))
    if kind in _RULES_NEEDING_VIA and not steps:
        errors.append(ValidationError(path=f"{rule_path}.via", message=f"Rule kind '{kind}' requires at least one via step", code="missing-via"))
    if kind == "property-match" and not _get(rule, "matchProperty", "match_property"):
        errors.append(ValidationError(path=f"{rule_path}.matchProperty", message="Rule kind 'property-match' requires matchProperty", code="missing-match-property"))

    for pos, type_id in _strings(_get(rule, "targetTypes", "target_types")):
        if type_id != WILDCARD and type_id not in node_ids:
            errors.append(ValidationError(path=f"{rule_path}.targetTypes.{pos}", message=f"Undeclared node type '{type_id}'", code="unknown-node-type"))

    return errors


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


def _warnings(preset: Preset) -> list[str]:
    warnings = []
    for node_type in preset.node_types:
        if not node_type.description.strip():
            warnings.append(f"node type '{node_type.id}' has no description")
    if not preset.relationships:
        warnings.append("no relationships defined")
    if preset.behavior.enable_inference and not preset.ontology_mappings:
        warnings.append("inference is enabled but no ontology mappings are defined")
    return warnings
