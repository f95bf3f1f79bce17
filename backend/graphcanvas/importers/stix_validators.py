"""Per-object STIX validation.

The dispatch table (STIX type -> validator) is assembled once at import time
from the ``@stix_validator``-decorated functions and the plain SDO models, then
frozen behind a read-only mapping.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import partial
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping, Union

from pydantic import ValidationError as PydanticValidationError

from graphcanvas.errors import ImportIssue, UnknownTypeWarning
from graphcanvas.models import stix
from graphcanvas.models.stix import STIX_ID_PATTERN, StixBundle, StixCommon

Validator = Callable[[dict[str, Any]], StixCommon]

_SDO_MODELS: dict[str, type[StixCommon]] = {
    "attack-pattern": stix.AttackPattern,
    "campaign": stix.Campaign,
    "course-of-action": stix.CourseOfAction,
    "identity": stix.Identity,
    "indicator": stix.Indicator,
    "infrastructure": stix.Infrastructure,
    "intrusion-set": stix.IntrusionSet,
    "location": stix.Location,
    "malware": stix.Malware,
    "threat-actor": stix.ThreatActor,
    "tool": stix.Tool,
    "vulnerability": stix.Vulnerability,
}

_custom: dict[str, Validator] = {}


def stix_validator(stix_type: str) -> Callable[[Validator], Validator]:
    """Decorator that registers a validator with checks beyond the plain model."""

    def decorator(func: Validator) -> Validator:
        _custom[stix_type] = func
        return func

    return decorator


def _validate_model(model: type[StixCommon], obj: dict[str, Any]) -> StixCommon:
    return model.model_validate(obj)


@stix_validator("grouping")
def _validate_grouping(obj: dict[str, Any]) -> StixCommon:
    grouping = stix.Grouping.model_validate(obj)
    bad = [ref for ref in grouping.object_refs if not re.match(STIX_ID_PATTERN, ref)]
    if bad:
        raise ValueError(f"object_refs holds malformed id(s): {', '.join(bad)}")
    return grouping


@stix_validator("relationship")
def _validate_relationship(obj: dict[str, Any]) -> StixCommon:
    return stix.Relationship.model_validate(obj)


@stix_validator("sighting")
def _validate_sighting(obj: dict[str, Any]) -> StixCommon:
    sighting = stix.Sighting.model_validate(obj)
    bad = [ref for ref in sighting.where_sighted_refs if not re.match(STIX_ID_PATTERN, ref)]
    if bad:
        raise ValueError(f"where_sighted_refs holds malformed id(s): {', '.join(bad)}")
    return sighting


VALIDATORS: Mapping[str, Validator] = MappingProxyType({
    **{stix_type: partial(_validate_model, model) for stix_type, model in _SDO_MODELS.items()},
    **_custom,
})

SUPPORTED_TYPES = frozenset(VALIDATORS)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidatedObject:
    index: int
    object_type: str
    object_id: str
    model: StixCommon
    raw: dict[str, Any]


Outcome = Union[ValidatedObject, ImportIssue, UnknownTypeWarning]


@dataclass
class ObjectValidationReport:
    valid: list[ValidatedObject] = field(default_factory=list)
    errors: list[ImportIssue] = field(default_factory=list)
    warnings: list[UnknownTypeWarning] = field(default_factory=list)


def _describe(exc: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'object'}: {err['msg']}"
        for err in exc.errors()
    )


def _check(index: int, obj: Any, seen: set[str]) -> Outcome:
    if not isinstance(obj, dict):
        return ImportIssue(index=index, message="Bundle entry is not a JSON object", code="invalid-object")

    object_type = obj.get("type")
    object_id = obj.get("id") if isinstance(obj.get("id"), str) else None
    if not isinstance(object_type, str) or not object_type:
        return ImportIssue(index=index, message="Object has no 'type'", code="missing-type", object_id=object_id)

    validator = VALIDATORS.get(object_type)
    if validator is None:
        return UnknownTypeWarning(
            index=index,
            object_type=object_type,
            object_id=object_id,
            message=f"No validator for STIX type '{object_type}'; object skipped",
        )

    def issue(message: str, code: str) -> ImportIssue:
        return ImportIssue(index=index, message=message, code=code, object_id=object_id, object_type=object_type)

    if object_id and "--" in object_id and object_id.split("--", 1)[0] != object_type:
        return issue(f"Id '{object_id}' does not match type '{object_type}'", "id-type-mismatch")

    try:
        model = validator(obj)
    except PydanticValidationError as exc:
        return issue(_describe(exc), "invalid-object")
    except ValueError as exc:
        return issue(str(exc), "invalid-object")

    if model.id in seen:
        return issue(f"Duplicate object id '{model.id}'", "duplicate-id")
    seen.add(model.id)
    return ValidatedObject(index=index, object_type=object_type, object_id=model.id, model=model, raw=obj)


class ValidationStream:
    """Lazy per-object outcomes; each iteration re-validates from the start of the bundle."""

    def __init__(self, bundle: StixBundle) -> None:
        self.bundle = bundle

    def __iter__(self) -> Iterator[Outcome]:
        seen: set[str] = set()
        for index, obj in enumerate(self.bundle.objects):
            yield _check(index, obj, seen)


def iter_validated(bundle: StixBundle) -> ValidationStream:
    return ValidationStream(bundle)


def validate_objects(bundle: StixBundle) -> ObjectValidationReport:
    report = ObjectValidationReport()
    for outcome in iter_validated(bundle):
        if isinstance(outcome, ValidatedObject):
            report.valid.append(outcome)
        elif isinstance(outcome, UnknownTypeWarning):
            report.warnings.append(outcome)
        else:
            report.errors.append(outcome)
    return report
