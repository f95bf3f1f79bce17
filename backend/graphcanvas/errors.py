"""Error types for presets, the document store, and the import pipeline.

Two families live here:

* Exceptions (``GraphCanvasError`` subclasses) are raised when an operation as a
  whole fails: a preset that cannot be migrated, a bundle that cannot be parsed,
  a mutation the store rejects.
* Records (``ValidationError``, ``ImportIssue``, ``UnknownTypeWarning``,
  ``InferenceNonConvergence``) are collected into lists and returned so callers
  can present one complete report.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Collected records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationError:
    """A single violation found while validating a preset or document."""

    path: str
    message: str
    code: str = "invalid"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ImportIssue:
    """An import error tagged with the position of the offending object in the bundle."""

    index: Optional[int]
    message: str
    code: str
    object_id: Optional[str] = None
    object_type: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class UnknownTypeWarning:
    """Non-fatal: the bundle held an object type with no registered validator."""

    index: int
    object_type: str
    object_id: Optional[str] = None
    message: str = ""
    code: str = "unknown-type"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ImportWarning:
    """Non-fatal import observation (duplicate node, empty sighting, ...)."""

    index: Optional[int]
    message: str
    code: str
    object_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class InferenceNonConvergence:
    """Non-fatal: the derived set was still changing when the pass cap was hit."""

    passes: int
    message: str
    code: str = "inference-non-convergence"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class GraphCanvasError(Exception):
    """Base class for all errors raised by graphcanvas."""

    code = "graphcanvas-error"

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class MigrationError(GraphCanvasError):
    code = "migration-error"


class UnsupportedVersion(MigrationError):
    code = "unsupported-version"

    def __init__(self, version: str, message: str | None = None) -> None:
        self.version = version
        super().__init__(message or f"Unsupported preset version '{version}'")


class MigratedPresetInvalid(MigrationError):
    code = "migrated-preset-invalid"

    def __init__(self, errors: list[ValidationError]) -> None:
        self.errors = errors
        super().__init__(f"Migrated preset failed validation with {len(errors)} error(s)")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = [e.to_dict() for e in self.errors]
        return data


class PresetLoadError(GraphCanvasError):
    """Raised when a preset source cannot be turned into a valid preset."""

    code = "preset-load-error"

    def __init__(self, errors: list[ValidationError]) -> None:
        self.errors = errors
        summary = "; ".join(f"{e.path}: {e.message}" for e in errors[:3])
        super().__init__(f"Preset rejected ({len(errors)} error(s)): {summary}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = [e.to_dict() for e in self.errors]
        return data


class ParseError(GraphCanvasError):
    """Malformed import input: bad JSON or a root without an object list."""

    code = "parse-error"


class ImportCancelled(GraphCanvasError):
    code = "import-cancelled"


class DocumentLoadError(GraphCanvasError):
    code = "document-load-error"

    def __init__(self, errors: list[ValidationError]) -> None:
        self.errors = errors
        super().__init__(f"Document rejected with {len(errors)} error(s)")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = [e.to_dict() for e in self.errors]
        return data


# --- Store rejections -------------------------------------------------------


class RejectionError(GraphCanvasError):
    """A mutation violated a preset-derived constraint and was not committed."""

    code = "rejected"

    def __init__(self, message: str, *, element_id: str | None = None, path: str | None = None) -> None:
        self.element_id = element_id
        self.path = path
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["element_id"] = self.element_id
        return data

    def to_validation_error(self) -> ValidationError:
        return ValidationError(path=self.path or (self.element_id or "mutation"), message=str(self), code=self.code)


class UnknownNodeType(RejectionError):
    code = "unknown-node-type"


class UnknownRelationshipType(RejectionError):
    code = "unknown-relationship-type"


class EndpointTypeViolation(RejectionError):
    code = "endpoint-type-violation"


class DanglingReference(RejectionError):
    code = "dangling-reference"


class MultiplicityViolation(RejectionError):
    code = "multiplicity-violation"


class DuplicateId(RejectionError):
    code = "duplicate-id"


class ElementNotFound(RejectionError):
    code = "not-found"


class PropertyViolation(RejectionError):
    code = "property-violation"


class InferredEdgeReadOnly(RejectionError):
    code = "inferred-edge-read-only"


class CapacityExceeded(RejectionError):
    code = "capacity-exceeded"
