from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CURRENT_PRESET_VERSION = "2.0.0"

ID_PATTERN = r"^[a-z0-9-]+$"
COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"
SEMVER_PATTERN = r"^\d+\.\d+\.\d+$"
WILDCARD = "*"

PropertyType = Literal["string", "number", "boolean", "date", "url", "enum", "multiselect"]
RuleType = Literal["pattern", "min", "max", "min-length", "max-length", "one-of"]
Multiplicity = Literal["one-to-one", "one-to-many", "many-to-many"]
Directionality = Literal["directed", "undirected", "bidirectional"]
RuleKind = Literal["neighbors", "path", "transitive", "property-match", "by-type"]
StepDirection = Literal["out", "in", "any"]
Severity = Literal["critical", "high", "medium", "low", "info"]

# Most severe first.
SEVERITY_ORDER: dict[str, int] = {"critical": 0, "high": 1, "medium": 2, "low": 3, "info": 4}


class SchemaModel(BaseModel):
    """Frozen model with camelCase JSON aliases, shared by preset and graph shapes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Node types
# ---------------------------------------------------------------------------


class PropertyDefinition(SchemaModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    type: PropertyType = "string"
    required: bool = False
    options: Optional[list[str]] = None
    default: Any = None


class ValidationRule(SchemaModel):
    property: str = Field(min_length=1)
    rule: RuleType
    value: Any
    message: Optional[str] = None


class NodeStyle(SchemaModel):
    color: str = Field(pattern=COLOR_PATTERN)
    border_color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)
    background_color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)
    icon: Optional[str] = None
    shape: Optional[Literal["rectangle", "rounded", "circle", "diamond", "hexagon"]] = None


class NodeTypeDefinition(SchemaModel):
    id: str = Field(pattern=ID_PATTERN)
    name: str = Field(min_length=1)
    category: str = ""
    description: str = ""
    ontology_class: Optional[str] = None
    properties: list[PropertyDefinition] = []
    validation_rules: list[ValidationRule] = []
    incoming_relationships: Optional[list[str]] = None
    outgoing_relationships: Optional[list[str]] = None
    style: NodeStyle

    def property_def(self, property_id: str) -> Optional[PropertyDefinition]:
        for prop in self.properties:
            if prop.id == property_id:
                return prop
        return None


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------


class EdgeStyle(SchemaModel):
    stroke_color: str = Field(default="#64748b", pattern=COLOR_PATTERN)
    stroke_width: float = Field(default=2, gt=0)
    stroke_style: Literal["solid", "dashed", "dotted"] = "solid"
    animated: bool = False


class RelationshipDefinition(SchemaModel):
    id: str = Field(pattern=ID_PATTERN)
    name: str = Field(min_length=1)
    description: str = ""
    source_types: list[str] = Field(min_length=1)
    target_types: list[str] = Field(min_length=1)
    multiplicity: Multiplicity = "many-to-many"
    directionality: Directionality = "directed"
    style: EdgeStyle = EdgeStyle()
    properties: list[PropertyDefinition] = []

    def allows(self, source_type: str, target_type: str) -> bool:
        """True when the endpoint types satisfy the declared source/target constraints."""
        forward = _matches(self.source_types, source_type) and _matches(self.target_types, target_type)
        if forward or self.directionality == "directed":
            return forward
        return _matches(self.source_types, target_type) and _matches(self.target_types, source_type)


def _matches(declared: list[str], type_id: str) -> bool:
    return WILDCARD in declared or type_id in declared


# ---------------------------------------------------------------------------
# Styling & behavior
# ---------------------------------------------------------------------------


class StylingRules(SchemaModel):
    theme: Literal["light", "dark"] = "light"
    primary_color: str = Field(default="#3b82f6", pattern=COLOR_PATTERN)
    background_color: str = Field(default="#ffffff", pattern=COLOR_PATTERN)
    grid_color: str = Field(default="#e5e7eb", pattern=COLOR_PATTERN)
    font_family: str = "Inter, sans-serif"


class BehaviorConfig(SchemaModel):
    snap_to_grid: bool = False
    grid_size: int = Field(default=20, gt=0)
    history_limit: int = Field(default=100, ge=1, le=1000)
    max_nodes: int = Field(default=1000, gt=0)
    max_edges: int = Field(default=2000, gt=0)
    enable_inference: bool = False
    inference_max_passes: Optional[int] = Field(default=None, ge=1)


# ---------------------------------------------------------------------------
# Ontology mappings
# ---------------------------------------------------------------------------


class PathStep(SchemaModel):
    relationship: str = Field(min_length=1)
    direction: StepDirection = "out"


class InferenceRule(SchemaModel):
    kind: RuleKind
    derived_relationship: Optional[str] = None
    via: list[PathStep] = []
    target_types: Optional[list[str]] = None
    match_property: Optional[str] = None
    attributes: dict[str, Any] = {}
    severity: Severity = "info"
    confidence: int = Field(default=100, ge=0, le=100)


class OntologyMapping(SchemaModel):
    id: str = Field(pattern=ID_PATTERN)
    source_type: Optional[str] = None
    ontology_class: Optional[str] = None
    priority: int = 0
    description: str = ""
    rule: InferenceRule


# ---------------------------------------------------------------------------
# Preset
# ---------------------------------------------------------------------------


class Preset(SchemaModel):
    id: str = Field(pattern=ID_PATTERN)
    name: str = Field(min_length=1)
    version: str = Field(pattern=SEMVER_PATTERN)
    description: str = ""
    author: Optional[str] = None
    node_types: list[NodeTypeDefinition] = Field(min_length=1)
    relationships: list[RelationshipDefinition] = []
    styling: StylingRules = StylingRules()
    behavior: BehaviorConfig = BehaviorConfig()
    ontology_mappings: list[OntologyMapping] = []

    def node_type(self, type_id: str) -> Optional[NodeTypeDefinition]:
        for node_type in self.node_types:
            if node_type.id == type_id:
                return node_type
        return None

    def relationship(self, relationship_id: str) -> Optional[RelationshipDefinition]:
        for rel in self.relationships:
            if rel.id == relationship_id:
                return rel
        return None

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "nodeTypes": [nt.id for nt in self.node_types],
            "relationships": [r.id for r in self.relationships],
        }
