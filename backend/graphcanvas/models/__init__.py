from .preset import (
    CURRENT_PRESET_VERSION,
    BehaviorConfig,
    InferenceRule,
    NodeTypeDefinition,
    OntologyMapping,
    PathStep,
    Preset,
    PropertyDefinition,
    RelationshipDefinition,
    StylingRules,
    ValidationRule,
)
from .graph import DocumentMetadata, GraphEdge, GraphNode, GraphSnapshot, Position
from .mutation import AddEdge, AddNode, Batch, Mutation, RemoveEdge, RemoveNode, UpdateEdge, UpdateNode
from .stix import StixBundle
