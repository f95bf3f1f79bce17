from pydantic import BaseModel
from typing import Any, Optional

from graphcanvas.models.mutation import Mutation


class MutationRequest(BaseModel):
    mutation: Mutation


class PresetInfo(BaseModel):
    id: str
    name: str
    version: str
    description: str = ""
    active: bool = False


class DocumentResponse(BaseModel):
    metadata: dict[str, Any]
    nodes: list[dict[str, Any]] = []
    edges: list[dict[str, Any]] = []
    can_undo: bool = False
    can_redo: bool = False


class LoadResponse(BaseModel):
    preset: dict[str, Any]
    document: DocumentResponse


class ImportResponse(BaseModel):
    summary: dict[str, Any]
    document: DocumentResponse


class InferenceResponse(BaseModel):
    edges: list[dict[str, Any]] = []
    attributes: dict[str, dict[str, Any]] = {}
    passes: int = 0
    converged: bool = True
    warnings: list[dict[str, Any]] = []
    node_id: Optional[str] = None
