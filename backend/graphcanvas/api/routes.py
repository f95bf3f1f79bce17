"""REST API routes for the workspace."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile

from graphcanvas.api.session import WorkspaceSession, get_session
from graphcanvas.errors import (
    DocumentLoadError,
    ElementNotFound,
    ImportCancelled,
    ParseError,
    PresetLoadError,
    RejectionError,
)
from graphcanvas.models.api import (
    DocumentResponse,
    ImportResponse,
    InferenceResponse,
    LoadResponse,
    MutationRequest,
    PresetInfo,
)
from graphcanvas.presets.library import list_builtin, load_builtin, load_preset_source

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/workspace")


# ------------------------------------------------------------------
# GET /presets
# ------------------------------------------------------------------

@router.get("/presets")
async def list_presets(session: WorkspaceSession = Depends(get_session)) -> list[PresetInfo]:
    """Return the built-in presets, flagging the one currently in use."""
    results = []
    for preset_id in list_builtin():
        preset = load_builtin(preset_id)
        results.append(PresetInfo(
            id=preset.id,
            name=preset.name,
            version=preset.version,
            description=preset.description,
            active=preset.id == session.preset.id,
        ))
    return results


# ------------------------------------------------------------------
# POST /load
# ------------------------------------------------------------------

@router.post("/load", response_model=LoadResponse)
async def load_preset(
    file: UploadFile | None = File(None),
    preset: str | None = None,
    session: WorkspaceSession = Depends(get_session),
) -> LoadResponse:
    """Switch the workspace to a preset and start an empty document.

    Accepts either:
    - A multipart/form-data upload (``file``) holding preset JSON in any supported
      format version; older versions are migrated, or
    - A query parameter ``preset`` naming a built-in preset (e.g. ``topo``).
    """
    if file is not None:
        try:
            loaded = load_preset_source(await file.read())
        except PresetLoadError as exc:
            raise HTTPException(status_code=422, detail=exc.to_dict()) from exc
    elif preset is not None:
        try:
            loaded = load_builtin(preset)
        except KeyError as exc:
            raise HTTPException(status_code=400, detail=str(exc.args[0])) from exc
    else:
        raise HTTPException(status_code=400, detail="Provide either a file upload or a 'preset' query parameter.")

    session.use_preset(loaded)
    return LoadResponse(preset=loaded.summary(), document=session.document())


# ------------------------------------------------------------------
# GET / POST /document
# ------------------------------------------------------------------

@router.get("/document", response_model=DocumentResponse)
async def get_document(session: WorkspaceSession = Depends(get_session)) -> DocumentResponse:
    return session.document()


@router.post("/document", response_model=DocumentResponse)
async def replace_document(
    data: dict[str, Any] = Body(...),
    session: WorkspaceSession = Depends(get_session),
) -> DocumentResponse:
    """Replace the document with an exported graph; history is cleared."""
    try:
        session.load_document(data)
    except DocumentLoadError as exc:
        raise HTTPException(status_code=422, detail=exc.to_dict()) from exc
    return session.document()


# ------------------------------------------------------------------
# POST /mutations, /undo, /redo
# ------------------------------------------------------------------

@router.post("/mutations", response_model=DocumentResponse)
async def apply_mutation(
    request: MutationRequest,
    session: WorkspaceSession = Depends(get_session),
) -> DocumentResponse:
    try:
        session.store.apply(request.mutation)
    except RejectionError as exc:
        raise HTTPException(status_code=409, detail=exc.to_dict()) from exc
    return session.document()


@router.post("/undo", response_model=DocumentResponse)
async def undo(session: WorkspaceSession = Depends(get_session)) -> DocumentResponse:
    if session.store.undo() is None:
        raise HTTPException(status_code=409, detail="Nothing to undo.")
    return session.document()


@router.post("/redo", response_model=DocumentResponse)
async def redo(session: WorkspaceSession = Depends(get_session)) -> DocumentResponse:
    if session.store.redo() is None:
        raise HTTPException(status_code=409, detail="Nothing to redo.")
    return session.document()


# ------------------------------------------------------------------
# POST /import/stix
# ------------------------------------------------------------------

@router.post("/import/stix", response_model=ImportResponse)
async def import_stix(
    file: UploadFile = File(...),
    session: WorkspaceSession = Depends(get_session),
) -> ImportResponse:
    """Import a STIX 2.1 bundle; all accepted objects land in one undoable step."""
    raw = await file.read()
    try:
        summary = session.pipeline.run(raw, session.store)
    except ParseError as exc:
        raise HTTPException(status_code=400, detail=exc.to_dict()) from exc
    except ImportCancelled as exc:
        raise HTTPException(status_code=409, detail=exc.to_dict()) from exc

    for issue in summary.errors:
        logger.warning("STIX object %s (%s) not imported: %s", issue.index, issue.object_id, issue.message)
    return ImportResponse(summary=summary.to_dict(), document=session.document())


# ------------------------------------------------------------------
# GET /inference
# ------------------------------------------------------------------

@router.get("/inference", response_model=InferenceResponse)
async def get_inference(
    node_id: str | None = None,
    session: WorkspaceSession = Depends(get_session),
) -> InferenceResponse:
    """Derived edges and attributes for the current document, optionally for one node."""
    snapshot = session.store.snapshot
    if node_id is None:
        return InferenceResponse(**session.inference.recompute(snapshot).to_dict())

    try:
        result = session.inference.node_inferences(snapshot, node_id)
    except ElementNotFound as exc:
        raise HTTPException(status_code=404, detail=exc.to_dict()) from exc
    return InferenceResponse(
        node_id=node_id,
        edges=[e.model_dump(by_alias=True, mode="json") for e in result["edges"]],
        attributes={node_id: result["attributes"]} if result["attributes"] else {},
        converged=result["converged"],
    )


@router.get("/inference/coverage")
async def get_sensor_coverage(session: WorkspaceSession = Depends(get_session)) -> dict[str, Any]:
    """Per-sensor detection coverage and the overall score (0-100)."""
    return session.inference.sensor_coverage(session.store.snapshot)


# ------------------------------------------------------------------
# GET /history
# ------------------------------------------------------------------

@router.get("/history")
async def get_history(session: WorkspaceSession = Depends(get_session)) -> dict[str, Any]:
    """Return the undo stack (oldest first) and the recorded document events."""
    return {
        "undo": session.store.get_history(),
        "events": session.events.get_history(),
    }
