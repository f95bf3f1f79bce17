import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from graphcanvas.api.routes import router as workspace_router
from graphcanvas.api.session import WorkspaceSession
from graphcanvas.engine.inference_engine import RULES
from graphcanvas.importers.stix_validators import SUPPORTED_TYPES
from graphcanvas.presets.library import list_builtin
from graphcanvas.settings import GraphCanvasSettings, get_settings

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup: log presets, rule kinds and STIX coverage ---
    session: WorkspaceSession = app.state.session
    logger.info("Built-in presets: %s (active: %s)", list_builtin(), session.preset.id)
    logger.info("Inference rule kinds: %s", sorted(RULES))
    logger.info("STIX types accepted for import: %s", sorted(SUPPORTED_TYPES))
    yield


def create_app(settings: Optional[GraphCanvasSettings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.getLogger("graphcanvas").setLevel(settings.log_level.upper())

    app = FastAPI(
        title="graphcanvas",
        description="Preset-driven graph authoring core: presets, undoable documents, STIX import, ontology inference",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.session = WorkspaceSession.from_settings(settings)
    app.include_router(workspace_router)

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    return app


app = create_app()
