from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GraphCanvasSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GRAPHCANVAS_", env_file=".env", extra="ignore")

    # Logging
    log_level: str = "INFO"

    # Inference
    inference_max_passes: int = Field(default=3, ge=1, description="Pass cap when a preset sets none")

    # STIX import layout
    import_grid_columns: int = Field(default=8, ge=1)
    import_grid_spacing: float = Field(default=180.0, gt=0)

    # Events
    event_history_limit: int = Field(default=500, ge=1)

    # HTTP
    cors_origins: list[str] = ["http://localhost:5173"]
    default_preset: str = "threat-model"


@lru_cache
def get_settings() -> GraphCanvasSettings:
    return GraphCanvasSettings()
