"""Built-in presets and preset file loading."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Union

from graphcanvas.errors import MigratedPresetInvalid, MigrationError, PresetLoadError, ValidationError
from graphcanvas.models.preset import Preset
from graphcanvas.presets.migrations import migrate

logger = logging.getLogger(__name__)

BUILTIN_DIR = Path(__file__).parent / "builtin"


def _builtin_files() -> dict[str, Path]:
    return {
        path.stem: path
        for path in sorted(BUILTIN_DIR.glob("*.json"))
    }


def list_builtin() -> list[str]:
    """Ids of the presets shipped with the package."""
    return list(_builtin_files())


@lru_cache(maxsize=None)
def load_builtin(preset_id: str) -> Preset:
    files = _builtin_files()
    if preset_id not in files:
        raise KeyError(f"Unknown built-in preset '{preset_id}'. Available: {', '.join(files)}")
    preset = load_preset_source(files[preset_id].read_text(encoding="utf-8"))
    logger.info("Loaded built-in preset %s (%s)", preset.id, preset.version)
    return preset


def load_preset_source(source: Union[str, bytes]) -> Preset:
    """Parse, migrate and validate preset JSON, raising ``PresetLoadError`` with every problem found."""
    try:
        raw = json.loads(source)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise PresetLoadError([ValidationError(path="root", message=f"Invalid JSON: {exc}", code="invalid-json")]) from exc

    try:
        return migrate(raw)
    except MigratedPresetInvalid as exc:
        raise PresetLoadError(exc.errors) from exc
    except MigrationError as exc:
        raise PresetLoadError([ValidationError(path="version", message=str(exc), code=exc.code)]) from exc
