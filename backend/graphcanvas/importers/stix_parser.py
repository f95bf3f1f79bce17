from __future__ import annotations

import json
from typing import Any, Union

from pydantic import ValidationError as PydanticValidationError

from graphcanvas.errors import ParseError
from graphcanvas.models.stix import StixBundle


def parse(data: Union[str, bytes, dict[str, Any]]) -> StixBundle:
    """Decode a STIX 2.1 bundle.

    Only the envelope is checked here; individual objects are validated later so
    one bad object does not sink the whole bundle.
    """
    if isinstance(data, (str, bytes, bytearray)):
        try:
            data = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ParseError(f"Bundle is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ParseError("Bundle root must be a JSON object")
    if data.get("type", "bundle") != "bundle":
        raise ParseError(f"Expected a STIX bundle, got type '{data.get('type')}'")
    if not isinstance(data.get("objects"), list):
        raise ParseError("Bundle must contain an 'objects' list")

    try:
        return StixBundle.model_validate(data)
    except PydanticValidationError as exc:
        raise ParseError(f"Malformed bundle envelope: {exc.errors()[0]['msg']}") from exc
