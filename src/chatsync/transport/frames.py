"""
Frame encoding and parsing for the realtime channel.
"""

import json
from typing import Any, Union

import pydantic

from chatsync.errors import FrameValidationError
from chatsync.models.frames import FRAME_ADAPTER, Frame


def encode_frame(frame: pydantic.BaseModel) -> str:
    """Serialize an outbound frame. None-valued optional fields are omitted."""
    return frame.model_dump_json(exclude_none=True)


def decode_frame(raw: Union[str, bytes, dict[str, Any]]) -> Frame:
    """Parse and validate an inbound frame. Raises FrameValidationError."""
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FrameValidationError(f"Frame is not valid JSON: {e}", raw=raw)
    if not isinstance(raw, dict) or not raw.get("type"):
        raise FrameValidationError("Frame is missing its type", raw=raw)
    try:
        return FRAME_ADAPTER.validate_python(raw)
    except pydantic.ValidationError as e:
        raise FrameValidationError(f"Invalid {raw.get('type')!r} frame: {e.error_count()} error(s)", raw=raw)
