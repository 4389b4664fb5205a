"""Validation of raw transport frames into typed chunks.

Decoding never raises: a frame that cannot be turned into a chunk comes back
as a ``DecodeError`` so the caller can log it and keep reading the stream.
"""

from typing import Dict, Any, Optional, Union
import json

from pydantic import ValidationError

from agentos_workbench.domain.models.chunks import Chunk, ChunkType, CHUNK_CLASSES
from agentos_workbench.domain.models.session_state import DiagnosticKind, FrozenModel


class DecodeError(FrozenModel):
    """A frame that could not be decoded"""
    kind: DiagnosticKind
    message: str
    chunk_type: Optional[str] = None
    stream_id: Optional[str] = None
    errors: tuple = ()


DecodeResult = Union[Chunk, DecodeError]

_KNOWN_TYPES = {member.value: member for member in ChunkType}


def decode(raw_frame: Any) -> DecodeResult:
    """Classify one deserialized frame"""

    if not isinstance(raw_frame, dict):
        return DecodeError(
            kind=DiagnosticKind.MALFORMED_CHUNK,
            message=f"Frame is not an object: {type(raw_frame).__name__}",
        )

    raw_type = raw_frame.get("type")
    stream_id = raw_frame.get("streamId")
    if not isinstance(stream_id, str):
        stream_id = None

    if not isinstance(raw_type, str) or raw_type not in _KNOWN_TYPES:
        return DecodeError(
            kind=DiagnosticKind.UNKNOWN_CHUNK_TYPE,
            message=f"Unknown chunk type: {raw_type!r}",
            chunk_type=raw_type if isinstance(raw_type, str) else None,
            stream_id=stream_id,
        )

    chunk_type = _KNOWN_TYPES[raw_type]
    chunk_class = CHUNK_CLASSES[chunk_type]

    # Frames are never mutated, validate a shallow copy carrying the enum member
    data: Dict[str, Any] = dict(raw_frame)
    data["type"] = chunk_type

    try:
        return chunk_class.model_validate(data)
    except ValidationError as e:
        return DecodeError(
            kind=DiagnosticKind.MALFORMED_CHUNK,
            message=f"Malformed {raw_type} chunk: {e.error_count()} validation error(s)",
            chunk_type=raw_type,
            stream_id=stream_id,
            errors=tuple(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ),
        )


def decode_line(line: str) -> DecodeResult:
    """Parse a JSON text frame and decode it"""

    try:
        raw_frame = json.loads(line)
    except json.JSONDecodeError as e:
        return DecodeError(
            kind=DiagnosticKind.MALFORMED_CHUNK,
            message=f"Invalid JSON frame: {e.msg}",
        )
    return decode(raw_frame)

