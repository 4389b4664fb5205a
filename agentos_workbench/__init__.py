"""AgentOS workbench session core: chunk protocol decoding and session state reduction."""

from agentos_workbench.domain.models.chunks import ChunkType
from agentos_workbench.domain.models.session_state import (
    Session, SessionStatus, TargetType, StreamRequest, DiagnosticKind, ToolCallStatus
)
from agentos_workbench.domain.streaming.chunk_decoder import DecodeError, decode, decode_line
from agentos_workbench.domain.session.session_reducer import SessionReducer, new_session
from agentos_workbench.domain.session.session_store import SessionStore

__version__ = "0.1.0"

__all__ = [
    "ChunkType",
    "Session",
    "SessionStatus",
    "TargetType",
    "StreamRequest",
    "DiagnosticKind",
    "ToolCallStatus",
    "DecodeError",
    "decode",
    "decode_line",
    "SessionReducer",
    "new_session",
    "SessionStore",
]
