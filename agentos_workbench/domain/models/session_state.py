from typing import Annotated, Dict, Any, Mapping, Optional, Tuple, TypeVar
from types import MappingProxyType
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, WrapSerializer, computed_field
from enum import Enum

from agentos_workbench.domain.models.chunks import (
    ChunkType, TokenUsage, WorkflowTaskError, RetrievedChunk, UICommandChunk
)


K = TypeVar("K")
V = TypeVar("V")


def _read_only(value: Mapping) -> Mapping:
    return MappingProxyType(dict(value))


def _as_dict(value: Mapping, handler):
    return handler(dict(value))


# Mapping fields are copied into a read-only view on validation
ReadOnlyDict = Annotated[Dict[K, V], AfterValidator(_read_only), WrapSerializer(_as_dict)]


class FrozenModel(BaseModel):
    """Base for snapshot values handed out to readers"""
    model_config = ConfigDict(frozen=True, validate_default=True)


class TargetType(str, Enum):
    """What a session talks to"""
    PERSONA = "persona"
    AGENCY = "agency"


class SessionStatus(str, Enum):
    """Session lifecycle status"""
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"


class ToolCallStatus(str, Enum):
    """Tool invocation lifecycle"""
    REQUESTED = "requested"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    INCOMPLETE = "incomplete"


class DiagnosticKind(str, Enum):
    """Anomalies recorded while folding a stream"""
    UNKNOWN_CHUNK_TYPE = "UnknownChunkType"
    MALFORMED_CHUNK = "MalformedChunk"
    DUPLICATE_TOOL_CALL_ID = "DuplicateToolCallId"
    ORPHAN_TOOL_RESULT = "OrphanToolResult"
    INCOMPLETE_TOOL_CALL = "IncompleteToolCall"
    STREAM_ERROR = "StreamError"
    INCOMPLETE_STREAM = "IncompleteStream"
    STALE_CHUNK = "StaleChunk"
    FOREIGN_STREAM_CHUNK = "ForeignStreamChunk"


FATAL_DIAGNOSTICS = frozenset({DiagnosticKind.STREAM_ERROR, DiagnosticKind.INCOMPLETE_STREAM})


class Diagnostic(FrozenModel):
    """One anomaly surfaced to the UI"""
    kind: DiagnosticKind
    message: str
    stream_id: Optional[str] = None
    chunk_type: Optional[str] = None
    details: ReadOnlyDict[str, Any] = Field(default_factory=dict)

    @computed_field
    @property
    def fatal(self) -> bool:
        return self.kind in FATAL_DIAGNOSTICS


class StreamRequest(FrozenModel):
    """Request submitted from the composer"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    input: str
    workflow_id: Optional[str] = Field(None, alias="workflowId")


class TranscriptSegment(FrozenModel):
    """Finalized text produced by one stream"""
    stream_id: str
    text: str
    partial: bool = False


class ProgressState(FrozenModel):
    message: str
    progress_percentage: Optional[float] = None
    status_code: Optional[str] = None


class ToolCall(FrozenModel):
    """Lifecycle of one tool invocation"""
    tool_call_id: str
    name: str
    status: ToolCallStatus = ToolCallStatus.REQUESTED
    arguments: ReadOnlyDict[str, Any] = Field(default_factory=dict)
    rationale: Optional[str] = None
    gmi_instance_id: Optional[str] = None
    tool_result: Any = None
    error_message: Optional[str] = None
    orphan: bool = False


class WorkflowTask(FrozenModel):
    """Latest snapshot of one workflow task"""
    task_id: str
    status: str
    assigned_role_id: Optional[str] = None
    assigned_executor_id: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    output: Any = None
    error: Optional[WorkflowTaskError] = None
    metadata: ReadOnlyDict[str, Any] = Field(default_factory=dict)


class WorkflowProjection(FrozenModel):
    workflow_id: str
    definition_id: str
    definition_version: Optional[str] = None
    status: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    conversation_id: Optional[str] = None
    metadata: ReadOnlyDict[str, Any] = Field(default_factory=dict)
    tasks: ReadOnlyDict[str, WorkflowTask] = Field(default_factory=dict)


class AgencySeat(FrozenModel):
    """Agent instance occupying a role"""
    role_id: str
    gmi_instance_id: str
    persona_id: str
    metadata: ReadOnlyDict[str, Any] = Field(default_factory=dict)


class AgencyRoster(FrozenModel):
    agency_id: str
    workflow_id: str
    conversation_id: Optional[str] = None
    metadata: ReadOnlyDict[str, Any] = Field(default_factory=dict)
    seats: ReadOnlyDict[str, AgencySeat] = Field(default_factory=dict)


class SeatActivity(FrozenModel):
    """What one seat has emitted during the current stream"""
    gmi_instance_id: str
    persona_id: str
    role_id: Optional[str] = None
    last_chunk_type: Optional[ChunkType] = None
    chunk_count: int = 0
    text: str = ""


class RetrievedEvidence(FrozenModel):
    stream_id: Optional[str]
    sequence: int
    query: str
    chunks: Tuple[RetrievedChunk, ...] = ()
    total_results: int = 0
    processing_time_ms: Optional[float] = None


class IngestionRecord(FrozenModel):
    stream_id: Optional[str]
    sequence: int
    document_id: str
    collection_id: str
    status: str
    chunks_created: Optional[int] = None
    error_message: Optional[str] = None
    processing_time_ms: Optional[float] = None


class StreamRecord(FrozenModel):
    """Archived per-stream state, kept after the stream ends"""
    stream_id: str
    status: SessionStatus
    chunk_count: int = 0
    tool_calls: ReadOnlyDict[str, ToolCall] = Field(default_factory=dict)
    terminal_reason: Optional[str] = None


class Session(FrozenModel):
    """Aggregate folded from the chunk streams of one conversation"""
    id: str
    target_type: TargetType = TargetType.PERSONA
    target_id: Optional[str] = None
    status: SessionStatus = SessionStatus.IDLE
    transcript: Tuple[TranscriptSegment, ...] = ()
    active_stream_id: Optional[str] = None
    last_stream_id: Optional[str] = None
    stream_bound: bool = False
    request: Optional[StreamRequest] = None
    text_buffer: str = ""
    progress: Optional[ProgressState] = None
    metadata: ReadOnlyDict[str, Any] = Field(default_factory=dict)
    tool_calls: ReadOnlyDict[str, ToolCall] = Field(default_factory=dict)
    workflows: ReadOnlyDict[str, WorkflowProjection] = Field(default_factory=dict)
    agencies: ReadOnlyDict[str, AgencyRoster] = Field(default_factory=dict)
    seat_activity: ReadOnlyDict[str, SeatActivity] = Field(default_factory=dict)
    evidence: Tuple[RetrievedEvidence, ...] = ()
    ingestions: Tuple[IngestionRecord, ...] = ()
    ui_commands: Tuple[UICommandChunk, ...] = ()
    usage: Optional[TokenUsage] = None
    diagnostics: Tuple[Diagnostic, ...] = ()
    stream_history: Tuple[StreamRecord, ...] = ()
    chunk_count: int = 0
    version: int = 0

    @property
    def is_streaming(self) -> bool:
        return self.status == SessionStatus.STREAMING

    @property
    def transcript_text(self) -> str:
        """Finalized transcript joined in arrival order"""
        return "".join(segment.text for segment in self.transcript)

    def incomplete_tool_calls(self) -> Tuple[ToolCall, ...]:
        return tuple(
            call for call in self.tool_calls.values()
            if call.status == ToolCallStatus.INCOMPLETE
        )

    def get_state_summary(self) -> Dict[str, Any]:
        """Get a summary of the current state"""
        return {
            "session_id": self.id,
            "target_type": self.target_type.value,
            "status": self.status.value,
            "active_stream_id": self.active_stream_id,
            "open_tool_calls": len([
                c for c in self.tool_calls.values() if c.status == ToolCallStatus.REQUESTED
            ]),
            "workflows": len(self.workflows),
            "evidence": len(self.evidence),
            "diagnostics": len(self.diagnostics),
            "version": self.version,
        }
