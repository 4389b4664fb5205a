from typing import Dict, Any, Optional, List, Literal, Union
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr
from pydantic.alias_generators import to_camel
from enum import Enum


class ChunkType(str, Enum):
    """Chunk discriminants emitted by the AgentOS runtime"""
    TEXT_DELTA = "text_delta"
    SYSTEM_PROGRESS = "system_progress"
    TOOL_CALL_REQUEST = "tool_call_request"
    TOOL_RESULT_EMISSION = "tool_result_emission"
    UI_COMMAND = "ui_command"
    FINAL_RESPONSE = "final_response"
    ERROR = "error"
    METADATA_UPDATE = "metadata_update"
    WORKFLOW_UPDATE = "workflow_update"
    AGENCY_UPDATE = "agency_update"
    RAG_RETRIEVAL = "rag_retrieval"
    RAG_INGESTION = "rag_ingestion"


class WireModel(BaseModel):
    """Immutable model with camelCase wire aliases"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        """Dump using the wire field names"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class BaseChunk(WireModel):
    """Envelope shared by every chunk"""
    model_config = ConfigDict(extra="allow")

    type: ChunkType
    stream_id: StrictStr
    gmi_instance_id: StrictStr
    persona_id: StrictStr
    is_final: StrictBool
    timestamp: StrictStr  # advisory only, arrival order is authoritative
    metadata: Optional[Dict[str, Any]] = None


class TextDeltaChunk(BaseChunk):
    type: Literal[ChunkType.TEXT_DELTA] = ChunkType.TEXT_DELTA
    text_delta: StrictStr


class SystemProgressChunk(BaseChunk):
    type: Literal[ChunkType.SYSTEM_PROGRESS] = ChunkType.SYSTEM_PROGRESS
    message: StrictStr
    progress_percentage: Optional[float] = None
    status_code: Optional[str] = None


class ToolCallRequestShape(WireModel):
    id: StrictStr
    name: StrictStr
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolCallRequestChunk(BaseChunk):
    type: Literal[ChunkType.TOOL_CALL_REQUEST] = ChunkType.TOOL_CALL_REQUEST
    tool_calls: List[ToolCallRequestShape]
    rationale: Optional[str] = None


class ToolResultEmissionChunk(BaseChunk):
    type: Literal[ChunkType.TOOL_RESULT_EMISSION] = ChunkType.TOOL_RESULT_EMISSION
    tool_call_id: StrictStr
    tool_name: StrictStr
    tool_result: Any = None
    is_success: StrictBool
    error_message: Optional[str] = None


class UICommandChunk(BaseChunk):
    type: Literal[ChunkType.UI_COMMAND] = ChunkType.UI_COMMAND
    ui_commands: List[Dict[str, Any]] = Field(default_factory=list)


class TokenUsage(WireModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class FinalResponseChunk(BaseChunk):
    type: Literal[ChunkType.FINAL_RESPONSE] = ChunkType.FINAL_RESPONSE
    final_response_text: Optional[StrictStr]
    usage: Optional[TokenUsage] = None


class ErrorChunk(BaseChunk):
    type: Literal[ChunkType.ERROR] = ChunkType.ERROR
    code: StrictStr = "STREAM_ERROR"
    message: StrictStr
    details: Any = None


class MetadataUpdateChunk(BaseChunk):
    type: Literal[ChunkType.METADATA_UPDATE] = ChunkType.METADATA_UPDATE
    updates: Dict[str, Any]


class WorkflowTaskError(WireModel):
    message: str
    code: Optional[str] = None
    details: Any = None


class WorkflowTaskSnapshot(WireModel):
    """Full current state of one workflow task"""
    status: StrictStr
    assigned_role_id: Optional[str] = None
    assigned_executor_id: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    output: Any = None
    error: Optional[WorkflowTaskError] = None
    metadata: Optional[Dict[str, Any]] = None


class WorkflowSnapshot(WireModel):
    workflow_id: StrictStr
    definition_id: StrictStr
    definition_version: Optional[str] = None
    status: StrictStr
    created_at: Optional[str] = None
    updated_at: StrictStr
    conversation_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    tasks: Optional[Dict[str, WorkflowTaskSnapshot]] = None


class WorkflowUpdateChunk(BaseChunk):
    type: Literal[ChunkType.WORKFLOW_UPDATE] = ChunkType.WORKFLOW_UPDATE
    workflow: WorkflowSnapshot


class AgencySeatSnapshot(WireModel):
    role_id: StrictStr
    gmi_instance_id: StrictStr
    persona_id: StrictStr
    metadata: Optional[Dict[str, Any]] = None


class AgencySnapshot(WireModel):
    agency_id: StrictStr
    workflow_id: StrictStr
    conversation_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    seats: List[AgencySeatSnapshot]


class AgencyUpdateChunk(BaseChunk):
    type: Literal[ChunkType.AGENCY_UPDATE] = ChunkType.AGENCY_UPDATE
    agency: AgencySnapshot


class RetrievedChunk(WireModel):
    chunk_id: StrictStr
    document_id: StrictStr
    content: StrictStr
    score: float  # similarity, 0-1
    metadata: Optional[Dict[str, Any]] = None


class RagRetrievalChunk(BaseChunk):
    type: Literal[ChunkType.RAG_RETRIEVAL] = ChunkType.RAG_RETRIEVAL
    query: StrictStr
    retrieved_chunks: List[RetrievedChunk]
    total_results: int
    processing_time_ms: Optional[float] = None


class RagIngestionChunk(BaseChunk):
    type: Literal[ChunkType.RAG_INGESTION] = ChunkType.RAG_INGESTION
    document_id: StrictStr
    collection_id: StrictStr
    status: Literal["success", "partial", "failed"]
    chunks_created: Optional[int] = None
    error_message: Optional[str] = None
    processing_time_ms: Optional[float] = None


Chunk = Union[
    TextDeltaChunk,
    SystemProgressChunk,
    ToolCallRequestChunk,
    ToolResultEmissionChunk,
    UICommandChunk,
    FinalResponseChunk,
    ErrorChunk,
    MetadataUpdateChunk,
    WorkflowUpdateChunk,
    AgencyUpdateChunk,
    RagRetrievalChunk,
    RagIngestionChunk,
]


CHUNK_CLASSES: Dict[ChunkType, type] = {
    ChunkType.TEXT_DELTA: TextDeltaChunk,
    ChunkType.SYSTEM_PROGRESS: SystemProgressChunk,
    ChunkType.TOOL_CALL_REQUEST: ToolCallRequestChunk,
    ChunkType.TOOL_RESULT_EMISSION: ToolResultEmissionChunk,
    ChunkType.UI_COMMAND: UICommandChunk,
    ChunkType.FINAL_RESPONSE: FinalResponseChunk,
    ChunkType.ERROR: ErrorChunk,
    ChunkType.METADATA_UPDATE: MetadataUpdateChunk,
    ChunkType.WORKFLOW_UPDATE: WorkflowUpdateChunk,
    ChunkType.AGENCY_UPDATE: AgencyUpdateChunk,
    ChunkType.RAG_RETRIEVAL: RagRetrievalChunk,
    ChunkType.RAG_INGESTION: RagIngestionChunk,
}
