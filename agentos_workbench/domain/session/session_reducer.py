"""Session reducer: folds decoded chunks into the session aggregate.

Lifecycle::

    idle -> streaming -> completed | errored -> idle

Every public method takes the prior ``Session`` and returns a new one; chunks
and prior snapshots are never modified, so any snapshot handed out mid-stream
stays valid. Decoding, correlation and projection anomalies are recorded in
``session.diagnostics`` and never stop the stream. Only an ERROR chunk or
``force_terminate`` ends a stream in the errored state.
"""

from typing import Dict, Any, Optional, List, Callable
import uuid
import structlog

from agentos_workbench.domain.errors import StreamAlreadyActiveError
from agentos_workbench.domain.models.chunks import (
    Chunk, ChunkType, TextDeltaChunk, SystemProgressChunk, ToolCallRequestChunk,
    ToolResultEmissionChunk, UICommandChunk, FinalResponseChunk, ErrorChunk,
    MetadataUpdateChunk, WorkflowUpdateChunk, AgencyUpdateChunk,
    RagRetrievalChunk, RagIngestionChunk
)
from agentos_workbench.domain.models.session_state import (
    Session, SessionStatus, TargetType, StreamRequest, TranscriptSegment,
    ProgressState, Diagnostic, DiagnosticKind, StreamRecord
)
from agentos_workbench.domain.streaming.chunk_decoder import DecodeError
from agentos_workbench.domain.tool.tool_call_correlator import ToolCallCorrelator
from agentos_workbench.domain.orchestration.workflow_projector import WorkflowProjector
from agentos_workbench.domain.context.evidence_accumulator import EvidenceAccumulator

logger = structlog.get_logger(__name__)

Updates = Dict[str, Any]

_TERMINAL = (SessionStatus.COMPLETED, SessionStatus.ERRORED)


class SessionReducer:
    """Single writer of session state"""

    def __init__(
        self,
        correlator: Optional[ToolCallCorrelator] = None,
        projector: Optional[WorkflowProjector] = None,
        accumulator: Optional[EvidenceAccumulator] = None
    ):
        self.correlator = correlator or ToolCallCorrelator()
        self.projector = projector or WorkflowProjector()
        self.accumulator = accumulator or EvidenceAccumulator()

    def __call__(self, session: Session, chunk: Chunk) -> Session:
        return self.apply(session, chunk)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def submit(
        self,
        session: Session,
        request: StreamRequest,
        stream_id: Optional[str] = None
    ) -> Session:
        """Open a new stream for the request.

        A stream id given here is binding: chunks carrying another id are
        rejected. Without one a provisional id is generated and replaced by the
        id of the first chunk the runtime sends.
        """

        if session.status == SessionStatus.STREAMING:
            raise StreamAlreadyActiveError(session.id, session.active_stream_id)

        new_stream_id = stream_id or uuid.uuid4().hex

        logger.info(
            "Stream started",
            session_id=session.id,
            stream_id=new_stream_id,
            target_type=session.target_type.value,
            workflow_id=request.workflow_id
        )

        return self._commit(session, {
            "status": SessionStatus.STREAMING,
            "active_stream_id": new_stream_id,
            "last_stream_id": new_stream_id,
            "stream_bound": stream_id is not None,
            "request": request,
            "text_buffer": "",
            "progress": None,
            "tool_calls": {},
            "seat_activity": {},
            "ui_commands": (),
            "usage": None,
            "chunk_count": 0
        })

    def settle(self, session: Session) -> Session:
        """Return a finished session to idle"""
        if session.status not in _TERMINAL:
            return session
        return self._commit(session, {"status": SessionStatus.IDLE})

    def force_terminate(self, session: Session, reason: str) -> Session:
        """End an in-flight stream that the transport gave up on"""

        if session.status != SessionStatus.STREAMING:
            logger.debug("Nothing to terminate", session_id=session.id, status=session.status.value)
            return session

        logger.error(
            "Stream force-terminated",
            session_id=session.id,
            stream_id=session.active_stream_id,
            reason=reason
        )

        updates = self._fail(session, Diagnostic(
            kind=DiagnosticKind.INCOMPLETE_STREAM,
            message=reason,
            stream_id=session.active_stream_id,
            details={"chunks_applied": session.chunk_count}
        ))
        return self._commit(session, updates)

    def record_decode_error(self, session: Session, error: DecodeError) -> Session:
        """Keep a frame that failed to decode as a diagnostic"""

        logger.warning(
            "Chunk decode failed",
            session_id=session.id,
            kind=error.kind.value,
            chunk_type=error.chunk_type,
            message=error.message
        )
        diagnostic = Diagnostic(
            kind=error.kind,
            message=error.message,
            stream_id=error.stream_id or session.active_stream_id,
            chunk_type=error.chunk_type,
            details={"errors": list(error.errors)} if error.errors else {}
        )
        return self._commit(session, {"diagnostics": session.diagnostics + (diagnostic,)})

    # ------------------------------------------------------------------
    # Chunk application
    # ------------------------------------------------------------------

    def apply(self, session: Session, chunk: Chunk) -> Session:
        """Apply one decoded chunk in arrival order"""

        if session.status != SessionStatus.STREAMING:
            return self._reject(
                session, chunk, DiagnosticKind.STALE_CHUNK,
                f"{chunk.type.value} chunk arrived while session is {session.status.value}"
            )

        base: Updates = {}
        if not session.stream_bound:
            if chunk.stream_id != session.active_stream_id:
                logger.debug(
                    "Binding runtime stream id",
                    session_id=session.id,
                    provisional=session.active_stream_id,
                    stream_id=chunk.stream_id
                )
            base = {
                "active_stream_id": chunk.stream_id,
                "last_stream_id": chunk.stream_id,
                "stream_bound": True
            }
            session = session.model_copy(update=base)
        elif chunk.stream_id != session.active_stream_id:
            return self._reject(
                session, chunk, DiagnosticKind.FOREIGN_STREAM_CHUNK,
                f"Chunk for stream {chunk.stream_id} while {session.active_stream_id} is active"
            )

        updates: Updates = dict(base)
        updates["chunk_count"] = session.chunk_count + 1
        if session.target_type == TargetType.AGENCY:
            updates["seat_activity"] = self.projector.track_seat_activity(
                session.seat_activity, session.agencies, chunk
            )

        handler = _HANDLERS[chunk.type]
        updates.update(handler(self, session.model_copy(update=updates), chunk))

        # ERROR chunks are closed by their handler, whatever isFinal says
        interim = session.model_copy(update=updates)
        if chunk.type == ChunkType.FINAL_RESPONSE:
            updates.update(self._complete(interim, chunk.final_response_text))
        elif chunk.is_final and chunk.type != ChunkType.ERROR:
            updates.update(self._complete(interim, None))

        return self._commit(session, updates)

    def _on_text_delta(self, session: Session, chunk: TextDeltaChunk) -> Updates:
        return {"text_buffer": session.text_buffer + chunk.text_delta}

    def _on_system_progress(self, session: Session, chunk: SystemProgressChunk) -> Updates:
        return {"progress": ProgressState(
            message=chunk.message,
            progress_percentage=chunk.progress_percentage,
            status_code=chunk.status_code
        )}

    def _on_tool_call_request(self, session: Session, chunk: ToolCallRequestChunk) -> Updates:
        calls, anomalies = self.correlator.on_request(session.tool_calls, chunk)
        return {"tool_calls": calls, "diagnostics": session.diagnostics + tuple(anomalies)}

    def _on_tool_result(self, session: Session, chunk: ToolResultEmissionChunk) -> Updates:
        calls, anomalies = self.correlator.on_result(session.tool_calls, chunk)
        return {"tool_calls": calls, "diagnostics": session.diagnostics + tuple(anomalies)}

    def _on_ui_command(self, session: Session, chunk: UICommandChunk) -> Updates:
        return {"ui_commands": session.ui_commands + (chunk,)}

    def _on_final_response(self, session: Session, chunk: FinalResponseChunk) -> Updates:
        # Transcript flush happens in apply() once the chunk is folded in
        if chunk.usage is None:
            return {}
        return {"usage": chunk.usage}

    def _on_error(self, session: Session, chunk: ErrorChunk) -> Updates:
        logger.error(
            "Stream error chunk",
            session_id=session.id,
            stream_id=chunk.stream_id,
            code=chunk.code,
            message=chunk.message
        )
        details: Dict[str, Any] = {"code": chunk.code}
        if chunk.details is not None:
            details["details"] = chunk.details
        return self._fail(session, Diagnostic(
            kind=DiagnosticKind.STREAM_ERROR,
            message=chunk.message,
            stream_id=chunk.stream_id,
            chunk_type=chunk.type.value,
            details=details
        ))

    def _on_metadata_update(self, session: Session, chunk: MetadataUpdateChunk) -> Updates:
        merged = dict(session.metadata)
        merged.update(chunk.updates)
        return {"metadata": merged}

    def _on_workflow_update(self, session: Session, chunk: WorkflowUpdateChunk) -> Updates:
        return {"workflows": self.projector.apply_workflow_update(session.workflows, chunk)}

    def _on_agency_update(self, session: Session, chunk: AgencyUpdateChunk) -> Updates:
        return {"agencies": self.projector.apply_agency_update(session.agencies, chunk)}

    def _on_rag_retrieval(self, session: Session, chunk: RagRetrievalChunk) -> Updates:
        return {"evidence": self.accumulator.append_retrieval(session.evidence, chunk)}

    def _on_rag_ingestion(self, session: Session, chunk: RagIngestionChunk) -> Updates:
        return {"ingestions": self.accumulator.append_ingestion(session.ingestions, chunk)}

    # ------------------------------------------------------------------
    # Terminal bookkeeping
    # ------------------------------------------------------------------

    def _complete(self, session: Session, final_text: Optional[str]) -> Updates:
        """Flush the transcript and close the stream as completed"""

        # Explicit final text is authoritative over the delta buffer
        text = final_text if final_text else session.text_buffer
        transcript = session.transcript
        if text:
            transcript = transcript + (TranscriptSegment(stream_id=session.active_stream_id, text=text),)

        calls, anomalies = self.correlator.finalize(session.tool_calls, session.active_stream_id)

        logger.info(
            "Stream completed",
            session_id=session.id,
            stream_id=session.active_stream_id,
            chunks=session.chunk_count,
            incomplete_tool_calls=len(anomalies)
        )

        return self._close(session, SessionStatus.COMPLETED, None, {
            "transcript": transcript,
            "tool_calls": calls,
            "diagnostics": session.diagnostics + tuple(anomalies)
        })

    def _fail(self, session: Session, reason: Diagnostic) -> Updates:
        """Close the stream as errored, keeping everything applied so far"""

        transcript = session.transcript
        if session.text_buffer:
            transcript = transcript + (TranscriptSegment(
                stream_id=session.active_stream_id,
                text=session.text_buffer,
                partial=True
            ),)

        calls, anomalies = self.correlator.finalize(session.tool_calls, session.active_stream_id)

        return self._close(session, SessionStatus.ERRORED, reason.message, {
            "transcript": transcript,
            "tool_calls": calls,
            "diagnostics": session.diagnostics + (reason,) + tuple(anomalies)
        })

    def _close(
        self,
        session: Session,
        status: SessionStatus,
        terminal_reason: Optional[str],
        updates: Updates
    ) -> Updates:
        record = StreamRecord(
            stream_id=session.active_stream_id,
            status=status,
            chunk_count=session.chunk_count,
            tool_calls=updates["tool_calls"],
            terminal_reason=terminal_reason
        )
        updates.update({
            "status": status,
            "active_stream_id": None,
            "text_buffer": "",
            "progress": None,
            "stream_history": session.stream_history + (record,)
        })
        return updates

    def _reject(self, session: Session, chunk: Chunk, kind: DiagnosticKind, message: str) -> Session:
        logger.warning(
            "Chunk not applied",
            session_id=session.id,
            stream_id=chunk.stream_id,
            chunk_type=chunk.type.value,
            kind=kind.value
        )
        diagnostic = Diagnostic(
            kind=kind,
            message=message,
            stream_id=chunk.stream_id,
            chunk_type=chunk.type.value
        )
        return self._commit(session, {"diagnostics": session.diagnostics + (diagnostic,)})

    def _commit(self, session: Session, updates: Updates) -> Session:
        # Full validation, so every mapping field is a fresh read-only view
        updates["version"] = session.version + 1
        return Session.model_validate({**dict(session), **updates})


_HANDLERS: Dict[ChunkType, Callable[[SessionReducer, Session, Any], Updates]] = {
    ChunkType.TEXT_DELTA: SessionReducer._on_text_delta,
    ChunkType.SYSTEM_PROGRESS: SessionReducer._on_system_progress,
    ChunkType.TOOL_CALL_REQUEST: SessionReducer._on_tool_call_request,
    ChunkType.TOOL_RESULT_EMISSION: SessionReducer._on_tool_result,
    ChunkType.UI_COMMAND: SessionReducer._on_ui_command,
    ChunkType.FINAL_RESPONSE: SessionReducer._on_final_response,
    ChunkType.ERROR: SessionReducer._on_error,
    ChunkType.METADATA_UPDATE: SessionReducer._on_metadata_update,
    ChunkType.WORKFLOW_UPDATE: SessionReducer._on_workflow_update,
    ChunkType.AGENCY_UPDATE: SessionReducer._on_agency_update,
    ChunkType.RAG_RETRIEVAL: SessionReducer._on_rag_retrieval,
    ChunkType.RAG_INGESTION: SessionReducer._on_rag_ingestion,
}

_unhandled = set(ChunkType) - set(_HANDLERS)
if _unhandled:
    raise RuntimeError(f"Chunk types without a reducer handler: {sorted(t.value for t in _unhandled)}")


def new_session(
    session_id: str,
    target_type: TargetType = TargetType.PERSONA,
    target_id: Optional[str] = None
) -> Session:
    return Session(id=session_id, target_type=target_type, target_id=target_id)


def replay(reducer: SessionReducer, session: Session, chunks: List[Chunk]) -> Session:
    """Fold a chunk sequence into the session"""
    for chunk in chunks:
        session = reducer.apply(session, chunk)
    return session
