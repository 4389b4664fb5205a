from typing import Dict, List, Tuple
import structlog

from agentos_workbench.domain.models.chunks import (
    ToolCallRequestChunk, ToolResultEmissionChunk
)
from agentos_workbench.domain.models.session_state import (
    ToolCall, ToolCallStatus, Diagnostic, DiagnosticKind
)

logger = structlog.get_logger(__name__)

ToolCallMap = Dict[str, ToolCall]


class ToolCallCorrelator:
    """Matches tool results to the requests of one stream.

    Every operation takes the current ``tool_call_id -> ToolCall`` map and
    returns a new map plus the anomalies it found. The input map is left as is.
    """

    def on_request(
        self,
        calls: ToolCallMap,
        chunk: ToolCallRequestChunk
    ) -> Tuple[ToolCallMap, List[Diagnostic]]:
        """Open a REQUESTED entry for each requested call"""

        updated = dict(calls)
        anomalies: List[Diagnostic] = []

        for request in chunk.tool_calls:
            if request.id in updated:
                logger.warning(
                    "Duplicate tool call id",
                    stream_id=chunk.stream_id,
                    tool_call_id=request.id
                )
                anomalies.append(Diagnostic(
                    kind=DiagnosticKind.DUPLICATE_TOOL_CALL_ID,
                    message=f"Tool call id '{request.id}' already requested in this stream",
                    stream_id=chunk.stream_id,
                    chunk_type=chunk.type.value,
                    details={"tool_call_id": request.id, "tool_name": request.name}
                ))
                continue

            updated[request.id] = ToolCall(
                tool_call_id=request.id,
                name=request.name,
                arguments=dict(request.arguments),
                rationale=chunk.rationale,
                gmi_instance_id=chunk.gmi_instance_id
            )

        return updated, anomalies

    def on_result(
        self,
        calls: ToolCallMap,
        chunk: ToolResultEmissionChunk
    ) -> Tuple[ToolCallMap, List[Diagnostic]]:
        """Close the matching request, or surface the result as an orphan"""

        status = ToolCallStatus.SUCCEEDED if chunk.is_success else ToolCallStatus.FAILED
        existing = calls.get(chunk.tool_call_id)

        if existing is not None and existing.status == ToolCallStatus.REQUESTED:
            updated = dict(calls)
            updated[chunk.tool_call_id] = existing.model_copy(update={
                "status": status,
                "tool_result": chunk.tool_result,
                "error_message": chunk.error_message
            })
            return updated, []

        if existing is not None:
            # Already resolved: keep the first outcome
            logger.warning(
                "Tool result for closed call",
                stream_id=chunk.stream_id,
                tool_call_id=chunk.tool_call_id,
                status=existing.status.value
            )
            return dict(calls), [Diagnostic(
                kind=DiagnosticKind.ORPHAN_TOOL_RESULT,
                message=f"Tool call '{chunk.tool_call_id}' was already {existing.status.value}",
                stream_id=chunk.stream_id,
                chunk_type=chunk.type.value,
                details={"tool_call_id": chunk.tool_call_id, "tool_name": chunk.tool_name}
            )]

        logger.warning(
            "Orphan tool result",
            stream_id=chunk.stream_id,
            tool_call_id=chunk.tool_call_id,
            tool_name=chunk.tool_name
        )
        updated = dict(calls)
        updated[chunk.tool_call_id] = ToolCall(
            tool_call_id=chunk.tool_call_id,
            name=chunk.tool_name,
            status=status,
            gmi_instance_id=chunk.gmi_instance_id,
            tool_result=chunk.tool_result,
            error_message=chunk.error_message,
            orphan=True
        )
        return updated, [Diagnostic(
            kind=DiagnosticKind.ORPHAN_TOOL_RESULT,
            message=f"No open request for tool call '{chunk.tool_call_id}'",
            stream_id=chunk.stream_id,
            chunk_type=chunk.type.value,
            details={"tool_call_id": chunk.tool_call_id, "tool_name": chunk.tool_name}
        )]

    def finalize(self, calls: ToolCallMap, stream_id: str) -> Tuple[ToolCallMap, List[Diagnostic]]:
        """Mark calls still waiting for a result as incomplete"""

        updated = dict(calls)
        anomalies: List[Diagnostic] = []

        for tool_call_id, call in calls.items():
            if call.status != ToolCallStatus.REQUESTED:
                continue
            updated[tool_call_id] = call.model_copy(update={"status": ToolCallStatus.INCOMPLETE})
            anomalies.append(Diagnostic(
                kind=DiagnosticKind.INCOMPLETE_TOOL_CALL,
                message=f"Tool call '{tool_call_id}' ({call.name}) never received a result",
                stream_id=stream_id,
                details={"tool_call_id": tool_call_id, "tool_name": call.name}
            ))

        if anomalies:
            logger.info("Incomplete tool calls at stream end", stream_id=stream_id, count=len(anomalies))

        return updated, anomalies

    def open_calls(self, calls: ToolCallMap) -> List[ToolCall]:
        return [call for call in calls.values() if call.status == ToolCallStatus.REQUESTED]
