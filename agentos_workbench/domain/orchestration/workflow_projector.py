from typing import Dict, Optional
import structlog

from agentos_workbench.domain.models.chunks import (
    Chunk, ChunkType, WorkflowUpdateChunk, AgencyUpdateChunk, WorkflowTaskSnapshot
)
from agentos_workbench.domain.models.session_state import (
    Session, WorkflowProjection, WorkflowTask, AgencyRoster, AgencySeat, SeatActivity
)

logger = structlog.get_logger(__name__)


class WorkflowProjector:
    """Projects workflow and agency snapshots into session state.

    Snapshots carry the full current state, so the last chunk in the stream
    always wins. Status regressions (e.g. completed -> in_progress) are applied
    as received; the runtime owns progression.
    """

    def apply_workflow_update(
        self,
        workflows: Dict[str, WorkflowProjection],
        chunk: WorkflowUpdateChunk
    ) -> Dict[str, WorkflowProjection]:
        """Replace the workflow header and every task named in the chunk"""

        snapshot = chunk.workflow
        previous = workflows.get(snapshot.workflow_id)
        tasks: Dict[str, WorkflowTask] = dict(previous.tasks) if previous else {}

        for task_id, task_snapshot in (snapshot.tasks or {}).items():
            prior = tasks.get(task_id)
            if prior is not None and prior.status != task_snapshot.status:
                logger.debug(
                    "Workflow task status changed",
                    workflow_id=snapshot.workflow_id,
                    task_id=task_id,
                    from_status=prior.status,
                    to_status=task_snapshot.status
                )
            tasks[task_id] = self._to_task(task_id, task_snapshot)

        updated = dict(workflows)
        updated[snapshot.workflow_id] = WorkflowProjection(
            workflow_id=snapshot.workflow_id,
            definition_id=snapshot.definition_id,
            definition_version=snapshot.definition_version,
            status=snapshot.status,
            created_at=snapshot.created_at,
            updated_at=snapshot.updated_at,
            conversation_id=snapshot.conversation_id,
            metadata=dict(snapshot.metadata or {}),
            tasks=tasks
        )
        return updated

    def apply_agency_update(
        self,
        agencies: Dict[str, AgencyRoster],
        chunk: AgencyUpdateChunk
    ) -> Dict[str, AgencyRoster]:
        """Replace the whole seat roster of the agency"""

        snapshot = chunk.agency
        seats = {
            seat.role_id: AgencySeat(
                role_id=seat.role_id,
                gmi_instance_id=seat.gmi_instance_id,
                persona_id=seat.persona_id,
                metadata=dict(seat.metadata or {})
            )
            for seat in snapshot.seats
        }

        updated = dict(agencies)
        updated[snapshot.agency_id] = AgencyRoster(
            agency_id=snapshot.agency_id,
            workflow_id=snapshot.workflow_id,
            conversation_id=snapshot.conversation_id,
            metadata=dict(snapshot.metadata or {}),
            seats=seats
        )
        return updated

    def track_seat_activity(
        self,
        activity: Dict[str, SeatActivity],
        agencies: Dict[str, AgencyRoster],
        chunk: Chunk
    ) -> Dict[str, SeatActivity]:
        """Attribute one chunk of an agency stream to the seat that emitted it"""

        gmi_instance_id = chunk.gmi_instance_id
        previous = activity.get(gmi_instance_id)
        role_id = self._resolve_role(agencies, gmi_instance_id)

        text = previous.text if previous else ""
        if chunk.type == ChunkType.TEXT_DELTA:
            text += chunk.text_delta

        updated = dict(activity)
        updated[gmi_instance_id] = SeatActivity(
            gmi_instance_id=gmi_instance_id,
            persona_id=chunk.persona_id,
            role_id=role_id or (previous.role_id if previous else None),
            last_chunk_type=chunk.type,
            chunk_count=(previous.chunk_count if previous else 0) + 1,
            text=text
        )
        return updated

    def _resolve_role(self, agencies: Dict[str, AgencyRoster], gmi_instance_id: str) -> Optional[str]:
        for roster in agencies.values():
            for seat in roster.seats.values():
                if seat.gmi_instance_id == gmi_instance_id:
                    return seat.role_id
        return None

    def _to_task(self, task_id: str, snapshot: WorkflowTaskSnapshot) -> WorkflowTask:
        return WorkflowTask(
            task_id=task_id,
            status=snapshot.status,
            assigned_role_id=snapshot.assigned_role_id,
            assigned_executor_id=snapshot.assigned_executor_id,
            started_at=snapshot.started_at,
            completed_at=snapshot.completed_at,
            output=snapshot.output,
            error=snapshot.error,
            metadata=dict(snapshot.metadata or {})
        )


def task_status(session: Session, workflow_id: str, task_id: str) -> Optional[str]:
    """Current status of a task, or None when unknown"""
    workflow = session.workflows.get(workflow_id)
    if workflow is None:
        return None
    task = workflow.tasks.get(task_id)
    return task.status if task else None


def seat_for_role(session: Session, agency_id: str, role_id: str) -> Optional[AgencySeat]:
    roster = session.agencies.get(agency_id)
    if roster is None:
        return None
    return roster.seats.get(role_id)
