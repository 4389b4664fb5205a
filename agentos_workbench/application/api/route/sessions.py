from typing import Dict, Any, List, Optional
from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field

from agentos_workbench.domain.models.session_state import StreamRequest, TargetType

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


class CreateSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_type: TargetType = Field(TargetType.PERSONA, alias="targetType")
    target_id: Optional[str] = Field(None, alias="targetId")
    session_id: Optional[str] = Field(None, alias="sessionId")


class SubmitRequest(BaseModel):
    """Composer payload; input must not be empty"""
    model_config = ConfigDict(populate_by_name=True)

    input: str = Field(min_length=1)
    workflow_id: Optional[str] = Field(None, alias="workflowId")


class TerminateRequest(BaseModel):
    reason: str = "Stream aborted by client"


@router.post("", status_code=201)
async def create_session(body: CreateSessionRequest, request: Request) -> Dict[str, Any]:
    session = await request.app.state.store.create_session(
        target_type=body.target_type,
        target_id=body.target_id,
        session_id=body.session_id
    )
    return session.model_dump(mode="json")


@router.get("")
async def list_sessions(request: Request) -> List[Dict[str, Any]]:
    sessions = await request.app.state.store.list_sessions()
    return [session.get_state_summary() for session in sessions]


@router.get("/{session_id}")
async def get_session(session_id: str, request: Request) -> Dict[str, Any]:
    session = await request.app.state.store.get_session(session_id)
    return session.model_dump(mode="json")


@router.post("/{session_id}/requests", status_code=202)
async def submit_request(
    session_id: str,
    body: SubmitRequest,
    request: Request
) -> Dict[str, Any]:
    """Open a stream; frames are consumed in a background task"""

    state = request.app.state
    stream_request = StreamRequest(input=body.input, workflow_id=body.workflow_id)
    session = await state.store.submit(session_id, stream_request)

    state.consumer.spawn(session_id, state.source.stream(session, stream_request))
    return {
        "session_id": session.id,
        "stream_id": session.active_stream_id,
        "status": session.status.value
    }


@router.post("/{session_id}/terminate")
async def terminate_stream(session_id: str, body: TerminateRequest, request: Request) -> Dict[str, Any]:
    session = await request.app.state.store.force_terminate(session_id, body.reason)
    return session.model_dump(mode="json")


@router.post("/{session_id}/settle")
async def settle_session(session_id: str, request: Request) -> Dict[str, Any]:
    session = await request.app.state.store.settle(session_id)
    return session.model_dump(mode="json")


@router.post("/{session_id}/activate")
async def activate_session(session_id: str, request: Request) -> Dict[str, Any]:
    session = await request.app.state.store.set_active_session(session_id)
    return session.get_state_summary()


@router.delete("/{session_id}", status_code=204)
async def delete_session(session_id: str, request: Request):
    await request.app.state.store.remove_session(session_id)
