from typing import Dict, Any, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum

from agentos_workbench.domain.models.session_state import Session


class EventType(str, Enum):
    """WebSocket event types"""
    SNAPSHOT = "snapshot"
    ERROR = "error"
    CONNECTION = "connection"
    USER_MESSAGE = "user_message"
    TERMINATE = "terminate"


class BaseEvent(BaseModel):
    """Base event model for all WebSocket messages"""
    type: EventType
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    session_id: Optional[str] = None


class SnapshotEvent(BaseEvent):
    """Full session snapshot, sent on every version bump"""
    type: Literal[EventType.SNAPSHOT] = EventType.SNAPSHOT
    version: int
    payload: Dict[str, Any]

    @classmethod
    def from_session(cls, session: Session) -> "SnapshotEvent":
        return cls(
            session_id=session.id,
            version=session.version,
            payload=session.model_dump(mode="json")
        )


class ErrorEvent(BaseEvent):
    """Error event"""
    type: Literal[EventType.ERROR] = EventType.ERROR
    payload: Dict[str, Any]
    error_code: Optional[str] = None


class ConnectionEvent(BaseEvent):
    """Connection status event"""
    type: Literal[EventType.CONNECTION] = EventType.CONNECTION
    status: Literal["connected", "disconnected"]


class UserMessage(BaseEvent):
    """Request typed into the composer"""
    type: Literal[EventType.USER_MESSAGE] = EventType.USER_MESSAGE
    content: str = Field(min_length=1)
    workflow_id: Optional[str] = Field(None, alias="workflowId")

    model_config = ConfigDict(populate_by_name=True)


class TerminateRequest(BaseEvent):
    """Client abandons the in-flight stream"""
    type: Literal[EventType.TERMINATE] = EventType.TERMINATE
    reason: str = "Stream aborted by client"
