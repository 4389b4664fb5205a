from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
import structlog

from .schema.events import EventType, SnapshotEvent, UserMessage, TerminateRequest
from agentos_workbench.domain.errors import SessionNotFoundError, StreamAlreadyActiveError
from agentos_workbench.domain.models.session_state import StreamRequest

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.websocket("/ws/sessions/{session_id}")
async def session_websocket(websocket: WebSocket, session_id: str):
    """Live session snapshots; also accepts requests typed in the composer"""

    state = websocket.app.state
    store = state.store
    connection_manager = state.connection_manager

    try:
        session = await store.get_session(session_id)
    except SessionNotFoundError:
        await websocket.close(code=1008, reason="Unknown session")
        return

    connection_id = await connection_manager.connect(websocket, session_id)

    try:
        await connection_manager.send_event(connection_id, SnapshotEvent.from_session(session))

        while True:
            data = await websocket.receive_json()

            try:
                event_type = data.get("type")

                if event_type == EventType.USER_MESSAGE:
                    message = UserMessage(**data)
                    await process_user_message(websocket, session_id, message)

                elif event_type == EventType.TERMINATE:
                    request = TerminateRequest(**data)
                    await store.force_terminate(session_id, request.reason)

                else:
                    await connection_manager.send_error(
                        connection_id, f"Unsupported message type: {event_type}", "unsupported"
                    )

            except StreamAlreadyActiveError as e:
                await connection_manager.send_error(connection_id, str(e), "stream_active")
            except ValidationError as e:
                await connection_manager.send_error(connection_id, f"Invalid message: {e.error_count()} error(s)", "invalid")

    except WebSocketDisconnect:
        logger.info("Client disconnected", session_id=session_id, connection_id=connection_id)
    finally:
        await connection_manager.disconnect(connection_id)


async def process_user_message(websocket: WebSocket, session_id: str, message: UserMessage):
    """Open a stream for the message and consume it in the background"""

    state = websocket.app.state
    request = StreamRequest(input=message.content, workflow_id=message.workflow_id)
    session = await state.store.submit(session_id, request)

    state.consumer.spawn(session_id, state.source.stream(session, request))

    logger.info("Stream dispatched", session_id=session_id, stream_id=session.active_stream_id)
