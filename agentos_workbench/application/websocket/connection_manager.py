from typing import Dict, Set, Optional
from fastapi import WebSocket
import asyncio
import uuid
from datetime import datetime
import structlog

from .schema.events import BaseEvent, ConnectionEvent, ErrorEvent, SnapshotEvent
from agentos_workbench.domain.models.session_state import Session

logger = structlog.get_logger(__name__)


class ConnectionManager:
    """Manages WebSocket connections and pushes session snapshots to them"""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}
        self.connection_metadata: Dict[str, Dict] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, session_id: str) -> str:
        """Accept a new WebSocket connection watching one session"""
        await websocket.accept()
        connection_id = str(uuid.uuid4())

        async with self._lock:
            self.active_connections[connection_id] = websocket
            self.connection_metadata[connection_id] = {
                "session_id": session_id,
                "connected_at": datetime.utcnow(),
                "last_activity": datetime.utcnow()
            }

        await self.send_event(
            connection_id,
            ConnectionEvent(
                status="connected",
                session_id=session_id
            )
        )

        logger.info("WebSocket connected", session_id=session_id, connection_id=connection_id)
        return connection_id

    async def disconnect(self, connection_id: str):
        """Disconnect a WebSocket connection"""
        async with self._lock:
            ws = self.active_connections.pop(connection_id, None)
            metadata = self.connection_metadata.pop(connection_id, None)

        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.debug("Error closing WebSocket", connection_id=connection_id, error=str(e))

        logger.info(
            "WebSocket disconnected",
            connection_id=connection_id,
            session_id=metadata.get("session_id") if metadata else None
        )

    async def send_event(self, connection_id: str, event: BaseEvent) -> bool:
        """Send an event to one connection"""
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            logger.warning("Attempted to send to closed connection", connection_id=connection_id)
            return False

        try:
            await websocket.send_json(event.model_dump(mode="json"))

            if connection_id in self.connection_metadata:
                self.connection_metadata[connection_id]["last_activity"] = datetime.utcnow()

            return True

        except Exception as e:
            logger.error("Failed to send event", connection_id=connection_id, error=str(e))
            await self.disconnect(connection_id)
            return False

    async def broadcast_to_session(self, session_id: str, event: BaseEvent):
        """Send an event to every connection watching the session"""
        tasks = [
            self.send_event(connection_id, event)
            for connection_id in self.get_connections(session_id)
        ]
        await asyncio.gather(*tasks, return_exceptions=True)

    async def publish_snapshot(self, session: Session):
        """Session store listener"""
        await self.broadcast_to_session(session.id, SnapshotEvent.from_session(session))

    async def send_error(self, connection_id: str, error_message: str, error_code: Optional[str] = None):
        """Send an error event to a connection"""
        metadata = self.connection_metadata.get(connection_id, {})
        error_event = ErrorEvent(
            payload={"message": error_message},
            error_code=error_code,
            session_id=metadata.get("session_id")
        )
        await self.send_event(connection_id, error_event)

    def get_connections(self, session_id: Optional[str] = None) -> Set[str]:
        """Get connection IDs, optionally filtered by watched session"""
        if session_id:
            return {
                connection_id
                for connection_id, metadata in self.connection_metadata.items()
                if metadata.get("session_id") == session_id
            }
        return set(self.active_connections.keys())
