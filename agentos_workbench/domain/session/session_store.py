from typing import Dict, Any, Optional, List, Callable, Awaitable, Union
import asyncio
import uuid
import structlog

from agentos_workbench.domain.errors import SessionNotFoundError
from agentos_workbench.domain.models.chunks import BaseChunk
from agentos_workbench.domain.models.session_state import (
    Session, SessionStatus, TargetType, StreamRequest
)
from agentos_workbench.domain.session.session_reducer import SessionReducer, new_session
from agentos_workbench.domain.streaming.chunk_decoder import DecodeError, decode, decode_line
from agentos_workbench.infrastructure.observability.logging import metrics, stream_logger

logger = structlog.get_logger(__name__)

SessionListener = Callable[[Session], Awaitable[None]]
Frame = Union[BaseChunk, DecodeError, Dict[str, Any], str]


class SessionStore:
    """Owns one session aggregate per id; the injected reducer is its only writer"""

    def __init__(self, reducer: Optional[SessionReducer] = None):
        self.reducer = reducer or SessionReducer()
        self.sessions: Dict[str, Session] = {}
        self.active_session_id: Optional[str] = None
        self._listeners: List[SessionListener] = []
        self._lock = asyncio.Lock()

    async def create_session(
        self,
        target_type: TargetType = TargetType.PERSONA,
        target_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> Session:
        """Create a session and make it the active one"""

        session = new_session(session_id or str(uuid.uuid4()), target_type, target_id)
        async with self._lock:
            self.sessions[session.id] = session
            self.active_session_id = session.id

        logger.info(
            "Session created",
            session_id=session.id,
            target_type=target_type.value,
            target_id=target_id
        )
        await self._notify(session)
        return session

    async def get_session(self, session_id: str) -> Session:
        async with self._lock:
            return self._get(session_id)

    async def list_sessions(self) -> List[Session]:
        async with self._lock:
            return list(self.sessions.values())

    async def remove_session(self, session_id: str):
        async with self._lock:
            self._get(session_id)
            del self.sessions[session_id]
            if self.active_session_id == session_id:
                self.active_session_id = None
        logger.info("Session removed", session_id=session_id)

    async def set_active_session(self, session_id: str) -> Session:
        async with self._lock:
            session = self._get(session_id)
            self.active_session_id = session_id
            return session

    async def active_session(self) -> Optional[Session]:
        async with self._lock:
            if self.active_session_id is None:
                return None
            return self.sessions.get(self.active_session_id)

    async def submit(
        self,
        session_id: str,
        request: StreamRequest,
        stream_id: Optional[str] = None
    ) -> Session:
        """Start a stream; raises StreamAlreadyActiveError while one is in flight"""
        return await self._update(session_id, lambda s: self.reducer.submit(s, request, stream_id))

    async def dispatch(self, session_id: str, frame: Frame) -> Session:
        """Apply one frame: a decoded chunk, a decode error, a raw wire object or JSON text"""

        if isinstance(frame, str):
            frame = decode_line(frame)
        elif not isinstance(frame, (BaseChunk, DecodeError)):
            frame = decode(frame)

        if isinstance(frame, DecodeError):
            metrics.increment_counter(f"decode_errors.{frame.kind.value}")
            return await self._update(session_id, lambda s: self.reducer.record_decode_error(s, frame))

        metrics.increment_counter(f"chunks.{frame.type.value}")
        return await self._update(session_id, lambda s: self.reducer.apply(s, frame))

    async def force_terminate(self, session_id: str, reason: str) -> Session:
        return await self._update(session_id, lambda s: self.reducer.force_terminate(s, reason))

    async def settle(self, session_id: str) -> Session:
        return await self._update(session_id, self.reducer.settle)

    def subscribe(self, listener: SessionListener):
        """Register a coroutine called with every new snapshot"""
        self._listeners.append(listener)

    def unsubscribe(self, listener: SessionListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _get(self, session_id: str) -> Session:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def _update(self, session_id: str, step: Callable[[Session], Session]) -> Session:
        async with self._lock:
            prior = self._get(session_id)
            updated = step(prior)
            self.sessions[session_id] = updated

        if updated is not prior:
            self._record(prior, updated)
            await self._notify(updated)
        return updated

    def _record(self, prior: Session, updated: Session):
        for diagnostic in updated.diagnostics[len(prior.diagnostics):]:
            metrics.increment_counter(f"diagnostics.{diagnostic.kind.value}")
            stream_logger.log_diagnostic(
                updated.id,
                diagnostic.kind.value,
                diagnostic.message,
                fatal=diagnostic.fatal,
                details=dict(diagnostic.details)
            )

        if prior.status != updated.status:
            reason = None
            if len(updated.stream_history) > len(prior.stream_history):
                reason = updated.stream_history[-1].terminal_reason
            stream_logger.log_stream_transition(
                updated.id,
                updated.active_stream_id or updated.last_stream_id,
                prior.status.value,
                updated.status.value,
                reason=reason
            )
            if updated.status in (SessionStatus.COMPLETED, SessionStatus.ERRORED):
                metrics.increment_counter(f"streams.{updated.status.value}")

        metrics.set_gauge(
            "streams.active",
            len([s for s in self.sessions.values() if s.status == SessionStatus.STREAMING])
        )

    async def _notify(self, session: Session):
        for listener in list(self._listeners):
            try:
                await listener(session)
            except Exception as e:
                logger.error("Error in session listener", session_id=session.id, error=str(e))
