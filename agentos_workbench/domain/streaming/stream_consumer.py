from typing import Any, AsyncIterator, Optional, Protocol, Set
import asyncio
import structlog

from agentos_workbench.domain.errors import SessionNotFoundError, TransportError
from agentos_workbench.domain.models.session_state import Session, SessionStatus, StreamRequest
from agentos_workbench.domain.session.session_store import SessionStore
from agentos_workbench.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)


class FrameSource(Protocol):
    def stream(self, session: Session, request: StreamRequest) -> AsyncIterator[Any]:
        ...


class StreamConsumer:
    """Drives one transport stream into the session store.

    Frames are dispatched strictly one at a time in arrival order. When the
    transport stops without a final chunk (end of body, idle timeout, failure
    or cancellation) the session is force-terminated so it never stays
    streaming.
    """

    def __init__(self, store: SessionStore, idle_timeout: Optional[float] = None):
        self.store = store
        self.idle_timeout = idle_timeout
        self.tasks: Set[asyncio.Task] = set()

    async def run_request(
        self,
        session_id: str,
        request: StreamRequest,
        source: FrameSource,
        stream_id: Optional[str] = None
    ) -> Session:
        """Submit a request and consume the stream it opens"""

        session = await self.store.submit(session_id, request, stream_id)
        return await self.consume(session_id, source.stream(session, request))

    async def consume(self, session_id: str, frames: AsyncIterator[Any]) -> Session:
        loop = asyncio.get_running_loop()
        started = loop.time()
        iterator = frames.__aiter__()
        session = await self.store.get_session(session_id)

        try:
            while session.status == SessionStatus.STREAMING:
                try:
                    frame = await asyncio.wait_for(iterator.__anext__(), timeout=self.idle_timeout)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError:
                    logger.warning("Stream idle timeout", session_id=session_id, timeout=self.idle_timeout)
                    return await self.store.force_terminate(
                        session_id, f"No frame received within {self.idle_timeout}s"
                    )
                session = await self.store.dispatch(session_id, frame)

        except asyncio.CancelledError:
            await self.store.force_terminate(session_id, "Stream cancelled by client")
            raise
        except TransportError as e:
            return await self.store.force_terminate(session_id, str(e))
        except SessionNotFoundError:
            raise
        except Exception as e:
            logger.exception("Frame source failed", session_id=session_id, error=str(e))
            return await self.store.force_terminate(session_id, f"Transport failed: {e}")
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception as e:
                    logger.debug("Error closing frame iterator", session_id=session_id, error=str(e))
            metrics.record_latency("stream", (loop.time() - started) * 1000)

        if session.status == SessionStatus.STREAMING:
            session = await self.store.force_terminate(
                session_id, "Transport closed before a final chunk"
            )
        return session

    def spawn(self, session_id: str, frames: AsyncIterator[Any]) -> asyncio.Task:
        """Consume a stream in a tracked background task"""

        task = asyncio.create_task(self.consume(session_id, frames), name=session_id)
        self.tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    async def shutdown(self):
        """Cancel in-flight streams; each one is force-terminated on the way out"""

        tasks = list(self.tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        # A task cancelled before its first step never reached consume
        for task in tasks:
            if task.cancelled() and task.get_name() in self.store.sessions:
                await self.store.force_terminate(task.get_name(), "Stream cancelled by client")

    def _on_task_done(self, task: asyncio.Task):
        self.tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Stream task failed", error=str(error), error_type=type(error).__name__)
