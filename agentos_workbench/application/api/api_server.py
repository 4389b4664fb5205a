from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime
import structlog

from agentos_workbench.application.api.route import sessions
from agentos_workbench.application.websocket import ws_server
from agentos_workbench.application.websocket.connection_manager import ConnectionManager
from agentos_workbench.domain.errors import SessionNotFoundError, StreamAlreadyActiveError
from agentos_workbench.domain.session.session_store import SessionStore
from agentos_workbench.domain.streaming.stream_consumer import FrameSource, StreamConsumer
from agentos_workbench.infrastructure.config import WorkbenchSettings, get_settings
from agentos_workbench.infrastructure.observability.logging import metrics, setup_logging
from agentos_workbench.infrastructure.transport.agentos_client import AgentOSClient

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[WorkbenchSettings] = None,
    store: Optional[SessionStore] = None,
    source: Optional[FrameSource] = None
) -> FastAPI:
    """Build the workbench API around one session store"""

    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.service_name)

    app = FastAPI(title="AgentOS Workbench")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.store = store or SessionStore()
    app.state.source = source or AgentOSClient(settings)
    app.state.consumer = StreamConsumer(app.state.store, idle_timeout=settings.stream_idle_timeout)
    app.state.connection_manager = ConnectionManager()

    app.state.store.subscribe(app.state.connection_manager.publish_snapshot)

    app.include_router(sessions.router)
    app.include_router(ws_server.router)

    @app.exception_handler(SessionNotFoundError)
    async def session_not_found(request: Request, exc: SessionNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(StreamAlreadyActiveError)
    async def stream_already_active(request: Request, exc: StreamAlreadyActiveError):
        return JSONResponse(
            status_code=409,
            content={"detail": str(exc), "stream_id": exc.stream_id}
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        """Terminate in-flight streams and release the transport"""
        await app.state.consumer.shutdown()
        for connection_id in list(app.state.connection_manager.active_connections):
            await app.state.connection_manager.disconnect(connection_id)
        aclose = getattr(app.state.source, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.info("Workbench server shutdown")

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "sessions": len(app.state.store.sessions),
            "active_connections": len(app.state.connection_manager.active_connections),
            "metrics": metrics.get_metrics_summary(),
            "timestamp": datetime.utcnow().isoformat()
        }

    return app
