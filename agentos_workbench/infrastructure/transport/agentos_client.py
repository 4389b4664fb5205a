"""HTTP transport to the AgentOS streaming endpoint.

The runtime answers a POST with one long-lived response body carrying chunk
frames, either newline-delimited JSON or server-sent events (``data: {...}``
lines, optionally terminated by ``data: [DONE]``). Frames are yielded as JSON
text in arrival order; decoding is left to the chunk decoder.
"""

from typing import Dict, Any, Optional, AsyncIterator
import httpx
import structlog

from agentos_workbench.domain.errors import TransportError
from agentos_workbench.domain.models.session_state import Session, StreamRequest, TargetType
from agentos_workbench.infrastructure.config import WorkbenchSettings, get_settings

logger = structlog.get_logger(__name__)

DONE_MARKER = "[DONE]"


def parse_stream_line(line: str) -> Optional[str]:
    """Extract the frame text carried by one body line, or None to skip it"""

    line = line.strip()
    if not line or line.startswith(":"):
        return None
    if line.startswith("data:"):
        return line[len("data:"):].strip() or None
    if line.startswith(("event:", "id:", "retry:")):
        return None
    return line


def build_payload(session: Session, request: StreamRequest) -> Dict[str, Any]:
    """Request body for one stream"""

    payload: Dict[str, Any] = {
        "input": request.input,
        "sessionId": session.id,
    }
    if request.workflow_id:
        payload["workflowId"] = request.workflow_id
    if session.target_id:
        key = "agencyId" if session.target_type == TargetType.AGENCY else "personaId"
        payload[key] = session.target_id
    return payload


class AgentOSClient:
    """Streams chunk frames from the AgentOS runtime"""

    def __init__(
        self,
        settings: Optional[WorkbenchSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.settings = settings or get_settings()
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.request_timeout, read=None)
            )
        return self._client

    async def stream(self, session: Session, request: StreamRequest) -> AsyncIterator[str]:
        """Yield frame texts until the body ends or a [DONE] marker arrives"""

        url = self.settings.stream_url
        payload = build_payload(session, request)
        client = self._get_client()

        logger.info("Opening AgentOS stream", session_id=session.id, url=url)

        try:
            async with client.stream(
                "POST",
                url,
                json=payload,
                headers={"Accept": "application/x-ndjson, text/event-stream"}
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise TransportError(
                        f"AgentOS stream request failed with {response.status_code}: "
                        f"{body.decode('utf-8', errors='replace')[:200]}",
                        status_code=response.status_code
                    )

                async for line in response.aiter_lines():
                    frame = parse_stream_line(line)
                    if frame is None:
                        continue
                    if frame == DONE_MARKER:
                        logger.debug("Stream done marker received", session_id=session.id)
                        return
                    yield frame

        except httpx.HTTPError as e:
            logger.error("AgentOS transport error", session_id=session.id, error=str(e))
            raise TransportError(f"AgentOS transport error: {e}") from e

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
