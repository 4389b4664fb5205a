from typing import Optional


class WorkbenchError(Exception):
    """Base error for the session core"""


class SessionNotFoundError(WorkbenchError):
    def __init__(self, session_id: str):
        super().__init__(f"Unknown session: {session_id}")
        self.session_id = session_id


class StreamAlreadyActiveError(WorkbenchError):
    """Raised when a second request is submitted while a stream is in flight"""

    def __init__(self, session_id: str, stream_id: Optional[str]):
        super().__init__(f"Session {session_id} already streaming ({stream_id})")
        self.session_id = session_id
        self.stream_id = stream_id


class TransportError(WorkbenchError):
    """Failure talking to the AgentOS runtime"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
