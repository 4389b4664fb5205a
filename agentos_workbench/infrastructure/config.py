from functools import lru_cache
import os

from pydantic import BaseModel, Field


class WorkbenchSettings(BaseModel):
    """Runtime configuration, read from the environment"""
    agentos_base_url: str = Field(default="http://localhost:3001", description="AgentOS runtime base URL")
    agentos_stream_path: str = Field(default="/api/agentos/stream", description="Streaming endpoint path")
    stream_idle_timeout: float = Field(default=120.0, gt=0, description="Seconds without a frame before a stream is abandoned")
    request_timeout: float = Field(default=30.0, gt=0)
    log_level: str = "INFO"
    log_format: str = "json"
    service_name: str = "agentos-workbench"
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def stream_url(self) -> str:
        return f"{self.agentos_base_url.rstrip('/')}{self.agentos_stream_path}"

    @classmethod
    def from_env(cls) -> "WorkbenchSettings":
        values = {
            "agentos_base_url": os.getenv("AGENTOS_BASE_URL"),
            "agentos_stream_path": os.getenv("AGENTOS_STREAM_PATH"),
            "stream_idle_timeout": os.getenv("AGENTOS_STREAM_IDLE_TIMEOUT"),
            "request_timeout": os.getenv("AGENTOS_REQUEST_TIMEOUT"),
            "log_level": os.getenv("LOG_LEVEL"),
            "log_format": os.getenv("LOG_FORMAT"),
            "service_name": os.getenv("SERVICE_NAME"),
            "host": os.getenv("HOST"),
            "port": os.getenv("PORT"),
        }
        return cls(**{key: value for key, value in values.items() if value is not None})


@lru_cache(maxsize=1)
def get_settings() -> WorkbenchSettings:
    return WorkbenchSettings.from_env()
