"""
Client configuration
"""

from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, Field, field_validator


DEFAULT_SERVER_URL = "http://localhost:8080"


class ReconnectPolicy(BaseModel):
    """Exponential backoff for automatic reconnection"""

    base_delay: float = Field(1.0, gt=0, description="Delay before the first retry, in seconds")
    max_delay: float = Field(30.0, gt=0, description="Upper bound for a single delay, in seconds")
    max_attempts: int = Field(5, ge=0, description="Retries before giving up")

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)"""
        return min(self.base_delay * (2 ** attempt), self.max_delay)


class ClientConfig(BaseModel):
    """Settings shared by the REST client and the transport"""

    server_url: str = DEFAULT_SERVER_URL
    token: Optional[str] = None
    history_limit: int = Field(50, gt=0)
    heartbeat: Optional[float] = Field(None, gt=0, description="Websocket ping interval in seconds")
    reconnect: ReconnectPolicy = Field(default_factory=ReconnectPolicy)

    @field_validator('server_url')
    @classmethod
    def validate_server_url(cls, v):
        parts = urlsplit(v)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"Server URL must be http(s)://host[:port], got {v!r}")
        return v.rstrip("/")

    @property
    def websocket_url(self) -> str:
        """Websocket base URL; the scheme follows the server URL's"""
        parts = urlsplit(self.server_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        return urlunsplit((scheme, parts.netloc, parts.path, "", ""))
