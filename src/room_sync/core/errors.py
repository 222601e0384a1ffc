"""
Fault taxonomy for the synchronization core

Transport and decode faults are recorded as values (``ConnectionState.last_error``)
and never propagate out of the transport session. Send failures are returned
to the caller as a ``SendResult``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


MANUAL_CLOSE_CODE = 1000
ABNORMAL_CLOSE_CODE = 1006


def is_manual_close(code: Optional[int]) -> bool:
    """Only a normal-closure code suppresses reconnection"""
    return code == MANUAL_CLOSE_CODE


class SyncError(Exception):
    """Base exception for synchronization faults"""
    pass


class ConnectFault(SyncError):
    """Transport could not be established"""
    pass


class AbnormalClose(SyncError):
    """Connection dropped without a manual close"""

    def __init__(self, code: Optional[int], reason: str = ""):
        self.code = code
        self.reason = reason
        message = f"Connection closed abnormally (code={code})"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class DecodeFault(SyncError):
    """Inbound frame could not be decoded"""

    def __init__(self, message: str, raw=None):
        self.raw = raw
        super().__init__(message)


class ReconnectExhausted(SyncError):
    """Automatic reconnection gave up"""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Gave up reconnecting after {attempts} attempts")


class ApiError(SyncError):
    """REST collaborator returned an error response"""

    def __init__(self, status: int, message: str):
        self.status = status
        super().__init__(f"{status}: {message}")


class SendError(str, Enum):
    """Reasons a send to the active room is rejected"""

    NO_ACTIVE_ROOM = "no_active_room"
    NOT_CONNECTED = "not_connected"
    INVALID_MESSAGE = "invalid_message"


@dataclass(frozen=True)
class SendResult:
    success: bool
    error: Optional[SendError] = None
    detail: Optional[str] = None

    @classmethod
    def ok(cls) -> 'SendResult':
        return cls(success=True)

    @classmethod
    def failed(cls, error: SendError, detail: Optional[str] = None) -> 'SendResult':
        return cls(success=False, error=error, detail=detail)

    def __bool__(self) -> bool:
        return self.success
