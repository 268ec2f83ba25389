"""
Error kinds raised by the window engine.

    KlineWindowError (base)
    ├── NetworkError          backfill request failed
    ├── StreamError           live transport failed or closed unexpectedly
    └── MalformedMessageError payload could not be parsed

None of these is fatal: the controller logs them and keeps prior state.
Events from a superseded selection are not errors; they are dropped.
"""

from __future__ import annotations

from typing import Optional


class KlineWindowError(Exception):
    """Base error for the window engine."""

    def __init__(self, message: str, code: str = "KLINE_WINDOW_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
        }


class NetworkError(KlineWindowError):
    """Backfill fetch failed (transport error, bad status or bad payload)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, code="NETWORK_ERROR")
        self.status_code = status_code


class StreamError(KlineWindowError):
    """Live subscription failed or was closed by the remote side."""

    def __init__(self, message: str):
        super().__init__(message, code="STREAM_ERROR")


class MalformedMessageError(KlineWindowError):
    """Inbound message or row is missing fields or has unparseable values."""

    def __init__(self, message: str):
        super().__init__(message, code="MALFORMED_MESSAGE")
