"""
Errors raised while talking to tailscaled.
"""

from typing import Optional


class TailscaleError(Exception):
    """Base exception for LocalAPI failures."""

    def __init__(self, message: str, code: str = "TAILSCALE_ERROR"):
        super().__init__(message)
        self.code = code


class SocketConnectionError(TailscaleError):
    """Raised when the daemon's socket, pipe or port cannot be reached."""

    def __init__(self, message: str):
        super().__init__(f"Socket connection error: {message}", code="SOCKET_CONNECTION")


class TailscaleAPIError(TailscaleError):
    """Raised when the daemon answers with a non-2xx status."""

    def __init__(self, status_code: int, reason: Optional[str] = None):
        super().__init__(
            f"Tailscale API error: HTTP {status_code}: {reason or 'Unknown'}",
            code="API_ERROR",
        )
        self.status_code = status_code
        self.reason = reason


class StatusDecodeError(TailscaleError):
    """Raised when the status body is not the expected JSON document."""

    def __init__(self, message: str):
        super().__init__(f"JSON parse error: {message}", code="JSON_PARSE")
