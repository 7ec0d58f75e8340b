"""
Tailscale LocalAPI access.

Provides:
- Unix socket, named pipe and TCP transports
- Status client with typed errors
- Pydantic models for the status document
"""

from .client import TailscaleClient, STATUS_PATH, STATUS_PATH_NO_PEERS
from .errors import (
    TailscaleError,
    SocketConnectionError,
    TailscaleAPIError,
    StatusDecodeError,
)
from .transport import (
    StatusTransport,
    UnixSocketTransport,
    NamedPipeTransport,
    TcpTransport,
    create_transport,
)
from .types import Status, PeerStatus, is_zero_time

__all__ = [
    # Client
    "TailscaleClient",
    "STATUS_PATH",
    "STATUS_PATH_NO_PEERS",
    # Errors
    "TailscaleError",
    "SocketConnectionError",
    "TailscaleAPIError",
    "StatusDecodeError",
    # Transports
    "StatusTransport",
    "UnixSocketTransport",
    "NamedPipeTransport",
    "TcpTransport",
    "create_transport",
    # Types
    "Status",
    "PeerStatus",
    "is_zero_time",
]
