"""
Client for the tailscaled LocalAPI status endpoint.
"""

import logging
from http import HTTPStatus
from typing import Optional

from pydantic import ValidationError

from ..platform import SocketPath, PlatformError
from .errors import SocketConnectionError, StatusDecodeError, TailscaleAPIError
from .transport import StatusTransport, create_transport
from .types import Status

logger = logging.getLogger(__name__)

STATUS_PATH = "/localapi/v0/status"
STATUS_PATH_NO_PEERS = "/localapi/v0/status?peers=false"


def _reason(status_code: int) -> Optional[str]:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return None


class TailscaleClient:
    """
    Fetches and decodes the daemon status document.

    Usage:
        client = TailscaleClient.from_socket_path("/var/run/tailscale/tailscaled.sock")
        status = await client.get_status()
        for key, peer in status.iter_peers():
            print(peer.hostname, peer.tailscale_ips)
        await client.close()
    """

    def __init__(self, transport: StatusTransport):
        self.transport = transport

    @classmethod
    def from_socket_path(
        cls,
        socket_path: Optional[str] = None,
        timeout: float = 10.0,
    ) -> "TailscaleClient":
        """
        Build a client for an explicit address, or the platform default.

        Raises:
            SocketConnectionError: no address given and none could be found
        """
        if socket_path is None:
            try:
                socket_path = SocketPath.default_socket_path()
            except PlatformError as e:
                raise SocketConnectionError(str(e)) from e

        return cls(create_transport(socket_path, timeout=timeout))

    async def close(self) -> None:
        await self.transport.close()

    async def fetch(self, include_peers: bool = True) -> Status:
        """
        Fetch one status snapshot.

        Args:
            include_peers: False asks the daemon to omit the peer map,
                which keeps connectivity probes cheap

        Raises:
            SocketConnectionError: transport failure
            TailscaleAPIError: non-2xx response
            StatusDecodeError: body is not a valid status document
        """
        path = STATUS_PATH if include_peers else STATUS_PATH_NO_PEERS
        status_code, body = await self.transport.get(path)

        if not 200 <= status_code < 300:
            raise TailscaleAPIError(status_code, _reason(status_code))

        try:
            return Status.model_validate_json(body)
        except ValidationError as e:
            logger.error(f"Failed to parse Tailscale status JSON: {e}")
            raise StatusDecodeError(str(e)) from e

    async def get_status(self) -> Status:
        return await self.fetch(include_peers=True)

    async def get_status_without_peers(self) -> Status:
        return await self.fetch(include_peers=False)

    async def test_connection(self) -> None:
        """Probe the daemon; raises on any failure."""
        await self.fetch(include_peers=False)
