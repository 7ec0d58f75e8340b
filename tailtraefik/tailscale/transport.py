"""
Local IPC transports for the tailscaled LocalAPI.

All transports speak HTTP/1.1 through aiohttp; they differ only in the
connector and in whether requests carry a same-user proof token:

- UnixSocketTransport: filesystem socket (Linux, BSD)
- NamedPipeTransport: Windows named pipe
- TcpTransport: loopback TCP with ``tcp://host:port[:token]`` descriptor (macOS)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import aiohttp

from .errors import SocketConnectionError

logger = logging.getLogger(__name__)

# tailscaled checks the Host header on LocalAPI requests
LOCALAPI_HOST = "local-tailscaled.sock"
TCP_PREFIX = "tcp://"
PIPE_PREFIX = "\\\\.\\pipe\\"


class StatusTransport(ABC):
    """
    One request/response exchange with the daemon.

    Each instance owns one aiohttp session (its connection pool) and no
    other per-request state, so it can be shared by concurrent callers.
    """

    base_url = f"http://{LOCALAPI_HOST}"

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @abstractmethod
    def _make_connector(self) -> aiohttp.BaseConnector:
        """Create the connector backing the session."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Human readable daemon address, used in errors and logs."""

    def _headers(self) -> Dict[str, str]:
        return {"Host": LOCALAPI_HOST}

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                connector=self._make_connector(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def get(self, path: str) -> Tuple[int, bytes]:
        """
        Issue a GET for ``path`` and return (status code, body).

        Raises:
            SocketConnectionError: the daemon could not be reached or the
                exchange broke off before the body was read
        """
        session = await self._get_session()
        url = f"{self.base_url}{path}"

        try:
            async with session.get(url, headers=self._headers()) as resp:
                body = await resp.read()
                return resp.status, body
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            raise SocketConnectionError(
                f"Failed to send request to {self.address}: {e}"
            ) from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address!r})"


class UnixSocketTransport(StatusTransport):
    """LocalAPI over a Unix-domain stream socket."""

    def __init__(self, socket_path: str, timeout: float = 10.0):
        super().__init__(timeout)
        self.socket_path = socket_path

    @property
    def address(self) -> str:
        return self.socket_path

    def _make_connector(self) -> aiohttp.BaseConnector:
        return aiohttp.UnixConnector(path=self.socket_path)


class NamedPipeTransport(StatusTransport):
    """LocalAPI over a Windows named pipe (needs the proactor event loop)."""

    def __init__(self, pipe_path: str, timeout: float = 10.0):
        super().__init__(timeout)
        self.pipe_path = pipe_path

    @property
    def address(self) -> str:
        return self.pipe_path

    def _make_connector(self) -> aiohttp.BaseConnector:
        return aiohttp.NamedPipeConnector(path=self.pipe_path)


class TcpTransport(StatusTransport):
    """LocalAPI over loopback TCP, authenticated with a same-user proof."""

    def __init__(
        self,
        host: str,
        port: int,
        token: Optional[str] = None,
        timeout: float = 10.0,
    ):
        super().__init__(timeout)
        self.host = host
        self.port = port
        self.token = token
        self.base_url = f"http://{host}:{port}"

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def _make_connector(self) -> aiohttp.BaseConnector:
        return aiohttp.TCPConnector()

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.token:
            # Empty user name, token as password
            headers["Authorization"] = aiohttp.BasicAuth("", self.token).encode()
        return headers

    @classmethod
    def from_descriptor(cls, descriptor: str, timeout: float = 10.0) -> "TcpTransport":
        """Parse ``tcp://host:port[:token]``."""
        rest = descriptor[len(TCP_PREFIX):] if descriptor.startswith(TCP_PREFIX) else descriptor
        parts = rest.split(":", 2)
        if len(parts) < 2 or not parts[1].isdigit():
            raise SocketConnectionError(f"Invalid LocalAPI TCP address: {descriptor}")

        token = parts[2] if len(parts) == 3 and parts[2] else None
        return cls(parts[0], int(parts[1]), token=token, timeout=timeout)

    def __repr__(self) -> str:
        auth = "token" if self.token else "no token"
        return f"TcpTransport('{self.address}', {auth})"


def create_transport(descriptor: str, timeout: float = 10.0) -> StatusTransport:
    """Select the transport matching a daemon address descriptor."""
    if descriptor.startswith(TCP_PREFIX):
        transport: StatusTransport = TcpTransport.from_descriptor(descriptor, timeout)
    elif descriptor.startswith(PIPE_PREFIX) or descriptor.startswith("//./pipe/"):
        transport = NamedPipeTransport(descriptor, timeout)
    else:
        transport = UnixSocketTransport(descriptor, timeout)

    logger.debug(f"Using {transport!r} for LocalAPI")
    return transport
