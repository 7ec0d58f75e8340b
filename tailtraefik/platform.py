"""
Platform-specific discovery of the tailscaled LocalAPI address.

Linux talks to a Unix socket, Windows to a named pipe, and macOS to a
loopback TCP port guarded by a same-user proof token.
"""

import logging
import os
import socket
import subprocess
import sys
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

LINUX_SOCKET_PATH = "/var/run/tailscale/tailscaled.sock"
WINDOWS_PIPE_PATH = r"\\.\pipe\ProtectedPrefix\Administrators\Tailscale\tailscaled"
MACSYS_SHARED_DIR = Path("/Library/Tailscale")
MACOS_PROOF_MARKER = ".tailscale.ipn.macos/sameuserproof-"


class PlatformError(Exception):
    """Base exception for daemon address discovery."""

    def __init__(self, message: str, code: str = "PLATFORM_ERROR"):
        super().__init__(message)
        self.code = code


class UnsupportedPlatformError(PlatformError):
    """Raised on an operating system tailscaled does not run on."""

    def __init__(self, os_name: str):
        super().__init__(f"Unsupported operating system: {os_name}", code="UNSUPPORTED_OS")
        self.os_name = os_name


class SocketNotFoundError(PlatformError):
    """Raised when no LocalAPI endpoint could be located."""

    def __init__(self, detail: str):
        super().__init__(f"Tailscale socket not found at: {detail}", code="SOCKET_NOT_FOUND")
        self.detail = detail


def tcp_endpoint(port: str, token: str, host: str = "127.0.0.1") -> str:
    """Format a LocalAPI TCP descriptor understood by the transports."""
    return f"tcp://{host}:{port}:{token}"


class SocketPath:
    """Resolve the default LocalAPI address for the running platform."""

    @staticmethod
    def default_socket_path() -> str:
        if sys.platform.startswith("linux"):
            return LINUX_SOCKET_PATH
        if sys.platform == "darwin":
            return SocketPath._macos_localapi_endpoint()
        if sys.platform == "win32":
            return WINDOWS_PIPE_PATH
        raise UnsupportedPlatformError(sys.platform)

    @staticmethod
    def _macos_localapi_endpoint() -> str:
        endpoint = SocketPath.read_macsys_same_user_proof()
        if endpoint:
            return endpoint

        endpoint = SocketPath.read_macos_same_user_proof()
        if endpoint:
            return endpoint

        raise SocketNotFoundError("No Tailscale LocalAPI credentials found")

    @staticmethod
    def read_macsys_same_user_proof(
        shared_dir: Path = MACSYS_SHARED_DIR,
        probe: bool = True,
    ) -> Optional[str]:
        """Standalone (non App Store) install: port symlink plus proof file."""
        try:
            port = os.readlink(shared_dir / "ipnport")
            token = (shared_dir / f"sameuserproof-{port}").read_text().strip()
        except OSError as e:
            logger.debug(f"MacSys credentials unavailable: {e}")
            return None

        if not token or not port.isdigit():
            logger.debug("MacSys credentials are incomplete")
            return None

        if probe and not _port_reachable("127.0.0.1", int(port)):
            logger.debug(f"MacSys LocalAPI port {port} not reachable")
            return None

        return tcp_endpoint(port, token)

    @staticmethod
    def read_macos_same_user_proof() -> Optional[str]:
        """App Store install: find the proof file held open by IPNExtension."""
        try:
            result = subprocess.run(
                ["lsof", "-n", "-a", f"-u{os.getuid()}", "-c", "IPNExtension", "-F"],
                capture_output=True,
                text=True,
                timeout=5,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"lsof failed: {e}")
            return None

        if result.returncode != 0:
            return None

        return parse_lsof_output(result.stdout)


def parse_lsof_output(output: str) -> Optional[str]:
    """Extract the LocalAPI endpoint from ``lsof -F`` output."""
    for line in output.splitlines():
        pos = line.find(MACOS_PROOF_MARKER)
        if pos < 0:
            continue
        suffix = line[pos + len(MACOS_PROOF_MARKER):]
        parts = suffix.split("-", 1)
        if len(parts) == 2 and parts[0].isdigit() and int(parts[0]) <= 65535:
            return tcp_endpoint(parts[0], parts[1])
    return None


def _port_reachable(host: str, port: int, timeout: float = 1.0) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False
