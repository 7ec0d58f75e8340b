"""
Shared builders for status documents and a fake daemon client.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from tailtraefik.tailscale.errors import SocketConnectionError
from tailtraefik.tailscale.types import PeerStatus, Status


def peer_dict(
    hostname: str = "box1",
    ips: Optional[List[str]] = None,
    tags: Optional[List[str]] = None,
    online: Optional[bool] = True,
    exit_node: bool = False,
    expired: Optional[bool] = None,
    os: str = "linux",
    last_write: Optional[str] = None,
    key: str = "nodekey:1",
) -> dict:
    """A peer entry as the daemon serializes it."""
    data = {
        "ID": f"n{hostname}",
        "PublicKey": key,
        "HostName": hostname,
        "DNSName": f"{hostname}.tail1234.ts.net.",
        "OS": os,
        "UserID": 1,
        "TailscaleIPs": ["100.64.0.5"] if ips is None else ips,
        "Tags": tags,
        "Online": online,
        "ExitNode": exit_node,
        "LastWrite": last_write or datetime.now(timezone.utc).isoformat(),
        "LastSeen": "0001-01-01T00:00:00Z",
        "LastHandshake": "0001-01-01T00:00:00Z",
    }
    if expired is not None:
        data["Expired"] = expired
    return data


def make_peer(**kwargs) -> PeerStatus:
    return PeerStatus.model_validate(peer_dict(**kwargs))


def status_dict(*peers: dict, include_peer_map: bool = True) -> dict:
    data = {
        "Version": "1.76.1",
        "TUN": True,
        "BackendState": "Running",
        "AuthURL": "",
        "TailscaleIPs": ["100.64.0.1"],
        "Health": None,
        "MagicDNSSuffix": "tail1234.ts.net",
        "CurrentTailnet": {
            "Name": "example.com",
            "MagicDNSSuffix": "tail1234.ts.net",
            "MagicDNSEnabled": True,
        },
    }
    if include_peer_map:
        data["Peer"] = {p["PublicKey"]: p for p in peers}
    return data


def make_status(*peers: dict, include_peer_map: bool = True) -> Status:
    return Status.model_validate(status_dict(*peers, include_peer_map=include_peer_map))


def ago(seconds: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(seconds=seconds)).isoformat()


class FakeTailscaleClient:
    """Stands in for TailscaleClient; serves a fixed status or fails."""

    def __init__(self, status: Optional[Status] = None, fail: bool = False):
        self.status = status or make_status()
        self.fail = fail
        self.calls = 0
        self.closed = False
        self.transport = "fake"

    async def get_status(self) -> Status:
        self.calls += 1
        if self.fail:
            raise SocketConnectionError("daemon unreachable")
        return self.status

    async def get_status_without_peers(self) -> Status:
        return await self.get_status()

    async def test_connection(self) -> None:
        await self.get_status_without_peers()

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client():
    return FakeTailscaleClient(make_status(peer_dict(tags=["tag:web-3000"])))
