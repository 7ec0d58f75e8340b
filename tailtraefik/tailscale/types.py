"""
Typed view of the tailscaled ``/localapi/v0/status`` document.

Field names follow the daemon's Go-style JSON keys through aliases, so
``Status.model_validate(json)`` decodes the raw body and
``status.to_dict()`` reproduces it.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

# Go's time.Time{} marshals as year 1
GO_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _parse_go_time(value: Any) -> Any:
    if isinstance(value, str) and value.startswith("0001-01-01T00:00:00"):
        return GO_ZERO_TIME
    return value


GoTime = Annotated[datetime, BeforeValidator(_parse_go_time)]


def is_zero_time(value: Optional[datetime]) -> bool:
    """True for a timestamp the daemon reports as 'never'."""
    if value is None:
        return True
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value == GO_ZERO_TIME or value == UNIX_EPOCH


class _StatusModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Location(_StatusModel):
    country: Optional[str] = Field(None, alias="Country")
    country_code: Optional[str] = Field(None, alias="CountryCode")
    city: Optional[str] = Field(None, alias="City")
    city_code: Optional[str] = Field(None, alias="CityCode")
    latitude: Optional[float] = Field(None, alias="Latitude")
    longitude: Optional[float] = Field(None, alias="Longitude")
    priority: Optional[int] = Field(None, alias="Priority")


class PeerStatus(_StatusModel):
    """One node of the tailnet as seen by the local daemon."""
    id: str = Field(alias="ID")
    public_key: str = Field(alias="PublicKey")
    hostname: str = Field(alias="HostName")
    dns_name: str = Field("", alias="DNSName")
    os: str = Field("", alias="OS")
    user_id: int = Field(0, alias="UserID")
    alt_sharer_user_id: Optional[int] = Field(None, alias="AltSharerUserID")

    tailscale_ips: List[str] = Field(default_factory=list, alias="TailscaleIPs")
    allowed_ips: Optional[List[str]] = Field(None, alias="AllowedIPs")
    primary_routes: Optional[List[str]] = Field(None, alias="PrimaryRoutes")
    tags: Optional[List[str]] = Field(None, alias="Tags")
    addrs: Optional[List[str]] = Field(None, alias="Addrs")
    cur_addr: str = Field("", alias="CurAddr")
    relay: str = Field("", alias="Relay")
    peer_relay: str = Field("", alias="PeerRelay")

    rx_bytes: int = Field(0, alias="RxBytes")
    tx_bytes: int = Field(0, alias="TxBytes")
    created: Optional[GoTime] = Field(None, alias="Created")
    last_write: Optional[GoTime] = Field(None, alias="LastWrite")
    last_seen: Optional[GoTime] = Field(None, alias="LastSeen")
    last_handshake: Optional[GoTime] = Field(None, alias="LastHandshake")

    online: Optional[bool] = Field(None, alias="Online")
    exit_node: bool = Field(False, alias="ExitNode")
    exit_node_option: bool = Field(False, alias="ExitNodeOption")
    active: bool = Field(False, alias="Active")
    peer_api_url: Optional[List[str]] = Field(None, alias="PeerAPIURL")
    in_network_map: bool = Field(False, alias="InNetworkMap")
    in_magic_sock: bool = Field(False, alias="InMagicSock")
    in_engine: bool = Field(False, alias="InEngine")
    taildrop_target: Optional[int] = Field(None, alias="TaildropTarget")
    no_file_sharing_reason: Optional[str] = Field(None, alias="NoFileSharingReason")

    capabilities: Optional[List[str]] = Field(None, alias="Capabilities")
    cap_map: Optional[Dict[str, Optional[List[Any]]]] = Field(None, alias="CapMap")
    ssh_host_keys: Optional[List[str]] = Field(None, alias="sshHostKeys")
    sharee_node: Optional[bool] = Field(None, alias="ShareeNode")
    key_expiry: Optional[GoTime] = Field(None, alias="KeyExpiry")
    expired: Optional[bool] = Field(None, alias="Expired")
    location: Optional[Location] = Field(None, alias="Location")

    @field_validator("tailscale_ips", mode="before")
    @classmethod
    def _null_ips(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def primary_ip(self) -> Optional[str]:
        return self.tailscale_ips[0] if self.tailscale_ips else None

    @property
    def is_online(self) -> bool:
        return bool(self.online)


class TailnetStatus(_StatusModel):
    name: str = Field(alias="Name")
    magic_dns_suffix: str = Field("", alias="MagicDNSSuffix")
    magic_dns_enabled: bool = Field(False, alias="MagicDNSEnabled")


class ExitNodeStatus(_StatusModel):
    id: str = Field(alias="ID")
    online: bool = Field(False, alias="Online")
    tailscale_ips: List[str] = Field(default_factory=list, alias="TailscaleIPs")


class UserProfile(_StatusModel):
    id: int = Field(alias="ID")
    login_name: str = Field("", alias="LoginName")
    display_name: str = Field("", alias="DisplayName")
    profile_pic_url: Optional[str] = Field(None, alias="ProfilePicURL")


class ClientVersion(_StatusModel):
    running_latest: Optional[bool] = Field(None, alias="RunningLatest")
    latest_version: Optional[str] = Field(None, alias="LatestVersion")
    urgent_security_update: Optional[bool] = Field(None, alias="UrgentSecurityUpdate")
    notify: Optional[bool] = Field(None, alias="Notify")
    notify_url: Optional[str] = Field(None, alias="NotifyURL")
    notify_text: Optional[str] = Field(None, alias="NotifyText")


class Status(_StatusModel):
    """Snapshot of the daemon state; a fresh instance per fetch."""
    version: str = Field(alias="Version")
    tun: bool = Field(False, alias="TUN")
    backend_state: str = Field(alias="BackendState")
    have_node_key: Optional[bool] = Field(None, alias="HaveNodeKey")
    auth_url: str = Field("", alias="AuthURL")
    tailscale_ips: List[str] = Field(default_factory=list, alias="TailscaleIPs")
    self_peer: Optional[PeerStatus] = Field(None, alias="Self")
    exit_node_status: Optional[ExitNodeStatus] = Field(None, alias="ExitNodeStatus")
    health: List[str] = Field(default_factory=list, alias="Health")
    magic_dns_suffix: str = Field("", alias="MagicDNSSuffix")
    current_tailnet: Optional[TailnetStatus] = Field(None, alias="CurrentTailnet")
    cert_domains: Optional[List[str]] = Field(None, alias="CertDomains")
    peers: Optional[Dict[str, Optional[PeerStatus]]] = Field(None, alias="Peer")
    user: Optional[Dict[str, UserProfile]] = Field(None, alias="User")
    client_version: Optional[ClientVersion] = Field(None, alias="ClientVersion")

    @field_validator("tailscale_ips", "health", mode="before")
    @classmethod
    def _null_lists(cls, value: Any) -> Any:
        return [] if value is None else value

    def iter_peers(self) -> Iterator[Tuple[str, PeerStatus]]:
        """Yield (public key, peer) for every non-null peer entry."""
        for key, peer in (self.peers or {}).items():
            if peer is not None:
                yield key, peer

    @property
    def peer_count(self) -> int:
        return len(self.peers) if self.peers else 0
