"""
Traefik configuration from Tailscale peers.

Provides:
- Dynamic configuration models
- Tag parsing and service extraction
- Peer filtering
- The provider that ties them together
"""

from .config import (
    DynamicConfig,
    HttpConfig,
    TcpConfig,
    UdpConfig,
    Router,
    Service,
    TcpRouter,
    TcpService,
    UdpRouter,
    UdpService,
)
from .filters import should_include_peer, exclusion_reason
from .tags import parse_service_info_from_tag, extract_service_infos, strip_tag_prefix
from .provider import (
    TraefikProvider,
    generate_service_name,
    generate_router_name,
    sanitize_hostname,
)

__all__ = [
    # Models
    "DynamicConfig",
    "HttpConfig",
    "TcpConfig",
    "UdpConfig",
    "Router",
    "Service",
    "TcpRouter",
    "TcpService",
    "UdpRouter",
    "UdpService",
    # Filters
    "should_include_peer",
    "exclusion_reason",
    # Tags
    "parse_service_info_from_tag",
    "extract_service_infos",
    "strip_tag_prefix",
    # Provider
    "TraefikProvider",
    "generate_service_name",
    "generate_router_name",
    "sanitize_hostname",
]
