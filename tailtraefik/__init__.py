"""
tailtraefik - Traefik dynamic configuration from your tailnet

Watches the local Tailscale daemon and turns every reachable peer into a
Traefik router and service, inferring ports and protocols from tags.

Example:
    >>> from tailtraefik import ProviderConfig, TraefikProvider
    >>> provider = TraefikProvider(ProviderConfig.from_env())
    >>> await provider.test_connection()
    >>> config = await provider.generate_config()
"""

__version__ = "0.1.0"

from .config import ProviderConfig, Protocol, ServiceInfo
from .refresh import ConfigCache, RefreshLoop
from .traefik.provider import TraefikProvider

__all__ = [
    "__version__",
    "ProviderConfig",
    "Protocol",
    "ServiceInfo",
    "ConfigCache",
    "RefreshLoop",
    "TraefikProvider",
]
