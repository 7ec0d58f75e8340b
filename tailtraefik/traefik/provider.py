"""
Traefik configuration synthesis from Tailscale peers.

For every included peer and every service it exposes, one router and one
service record is built in the section matching the service protocol.
Names are derived from the peer hostname and service name only, so the
same status always produces the same document. When two pairs derive the
same name the later one wins.
"""

import logging
from typing import Dict, Optional, Tuple

from ..config import Protocol, ProviderConfig, ServiceInfo
from ..tailscale.client import TailscaleClient
from ..tailscale.types import PeerStatus, Status
from .config import (
    DynamicConfig,
    HealthCheck,
    HttpConfig,
    LoadBalancer,
    Router,
    Server,
    Service,
    TcpConfig,
    TcpLoadBalancer,
    TcpRouter,
    TcpServer,
    TcpService,
    UdpConfig,
    UdpLoadBalancer,
    UdpRouter,
    UdpServer,
    UdpService,
)
from .filters import should_include_peer
from .tags import DEFAULT_SERVICE_NAME, extract_service_infos

logger = logging.getLogger(__name__)

NAME_PREFIX = "tailscale"
ROUTER_SUFFIX = "-router"
HEALTH_CHECK_INTERVAL = "30s"
HEALTH_CHECK_TIMEOUT = "5s"
DEFAULT_HOST_RULE = "HostRegexp(`.*`)"
DEFAULT_SNI_RULE = "HostSNI(`*`)"


def sanitize_hostname(hostname: str) -> str:
    return hostname.lower().replace(".", "-").replace("_", "-")


def generate_service_name(peer: PeerStatus, service_info: ServiceInfo) -> str:
    hostname_safe = sanitize_hostname(peer.hostname)
    if service_info.name == DEFAULT_SERVICE_NAME:
        return f"{NAME_PREFIX}-{hostname_safe}"
    return f"{NAME_PREFIX}-{hostname_safe}-{service_info.name}"


def generate_router_name(peer: PeerStatus, service_info: ServiceInfo) -> str:
    return generate_service_name(peer, service_info) + ROUTER_SUFFIX


class TraefikProvider:
    """
    Builds Traefik dynamic configuration from the tailnet.

    Usage:
        provider = TraefikProvider(ProviderConfig.from_env())
        await provider.test_connection()
        config = await provider.generate_config()
        print(config.to_json(indent=2))
    """

    def __init__(
        self,
        config: ProviderConfig,
        tailscale_client: Optional[TailscaleClient] = None,
    ):
        self.config = config
        self.tailscale_client = tailscale_client or TailscaleClient.from_socket_path(
            config.tailscale_socket_path,
            timeout=config.request_timeout,
        )

    async def close(self) -> None:
        await self.tailscale_client.close()

    async def test_connection(self) -> None:
        """Test connectivity to the Tailscale daemon; raises on failure."""
        logger.info("Testing connection to Tailscale daemon")
        await self.tailscale_client.test_connection()
        logger.info("Successfully connected to Tailscale daemon")

    async def generate_config(self) -> DynamicConfig:
        """Fetch the current status and build configuration from it."""
        logger.info("Fetching Tailscale status")
        status = await self.tailscale_client.get_status()
        return self.build_config(status)

    def build_config(self, status: Status) -> DynamicConfig:
        """Build configuration from one status snapshot."""
        if status.peers is None:
            logger.warning("No peers available in status")
            return DynamicConfig()

        logger.info(f"Generating Traefik configuration for {status.peer_count} peers")

        http_routers: Dict[str, Router] = {}
        http_services: Dict[str, Service] = {}
        tcp_routers: Dict[str, TcpRouter] = {}
        tcp_services: Dict[str, TcpService] = {}
        udp_routers: Dict[str, UdpRouter] = {}
        udp_services: Dict[str, UdpService] = {}

        for _, peer in status.iter_peers():
            if not should_include_peer(peer, self.config):
                continue

            for service_info in extract_service_infos(peer, self.config):
                backend = self._backend_for(peer, service_info)
                if backend is None:
                    continue

                service_name = generate_service_name(peer, service_info)
                router_name = generate_router_name(peer, service_info)
                ip, port = backend

                if service_info.protocol is Protocol.HTTP:
                    http_services[service_name] = self._http_service(service_info, ip, port)
                    http_routers[router_name] = self._http_router(service_info, service_name)
                elif service_info.protocol is Protocol.TCP:
                    tcp_services[service_name] = TcpService(
                        load_balancer=TcpLoadBalancer(
                            servers=[TcpServer(address=f"{ip}:{port}", weight=1)]
                        )
                    )
                    tcp_routers[router_name] = TcpRouter(
                        rule=self._sni_rule(service_info),
                        service=service_name,
                    )
                else:
                    udp_services[service_name] = UdpService(
                        load_balancer=UdpLoadBalancer(
                            servers=[UdpServer(address=f"{ip}:{port}", weight=1)]
                        )
                    )
                    udp_routers[router_name] = UdpRouter(service=service_name)

        config = DynamicConfig(
            http=HttpConfig(routers=http_routers, services=http_services)
            if http_routers or http_services else None,
            tcp=TcpConfig(routers=tcp_routers, services=tcp_services)
            if tcp_routers or tcp_services else None,
            udp=UdpConfig(routers=udp_routers, services=udp_services)
            if udp_routers or udp_services else None,
        )
        logger.debug(f"Generated services per protocol: {config.counts()}")
        return config

    def _backend_for(
        self,
        peer: PeerStatus,
        service_info: ServiceInfo,
    ) -> Optional[Tuple[str, int]]:
        """First Tailscale IP and the service port, or None without an IP."""
        ip = peer.primary_ip
        if ip is None:
            logger.warning(f"Peer {peer.hostname} has no Tailscale IPs")
            return None
        port = service_info.port if service_info.port is not None else self.config.default_port
        return ip, port

    def _domain_for(self, service_info: ServiceInfo) -> Optional[str]:
        if not self.config.service_domain_mapping:
            return None
        return self.config.service_domain_mapping.get(service_info.name)

    def _http_service(self, service_info: ServiceInfo, ip: str, port: int) -> Service:
        health_check = None
        if self.config.health_check_path:
            health_check = HealthCheck(
                path=self.config.health_check_path,
                interval=HEALTH_CHECK_INTERVAL,
                timeout=HEALTH_CHECK_TIMEOUT,
            )

        return Service(
            load_balancer=LoadBalancer(
                servers=[Server(url=f"{service_info.scheme}://{ip}:{port}", weight=1)],
                health_check=health_check,
            )
        )

    def _http_router(self, service_info: ServiceInfo, service_name: str) -> Router:
        domain = self._domain_for(service_info)
        rule = f"Host(`{domain}`)" if domain is not None else DEFAULT_HOST_RULE
        return Router(rule=rule, service=service_name)

    def _sni_rule(self, service_info: ServiceInfo) -> str:
        domain = self._domain_for(service_info)
        return f"HostSNI(`{domain}`)" if domain is not None else DEFAULT_SNI_RULE
