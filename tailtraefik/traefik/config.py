"""
Traefik dynamic configuration models.

Serialized with ``DynamicConfig.to_dict()``, which uses Traefik's camelCase
keys and drops unset optional fields.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _TraefikModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class HealthCheck(_TraefikModel):
    path: str
    interval: Optional[str] = None
    timeout: Optional[str] = None


class Server(_TraefikModel):
    url: str
    weight: Optional[int] = None


class LoadBalancer(_TraefikModel):
    servers: List[Server]
    health_check: Optional[HealthCheck] = Field(None, alias="healthCheck")


class Service(_TraefikModel):
    load_balancer: LoadBalancer = Field(alias="loadBalancer")


class TlsConfig(_TraefikModel):
    cert_resolver: Optional[str] = Field(None, alias="certResolver")


class Router(_TraefikModel):
    rule: str
    service: str
    middlewares: Optional[List[str]] = None
    priority: Optional[int] = None
    tls: Optional[TlsConfig] = None


class HeadersMiddleware(_TraefikModel):
    custom_request_headers: Optional[Dict[str, str]] = Field(None, alias="customRequestHeaders")
    custom_response_headers: Optional[Dict[str, str]] = Field(None, alias="customResponseHeaders")


class RetryMiddleware(_TraefikModel):
    attempts: int


class Middleware(_TraefikModel):
    headers: Optional[HeadersMiddleware] = None
    retry: Optional[RetryMiddleware] = None


class HttpConfig(_TraefikModel):
    routers: Dict[str, Router] = Field(default_factory=dict)
    services: Dict[str, Service] = Field(default_factory=dict)
    middlewares: Optional[Dict[str, Middleware]] = None


# TCP

class TcpServer(_TraefikModel):
    address: str
    weight: Optional[int] = None


class TcpLoadBalancer(_TraefikModel):
    servers: List[TcpServer]


class TcpService(_TraefikModel):
    load_balancer: TcpLoadBalancer = Field(alias="loadBalancer")


class TcpTlsConfig(_TraefikModel):
    passthrough: Optional[bool] = None


class TcpRouter(_TraefikModel):
    rule: str
    service: str
    tls: Optional[TcpTlsConfig] = None


class TcpConfig(_TraefikModel):
    routers: Dict[str, TcpRouter] = Field(default_factory=dict)
    services: Dict[str, TcpService] = Field(default_factory=dict)


# UDP has no content-based routing, routers only name a service

class UdpServer(_TraefikModel):
    address: str
    weight: Optional[int] = None


class UdpLoadBalancer(_TraefikModel):
    servers: List[UdpServer]


class UdpService(_TraefikModel):
    load_balancer: UdpLoadBalancer = Field(alias="loadBalancer")


class UdpRouter(_TraefikModel):
    service: str


class UdpConfig(_TraefikModel):
    routers: Dict[str, UdpRouter] = Field(default_factory=dict)
    services: Dict[str, UdpService] = Field(default_factory=dict)


class DynamicConfig(_TraefikModel):
    """The document Traefik's HTTP provider polls."""
    http: Optional[HttpConfig] = None
    tcp: Optional[TcpConfig] = None
    udp: Optional[UdpConfig] = None

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self, indent: Optional[int] = None) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=indent)

    @property
    def is_empty(self) -> bool:
        return self.http is None and self.tcp is None and self.udp is None

    def counts(self) -> Dict[str, int]:
        """Number of services per protocol section."""
        return {
            "http": len(self.http.services) if self.http else 0,
            "tcp": len(self.tcp.services) if self.tcp else 0,
            "udp": len(self.udp.services) if self.udp else 0,
        }
