"""
Configuration management for tailtraefik.

Handles:
- Provider policy (defaults, peer filters, tag and domain mappings)
- Loading from environment variables, .env files and JSON files
- Runtime settings for the refresh loop and the HTTP server
"""

import json
import logging
import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

DEFAULT_PORT = 80
DEFAULT_SCHEME = "http"
DEFAULT_HEALTH_CHECK_PATH = "/health"
DEFAULT_UPDATE_INTERVAL = 30
DEFAULT_SERVER_HOST = "0.0.0.0"
DEFAULT_SERVER_PORT = 8080
DEFAULT_REQUEST_TIMEOUT = 10.0
MAX_PORT = 65535
MIN_UPDATE_INTERVAL = 1


class Protocol(Enum):
    """Traefik protocol family a service is routed through."""
    HTTP = "http"
    TCP = "tcp"
    UDP = "udp"

    @classmethod
    def parse(cls, value: str) -> "Protocol":
        """Lenient parse: anything that is not tcp/udp routes as HTTP."""
        lowered = value.lower()
        if lowered == "tcp":
            return cls.TCP
        if lowered == "udp":
            return cls.UDP
        return cls.HTTP

    @property
    def default_scheme(self) -> str:
        return self.value


@dataclass(frozen=True)
class ServiceInfo:
    """A logical service exposed by a peer."""
    name: str
    port: Optional[int]
    protocol: Protocol
    scheme: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "port": self.port,
            "protocol": self.protocol.value,
            "scheme": self.scheme,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ServiceInfo":
        protocol = Protocol.parse(data.get("protocol", "http"))
        return cls(
            name=data["name"],
            port=data.get("port"),
            protocol=protocol,
            scheme=data.get("scheme", protocol.default_scheme),
        )


def _parse_bool(value: Optional[str], default: bool) -> bool:
    # Anything but an explicit "false" keeps the toggle on
    if value is None:
        return default
    return value.strip().lower() != "false"


def _parse_int(
    value: Optional[str],
    default: Optional[int],
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> Optional[int]:
    if value is None:
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        logger.warning(f"Ignoring non-numeric value {value!r}")
        return default
    if (minimum is not None and parsed < minimum) or (maximum is not None and parsed > maximum):
        logger.warning(f"Ignoring out-of-range value {value!r}")
        return default
    return parsed


def _parse_port_setting(value: Optional[str], default: int) -> int:
    return _parse_int(value, default, minimum=0, maximum=MAX_PORT)


def _parse_float(value: Optional[str], default: float) -> float:
    """Parse a positive number of seconds."""
    if value is None:
        return default
    try:
        parsed = float(value.strip())
    except ValueError:
        logger.warning(f"Ignoring non-numeric value {value!r}")
        return default
    if not parsed > 0:
        logger.warning(f"Ignoring out-of-range value {value!r}")
        return default
    return parsed


def _parse_list(value: Optional[str]) -> Optional[FrozenSet[str]]:
    if value is None:
        return None
    return frozenset(item.strip() for item in value.split(","))


def _as_set(items: Optional[Iterable[str]]) -> Optional[FrozenSet[str]]:
    if items is None:
        return None
    if isinstance(items, str):
        return _parse_list(items)
    return frozenset(items)


def _is_port(value: str) -> bool:
    digits = value[1:] if value.startswith("+") else value
    return digits.isascii() and digits.isdigit() and int(digits) <= MAX_PORT


def parse_port(value: str) -> Optional[int]:
    """Parse a TCP/UDP port number, returning None when it is not one."""
    if not _is_port(value):
        return None
    return int(value)


def parse_domain_mapping(mapping_str: str) -> Optional[Dict[str, str]]:
    """Parse ``service:domain,service2:domain2``."""
    if not mapping_str:
        return None

    mapping = {}
    for entry in mapping_str.split(","):
        parts = entry.strip().split(":")
        if len(parts) == 2:
            mapping[parts[0].strip()] = parts[1].strip()

    return mapping or None


def parse_service_mapping(mapping_str: str) -> Optional[Dict[str, ServiceInfo]]:
    """Parse ``tag:port[:protocol],tag2:port2:protocol2``."""
    if not mapping_str:
        return None

    mapping = {}
    for entry in mapping_str.split(","):
        parts = entry.strip().split(":")
        if len(parts) < 2:
            continue

        tag = parts[0].strip()
        port = parse_port(parts[1].strip())
        if port is None:
            continue

        protocol = Protocol.parse(parts[2].strip()) if len(parts) >= 3 else Protocol.HTTP
        mapping[tag] = ServiceInfo(
            name=tag,
            port=port,
            protocol=protocol,
            scheme=protocol.default_scheme,
        )

    return mapping or None


def load_environment(env_file: Optional[Path] = None) -> Dict[str, str]:
    """
    Merge a .env file with the process environment.

    Real environment variables take precedence over the file. A missing
    file is not an error.
    """
    values: Dict[str, str] = {}
    path = env_file or Path(".env")
    if path.is_file():
        values.update({k: v for k, v in dotenv_values(path).items() if v is not None})
        logger.debug(f"Loaded {len(values)} values from {path}")
    elif env_file is not None:
        logger.warning(f"Environment file {env_file} not found")
    values.update(os.environ)
    return values


@dataclass(frozen=True)
class ProviderConfig:
    """
    Policy for turning Tailscale peers into Traefik configuration.

    Built once at startup and passed by reference to the filter, extractor
    and synthesizer.
    """
    # Daemon address, None means platform default
    tailscale_socket_path: Optional[str] = None

    # Service defaults
    default_port: int = DEFAULT_PORT
    default_protocol: Protocol = Protocol.HTTP
    default_scheme: str = DEFAULT_SCHEME
    extract_protocol_from_tag: bool = True
    health_check_path: Optional[str] = DEFAULT_HEALTH_CHECK_PATH

    # Peer filters
    exclude_exit_nodes: bool = True
    exclude_expired: bool = True
    include_tags: Optional[FrozenSet[str]] = None
    exclude_hostnames: Optional[FrozenSet[str]] = None
    include_os: Optional[FrozenSet[str]] = None
    max_inactive_seconds: Optional[int] = None

    # Explicit mappings
    tag_service_mapping: Optional[Mapping[str, ServiceInfo]] = None
    service_domain_mapping: Optional[Mapping[str, str]] = None

    # Runtime
    update_interval_seconds: int = DEFAULT_UPDATE_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    server_host: str = DEFAULT_SERVER_HOST
    server_port: int = DEFAULT_SERVER_PORT

    def __post_init__(self):
        # Accept plain lists/sets from callers; store frozensets
        for name in ("include_tags", "exclude_hostnames", "include_os"):
            object.__setattr__(self, name, _as_set(getattr(self, name)))

    def with_overrides(self, **changes: Any) -> "ProviderConfig":
        """Return a copy with some fields replaced."""
        return replace(self, **changes)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ProviderConfig":
        """Load configuration from environment variables."""
        env = os.environ if environ is None else environ

        return cls(
            tailscale_socket_path=env.get("TAILSCALE_SOCKET_PATH") or None,
            default_port=_parse_port_setting(env.get("DEFAULT_PORT"), DEFAULT_PORT),
            default_protocol=Protocol.parse(env.get("DEFAULT_PROTOCOL", "http")),
            default_scheme=env.get("DEFAULT_SCHEME", DEFAULT_SCHEME),
            extract_protocol_from_tag=_parse_bool(env.get("EXTRACT_PROTOCOL_FROM_TAG"), True),
            health_check_path=env.get("HEALTH_CHECK_PATH", DEFAULT_HEALTH_CHECK_PATH) or None,
            exclude_exit_nodes=_parse_bool(env.get("EXCLUDE_EXIT_NODES"), True),
            exclude_expired=_parse_bool(env.get("EXCLUDE_EXPIRED"), True),
            include_tags=_parse_list(env.get("INCLUDE_TAGS")),
            exclude_hostnames=_parse_list(env.get("EXCLUDE_HOSTNAMES")),
            include_os=_parse_list(env.get("INCLUDE_OS")),
            max_inactive_seconds=_parse_int(env.get("MAX_INACTIVE_SECONDS"), None, minimum=0),
            tag_service_mapping=parse_service_mapping(env.get("TAG_SERVICE_MAPPING", "")),
            service_domain_mapping=parse_domain_mapping(env.get("SERVICE_DOMAIN_MAPPING", "")),
            update_interval_seconds=_parse_int(
                env.get("UPDATE_INTERVAL_SECONDS"),
                DEFAULT_UPDATE_INTERVAL,
                minimum=MIN_UPDATE_INTERVAL,
            ),
            request_timeout=_parse_float(env.get("REQUEST_TIMEOUT"), DEFAULT_REQUEST_TIMEOUT),
            server_host=env.get("SERVER_HOST", DEFAULT_SERVER_HOST),
            server_port=_parse_port_setting(env.get("SERVER_PORT"), DEFAULT_SERVER_PORT),
        )

    @classmethod
    def from_dict(cls, data: dict) -> "ProviderConfig":
        """Build from a JSON-style dict keyed by field name."""
        known_fields = set(cls.__dataclass_fields__)
        filtered = {k: v for k, v in data.items() if k in known_fields}

        if "default_protocol" in filtered:
            filtered["default_protocol"] = Protocol.parse(filtered["default_protocol"])

        mapping = filtered.get("tag_service_mapping")
        if isinstance(mapping, str):
            filtered["tag_service_mapping"] = parse_service_mapping(mapping)
        elif mapping:
            filtered["tag_service_mapping"] = {
                tag: ServiceInfo.from_dict({"name": tag, **info})
                for tag, info in mapping.items()
            }

        domains = filtered.get("service_domain_mapping")
        if isinstance(domains, str):
            filtered["service_domain_mapping"] = parse_domain_mapping(domains)

        return cls(**filtered)

    @classmethod
    def load(cls, path: Path) -> "ProviderConfig":
        """Load configuration from a JSON file."""
        with open(path, "r") as f:
            data = json.load(f)
        logger.debug(f"Configuration loaded from {path}")
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        return {
            "tailscale_socket_path": self.tailscale_socket_path,
            "default_port": self.default_port,
            "default_protocol": self.default_protocol.value,
            "default_scheme": self.default_scheme,
            "extract_protocol_from_tag": self.extract_protocol_from_tag,
            "health_check_path": self.health_check_path,
            "exclude_exit_nodes": self.exclude_exit_nodes,
            "exclude_expired": self.exclude_expired,
            "include_tags": sorted(self.include_tags) if self.include_tags is not None else None,
            "exclude_hostnames": (
                sorted(self.exclude_hostnames) if self.exclude_hostnames is not None else None
            ),
            "include_os": sorted(self.include_os) if self.include_os is not None else None,
            "max_inactive_seconds": self.max_inactive_seconds,
            "tag_service_mapping": (
                {tag: info.to_dict() for tag, info in self.tag_service_mapping.items()}
                if self.tag_service_mapping is not None else None
            ),
            "service_domain_mapping": (
                dict(self.service_domain_mapping)
                if self.service_domain_mapping is not None else None
            ),
            "update_interval_seconds": self.update_interval_seconds,
            "request_timeout": self.request_timeout,
            "server_host": self.server_host,
            "server_port": self.server_port,
        }
