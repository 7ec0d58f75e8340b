"""
Service inference from Tailscale tags.

Tags follow a positional ``name[-port[-protocol]]`` convention:

    web            -> web on the default port and protocol
    api-3000       -> api on port 3000, default protocol
    db-5432-tcp    -> db on port 5432 over TCP
    my-app-443-https -> my-app on port 443, HTTP with https scheme

A tag that does not fit (e.g. a non-numeric port) yields None and is
dropped; it is never an error.
"""

import logging
from typing import List, Optional

from ..config import Protocol, ProviderConfig, ServiceInfo, parse_port
from ..tailscale.types import PeerStatus

logger = logging.getLogger(__name__)

TAG_PREFIX = "tag:"
DEFAULT_SERVICE_NAME = "default"


def strip_tag_prefix(tag: str) -> str:
    """Drop the ``tag:`` prefix the daemon puts on ACL tags."""
    return tag[len(TAG_PREFIX):] if tag.startswith(TAG_PREFIX) else tag


def _scheme_for(protocol: Protocol, segment: str) -> str:
    if protocol is Protocol.HTTP:
        return "https" if segment.lower() == "https" else "http"
    return protocol.default_scheme


def default_service_info(config: ProviderConfig, name: str = DEFAULT_SERVICE_NAME) -> ServiceInfo:
    """A service built purely from the policy defaults."""
    return ServiceInfo(
        name=name,
        port=config.default_port,
        protocol=config.default_protocol,
        scheme=config.default_scheme,
    )


def parse_service_info_from_tag(tag: str, config: ProviderConfig) -> Optional[ServiceInfo]:
    """Parse one tag into a service, or None when it does not fit the convention."""
    clean_tag = strip_tag_prefix(tag)

    if not config.extract_protocol_from_tag:
        return default_service_info(config, clean_tag)

    parts = clean_tag.split("-")

    if len(parts) == 1:
        return default_service_info(config, parts[0])

    if len(parts) == 2:
        port = parse_port(parts[1])
        if port is None:
            return None
        return ServiceInfo(
            name=parts[0],
            port=port,
            protocol=config.default_protocol,
            scheme=config.default_scheme,
        )

    # 3+ segments: the last two are port and protocol
    name = parts[0] if len(parts) == 3 else "-".join(parts[:-2])
    port = parse_port(parts[-2])
    if port is None:
        return None

    protocol = Protocol.parse(parts[-1])
    return ServiceInfo(
        name=name,
        port=port,
        protocol=protocol,
        scheme=_scheme_for(protocol, parts[-1]),
    )


def extract_service_infos(peer: PeerStatus, config: ProviderConfig) -> List[ServiceInfo]:
    """
    All services a peer exposes.

    Parsed tags come first, in tag order, followed by entries from the
    explicit tag mapping. With ``include_tags`` set, only services whose
    name is listed survive. A peer without tags gets one ``default``
    service unless an include filter is configured. Duplicates are kept.
    """
    include_tags = config.include_tags
    service_infos: List[ServiceInfo] = []

    if peer.tags is not None:
        for peer_tag in peer.tags:
            service_info = parse_service_info_from_tag(peer_tag, config)
            if service_info is None:
                logger.debug(f"Tag {peer_tag!r} on {peer.hostname} does not describe a service")
                continue
            if include_tags is None or service_info.name in include_tags:
                service_infos.append(service_info)
    elif include_tags is None:
        service_infos.append(default_service_info(config))

    if config.tag_service_mapping and peer.tags:
        for peer_tag in peer.tags:
            mapped = config.tag_service_mapping.get(strip_tag_prefix(peer_tag))
            if mapped is None:
                continue
            if include_tags is None or mapped.name in include_tags:
                service_infos.append(mapped)

    return service_infos
