"""
Peer selection rules.

``should_include_peer`` is a short-circuiting conjunction; the first rule
that rejects a peer decides. ``exclusion_reason`` exposes which rule that
was, for logs and the ``peers`` CLI command.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ..config import ProviderConfig
from ..tailscale.types import PeerStatus, is_zero_time
from .tags import strip_tag_prefix

logger = logging.getLogger(__name__)


def _has_included_tag(peer: PeerStatus, config: ProviderConfig) -> bool:
    if not peer.tags:
        return False
    clean_tags = [strip_tag_prefix(tag) for tag in peer.tags]
    return any(
        wanted in clean_tag
        for wanted in config.include_tags
        for clean_tag in clean_tags
    )


def _is_inactive(peer: PeerStatus, max_inactive: int, now: datetime) -> bool:
    if is_zero_time(peer.last_write):
        # Never written: treat as inactive
        return True
    last_write = peer.last_write
    if last_write.tzinfo is None:
        last_write = last_write.replace(tzinfo=timezone.utc)
    return (now - last_write).total_seconds() > max_inactive


def exclusion_reason(
    peer: PeerStatus,
    config: ProviderConfig,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """Return why a peer is excluded, or None when it is included."""
    if not peer.online:
        return "offline"

    if config.exclude_exit_nodes and peer.exit_node:
        return "exit node"

    if config.include_tags is not None and not _has_included_tag(peer, config):
        return "no included tag"

    if config.exclude_hostnames is not None and peer.hostname in config.exclude_hostnames:
        return "hostname excluded"

    if config.max_inactive_seconds is not None:
        now = now or datetime.now(timezone.utc)
        if _is_inactive(peer, config.max_inactive_seconds, now):
            return "inactive"

    if config.include_os is not None and peer.os not in config.include_os:
        return f"os {peer.os!r} not included"

    if config.exclude_expired and peer.expired:
        return "key expired"

    return None


def should_include_peer(
    peer: PeerStatus,
    config: ProviderConfig,
    now: Optional[datetime] = None,
) -> bool:
    """Check if a peer should appear in the Traefik configuration."""
    reason = exclusion_reason(peer, config, now)
    if reason is not None:
        logger.debug(f"Skipping peer {peer.hostname}: {reason}")
        return False
    return True
