"""
HTTP API for tailtraefik.
"""

from .server import ProviderServer, create_app, run_server

__all__ = ["ProviderServer", "create_app", "run_server"]
