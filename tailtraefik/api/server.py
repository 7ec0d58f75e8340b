"""
FastAPI server exposing the generated Traefik configuration.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request

from .. import __version__
from ..config import ProviderConfig
from ..refresh import RefreshLoop
from ..traefik.provider import TraefikProvider

logger = logging.getLogger(__name__)

SERVICE_NAME = "Traefik Tailscale Provider"


class ProviderServer:
    """
    Owns the provider and its refresh loop for the lifetime of the app.

    Startup is fatal when the daemon cannot be reached: the connectivity
    probe runs before the app accepts requests and its error propagates.
    """

    def __init__(
        self,
        config: ProviderConfig,
        provider: Optional[TraefikProvider] = None,
    ):
        self.config = config
        self._provider = provider
        self.refresh: Optional[RefreshLoop] = None

    @property
    def provider(self) -> TraefikProvider:
        if self._provider is None:
            self._provider = TraefikProvider(self.config)
        return self._provider

    async def start(self) -> None:
        provider = self.provider
        try:
            await provider.test_connection()
        except Exception as e:
            logger.error(f"Failed to connect to Tailscale daemon: {e}")
            raise

        self.refresh = RefreshLoop(provider, interval=self.config.update_interval_seconds)

        if await self.refresh.refresh_once():
            logger.info("Loaded initial Traefik configuration")
        else:
            logger.warning("Failed to load initial configuration")

        await self.refresh.start(run_immediately=False)

    async def stop(self) -> None:
        if self.refresh:
            await self.refresh.stop()
        if self._provider:
            await self._provider.close()

    def status(self) -> dict:
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "refresh": self.refresh.stats() if self.refresh else None,
        }


def get_server(request: Request) -> ProviderServer:
    """FastAPI dependency returning the running server."""
    return request.app.state.server


def create_app(
    config: Optional[ProviderConfig] = None,
    provider: Optional[TraefikProvider] = None,
) -> FastAPI:
    """Create the FastAPI application."""
    from .routes import router

    server = ProviderServer(config or ProviderConfig.from_env(), provider=provider)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {SERVICE_NAME} with config: {server.config.to_dict()}")
        await server.start()
        yield
        await server.stop()

    app = FastAPI(
        title=SERVICE_NAME,
        description="Dynamic configuration provider for Traefik using the Tailscale network",
        version=__version__,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Health", "description": "Health check endpoints"},
            {"name": "Configuration", "description": "Traefik configuration management"},
            {"name": "Status", "description": "Tailscale status information"},
        ],
    )
    app.state.server = server
    app.include_router(router)

    return app


def run_server(config: ProviderConfig, log_level: str = "info") -> None:
    """Run the server with uvicorn."""
    app = create_app(config)

    logger.info(f"{SERVICE_NAME} running on http://{config.server_host}:{config.server_port}")
    logger.info("Endpoints:")
    logger.info("  GET /        - Health check")
    logger.info("  GET /config  - Traefik dynamic configuration (JSON)")
    logger.info("  GET /status  - Tailscale status")
    logger.info("  GET /docs    - API documentation")

    uvicorn.run(
        app,
        host=config.server_host,
        port=config.server_port,
        log_level=log_level,
    )
