"""
API routes for tailtraefik.

Thin read accessors over the refresh loop and the status client.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..tailscale.errors import TailscaleError
from .server import SERVICE_NAME, ProviderServer, get_server

logger = logging.getLogger(__name__)

router = APIRouter()


# ============ Response Models ============

class HealthResponse(BaseModel):
    """Liveness answer."""
    status: str
    service: str


class DetailedHealthResponse(HealthResponse):
    """Liveness plus cache freshness."""
    version: str
    refresh: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Error body for 503 answers."""
    error: str = Field(..., description="What failed")


def _unavailable(message: str) -> JSONResponse:
    return JSONResponse(status_code=503, content=ErrorResponse(error=message).model_dump())


# ============ Health ============

@router.get(
    "/",
    tags=["Health"],
    summary="Health check",
    response_model=HealthResponse,
)
async def health_check():
    """Returns health status of the provider."""
    return HealthResponse(status="OK", service=SERVICE_NAME)


@router.get(
    "/health",
    tags=["Health"],
    summary="Detailed health check",
    response_model=DetailedHealthResponse,
)
async def detailed_health(server: ProviderServer = Depends(get_server)):
    """Health status with refresh loop statistics."""
    status = server.status()
    return DetailedHealthResponse(
        status="OK",
        service=SERVICE_NAME,
        version=status["version"],
        refresh=status["refresh"],
    )


# ============ Configuration ============

@router.get(
    "/config",
    tags=["Configuration"],
    summary="Get dynamic configuration",
    responses={503: {"model": ErrorResponse, "description": "Failed to generate configuration"}},
)
async def get_dynamic_config(server: ProviderServer = Depends(get_server)):
    """Traefik dynamic configuration generated from the Tailscale network."""
    try:
        config = await server.refresh.get_or_generate()
    except TailscaleError as e:
        logger.warning(f"Serving 503 for /config: {e}")
        return _unavailable("Failed to generate configuration from Tailscale")

    return JSONResponse(content=config.to_dict())


# ============ Status ============

@router.get(
    "/status",
    tags=["Status"],
    summary="Get Tailscale status",
    responses={503: {"model": ErrorResponse, "description": "Cannot reach the Tailscale daemon"}},
)
async def get_tailscale_status(server: ProviderServer = Depends(get_server)):
    """Current Tailscale daemon status and peer information."""
    try:
        status = await server.provider.tailscale_client.get_status()
    except TailscaleError as e:
        logger.error(f"Status fetch failed: {e}")
        return _unavailable("Failed to connect to Tailscale daemon")

    return JSONResponse(content=status.to_dict())
