"""
System endpoints.
"""

import logging

from fastapi import APIRouter

from storefront.api.responses import HealthCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter()

VERSION = "0.1.0"


@router.get("/health", response_model=HealthCheckResponse)
async def health_check() -> HealthCheckResponse:
    """Health check endpoint"""
    logger.debug("Health check requested")
    return HealthCheckResponse(status="ok", version=VERSION)
