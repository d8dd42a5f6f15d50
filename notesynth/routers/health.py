"""
Health Check Endpoints

Endpoints:
- GET /api/health - Service status and the LLM providers that have credentials

Status is "degraded" when no provider is configured: the API is up, but every
batch would be rejected with a configuration error.
"""

from fastapi import APIRouter, Depends

from notesynth.config import settings
from notesynth.services.dispatch import ProviderPool, get_provider_pool

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health_check(pool: ProviderPool = Depends(get_provider_pool)):
    """Basic health check with configured providers."""
    providers = pool.available
    return {
        "status": "healthy" if providers else "degraded",
        "service": settings.APP_NAME,
        "providers": providers,
    }
