"""
Dependency Injection

Holds the application's single KodiIntegration instance and provides it to
FastAPI routes via `Depends(get_integration)`. Tests override the dependency or
install their own instance with `set_integration`.
"""
import logging
from typing import TYPE_CHECKING

from fastapi import HTTPException

if TYPE_CHECKING:
    from kodi_integration.services.integration_service import KodiIntegration


logger = logging.getLogger(__name__)

# Global integration instance, created during application startup
_integration: "KodiIntegration | None" = None


def set_integration(integration: "KodiIntegration") -> None:
    """
    Register the integration used by the API.

    Args:
        integration: The configured integration instance
    """
    global _integration
    _integration = integration
    logger.debug(f"Registered integration for {integration.entity_id}")


def get_integration() -> "KodiIntegration":
    """
    Get the registered integration.

    Returns:
        The KodiIntegration instance

    Raises:
        HTTPException: 503 if the application has not finished starting
    """
    if _integration is None:
        raise HTTPException(status_code=503, detail="Integration not initialized")
    return _integration


def reset_integration() -> None:
    """
    Forget the registered integration (shutdown and tests).

    WARNING: Only use this in test environments or during shutdown!
    """
    global _integration
    _integration = None
