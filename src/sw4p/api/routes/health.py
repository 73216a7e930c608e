"""Health check endpoints."""

from fastapi import APIRouter, Request

from sw4p import __version__

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "sw4p"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Detailed health check with configuration info."""
    settings = request.app.state.settings
    controller = request.app.state.controller

    result = {
        "status": "healthy",
        "service": "sw4p",
        "version": __version__,
        "config": settings.get_safe_dict(),
    }
    if controller is not None:
        result["gateway"] = controller.gateway.get_status()
        result["monitoring"] = controller.get_monitoring_status()
    return result
