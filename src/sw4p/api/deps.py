"""Shared FastAPI dependencies."""

import hmac
import logging
from typing import Optional

from fastapi import Header, Request

from sw4p.config import Settings
from sw4p.errors import ApiError, ForbiddenError, UnauthorizedError
from sw4p.lifecycle.controller import IntentLifecycleController

logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_controller(request: Request) -> IntentLifecycleController:
    controller = request.app.state.controller
    if controller is None:
        raise ApiError("Service is starting up", status_code=503, code="SERVICE_UNAVAILABLE")
    return controller


async def require_admin_token(
    request: Request,
    x_admin_token: Optional[str] = Header(None),
) -> bool:
    """Verify admin token from header.

    If ADMIN_TOKEN is not set, allows access in development and refuses
    every admin call in production.
    """
    settings = get_app_settings(request)

    if not settings.admin_token:
        if settings.is_production:
            logger.warning("Admin endpoint called but ADMIN_TOKEN is not configured")
            raise ForbiddenError("Admin access is not configured")
        return True

    if not x_admin_token or not hmac.compare_digest(x_admin_token, settings.admin_token):
        raise UnauthorizedError("Invalid admin token")

    return True
