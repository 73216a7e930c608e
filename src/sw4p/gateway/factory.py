"""Gateway factory for creating the configured exchange gateway."""

from typing import Optional

from sw4p.config import Settings, get_settings
from sw4p.gateway.base import ExchangeGateway
from sw4p.gateway.dryrun import DryRunGateway
from sw4p.gateway.obiex import ObiexGateway


def create_gateway(settings: Optional[Settings] = None) -> ExchangeGateway:
    """Build a gateway from settings.

    Gateway is selected based on the GATEWAY environment variable:
    - dryrun (default): Simulated quotes, trades and addresses
    - obiex: Obiex broker API
    """
    settings = settings or get_settings()
    gateway_name = settings.gateway.lower()

    if gateway_name == "obiex":
        return ObiexGateway(
            api_key=settings.obiex_api_key,
            api_secret=settings.obiex_api_secret,
            sandbox=settings.obiex_sandbox,
            timeout=settings.gateway_timeout,
        )
    return DryRunGateway()
