"""Exchange gateway adapters."""

from sw4p.gateway.base import (
    ExchangeGateway,
    GatewayAddress,
    GatewayQuote,
    GatewayTrade,
    GatewayWithdrawal,
)
from sw4p.gateway.factory import create_gateway

__all__ = [
    "ExchangeGateway",
    "GatewayAddress",
    "GatewayQuote",
    "GatewayTrade",
    "GatewayWithdrawal",
    "create_gateway",
]
