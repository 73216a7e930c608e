"""Obiex exchange gateway.

Docs: https://docs.obiex.finance/

Requests are signed with HMAC-SHA256 over ``METHOD/path`` plus the request
timestamp. Every call is bounded by the configured timeout and raises
``GatewayError`` on any transport or API failure.
"""

import hashlib
import hmac
import logging
import secrets
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from sw4p.errors import GatewayError
from sw4p.gateway.base import (
    ExchangeGateway,
    GatewayAddress,
    GatewayQuote,
    GatewayTrade,
    GatewayWithdrawal,
)

logger = logging.getLogger(__name__)

PRODUCTION_URL = "https://api.obiex.finance"
STAGING_URL = "https://staging.api.obiex.finance"
API_VERSION = "v1"


def _decimal(value: Any, default: str = "0") -> Decimal:
    try:
        return Decimal(str(value if value is not None else default))
    except InvalidOperation:
        return Decimal(default)


class ObiexGateway(ExchangeGateway):
    """Obiex broker API client."""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        sandbox: bool = False,
        timeout: float = 30.0,
        base_url: Optional[str] = None,
    ):
        """Initialize Obiex gateway.

        Args:
            api_key: Obiex API key
            api_secret: Obiex API secret used for request signing
            sandbox: Use the staging environment if True
            timeout: Seconds before a request is treated as failed
            base_url: Optional base URL override
        """
        self.api_key = api_key
        self.api_secret = api_secret
        self.sandbox = sandbox
        self.timeout = timeout
        self.base_url = base_url or (STAGING_URL if sandbox else PRODUCTION_URL)
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def name(self) -> str:
        return "obiex"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    def _sign(self, method: str, path: str, timestamp: str) -> str:
        content = f"{method.upper()}/{path}{timestamp}"
        return hmac.new(
            self.api_secret.encode(), content.encode(), hashlib.sha256
        ).hexdigest()

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> dict:
        """Send a signed request and return the ``data`` payload."""
        if not self.api_key or not self.api_secret:
            raise GatewayError("Obiex credentials are not configured")

        full_path = f"{API_VERSION}/{path.lstrip('/')}"
        timestamp = str(int(time.time() * 1000))
        headers = {
            "x-api-key": self.api_key,
            "x-api-timestamp": timestamp,
            "x-api-signature": self._sign(method, full_path, timestamp),
        }

        client = await self._get_client()
        try:
            response = await client.request(method, f"/{full_path}", json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise GatewayError(f"Obiex request timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            raise GatewayError(f"Obiex request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            message = body.get("message") if isinstance(body, dict) else None
            raise GatewayError(
                message or f"Obiex API error: HTTP {response.status_code}",
                details={"status": response.status_code, "path": path},
            )

        data = body.get("data") if isinstance(body, dict) else None
        if data is None:
            raise GatewayError("Obiex API returned no data", details={"path": path})
        return data

    async def create_quote(
        self, source: str, target: str, side: str, amount: Decimal
    ) -> GatewayQuote:
        """Create a live quote."""
        logger.info(f"Creating quote: {amount} {source} -> {target} ({side})")
        data = await self._request(
            "POST",
            "trades/quote",
            json={"source": source, "target": target, "side": side, "amount": float(amount)},
        )
        return GatewayQuote(
            id=str(data["id"]),
            rate=_decimal(data.get("rate")),
            amount_received=_decimal(data.get("amountReceived")),
            expiry_date=str(data.get("expiryDate", "")),
            source=source,
            target=target,
            side=side,
            amount=amount,
        )

    async def trade(
        self,
        source: str,
        target: str,
        side: str,
        amount: Decimal,
        quote_id: Optional[str] = None,
    ) -> GatewayTrade:
        """Execute a trade by accepting a quote (created on the fly if needed)."""
        if quote_id is None:
            quote_id = (await self.create_quote(source, target, side, amount)).id

        logger.info(f"Executing trade: {amount} {source} -> {target} ({side}), quote {quote_id}")
        data = await self._request("POST", f"trades/quote/{quote_id}")
        trade_id = str(data.get("id", quote_id))
        return GatewayTrade(
            id=trade_id,
            status=str(data.get("status", "completed")).lower(),
            amount=amount,
            amount_received=_decimal(data.get("amountReceived")),
            rate=_decimal(data.get("rate")),
            source=source,
            target=target,
            side=side,
            transaction_id=str(data.get("transactionId") or trade_id),
            created_at=str(data.get("createdAt") or datetime.now(timezone.utc).isoformat()),
        )

    async def get_deposit_address(
        self, currency: str, network: str, identifier: Optional[str] = None
    ) -> GatewayAddress:
        """Issue a broker deposit address."""
        # Obiex requires a purpose identifier per address
        purpose = identifier or f"deposit_{int(time.time() * 1000)}_{secrets.token_hex(5)}"
        logger.info(f"Requesting deposit address: {currency} on {network}")
        data = await self._request(
            "POST",
            "addresses/broker",
            json={"purpose": purpose, "currency": currency, "network": network},
        )
        address = data.get("value") or data.get("address")
        if not address:
            raise GatewayError("Obiex returned an empty deposit address")
        return GatewayAddress(
            currency=currency,
            network=str(data.get("network") or network),
            address=address,
            memo=data.get("memo"),
        )

    async def withdraw_crypto(
        self,
        currency: str,
        network: str,
        amount: Decimal,
        address: str,
        memo: Optional[str] = None,
    ) -> GatewayWithdrawal:
        """Submit a crypto withdrawal."""
        logger.info(f"Processing withdrawal: {amount} {currency} to {address}")
        destination = {"address": address, "network": network}
        if memo:
            destination["memo"] = memo
        data = await self._request(
            "POST",
            "wallets/ext/debit/crypto",
            json={"amount": float(amount), "currency": currency, "destination": destination},
        )
        return GatewayWithdrawal(
            transaction_id=str(
                data.get("id") or data.get("reference") or f"withdrawal_{int(time.time() * 1000)}"
            ),
            status=str(data.get("status", "pending")).lower(),
            amount=amount,
            currency=currency,
            network=network,
            address=address,
            memo=memo,
            fee=_decimal(data.get("fee")),
            created_at=str(data.get("createdAt") or datetime.now(timezone.utc).isoformat()),
        )

    def get_status(self) -> dict:
        return {
            "name": self.name,
            "initialized": bool(self.api_key and self.api_secret),
            "sandboxMode": self.sandbox,
            "baseUrl": self.base_url,
        }

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
