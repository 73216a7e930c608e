"""Dry-run gateway for development and testing (no real exchange calls)."""

import hashlib
import secrets
import time
from datetime import datetime, timedelta, timezone
from decimal import ROUND_DOWN, Decimal
from typing import Optional

from sw4p.errors import GatewayError
from sw4p.gateway.base import (
    SUPPORTED_CURRENCIES,
    ExchangeGateway,
    GatewayAddress,
    GatewayQuote,
    GatewayTrade,
    GatewayWithdrawal,
)

# Simulated USD prices
SIMULATED_PRICES: dict[str, Decimal] = {
    "BTC": Decimal("100000.00"),
    "ETH": Decimal("3900.00"),
    "LTC": Decimal("115.00"),
    "SOL": Decimal("225.00"),
    "BNB": Decimal("710.00"),
    "TRX": Decimal("0.27"),
    "USDT": Decimal("1.00"),
    "USDC": Decimal("1.00"),
    "NGN": Decimal("0.00065"),
}

# Spread applied to simulated quotes (0.5%)
SIMULATED_SPREAD = Decimal("0.005")


def generate_placeholder_address(currency: str) -> str:
    """Synthesize a local deposit address when the gateway cannot issue one.

    The value only looks like an address of the right family (bc1q/0x/ltc1q);
    nothing can be received on it.
    """
    seed = f"{currency}:{time.time_ns()}:{secrets.token_hex(8)}"
    hash_hex = hashlib.sha256(seed.encode()).hexdigest()
    currency_upper = currency.upper()

    if currency_upper == "BTC":
        address = f"bc1q{hash_hex}"
    elif currency_upper in ("ETH", "USDT", "USDC"):
        address = f"0x{hash_hex}"
    elif currency_upper == "LTC":
        address = f"ltc1q{hash_hex}"
    else:
        address = f"{currency.lower()}1q{hash_hex}"
    return address[:42]


class DryRunGateway(ExchangeGateway):
    """Simulated gateway with fixed prices and synthesized addresses."""

    def __init__(self, prices: Optional[dict[str, Decimal]] = None):
        self.prices = dict(SIMULATED_PRICES)
        if prices:
            self.prices.update({k.upper(): v for k, v in prices.items()})

    @property
    def name(self) -> str:
        return "dryrun"

    def _rate(self, source: str, target: str) -> Decimal:
        source_price = self.prices.get(source.upper())
        target_price = self.prices.get(target.upper())
        if source_price is None or target_price is None:
            raise GatewayError(
                f"Unsupported pair {source}/{target}",
                details={"source": source, "target": target},
            )
        return source_price / target_price

    async def create_quote(
        self, source: str, target: str, side: str, amount: Decimal
    ) -> GatewayQuote:
        """Quote at the simulated price minus the spread."""
        amount = Decimal(str(amount))
        if amount <= 0:
            raise GatewayError("Amount must be positive")

        rate = self._rate(source, target)
        if side.upper() == "BUY":
            # BUY: amount is denominated in the target currency
            received = amount / rate
        else:
            received = amount * rate
        received = (received * (1 - SIMULATED_SPREAD)).quantize(
            Decimal("0.00000001"), rounding=ROUND_DOWN
        )

        expiry = datetime.now(timezone.utc) + timedelta(seconds=30)
        return GatewayQuote(
            id=f"sim_quote_{secrets.token_hex(8)}",
            rate=rate,
            amount_received=received,
            expiry_date=expiry.isoformat(),
            source=source.upper(),
            target=target.upper(),
            side=side.upper(),
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
        """Fill immediately at the quoted amount."""
        quote = await self.create_quote(source, target, side, amount)
        trade_id = f"sim_trade_{secrets.token_hex(8)}"
        return GatewayTrade(
            id=trade_id,
            status="completed",
            amount=quote.amount,
            amount_received=quote.amount_received,
            rate=quote.rate,
            source=quote.source,
            target=quote.target,
            side=quote.side,
            transaction_id=trade_id,
            created_at=datetime.now(timezone.utc).isoformat(),
        )

    async def get_deposit_address(
        self, currency: str, network: str, identifier: Optional[str] = None
    ) -> GatewayAddress:
        """Synthesize an address."""
        return GatewayAddress(
            currency=currency.upper(),
            network=network.upper(),
            address=generate_placeholder_address(currency),
        )

    async def withdraw_crypto(
        self,
        currency: str,
        network: str,
        amount: Decimal,
        address: str,
        memo: Optional[str] = None,
    ) -> GatewayWithdrawal:
        """Accept the withdrawal without sending anything."""
        return GatewayWithdrawal(
            transaction_id=f"sim_withdrawal_{secrets.token_hex(8)}",
            status="pending",
            amount=Decimal(str(amount)),
            currency=currency.upper(),
            network=network.upper(),
            address=address,
            memo=memo,
            fee=Decimal("0"),
            created_at=datetime.now(timezone.utc).isoformat(),
        )

    async def list_currencies(self) -> list[dict]:
        """Priced currencies only, with their simulated USD price."""
        return [
            {"code": code, "name": SUPPORTED_CURRENCIES.get(code, code), "usdPrice": str(price)}
            for code, price in self.prices.items()
        ]

    def get_status(self) -> dict:
        return {"name": self.name, "initialized": True, "sandboxMode": True}
