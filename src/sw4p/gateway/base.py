"""Exchange gateway base interface.

The gateway is the remote exchange that issues deposit addresses, quotes,
trades and withdrawals. Any call may fail; implementations raise
``GatewayError`` and never retry on their own.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

SIDES = ("BUY", "SELL")

# Currencies offered to clients, code -> display name
SUPPORTED_CURRENCIES: dict[str, str] = {
    "BTC": "Bitcoin",
    "ETH": "Ethereum",
    "USDT": "Tether",
    "USDC": "USD Coin",
    "SOL": "Solana",
    "TRX": "TRON",
    "BNB": "BNB",
    "LTC": "Litecoin",
    "DOGE": "Dogecoin",
    "XRP": "XRP",
    "NGN": "Nigerian Naira",
}


@dataclass
class GatewayQuote:
    """Quote returned by the gateway."""

    id: str
    rate: Decimal
    amount_received: Decimal
    expiry_date: str
    source: str
    target: str
    side: str
    amount: Decimal

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rate": str(self.rate),
            "amountReceived": str(self.amount_received),
            "expiryDate": self.expiry_date,
            "source": self.source,
            "target": self.target,
            "side": self.side,
            "amount": str(self.amount),
        }


@dataclass
class GatewayTrade:
    """Executed trade."""

    id: str
    status: str
    amount: Decimal
    amount_received: Decimal
    rate: Decimal
    source: str
    target: str
    side: str
    transaction_id: str
    created_at: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "amount": str(self.amount),
            "amountReceived": str(self.amount_received),
            "rate": str(self.rate),
            "source": self.source,
            "target": self.target,
            "side": self.side,
            "transactionId": self.transaction_id,
            "createdAt": self.created_at,
        }


@dataclass
class GatewayAddress:
    """Deposit address issued by the gateway."""

    currency: str
    network: str
    address: str
    memo: Optional[str] = None  # For chains like XRP, BNB that use memo/tag


@dataclass
class GatewayWithdrawal:
    """Submitted withdrawal."""

    transaction_id: str
    status: str
    amount: Decimal
    currency: str
    network: str
    address: str
    memo: Optional[str] = None
    fee: Decimal = Decimal("0")
    created_at: str = ""

    def to_dict(self) -> dict:
        return {
            "transactionId": self.transaction_id,
            "status": self.status,
            "amount": str(self.amount),
            "currency": self.currency,
            "network": self.network,
            "address": self.address,
            "memo": self.memo,
            "fee": str(self.fee),
            "createdAt": self.created_at,
        }


class ExchangeGateway(ABC):
    """Abstract base class for exchange gateways."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Gateway name."""
        raise NotImplementedError()

    @abstractmethod
    async def create_quote(
        self, source: str, target: str, side: str, amount: Decimal
    ) -> GatewayQuote:
        """Create a quote to convert ``amount`` of ``source`` into ``target``."""
        raise NotImplementedError()

    @abstractmethod
    async def trade(
        self,
        source: str,
        target: str,
        side: str,
        amount: Decimal,
        quote_id: Optional[str] = None,
    ) -> GatewayTrade:
        """Execute a trade, accepting ``quote_id`` when given."""
        raise NotImplementedError()

    @abstractmethod
    async def get_deposit_address(
        self, currency: str, network: str, identifier: Optional[str] = None
    ) -> GatewayAddress:
        """Issue a deposit address."""
        raise NotImplementedError()

    @abstractmethod
    async def withdraw_crypto(
        self,
        currency: str,
        network: str,
        amount: Decimal,
        address: str,
        memo: Optional[str] = None,
    ) -> GatewayWithdrawal:
        """Withdraw to an external address."""
        raise NotImplementedError()

    async def list_currencies(self) -> list[dict]:
        """Currencies this gateway can convert between."""
        return [
            {"code": code, "name": name, "usdPrice": None}
            for code, name in SUPPORTED_CURRENCIES.items()
        ]

    def get_status(self) -> dict:
        """Client status for health reporting."""
        return {"name": self.name, "initialized": True, "sandboxMode": False}

    async def close(self) -> None:
        """Release network resources."""
        return None
