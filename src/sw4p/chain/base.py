"""Base interface for chain data sources.

A chain data source answers one question: which transactions pay a given
address, and how deeply is each one confirmed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal


@dataclass
class ChainTransaction:
    """A transaction paying a monitored address."""

    txid: str
    confirmations: int
    amount: Decimal
    address: str

    def is_confirmed(self, min_confirmations: int = 2) -> bool:
        """Check if transaction has minimum confirmations."""
        return self.confirmations >= min_confirmations


class ChainSource(ABC):
    """Abstract base class for blockchain explorers."""

    def __init__(self, currency: str, network: str):
        self.currency = currency.upper()
        self.network = network.upper()

    @abstractmethod
    async def list_transactions(self, address: str) -> list[ChainTransaction]:
        """Get transactions paying ``address``.

        Raises ``httpx.HTTPError`` (or a parsing error) when the explorer
        cannot be queried; the observer logs it and retries next cycle.
        """
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None
