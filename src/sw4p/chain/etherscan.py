"""Etherscan source for ETH.

Uses Etherscan API (free tier: 5 calls/sec).
API Docs: https://docs.etherscan.io/
"""

import logging
from decimal import Decimal
from typing import Optional

import httpx

from sw4p.chain.base import ChainSource, ChainTransaction

logger = logging.getLogger(__name__)

# Etherscan API endpoints
ETHERSCAN_MAINNET = "https://api.etherscan.io/api"
ETHERSCAN_SEPOLIA = "https://api-sepolia.etherscan.io/api"  # Testnet

WEI_PER_ETH = Decimal("1000000000000000000")


class EtherscanSource(ChainSource):
    """ETH transaction lookups using Etherscan API.

    Free tier: 5 calls/second, 100,000 calls/day.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        testnet: bool = False,
        timeout: float = 30.0,
    ):
        """Initialize Etherscan source.

        Args:
            api_key: Etherscan API key (free registration required for higher limits)
            testnet: Use Sepolia testnet if True
            timeout: Request timeout in seconds
        """
        super().__init__("ETH", "ETH")
        self.api_key = api_key or "YourApiKeyToken"  # Default (limited)
        self.base_url = ETHERSCAN_SEPOLIA if testnet else ETHERSCAN_MAINNET
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def list_transactions(self, address: str) -> list[ChainTransaction]:
        """Get incoming ETH transactions for an address."""
        params = {
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": 0,
            "endblock": 99999999,
            "page": 1,
            "offset": 50,
            "sort": "desc",
            "apikey": self.api_key,
        }

        client = await self._get_client()
        response = await client.get(self.base_url, params=params)
        response.raise_for_status()
        data = response.json()

        if data.get("status") != "1":
            # "No transactions found" is reported as status 0 with an empty result
            if data.get("result"):
                logger.warning(f"Etherscan error for {address}: {data.get('result')}")
            return []

        transactions = []
        for tx in data.get("result", []):
            # Only incoming transactions
            if (tx.get("to") or "").lower() != address.lower():
                continue

            tx_info = self._parse_transaction(tx, address)
            if tx_info:
                transactions.append(tx_info)

        return transactions

    def _parse_transaction(self, tx: dict, address: str) -> Optional[ChainTransaction]:
        """Parse Etherscan transaction response."""
        txid = tx.get("hash")
        if not txid:
            return None

        # Convert from Wei (1 ETH = 10^18 Wei)
        amount = Decimal(str(tx.get("value", "0"))) / WEI_PER_ETH

        # Skip zero-value transactions (contract calls)
        if amount == 0:
            return None

        return ChainTransaction(
            txid=txid,
            confirmations=int(tx.get("confirmations") or 0),
            amount=amount,
            address=address,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
