"""Blockstream.info API source for BTC.

Free API for Bitcoin blockchain queries.
Docs: https://github.com/Blockstream/esplora/blob/master/API.md
"""

import logging
from decimal import Decimal
from typing import Optional

import httpx

from sw4p.chain.base import ChainSource, ChainTransaction

logger = logging.getLogger(__name__)

SATOSHIS_PER_BTC = Decimal("100000000")


class BlockstreamSource(ChainSource):
    """Bitcoin transaction lookups using Blockstream.info API.

    This is a free API with no authentication required.
    Rate limits: ~10 requests/second
    """

    # API endpoints
    MAINNET_URL = "https://blockstream.info/api"
    TESTNET_URL = "https://blockstream.info/testnet/api"

    def __init__(self, testnet: bool = False, timeout: float = 30.0):
        """Initialize Blockstream source.

        Args:
            testnet: Use testnet API if True
            timeout: Request timeout in seconds
        """
        super().__init__("BTC", "BTC")
        self.testnet = testnet
        self.base_url = self.TESTNET_URL if testnet else self.MAINNET_URL
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def list_transactions(self, address: str) -> list[ChainTransaction]:
        """Get transactions paying a BTC address."""
        client = await self._get_client()

        response = await client.get(f"{self.base_url}/address/{address}/txs")
        response.raise_for_status()
        txs = response.json()

        # Tip height is only needed once a transaction is mined
        current_height: Optional[int] = None
        transactions = []

        for tx in txs:
            block_height = tx.get("status", {}).get("block_height")
            if block_height and current_height is None:
                current_height = await self.get_current_block_height()

            tx_info = self._parse_transaction(tx, address, current_height or 0)
            if tx_info:
                transactions.append(tx_info)

        return transactions

    async def get_current_block_height(self) -> int:
        """Get current Bitcoin block height."""
        client = await self._get_client()
        response = await client.get(f"{self.base_url}/blocks/tip/height")
        response.raise_for_status()
        return int(response.text)

    def _parse_transaction(
        self, tx: dict, address: str, current_height: int
    ) -> Optional[ChainTransaction]:
        """Parse a Blockstream API transaction response.

        Args:
            tx: Raw transaction data from API
            address: The address we're interested in
            current_height: Current blockchain height

        Returns:
            ChainTransaction or None if nothing was paid to ``address``
        """
        txid = tx.get("txid")
        if not txid:
            return None

        # Calculate confirmations
        block_height = tx.get("status", {}).get("block_height")
        if block_height and current_height:
            confirmations = max(0, current_height - block_height + 1)
        else:
            confirmations = 0

        # Sum outputs to our address
        total_received = Decimal("0")
        for vout in tx.get("vout", []):
            if vout.get("scriptpubkey_address") == address:
                # Amount is in satoshis
                total_received += Decimal(str(vout.get("value", 0))) / SATOSHIS_PER_BTC

        if total_received <= 0:
            return None

        return ChainTransaction(
            txid=txid,
            confirmations=confirmations,
            amount=total_received,
            address=address,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
