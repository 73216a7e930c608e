"""Factory for chain data sources.

Supported pairs (currency/network):
- BTC/BTC: Blockstream API
- ETH/ETH: Etherscan API

Every other pair has no lookup and returns None.
"""

from typing import Optional

from sw4p.chain.base import ChainSource
from sw4p.chain.blockstream import BlockstreamSource
from sw4p.chain.etherscan import EtherscanSource
from sw4p.config import Settings, get_settings

SUPPORTED_PAIRS = (("BTC", "BTC"), ("ETH", "ETH"))


class ChainSourceFactory:
    """Builds and caches one chain source per supported pair."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._cache: dict[tuple[str, str], ChainSource] = {}

    def __call__(self, currency: str, network: str) -> Optional[ChainSource]:
        """Get the source for a pair, or None when not implemented."""
        key = (currency.upper(), network.upper())

        if key in self._cache:
            return self._cache[key]

        if key == ("BTC", "BTC"):
            source: ChainSource = BlockstreamSource(
                testnet=self.settings.btc_testnet,
                timeout=self.settings.gateway_timeout,
            )
        elif key == ("ETH", "ETH"):
            source = EtherscanSource(
                api_key=self.settings.etherscan_api_key or None,
                timeout=self.settings.gateway_timeout,
            )
        else:
            return None

        self._cache[key] = source
        return source

    async def close(self) -> None:
        """Close every cached source."""
        for source in self._cache.values():
            await source.close()
        self._cache.clear()


def is_supported(currency: str, network: str) -> bool:
    """Check if deposits for a pair can be verified on-chain."""
    return (currency.upper(), network.upper()) in SUPPORTED_PAIRS
