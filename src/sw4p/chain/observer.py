"""Chain observer: polls block explorers for deposits to monitored addresses.

One asyncio task per monitored intent polls its address on a fixed
interval. Transactions below the confirmation threshold are only logged
and re-evaluated on the next poll; confirmed ones are handed to the deposit
callback once. A failed poll is logged and polling continues until the
intent is explicitly stopped.

The observer keeps no persistent state. The owning process restarts
monitoring after a restart by re-reading approved intents from the store.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from sw4p.chain.base import ChainSource, ChainTransaction

logger = logging.getLogger(__name__)

# async def callback(intent_id, tx, currency) -> bool
DepositCallback = Callable[[str, ChainTransaction, str], Awaitable[bool]]
SourceFactory = Callable[[str, str], Optional[ChainSource]]


class ChainObserver:
    """Per-intent blockchain polling."""

    def __init__(
        self,
        source_factory: SourceFactory,
        interval: float = 30.0,
        min_confirmations: int = 2,
    ):
        """Initialize the observer.

        Args:
            source_factory: Returns the chain source for (currency, network),
                or None when the pair has no lookup
            interval: Seconds between polls of one address
            min_confirmations: Confirmations required before acting
        """
        self._source_factory = source_factory
        self.interval = interval
        self.min_confirmations = min_confirmations
        self._monitors: dict[str, asyncio.Task] = {}
        # intent_id -> txids already given to the callback
        self._handed_over: dict[str, set[str]] = {}
        self._on_deposit_callback: Optional[DepositCallback] = None

    def set_deposit_callback(self, callback: DepositCallback) -> None:
        """Set callback function for confirmed deposits.

        Callback signature: async def callback(intent_id, tx, currency) -> bool
        """
        self._on_deposit_callback = callback

    async def start_monitoring(
        self, intent_id: str, address: str, currency: str, network: str
    ) -> bool:
        """Begin polling ``address`` for ``intent_id``.

        Returns:
            False when the intent is already monitored
        """
        existing = self._monitors.get(intent_id)
        if existing is not None and not existing.done():
            logger.info(f"Already monitoring {intent_id} at address {address}")
            return False

        logger.info(
            f"Starting blockchain monitoring for {currency}/{network} address {address} "
            f"(intent {intent_id}, interval {self.interval}s)"
        )
        task = asyncio.create_task(
            self._run(intent_id, address, currency, network),
            name=f"chain-monitor-{intent_id}",
        )
        self._monitors[intent_id] = task
        return True

    def stop_monitoring(self, intent_id: str) -> bool:
        """Stop polling for an intent.

        Safe to call from inside the intent's own poll (the loop exits
        after the current cycle instead of cancelling itself mid-write).

        Returns:
            True if the intent was being monitored
        """
        self._handed_over.pop(intent_id, None)
        task = self._monitors.pop(intent_id, None)
        if task is None:
            return False

        if task is not asyncio.current_task():
            task.cancel()
        logger.info(f"Stopped monitoring {intent_id}")
        return True

    def is_monitoring(self, intent_id: str) -> bool:
        """Check if an intent is being monitored."""
        task = self._monitors.get(intent_id)
        return task is not None and not task.done()

    @property
    def active_intents(self) -> list[str]:
        """IDs of monitored intents."""
        return [intent_id for intent_id, task in self._monitors.items() if not task.done()]

    def handed_over(self, intent_id: str) -> frozenset[str]:
        """Transaction hashes already given to the callback for an intent."""
        return frozenset(self._handed_over.get(intent_id, ()))

    def get_monitoring_status(self) -> dict:
        """Get monitoring status."""
        active = len(self.active_intents)
        return {"is_monitoring": active > 0, "active_monitors": active}

    async def stop_all(self) -> None:
        """Stop all monitoring and wait for the poll tasks to finish."""
        tasks = list(self._monitors.values())
        for intent_id in list(self._monitors):
            self.stop_monitoring(intent_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, intent_id: str, address: str, currency: str, network: str) -> None:
        """Poll loop for one intent."""
        try:
            while self._monitors.get(intent_id) is asyncio.current_task():
                await asyncio.sleep(self.interval)
                try:
                    await self.poll_once(intent_id, address, currency, network)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Error monitoring {intent_id} ({address}): {e}")
        except asyncio.CancelledError:
            logger.debug(f"Monitor task for {intent_id} cancelled")
            raise

    async def poll_once(
        self, intent_id: str, address: str, currency: str, network: str
    ) -> int:
        """Run a single poll cycle.

        Returns:
            Number of confirmed transactions handed to the deposit callback
        """
        source = self._source_factory(currency, network)
        if source is None:
            logger.warning(f"Blockchain monitoring not implemented for {currency} on {network}")
            return 0

        logger.debug(f"Checking {currency} address {address} for deposits...")
        transactions = await source.list_transactions(address)

        if not transactions:
            logger.debug(f"No transactions found for {address}")
            return 0

        logger.info(f"Found {len(transactions)} transaction(s) for {address}")

        was_monitored = intent_id in self._monitors
        seen = self._handed_over.setdefault(intent_id, set())
        handled = 0
        for tx in transactions:
            if tx.txid in seen:
                logger.debug(f"Transaction {tx.txid} already handled, skipping")
                continue

            if not tx.is_confirmed(self.min_confirmations):
                logger.info(
                    f"Transaction {tx.txid} has {tx.confirmations} confirmations, "
                    f"waiting for {self.min_confirmations}+"
                )
                continue

            if self._on_deposit_callback is None:
                logger.warning(f"No deposit callback set, ignoring {tx.txid}")
                continue

            await self._on_deposit_callback(intent_id, tx, currency)
            seen.add(tx.txid)
            handled += 1

        if was_monitored and intent_id not in self._monitors:
            # Stopped from inside the callback
            self._handed_over.pop(intent_id, None)
        return handled
