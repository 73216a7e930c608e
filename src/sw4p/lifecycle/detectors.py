"""Deposit detectors.

A detector watches an approved intent until a deposit shows up. Two are
available: the simulated one fires after a random delay (automatic path),
the chain one delegates to the blockchain observer (manual path).
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from sw4p.chain.factory import is_supported
from sw4p.chain.observer import ChainObserver
from sw4p.intents.models import DepositIntent, DetectionMode

logger = logging.getLogger(__name__)


class DepositDetector(ABC):
    """Abstract base class for deposit detectors."""

    mode: DetectionMode

    @abstractmethod
    async def start(self, intent: DepositIntent) -> bool:
        """Start watching an intent.

        Returns:
            False when the intent is already watched or cannot be watched
        """
        raise NotImplementedError()

    @abstractmethod
    def stop(self, intent_id: str) -> bool:
        """Stop watching an intent."""
        raise NotImplementedError()

    @abstractmethod
    def is_active(self, intent_id: str) -> bool:
        raise NotImplementedError()

    @property
    @abstractmethod
    def active_count(self) -> int:
        raise NotImplementedError()

    @abstractmethod
    async def shutdown(self) -> None:
        """Stop everything and wait for pending work to unwind."""
        raise NotImplementedError()


class SimulatedDetector(DepositDetector):
    """Pretends a deposit arrived after a random delay."""

    mode = DetectionMode.SIMULATED

    def __init__(
        self,
        on_detected: Callable[[str], Awaitable[None]],
        min_delay: float = 10.0,
        max_delay: float = 30.0,
    ):
        self._on_detected = on_detected
        self.min_delay = min_delay
        self.max_delay = max(min_delay, max_delay)
        self._timers: dict[str, asyncio.Task] = {}

    async def start(self, intent: DepositIntent) -> bool:
        if self.is_active(intent.id):
            logger.info(f"Simulated detection already scheduled for {intent.id}")
            return False

        delay = random.uniform(self.min_delay, self.max_delay)
        logger.info(f"Simulating deposit detection for {intent.id} in {delay:.1f}s")
        self._timers[intent.id] = asyncio.create_task(
            self._fire(intent.id, delay), name=f"simulated-deposit-{intent.id}"
        )
        return True

    async def _fire(self, intent_id: str, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            logger.info(f"Simulated deposit detected for {intent_id}")
            await self._on_detected(intent_id)
        except asyncio.CancelledError:
            logger.debug(f"Simulated detection for {intent_id} cancelled")
            raise
        except Exception as e:
            logger.error(f"Simulated deposit handling failed for {intent_id}: {e}")
        finally:
            if self._timers.get(intent_id) is asyncio.current_task():
                del self._timers[intent_id]

    def stop(self, intent_id: str) -> bool:
        task = self._timers.pop(intent_id, None)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()
        logger.info(f"Cancelled simulated detection for {intent_id}")
        return True

    def is_active(self, intent_id: str) -> bool:
        task = self._timers.get(intent_id)
        return task is not None and not task.done()

    @property
    def active_count(self) -> int:
        return sum(1 for task in self._timers.values() if not task.done())

    async def shutdown(self) -> None:
        tasks = list(self._timers.values())
        for intent_id in list(self._timers):
            self.stop(intent_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


class ChainDetector(DepositDetector):
    """Watches the intent's address on-chain through the observer."""

    mode = DetectionMode.CHAIN

    def __init__(self, observer: ChainObserver):
        self.observer = observer

    async def start(self, intent: DepositIntent) -> bool:
        if not intent.has_address:
            logger.warning(f"Intent {intent.id} has no deposit address, not monitoring")
            return False
        if not is_supported(intent.currency, intent.network):
            logger.warning(
                f"No chain lookup for {intent.currency}/{intent.network}, "
                f"intent {intent.id} needs manual review"
            )
        return await self.observer.start_monitoring(
            intent.id, intent.address, intent.currency, intent.network
        )

    def stop(self, intent_id: str) -> bool:
        return self.observer.stop_monitoring(intent_id)

    def is_active(self, intent_id: str) -> bool:
        return self.observer.is_monitoring(intent_id)

    @property
    def active_count(self) -> int:
        return len(self.observer.active_intents)

    async def shutdown(self) -> None:
        await self.observer.stop_all()
