"""Concurrency control for deposit intent operations.

Provides per-intent locking so approve, reject, trade and withdraw on the
same intent run one at a time. The conditional status update in the
repository remains the authority; the lock only keeps the status re-check
and the gateway call together.

Registry entries live only while some coroutine holds or waits for the
lock, so the registry does not grow with the number of intents ever seen.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from sw4p.errors import ConflictError

logger = logging.getLogger(__name__)

# Global lock registry: intent_id -> asyncio.Lock
_intent_locks: dict[str, asyncio.Lock] = {}
# Holders plus waiters per intent_id
_lock_users: dict[str, int] = {}


class LockTimeoutError(ConflictError):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


def get_intent_lock(intent_id: str) -> asyncio.Lock:
    """Get or create the lock for an intent."""
    lock = _intent_locks.get(intent_id)
    if lock is None:
        lock = _intent_locks[intent_id] = asyncio.Lock()
    return lock


def _checkout(intent_id: str) -> asyncio.Lock:
    _lock_users[intent_id] = _lock_users.get(intent_id, 0) + 1
    return get_intent_lock(intent_id)


def _checkin(intent_id: str) -> None:
    remaining = _lock_users.get(intent_id, 1) - 1
    if remaining > 0:
        _lock_users[intent_id] = remaining
        return
    _lock_users.pop(intent_id, None)
    _intent_locks.pop(intent_id, None)


@asynccontextmanager
async def intent_lock(
    intent_id: str,
    timeout: Optional[float] = 30.0,
    operation: str = "intent_operation",
):
    """Hold the intent's lock for the duration of the block.

    Args:
        intent_id: Deposit intent ID
        timeout: Maximum time to wait for the lock (None = wait forever)
        operation: Description for logging

    Raises:
        LockTimeoutError: Lock still held by another operation after ``timeout``

    Example:
        async with intent_lock(intent_id, operation="trade"):
            intent = await repo.get_intent_or_raise(intent_id)
            ...
    """
    lock = _checkout(intent_id)

    try:
        if timeout:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        else:
            await lock.acquire()
    except asyncio.TimeoutError:
        _checkin(intent_id)
        logger.warning(f"Lock timeout for intent {intent_id} after {timeout}s: {operation}")
        raise LockTimeoutError(
            f"Intent {intent_id} is busy with another operation, retry shortly",
            details={"intentId": intent_id, "operation": operation},
        )
    except BaseException:
        _checkin(intent_id)
        raise

    logger.debug(f"Lock acquired for intent {intent_id}: {operation}")
    try:
        yield
    finally:
        lock.release()
        _checkin(intent_id)
        logger.debug(f"Lock released for intent {intent_id}: {operation}")


def active_lock_count() -> int:
    """Number of intents with a held or awaited lock."""
    return len(_intent_locks)


def clear_intent_locks() -> None:
    """Clear all intent locks (useful for testing)."""
    _intent_locks.clear()
    _lock_users.clear()
