"""Utility modules."""

from sw4p.utils.locks import (
    LockTimeoutError,
    active_lock_count,
    clear_intent_locks,
    get_intent_lock,
    intent_lock,
)

__all__ = [
    "LockTimeoutError",
    "active_lock_count",
    "clear_intent_locks",
    "get_intent_lock",
    "intent_lock",
]
