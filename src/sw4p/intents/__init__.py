"""Deposit intent store."""

from sw4p.intents.models import (
    DepositIntent,
    DepositTransaction,
    DetectionMode,
    IntentStatus,
    TransactionStatus,
    TransactionType,
)
from sw4p.intents.repository import IntentRepository

__all__ = [
    "DepositIntent",
    "DepositTransaction",
    "DetectionMode",
    "IntentRepository",
    "IntentStatus",
    "TransactionStatus",
    "TransactionType",
]
