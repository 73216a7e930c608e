"""SQLAlchemy models for deposit intents and their transactions."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Address value stored until the gateway (or the fallback generator) supplies one
PLACEHOLDER_ADDRESS = "PENDING_ADDRESS_GENERATION"


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class IntentStatus(str, Enum):
    """Status of a deposit intent."""

    PENDING = "PENDING"          # Waiting for admin approval
    APPROVED = "APPROVED"        # Approved, waiting for the deposit
    PROCESSING = "PROCESSING"    # Deposit detected (automatic path), swap running
    CONFIRMED = "CONFIRMED"      # Deposit confirmed on-chain
    COMPLETED = "COMPLETED"      # Swap finished
    REJECTED = "REJECTED"        # Rejected by an admin
    FAILED = "FAILED"            # Processing failed
    SWAP_FAILED = "SWAP_FAILED"  # Automatic conversion after deposit failed

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition is possible."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        IntentStatus.COMPLETED,
        IntentStatus.REJECTED,
        IntentStatus.FAILED,
        IntentStatus.SWAP_FAILED,
    }
)

ALLOWED_TRANSITIONS: dict[IntentStatus, frozenset[IntentStatus]] = {
    IntentStatus.PENDING: frozenset({IntentStatus.APPROVED, IntentStatus.REJECTED}),
    IntentStatus.APPROVED: frozenset({IntentStatus.PROCESSING, IntentStatus.CONFIRMED}),
    IntentStatus.PROCESSING: frozenset({IntentStatus.COMPLETED, IntentStatus.FAILED}),
    IntentStatus.CONFIRMED: frozenset(
        {
            IntentStatus.COMPLETED,
            IntentStatus.REJECTED,
            IntentStatus.FAILED,
            IntentStatus.SWAP_FAILED,
        }
    ),
    IntentStatus.COMPLETED: frozenset(),
    IntentStatus.REJECTED: frozenset(),
    IntentStatus.FAILED: frozenset(),
    IntentStatus.SWAP_FAILED: frozenset(),
}


def can_transition(current: IntentStatus, new: IntentStatus) -> bool:
    """Check whether ``current -> new`` is an edge of the lifecycle graph."""
    return new in ALLOWED_TRANSITIONS[IntentStatus(current)]


def sources_for(new: IntentStatus) -> tuple[IntentStatus, ...]:
    """Get every status from which ``new`` can be reached."""
    return tuple(s for s, targets in ALLOWED_TRANSITIONS.items() if new in targets)


class DetectionMode(str, Enum):
    """How deposits for an intent are detected."""

    SIMULATED = "simulated"
    CHAIN = "chain"


class TransactionType(str, Enum):
    """Kind of recorded transaction."""

    DEPOSIT = "DEPOSIT"
    SWAP = "SWAP"
    WITHDRAWAL = "WITHDRAWAL"


class TransactionStatus(str, Enum):
    """Status of a recorded transaction."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DepositIntent(Base):
    """A user's declared intention to deposit a currency."""

    __tablename__ = "deposit_intents"
    __table_args__ = (Index("ix_deposit_intents_status_created", "status", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    currency: Mapped[str] = mapped_column(String(20), nullable=False)
    network: Mapped[str] = mapped_column(String(20), nullable=False)
    target_currency: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    target_network: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    address: Mapped[str] = mapped_column(
        String(255), nullable=False, default=PLACEHOLDER_ADDRESS
    )
    memo: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[IntentStatus] = mapped_column(
        String(20), default=IntentStatus.PENDING, nullable=False
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    detection_mode: Mapped[str] = mapped_column(
        String(20), default=DetectionMode.CHAIN.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    @property
    def has_address(self) -> bool:
        """Check if a real deposit address was issued."""
        return bool(self.address) and self.address != PLACEHOLDER_ADDRESS


class DepositTransaction(Base):
    """On-chain observation or exchange operation tied to an intent.

    ``tx_hash`` is unique system-wide so a chain observation can only be
    ingested once, even with concurrent pollers.
    """

    __tablename__ = "deposit_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    intent_id: Mapped[str] = mapped_column(
        ForeignKey("deposit_intents.id"), nullable=False, index=True
    )
    tx_hash: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(36, 18), nullable=False)
    currency: Mapped[str] = mapped_column(String(20), nullable=False)
    type: Mapped[TransactionType] = mapped_column(String(20), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        String(20), default=TransactionStatus.PENDING, nullable=False
    )
    confirmations: Mapped[int] = mapped_column(default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
