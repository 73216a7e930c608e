"""Repository for deposit intent operations.

The repository is the only component that mutates ``DepositIntent.status``.
Status changes are issued as a single conditional UPDATE guarded on the
expected prior status, so two concurrent callers can never both move an
intent out of the same state.
"""

import logging
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sw4p.errors import InvalidStatusError, NotFoundError
from sw4p.intents.models import (
    PLACEHOLDER_ADDRESS,
    DepositIntent,
    DepositTransaction,
    DetectionMode,
    IntentStatus,
    TransactionStatus,
    TransactionType,
    can_transition,
    sources_for,
    utcnow,
)

logger = logging.getLogger(__name__)

# Columns that may be changed outside of a status transition
MUTABLE_FIELDS = frozenset({"address", "memo", "rejection_reason", "detection_mode"})


class IntentRepository:
    """Repository for deposit intents and their transaction records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Intent operations
    async def create_intent(
        self,
        user_id: str,
        currency: str,
        network: str,
        status: IntentStatus = IntentStatus.PENDING,
        target_currency: Optional[str] = None,
        target_network: Optional[str] = None,
        detection_mode: DetectionMode = DetectionMode.CHAIN,
    ) -> DepositIntent:
        """Create a new deposit intent with a placeholder address."""
        status = IntentStatus(status)
        if status not in (IntentStatus.PENDING, IntentStatus.APPROVED):
            raise InvalidStatusError(
                f"Intents cannot be created in status {status.value}",
                details={"status": status.value},
            )

        intent = DepositIntent(
            user_id=user_id,
            currency=currency.upper(),
            network=network.upper(),
            target_currency=target_currency.upper() if target_currency else None,
            target_network=target_network.upper() if target_network else None,
            address=PLACEHOLDER_ADDRESS,
            status=status.value,
            detection_mode=DetectionMode(detection_mode).value,
        )
        self.session.add(intent)
        await self.session.flush()
        return intent

    async def get_intent(self, intent_id: str) -> Optional[DepositIntent]:
        """Get intent by ID, always reading the stored row."""
        stmt = (
            select(DepositIntent)
            .where(DepositIntent.id == intent_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_intent_or_raise(self, intent_id: str) -> DepositIntent:
        """Get intent by ID or raise NotFoundError."""
        intent = await self.get_intent(intent_id)
        if intent is None:
            raise NotFoundError("Deposit intent not found", details={"intentId": intent_id})
        return intent

    async def update_status(
        self,
        intent_id: str,
        new_status: IntentStatus,
        expected: Optional[tuple[IntentStatus, ...]] = None,
        **fields: Any,
    ) -> DepositIntent:
        """Atomically move an intent to ``new_status``.

        Args:
            intent_id: Intent to update
            new_status: Target status
            expected: Statuses the intent must currently be in. Defaults to
                every status with an edge to ``new_status``.
            **fields: Extra columns to set in the same statement

        Returns:
            The updated intent

        Raises:
            NotFoundError: Unknown intent
            InvalidStatusError: Current status does not allow the transition
        """
        new_status = IntentStatus(new_status)
        allowed = sources_for(new_status)
        if expected is None:
            expected = allowed
        else:
            expected = tuple(IntentStatus(s) for s in expected)
            illegal = [s.value for s in expected if not can_transition(s, new_status)]
            if illegal:
                raise InvalidStatusError(
                    f"Transition to {new_status.value} is not allowed from {', '.join(illegal)}",
                    details={"from": illegal, "to": new_status.value},
                )

        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        stmt = (
            update(DepositIntent)
            .where(
                DepositIntent.id == intent_id,
                DepositIntent.status.in_([s.value for s in expected]),
            )
            .values(status=new_status.value, updated_at=utcnow(), **fields)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)

        if result.rowcount == 0:
            intent = await self.get_intent(intent_id)
            if intent is None:
                raise NotFoundError(
                    "Deposit intent not found", details={"intentId": intent_id}
                )
            raise InvalidStatusError(
                f"Cannot move deposit from {intent.status} to {new_status.value}",
                details={"currentStatus": str(intent.status), "requestedStatus": new_status.value},
            )

        intent = await self.get_intent_or_raise(intent_id)
        logger.debug(f"Intent {intent_id} -> {new_status.value}")
        return intent

    async def update_fields(self, intent_id: str, **fields: Any) -> DepositIntent:
        """Update non-status fields (address, memo, ...) of an intent."""
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        stmt = (
            update(DepositIntent)
            .where(DepositIntent.id == intent_id)
            .values(updated_at=utcnow(), **fields)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError("Deposit intent not found", details={"intentId": intent_id})
        return await self.get_intent_or_raise(intent_id)

    async def list_intents(
        self,
        status: Optional[IntentStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[DepositIntent]:
        """List intents, newest first."""
        stmt = select(DepositIntent).order_by(DepositIntent.created_at.desc())
        if status is not None:
            stmt = stmt.where(DepositIntent.status == IntentStatus(status).value)
        stmt = stmt.limit(limit).offset(offset)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_intents_by_status(self, *statuses: IntentStatus) -> list[DepositIntent]:
        """Get all intents currently in any of ``statuses``, oldest first."""
        stmt = (
            select(DepositIntent)
            .where(DepositIntent.status.in_([IntentStatus(s).value for s in statuses]))
            .order_by(DepositIntent.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_by_status(self) -> dict[IntentStatus, int]:
        """Count intents per status (every status present, zero if unused)."""
        result = await self.session.execute(
            select(DepositIntent.status, func.count(DepositIntent.id)).group_by(
                DepositIntent.status
            )
        )
        counts = {status: 0 for status in IntentStatus}
        for status, count in result.all():
            counts[IntentStatus(status)] = count
        return counts

    # Transaction operations
    async def record_transaction(
        self,
        intent_id: str,
        tx_hash: str,
        amount: Decimal,
        currency: str,
        tx_type: TransactionType,
        status: TransactionStatus,
        confirmations: int = 0,
    ) -> DepositTransaction:
        """Append a transaction record.

        Raises ``sqlalchemy.exc.IntegrityError`` on flush when ``tx_hash``
        was already recorded.
        """
        tx = DepositTransaction(
            intent_id=intent_id,
            tx_hash=tx_hash,
            amount=Decimal(str(amount)),
            currency=currency.upper(),
            type=TransactionType(tx_type).value,
            status=TransactionStatus(status).value,
            confirmations=confirmations,
        )
        self.session.add(tx)
        await self.session.flush()
        return tx

    async def get_transaction_by_hash(self, tx_hash: str) -> Optional[DepositTransaction]:
        """Get transaction by hash (idempotent check)."""
        stmt = select(DepositTransaction).where(DepositTransaction.tx_hash == tx_hash)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_transactions(
        self, intent_id: str, tx_type: Optional[TransactionType] = None
    ) -> list[DepositTransaction]:
        """Get transactions recorded for an intent, oldest first."""
        stmt = select(DepositTransaction).where(DepositTransaction.intent_id == intent_id)
        if tx_type is not None:
            stmt = stmt.where(DepositTransaction.type == TransactionType(tx_type).value)
        stmt = stmt.order_by(DepositTransaction.created_at.asc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
