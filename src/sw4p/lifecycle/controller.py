"""Intent lifecycle controller.

Owns every decision about a deposit intent: issuing its address, approval
and rejection, starting and stopping the detector, ingesting confirmed
deposits, the automatic post-deposit conversion and crash recovery.

All status changes go through ``IntentRepository.update_status`` with the
expected prior status, so a late timer or a duplicate observation can never
move an intent twice. Failures that happen in the background never reach an
HTTP caller; they end in a terminal status and a log line.
"""

import asyncio
import logging
import random
from decimal import Decimal, InvalidOperation
from typing import Any, AsyncContextManager, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sw4p.chain.base import ChainTransaction
from sw4p.chain.observer import ChainObserver
from sw4p.config import Settings, get_settings
from sw4p.errors import (
    ApiError,
    GatewayError,
    InvalidStatusError,
    NotApprovedError,
    NotFoundError,
    ValidationError,
)
from sw4p.gateway.base import SIDES, ExchangeGateway, GatewayQuote, GatewayTrade, GatewayWithdrawal
from sw4p.gateway.dryrun import generate_placeholder_address
from sw4p.intents.database import get_db
from sw4p.intents.models import (
    DepositIntent,
    DepositTransaction,
    DetectionMode,
    IntentStatus,
    TransactionStatus,
    TransactionType,
)
from sw4p.intents.repository import IntentRepository
from sw4p.lifecycle.detectors import ChainDetector, DepositDetector, SimulatedDetector
from sw4p.lifecycle.status import build_status_view
from sw4p.utils.locks import intent_lock

logger = logging.getLogger(__name__)

T = TypeVar("T")

SessionScope = Callable[[], AsyncContextManager[AsyncSession]]

WITHDRAWAL_STATUSES = {
    "completed": TransactionStatus.COMPLETED,
    "success": TransactionStatus.COMPLETED,
    "failed": TransactionStatus.FAILED,
}


def _parse_amount(amount: Any) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError("Amount must be a number", details={"amount": str(amount)})
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be positive", details={"amount": str(amount)})
    return value


def _require(**fields: Any) -> None:
    missing = [name for name, value in fields.items() if value is None or value == ""]
    if missing:
        raise ValidationError(
            f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
            details={"missing": missing},
        )


class IntentLifecycleController:
    """Coordinates the store, the gateway and the deposit detectors."""

    def __init__(
        self,
        gateway: ExchangeGateway,
        observer: ChainObserver,
        settings: Optional[Settings] = None,
        db: Optional[SessionScope] = None,
    ):
        """Initialize the controller.

        Args:
            gateway: Exchange gateway for addresses, quotes, trades and withdrawals
            observer: Chain observer used by the chain detector
            settings: Settings (defaults to the cached application settings)
            db: Session scope factory (defaults to ``get_db``)
        """
        self.settings = settings or get_settings()
        self.gateway = gateway
        self.observer = observer
        self._db = db or get_db

        self.detectors: dict[DetectionMode, DepositDetector] = {
            DetectionMode.SIMULATED: SimulatedDetector(
                self.process_simulated_deposit,
                min_delay=self.settings.simulated_detection_min_delay,
                max_delay=self.settings.simulated_detection_max_delay,
            ),
            DetectionMode.CHAIN: ChainDetector(observer),
        }
        observer.set_deposit_callback(self.handle_confirmed_deposit)

    # ======================
    # Helpers
    # ======================

    def _detector_for(self, intent: DepositIntent) -> DepositDetector:
        return self.detectors[DetectionMode(intent.detection_mode)]

    async def _start_detector(self, intent: DepositIntent) -> bool:
        detector = self._detector_for(intent)
        started = await detector.start(intent)
        if started:
            logger.info(f"Started {detector.mode.value} detection for intent {intent.id}")
        return started

    def _stop_detectors(self, intent_id: str) -> None:
        for detector in self.detectors.values():
            detector.stop(intent_id)

    async def _call_gateway(self, call: Awaitable[T], operation: str) -> T:
        """Await a gateway call bounded by the configured timeout."""
        try:
            return await asyncio.wait_for(call, timeout=self.settings.gateway_timeout)
        except asyncio.TimeoutError:
            raise GatewayError(
                f"Gateway {operation} timed out after {self.settings.gateway_timeout}s"
            )

    async def _issue_address(
        self, intent: DepositIntent, identifier: Optional[str]
    ) -> tuple[str, Optional[str]]:
        """Get an address from the gateway, falling back to a local one."""
        try:
            issued = await self._call_gateway(
                self.gateway.get_deposit_address(
                    intent.currency, intent.network, identifier or intent.id
                ),
                "address issuance",
            )
            logger.info(f"Gateway issued address {issued.address} for intent {intent.id}")
            return issued.address, issued.memo
        except Exception as e:
            address = generate_placeholder_address(intent.currency)
            logger.warning(
                f"Address issuance failed for intent {intent.id} ({e}), "
                f"using fallback address {address}"
            )
            return address, None

    async def _mark_failed(
        self, intent_id: str, status: IntentStatus, expected: IntentStatus
    ) -> None:
        try:
            async with self._db() as session:
                await IntentRepository(session).update_status(
                    intent_id, status, expected=(expected,)
                )
            logger.warning(f"Intent {intent_id} -> {status.value}")
        except ApiError as e:
            logger.error(f"Could not mark intent {intent_id} {status.value}: {e.message}")

    # ======================
    # Address issuance and queries
    # ======================

    async def request_deposit_address(
        self,
        user_id: str,
        currency: str,
        network: str,
        identifier: Optional[str] = None,
        target_currency: Optional[str] = None,
        target_network: Optional[str] = None,
    ) -> DepositIntent:
        """Create an intent and issue its deposit address.

        In manual mode the intent waits in PENDING for an admin. With
        ``auto_approve`` it starts APPROVED and detection begins right away.
        """
        _require(userId=user_id, currency=currency, network=network)

        status = IntentStatus.APPROVED if self.settings.auto_approve else IntentStatus.PENDING
        mode = DetectionMode(self.settings.detector_mode)

        async with self._db() as session:
            intent = await IntentRepository(session).create_intent(
                user_id=user_id,
                currency=currency,
                network=network,
                status=status,
                target_currency=target_currency,
                target_network=target_network,
                detection_mode=mode,
            )
        logger.info(
            f"Created deposit intent {intent.id} for user {user_id}: "
            f"{intent.currency}/{intent.network} ({status.value})"
        )

        address, memo = await self._issue_address(intent, identifier)
        async with self._db() as session:
            intent = await IntentRepository(session).update_fields(
                intent.id, address=address, memo=memo
            )

        if IntentStatus(intent.status) == IntentStatus.APPROVED:
            await self._start_detector(intent)

        return intent

    async def get_intent(self, intent_id: str) -> DepositIntent:
        async with self._db() as session:
            return await IntentRepository(session).get_intent_or_raise(intent_id)

    async def get_deposit_status(self, intent_id: str) -> dict:
        """Public status view of an intent."""
        intent = await self.get_intent(intent_id)
        return build_status_view(intent)

    async def get_intent_detail(
        self, intent_id: str
    ) -> tuple[DepositIntent, list[DepositTransaction]]:
        """Intent with its transaction records."""
        async with self._db() as session:
            repo = IntentRepository(session)
            intent = await repo.get_intent_or_raise(intent_id)
            transactions = await repo.get_transactions(intent_id)
        return intent, transactions

    async def list_intents(
        self,
        status: Optional[IntentStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[DepositIntent]:
        async with self._db() as session:
            return await IntentRepository(session).list_intents(
                status=status, limit=limit, offset=offset
            )

    # ======================
    # Admin decisions
    # ======================

    async def approve_intent(self, intent_id: str) -> DepositIntent:
        """Approve a pending intent and start its deposit detector."""
        async with intent_lock(
            intent_id, timeout=self.settings.lock_timeout, operation="approve"
        ):
            async with self._db() as session:
                intent = await IntentRepository(session).update_status(
                    intent_id, IntentStatus.APPROVED, expected=(IntentStatus.PENDING,)
                )
            logger.info(f"Deposit intent {intent_id} approved")
            await self._start_detector(intent)
        return intent

    async def reject_intent(self, intent_id: str, reason: str) -> DepositIntent:
        """Reject a pending (or confirmed but unconverted) intent."""
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required")

        async with intent_lock(
            intent_id, timeout=self.settings.lock_timeout, operation="reject"
        ):
            async with self._db() as session:
                intent = await IntentRepository(session).update_status(
                    intent_id,
                    IntentStatus.REJECTED,
                    expected=(IntentStatus.PENDING, IntentStatus.CONFIRMED),
                    rejection_reason=reason.strip(),
                )
            self._stop_detectors(intent_id)
        logger.info(f"Deposit intent {intent_id} rejected: {reason}")
        return intent

    # ======================
    # Exchange operations
    # ======================

    def _validate_order(self, source: str, target: str, side: str, amount: Any) -> tuple[str, Decimal]:
        _require(source=source, target=target, side=side, amount=amount)
        side = side.upper()
        if side not in SIDES:
            raise ValidationError(
                f"Side must be one of {', '.join(SIDES)}", details={"side": side}
            )
        return side, _parse_amount(amount)

    async def _require_approved(self, intent_id: str) -> DepositIntent:
        intent = await self.get_intent(intent_id)
        status = IntentStatus(intent.status)
        if status != IntentStatus.APPROVED:
            raise NotApprovedError(
                "Deposit intent is not approved",
                details={"currentStatus": status.value},
            )
        return intent

    async def create_quote(
        self, source: str, target: str, side: str, amount: Any
    ) -> GatewayQuote:
        """Get a quote from the gateway."""
        side, value = self._validate_order(source, target, side, amount)
        return await self._call_gateway(
            self.gateway.create_quote(source.upper(), target.upper(), side, value), "quote"
        )

    async def get_rate(self, source: str, target: str) -> dict[str, Any]:
        """Price one unit of ``source`` in ``target``."""
        quote = await self.create_quote(source, target, "SELL", 1)
        logger.debug(f"Rate {quote.source}/{quote.target}: {quote.rate}")
        return {
            "source": quote.source,
            "target": quote.target,
            "rate": str(quote.rate),
            "quoteId": quote.id,
            "expiryDate": quote.expiry_date,
            "provider": self.gateway.name,
        }

    async def list_currencies(self) -> list[dict]:
        """Currencies the configured gateway supports."""
        return await self._call_gateway(self.gateway.list_currencies(), "currencies")

    async def execute_trade(
        self,
        intent_id: str,
        source: str,
        target: str,
        side: str,
        amount: Any,
        quote_id: Optional[str] = None,
    ) -> GatewayTrade:
        """Execute a trade for an approved intent."""
        _require(intentId=intent_id)
        side, value = self._validate_order(source, target, side, amount)

        async with intent_lock(
            intent_id, timeout=self.settings.lock_timeout, operation="trade"
        ):
            await self._require_approved(intent_id)
            trade = await self._call_gateway(
                self.gateway.trade(source.upper(), target.upper(), side, value, quote_id),
                "trade",
            )
            async with self._db() as session:
                await IntentRepository(session).record_transaction(
                    intent_id=intent_id,
                    tx_hash=trade.transaction_id or trade.id,
                    amount=trade.amount_received,
                    currency=trade.target,
                    tx_type=TransactionType.SWAP,
                    status=TransactionStatus.COMPLETED,
                )

        logger.info(
            f"Trade {trade.id} for intent {intent_id}: {value} {source} -> "
            f"{trade.amount_received} {target}"
        )
        return trade

    async def process_withdrawal(
        self,
        intent_id: str,
        currency: str,
        network: str,
        amount: Any,
        address: str,
        memo: Optional[str] = None,
    ) -> GatewayWithdrawal:
        """Withdraw funds for an approved intent."""
        _require(
            intentId=intent_id, currency=currency, network=network, amount=amount, address=address
        )
        value = _parse_amount(amount)

        async with intent_lock(
            intent_id, timeout=self.settings.lock_timeout, operation="withdraw"
        ):
            await self._require_approved(intent_id)
            withdrawal = await self._call_gateway(
                self.gateway.withdraw_crypto(
                    currency.upper(), network.upper(), value, address, memo
                ),
                "withdrawal",
            )
            async with self._db() as session:
                await IntentRepository(session).record_transaction(
                    intent_id=intent_id,
                    tx_hash=withdrawal.transaction_id,
                    amount=withdrawal.amount,
                    currency=withdrawal.currency,
                    tx_type=TransactionType.WITHDRAWAL,
                    status=WITHDRAWAL_STATUSES.get(
                        withdrawal.status.lower(), TransactionStatus.PENDING
                    ),
                )

        logger.info(
            f"Withdrawal {withdrawal.transaction_id} for intent {intent_id}: "
            f"{value} {currency} to {address}"
        )
        return withdrawal

    # ======================
    # Deposit handling
    # ======================

    async def process_simulated_deposit(self, intent_id: str) -> None:
        """Automatic path: APPROVED -> PROCESSING -> COMPLETED.

        One attempt only. Any failure once PROCESSING is entered ends in
        FAILED.
        """
        try:
            async with self._db() as session:
                await IntentRepository(session).update_status(
                    intent_id, IntentStatus.PROCESSING, expected=(IntentStatus.APPROVED,)
                )
        except (InvalidStatusError, NotFoundError) as e:
            logger.info(f"Skipping simulated deposit for {intent_id}: {e.message}")
            return

        logger.info(f"Processing simulated deposit for {intent_id}")
        try:
            await asyncio.sleep(
                random.uniform(
                    self.settings.simulated_processing_min_delay,
                    max(
                        self.settings.simulated_processing_min_delay,
                        self.settings.simulated_processing_max_delay,
                    ),
                )
            )
            async with self._db() as session:
                await IntentRepository(session).update_status(
                    intent_id, IntentStatus.COMPLETED, expected=(IntentStatus.PROCESSING,)
                )
            logger.info(f"Simulated deposit for {intent_id} completed")
        except asyncio.CancelledError:
            # Left in PROCESSING; recovery marks it FAILED on the next start
            raise
        except Exception as e:
            logger.error(f"Simulated processing failed for {intent_id}: {e}")
            await self._mark_failed(intent_id, IntentStatus.FAILED, IntentStatus.PROCESSING)

    async def handle_confirmed_deposit(
        self, intent_id: str, tx: ChainTransaction, currency: str
    ) -> bool:
        """Chain path: ingest a confirmed deposit exactly once.

        Returns:
            True if the deposit was recorded by this call
        """
        async with self._db() as session:
            existing = await IntentRepository(session).get_transaction_by_hash(tx.txid)
        if existing is not None:
            logger.info(f"Deposit {tx.txid} already recorded, skipping")
            return False

        async with intent_lock(
            intent_id, timeout=self.settings.lock_timeout, operation="deposit"
        ):
            try:
                async with self._db() as session:
                    repo = IntentRepository(session)
                    intent = await repo.update_status(
                        intent_id, IntentStatus.CONFIRMED, expected=(IntentStatus.APPROVED,)
                    )
                    await repo.record_transaction(
                        intent_id=intent_id,
                        tx_hash=tx.txid,
                        amount=tx.amount,
                        currency=currency,
                        tx_type=TransactionType.DEPOSIT,
                        status=TransactionStatus.CONFIRMED,
                        confirmations=tx.confirmations,
                    )
            except IntegrityError:
                logger.info(f"Deposit {tx.txid} already recorded, skipping")
                return False
            except (InvalidStatusError, NotFoundError) as e:
                logger.warning(f"Ignoring deposit {tx.txid} for {intent_id}: {e.message}")
                self._stop_detectors(intent_id)
                return False

        logger.info(
            f"Deposit confirmed for {intent_id}: {tx.amount} {currency} "
            f"({tx.txid}, {tx.confirmations} confirmations)"
        )
        self._stop_detectors(intent_id)

        # Runs unlocked; the final CONFIRMED -> COMPLETED write is conditional
        if intent.target_currency:
            await self._convert_deposit(intent, tx)
        return True

    async def _convert_deposit(self, intent: DepositIntent, tx: ChainTransaction) -> None:
        """Sell the confirmed deposit into the intent's target currency."""
        target = intent.target_currency
        try:
            quote = await self._call_gateway(
                self.gateway.create_quote(intent.currency, target, "SELL", tx.amount), "quote"
            )
            trade = await self._call_gateway(
                self.gateway.trade(intent.currency, target, "SELL", tx.amount, quote.id),
                "trade",
            )
        except Exception as e:
            logger.error(f"Automatic conversion failed for {intent.id}: {e}")
            await self._mark_failed(intent.id, IntentStatus.SWAP_FAILED, IntentStatus.CONFIRMED)
            return

        try:
            async with self._db() as session:
                repo = IntentRepository(session)
                await repo.record_transaction(
                    intent_id=intent.id,
                    tx_hash=trade.transaction_id or trade.id,
                    amount=trade.amount_received,
                    currency=target,
                    tx_type=TransactionType.SWAP,
                    status=TransactionStatus.COMPLETED,
                )
                await repo.update_status(
                    intent.id, IntentStatus.COMPLETED, expected=(IntentStatus.CONFIRMED,)
                )
        except (ApiError, IntegrityError) as e:
            logger.error(f"Could not record conversion {trade.id} for {intent.id}: {e}")
            return

        logger.info(
            f"Converted deposit for {intent.id}: {tx.amount} {intent.currency} -> "
            f"{trade.amount_received} {target}"
        )

    # ======================
    # Recovery and status
    # ======================

    async def recover(self) -> dict[str, int]:
        """Rebuild in-memory detection state from the store after a restart."""
        async with self._db() as session:
            repo = IntentRepository(session)
            approved = await repo.get_intents_by_status(IntentStatus.APPROVED)
            processing = await repo.get_intents_by_status(IntentStatus.PROCESSING)
            confirmed = await repo.get_intents_by_status(IntentStatus.CONFIRMED)

        for intent in processing:
            logger.warning(f"Intent {intent.id} was interrupted while processing")
            await self._mark_failed(intent.id, IntentStatus.FAILED, IntentStatus.PROCESSING)

        for intent in confirmed:
            logger.warning(f"Intent {intent.id} is CONFIRMED and needs admin review")

        restarted = 0
        for intent in approved:
            if not intent.has_address:
                logger.warning(f"Intent {intent.id} is approved but has no address, skipping")
                continue
            if await self._start_detector(intent):
                restarted += 1

        logger.info(
            f"Recovery complete: {restarted} detector(s) restarted, "
            f"{len(processing)} interrupted intent(s) failed"
        )
        return {"restarted": restarted, "failed": len(processing), "confirmed": len(confirmed)}

    async def get_stats(self) -> dict:
        async with self._db() as session:
            counts = await IntentRepository(session).count_by_status()
        return {
            "total": sum(counts.values()),
            "byStatus": {status.value: count for status, count in counts.items()},
        }

    def get_monitoring_status(self) -> dict:
        return {
            "autoApprove": self.settings.auto_approve,
            "detector": self.settings.detector_mode,
            "chain": self.observer.get_monitoring_status(),
            "simulated": {
                "active_timers": self.detectors[DetectionMode.SIMULATED].active_count
            },
        }

    async def shutdown(self) -> None:
        """Stop every detector."""
        for detector in self.detectors.values():
            await detector.shutdown()
        logger.info("Lifecycle controller stopped")
