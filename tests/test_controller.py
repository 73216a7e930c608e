"""Tests for the intent lifecycle controller."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from conftest import FakeChainSource, stored_status, wait_until
from sw4p.chain.base import ChainTransaction
from sw4p.errors import (
    GatewayError,
    InvalidStatusError,
    NotApprovedError,
    NotFoundError,
    ValidationError,
)
from sw4p.gateway.dryrun import DryRunGateway
from sw4p.intents.models import (
    PLACEHOLDER_ADDRESS,
    DetectionMode,
    IntentStatus,
    TransactionType,
)
from sw4p.intents.repository import IntentRepository
from sw4p.lifecycle import controller as controller_module


async def transactions(db_scope, intent_id, tx_type=None):
    async with db_scope() as session:
        return await IntentRepository(session).get_transactions(intent_id, tx_type)


def confirmed_tx(txid: str = "tx-deposit", amount: str = "0.5") -> ChainTransaction:
    return ChainTransaction(txid=txid, confirmations=2, amount=Decimal(amount), address="bc1q")


class TestAddressIssuance:
    """Tests for deposit intent creation."""

    @pytest.mark.asyncio
    async def test_manual_mode_creates_pending_intent(self, controller, db_scope):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")

        assert intent.status == IntentStatus.PENDING.value
        assert intent.address != PLACEHOLDER_ADDRESS
        assert intent.detection_mode == DetectionMode.CHAIN.value
        assert not controller.observer.is_monitoring(intent.id)
        assert await stored_status(db_scope, intent.id) == IntentStatus.PENDING

    @pytest.mark.asyncio
    async def test_missing_fields_rejected(self, controller):
        with pytest.raises(ValidationError) as exc_info:
            await controller.request_deposit_address("", "BTC", "")

        assert exc_info.value.details["missing"] == ["userId", "network"]

    @pytest.mark.asyncio
    async def test_gateway_failure_falls_back_to_local_address(self, make_controller):
        gateway = DryRunGateway()
        gateway.get_deposit_address = AsyncMock(side_effect=GatewayError("down"))
        controller = make_controller(gateway=gateway)

        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")

        assert intent.address.startswith("bc1q")
        assert len(intent.address) <= 42
        assert intent.memo is None

    @pytest.mark.asyncio
    async def test_eth_address_family(self, make_controller):
        gateway = DryRunGateway()
        controller = make_controller(gateway=gateway)

        intent = await controller.request_deposit_address("user-1", "eth", "eth")

        assert intent.address.startswith("0x")
        assert intent.currency == "ETH"

    @pytest.mark.asyncio
    async def test_status_view(self, controller):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")

        view = await controller.get_deposit_status(intent.id)

        assert view["status"] == "PENDING"
        assert view["internalStatus"] == "PENDING"
        assert view["message"] == "Waiting for admin approval"
        assert view["intentId"] == intent.id

    @pytest.mark.asyncio
    async def test_unknown_intent(self, controller):
        with pytest.raises(NotFoundError):
            await controller.get_deposit_status("missing")


class TestAdminDecisions:
    """Tests for approval and rejection."""

    @pytest.mark.asyncio
    async def test_approve_starts_monitoring(self, controller, db_scope):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")

        approved = await controller.approve_intent(intent.id)

        assert approved.status == IntentStatus.APPROVED.value
        assert controller.observer.is_monitoring(intent.id)
        assert await stored_status(db_scope, intent.id) == IntentStatus.APPROVED

    @pytest.mark.asyncio
    async def test_approve_twice_fails(self, controller):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")
        await controller.approve_intent(intent.id)

        with pytest.raises(InvalidStatusError):
            await controller.approve_intent(intent.id)

        assert controller.observer.get_monitoring_status()["active_monitors"] == 1

    @pytest.mark.asyncio
    async def test_concurrent_approvals_start_one_monitor(self, controller, db_scope):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")

        results = await asyncio.gather(
            controller.approve_intent(intent.id),
            controller.approve_intent(intent.id),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], InvalidStatusError)
        assert controller.observer.get_monitoring_status()["active_monitors"] == 1
        assert await stored_status(db_scope, intent.id) == IntentStatus.APPROVED

    @pytest.mark.asyncio
    async def test_approve_unknown(self, controller):
        with pytest.raises(NotFoundError):
            await controller.approve_intent("missing")

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, controller, db_scope):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")

        with pytest.raises(ValidationError):
            await controller.reject_intent(intent.id, "  ")

        assert await stored_status(db_scope, intent.id) == IntentStatus.PENDING

    @pytest.mark.asyncio
    async def test_reject_pending(self, controller):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")

        rejected = await controller.reject_intent(intent.id, "Suspicious activity")

        assert rejected.status == IntentStatus.REJECTED.value
        assert rejected.rejection_reason == "Suspicious activity"
        view = await controller.get_deposit_status(intent.id)
        assert view["status"] == "REJECTED"
        assert view["message"] == "Deposit rejected: Suspicious activity"

    @pytest.mark.asyncio
    async def test_reject_approved_fails(self, controller, db_scope):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")
        await controller.approve_intent(intent.id)

        with pytest.raises(InvalidStatusError):
            await controller.reject_intent(intent.id, "too late")

        assert await stored_status(db_scope, intent.id) == IntentStatus.APPROVED


class TestExchangeOperations:
    """Tests for trade and withdrawal gating."""

    @pytest.mark.asyncio
    async def test_trade_requires_approval(self, controller):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")

        with pytest.raises(NotApprovedError) as exc_info:
            await controller.execute_trade(intent.id, "BTC", "USDT", "SELL", "0.1")

        assert exc_info.value.details == {"currentStatus": "PENDING"}

    @pytest.mark.asyncio
    async def test_trade_unknown_intent(self, controller):
        with pytest.raises(NotFoundError):
            await controller.execute_trade("missing", "BTC", "USDT", "SELL", "0.1")

    @pytest.mark.asyncio
    async def test_trade_on_approved_intent(self, controller, db_scope):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")
        await controller.approve_intent(intent.id)

        trade = await controller.execute_trade(intent.id, "BTC", "USDT", "sell", "0.1")

        assert trade.status == "completed"
        assert trade.amount_received > 0
        assert await stored_status(db_scope, intent.id) == IntentStatus.APPROVED
        swaps = await transactions(db_scope, intent.id, TransactionType.SWAP)
        assert len(swaps) == 1
        assert swaps[0].currency == "USDT"

    @pytest.mark.asyncio
    async def test_trade_validation(self, controller):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")

        with pytest.raises(ValidationError):
            await controller.execute_trade(intent.id, "BTC", "USDT", "HOLD", "0.1")
        with pytest.raises(ValidationError):
            await controller.execute_trade(intent.id, "BTC", "USDT", "SELL", "-1")

    @pytest.mark.asyncio
    async def test_withdrawal_requires_approval(self, controller):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")
        await controller.reject_intent(intent.id, "no")

        with pytest.raises(NotApprovedError) as exc_info:
            await controller.process_withdrawal(intent.id, "BTC", "BTC", "0.1", "bc1qdest")

        assert exc_info.value.details["currentStatus"] == "REJECTED"

    @pytest.mark.asyncio
    async def test_withdrawal_on_approved_intent(self, controller, db_scope):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")
        await controller.approve_intent(intent.id)

        withdrawal = await controller.process_withdrawal(
            intent.id, "BTC", "BTC", "0.1", "bc1qdest"
        )

        assert withdrawal.status == "pending"
        records = await transactions(db_scope, intent.id, TransactionType.WITHDRAWAL)
        assert len(records) == 1
        assert records[0].status == "PENDING"

    @pytest.mark.asyncio
    async def test_gateway_error_surfaces(self, controller):
        with pytest.raises(GatewayError):
            await controller.create_quote("BTC", "XYZ", "SELL", "1")


class TestChainDeposits:
    """Tests for the chain detection path."""

    @pytest.mark.asyncio
    async def test_confirmed_deposit_without_target(self, controller, db_scope):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")
        await controller.approve_intent(intent.id)

        handled = await controller.handle_confirmed_deposit(intent.id, confirmed_tx(), "BTC")

        assert handled
        assert await stored_status(db_scope, intent.id) == IntentStatus.CONFIRMED
        assert not controller.observer.is_monitoring(intent.id)
        deposits = await transactions(db_scope, intent.id, TransactionType.DEPOSIT)
        assert len(deposits) == 1
        assert deposits[0].amount == Decimal("0.5")

    @pytest.mark.asyncio
    async def test_duplicate_deposit_is_noop(self, controller, db_scope):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")
        await controller.approve_intent(intent.id)

        assert await controller.handle_confirmed_deposit(intent.id, confirmed_tx(), "BTC")
        assert not await controller.handle_confirmed_deposit(intent.id, confirmed_tx(), "BTC")

        assert len(await transactions(db_scope, intent.id)) == 1

    @pytest.mark.asyncio
    async def test_deposit_for_pending_intent_ignored(self, controller, db_scope):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")

        assert not await controller.handle_confirmed_deposit(intent.id, confirmed_tx(), "BTC")

        assert await stored_status(db_scope, intent.id) == IntentStatus.PENDING
        assert await transactions(db_scope, intent.id) == []

    @pytest.mark.asyncio
    async def test_conversion_success_completes(self, controller, db_scope):
        intent = await controller.request_deposit_address(
            "user-1", "BTC", "BTC", target_currency="USDT", target_network="TRX"
        )
        await controller.approve_intent(intent.id)

        await controller.handle_confirmed_deposit(intent.id, confirmed_tx(), "BTC")

        assert await stored_status(db_scope, intent.id) == IntentStatus.COMPLETED
        assert len(await transactions(db_scope, intent.id, TransactionType.DEPOSIT)) == 1
        swaps = await transactions(db_scope, intent.id, TransactionType.SWAP)
        assert len(swaps) == 1
        assert swaps[0].currency == "USDT"

    @pytest.mark.asyncio
    async def test_conversion_failure_marks_swap_failed(self, make_controller, db_scope):
        gateway = DryRunGateway()
        gateway.trade = AsyncMock(side_effect=GatewayError("exchange unavailable"))
        controller = make_controller(gateway=gateway)
        intent = await controller.request_deposit_address(
            "user-1", "BTC", "BTC", target_currency="USDT"
        )
        await controller.approve_intent(intent.id)

        await controller.handle_confirmed_deposit(intent.id, confirmed_tx(), "BTC")

        assert await stored_status(db_scope, intent.id) == IntentStatus.SWAP_FAILED
        assert len(await transactions(db_scope, intent.id, TransactionType.DEPOSIT)) == 1
        assert await transactions(db_scope, intent.id, TransactionType.SWAP) == []
        view = await controller.get_deposit_status(intent.id)
        assert view["status"] == "REJECTED"

    @pytest.mark.asyncio
    async def test_observer_feeds_controller(self, controller, db_scope, chain_source: FakeChainSource):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")
        await controller.approve_intent(intent.id)
        chain_source.add(intent.address, "tx-early", confirmations=1)

        await controller.observer.poll_once(intent.id, intent.address, "BTC", "BTC")
        assert await stored_status(db_scope, intent.id) == IntentStatus.APPROVED

        chain_source.transactions[intent.address][0].confirmations = 2
        await controller.observer.poll_once(intent.id, intent.address, "BTC", "BTC")

        assert await stored_status(db_scope, intent.id) == IntentStatus.CONFIRMED
        assert not controller.observer.is_monitoring(intent.id)

    @pytest.mark.asyncio
    async def test_reject_confirmed_deposit(self, controller, db_scope):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")
        await controller.approve_intent(intent.id)
        await controller.handle_confirmed_deposit(intent.id, confirmed_tx(), "BTC")

        await controller.reject_intent(intent.id, "Source of funds unclear")

        assert await stored_status(db_scope, intent.id) == IntentStatus.REJECTED

    @pytest.mark.asyncio
    async def test_reject_while_conversion_in_flight(self, make_controller, db_scope):
        gateway = DryRunGateway()
        release = asyncio.Event()
        real_trade = gateway.trade

        async def slow_trade(*args, **kwargs):
            await release.wait()
            return await real_trade(*args, **kwargs)

        gateway.trade = AsyncMock(side_effect=slow_trade)
        controller = make_controller(gateway=gateway)
        intent = await controller.request_deposit_address(
            "user-1", "BTC", "BTC", target_currency="USDT"
        )
        await controller.approve_intent(intent.id)

        deposit = asyncio.create_task(
            controller.handle_confirmed_deposit(intent.id, confirmed_tx(), "BTC")
        )
        assert await wait_until(lambda: gateway.trade.await_count == 1)

        await asyncio.wait_for(controller.reject_intent(intent.id, "Manual review"), timeout=1.0)
        release.set()
        assert await deposit

        assert await stored_status(db_scope, intent.id) == IntentStatus.REJECTED
        assert len(await transactions(db_scope, intent.id, TransactionType.DEPOSIT)) == 1
        assert await transactions(db_scope, intent.id, TransactionType.SWAP) == []


class TestSimulatedDeposits:
    """Tests for the automatic path."""

    @pytest.mark.asyncio
    async def test_auto_approve_runs_to_completion(self, make_controller, db_scope):
        controller = make_controller(auto_approve=True)

        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")

        assert intent.status == IntentStatus.APPROVED.value
        assert intent.detection_mode == DetectionMode.SIMULATED.value
        assert await wait_until(
            lambda: _is(db_scope, intent.id, IntentStatus.COMPLETED), timeout=3
        )

    @pytest.mark.asyncio
    async def test_processing_failure_marks_failed(self, make_controller, db_scope, monkeypatch):
        controller = make_controller(auto_approve=True, deposit_detector="chain")
        intent = await controller.request_deposit_address("user-1", "DOGE", "DOGE")

        def broken_delay(*args):
            raise RuntimeError("boom")

        monkeypatch.setattr(controller_module.random, "uniform", broken_delay)
        await controller.process_simulated_deposit(intent.id)

        assert await stored_status(db_scope, intent.id) == IntentStatus.FAILED

    @pytest.mark.asyncio
    async def test_late_timer_is_harmless(self, controller, db_scope):
        intent = await controller.request_deposit_address("user-1", "BTC", "BTC")
        await controller.reject_intent(intent.id, "no")

        await controller.process_simulated_deposit(intent.id)

        assert await stored_status(db_scope, intent.id) == IntentStatus.REJECTED


class TestRecovery:
    """Tests for startup recovery."""

    @pytest.mark.asyncio
    async def test_recover_restarts_and_fails_interrupted(self, controller, db_scope):
        async with db_scope() as session:
            repo = IntentRepository(session)
            waiting = await repo.create_intent("u1", "BTC", "BTC", status=IntentStatus.APPROVED)
            await repo.update_fields(waiting.id, address="bc1qwaiting")
            no_address = await repo.create_intent("u2", "BTC", "BTC", status=IntentStatus.APPROVED)
            interrupted = await repo.create_intent("u3", "BTC", "BTC", status=IntentStatus.APPROVED)
            await repo.update_status(interrupted.id, IntentStatus.PROCESSING)

        result = await controller.recover()

        assert result == {"restarted": 1, "failed": 1, "confirmed": 0}
        assert controller.observer.is_monitoring(waiting.id)
        assert not controller.observer.is_monitoring(no_address.id)
        assert await stored_status(db_scope, interrupted.id) == IntentStatus.FAILED

    @pytest.mark.asyncio
    async def test_stats(self, controller):
        first = await controller.request_deposit_address("user-1", "BTC", "BTC")
        await controller.request_deposit_address("user-2", "ETH", "ETH")
        await controller.approve_intent(first.id)

        stats = await controller.get_stats()

        assert stats["total"] == 2
        assert stats["byStatus"]["PENDING"] == 1
        assert stats["byStatus"]["APPROVED"] == 1
        assert controller.get_monitoring_status()["chain"]["active_monitors"] == 1


async def _is(db_scope, intent_id, status) -> bool:
    return await stored_status(db_scope, intent_id) == status
