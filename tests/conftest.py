"""Pytest configuration and fixtures."""

import asyncio
import os
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"
os.environ.pop("ADMIN_TOKEN", None)
os.environ.pop("AUTO_APPROVE", None)

from sw4p.chain.base import ChainSource, ChainTransaction
from sw4p.chain.observer import ChainObserver
from sw4p.config import Settings
from sw4p.gateway.dryrun import DryRunGateway
from sw4p.intents.database import session_scope
from sw4p.intents.models import Base, IntentStatus
from sw4p.intents.repository import IntentRepository
from sw4p.lifecycle.controller import IntentLifecycleController
from sw4p.utils.locks import clear_intent_locks


def make_settings(**overrides) -> Settings:
    """Settings with fast timers and no .env file."""
    values = dict(
        environment="test",
        debug=True,
        auto_approve=False,
        deposit_detector="",
        monitor_interval=60.0,
        min_confirmations=2,
        gateway_timeout=2.0,
        simulated_detection_min_delay=0.01,
        simulated_detection_max_delay=0.02,
        simulated_processing_min_delay=0.01,
        simulated_processing_max_delay=0.02,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeChainSource(ChainSource):
    """Chain source serving canned transactions per address."""

    def __init__(self, currency: str = "BTC", network: str = "BTC"):
        super().__init__(currency, network)
        self.transactions: dict[str, list[ChainTransaction]] = {}
        self.errors: list[Exception] = []
        self.calls = 0

    def add(self, address: str, txid: str, confirmations: int, amount: str = "0.5") -> ChainTransaction:
        tx = ChainTransaction(
            txid=txid, confirmations=confirmations, amount=Decimal(amount), address=address
        )
        self.transactions.setdefault(address, []).append(tx)
        return tx

    async def list_transactions(self, address: str) -> list[ChainTransaction]:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return list(self.transactions.get(address, []))


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll an async or sync predicate until it is truthy."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        result = predicate()
        if asyncio.iscoroutine(result):
            result = await result
        if result:
            return True
        await asyncio.sleep(interval)
    return False


@pytest.fixture(autouse=True)
def _reset_locks():
    clear_intent_locks()
    yield
    clear_intent_locks()


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create a file-backed SQLite engine for one test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
def db_scope(session_factory):
    """``get_db``-style session scope bound to the test database."""
    return session_scope(session_factory)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def intent_repo(db_session: AsyncSession) -> IntentRepository:
    """Create intent repository for testing."""
    return IntentRepository(db_session)


@pytest.fixture
def chain_source() -> FakeChainSource:
    return FakeChainSource()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest_asyncio.fixture
async def make_controller(db_scope, chain_source):
    """Factory building controllers on the test database."""
    created: list[IntentLifecycleController] = []

    def factory(gateway=None, settings: Optional[Settings] = None, **overrides):
        settings = settings or make_settings(**overrides)
        observer = ChainObserver(
            lambda currency, network: chain_source
            if (currency.upper(), network.upper()) == ("BTC", "BTC")
            else None,
            interval=settings.monitor_interval,
            min_confirmations=settings.min_confirmations,
        )
        controller = IntentLifecycleController(
            gateway or DryRunGateway(), observer, settings=settings, db=db_scope
        )
        created.append(controller)
        return controller

    yield factory

    for controller in created:
        await controller.shutdown()


@pytest_asyncio.fixture
async def controller(make_controller) -> IntentLifecycleController:
    """Manual-approval controller with chain detection."""
    return make_controller()


async def stored_status(db_scope, intent_id: str) -> IntentStatus:
    async with db_scope() as session:
        intent = await IntentRepository(session).get_intent_or_raise(intent_id)
    return IntentStatus(intent.status)
