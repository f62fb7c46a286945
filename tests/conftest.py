"""Root-level pytest fixtures for all tests.

Provides the in-memory collaborators every layer is tested against:
- Key-value backend and secure state store
- Flow and session repositories
- Scripted chain, chat and LLM doubles
- A fully wired OrchestrationAgent
"""

import asyncio

import pytest
import pytest_asyncio

from src.config import AppConfig, StateSettings
from src.orchestrator.agent.client import OrchestrationAgent
from src.orchestrator.agent.tools.core import ToolContext
from src.orchestrator.bridge.solver import BridgeAmountSolver
from src.orchestrator.models.session import ConversationIdentity
from src.orchestrator.registration.waiter import CommitRevealWaiter
from src.services.agent_session_manager import ConversationSessionStore, KeyedLocks
from src.services.flow_repository import FlowRepository
from src.services.state_store import SecureStateStore
from tests.helpers import (
    WALLET_A,
    FakeChain,
    FakeLLM,
    InMemoryKeyValueStore,
    RecordingChat,
)
from tests.helpers.fake_chain import ONE_ETH

TEST_SECRET = "test-integrity-secret-0123456789abcdef"


# ============================================================================
# State
# ============================================================================


@pytest.fixture
def identity() -> ConversationIdentity:
    return ConversationIdentity(user_id="u1", conversation_id="c1", channel_id="ch1")


@pytest.fixture
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def store(kv) -> SecureStateStore:
    return SecureStateStore(kv, secret=TEST_SECRET)


@pytest.fixture
def flows(store) -> FlowRepository:
    return FlowRepository(store)


@pytest.fixture
def sessions(store) -> ConversationSessionStore:
    return ConversationSessionStore(store)


@pytest.fixture
def locks() -> KeyedLocks:
    return KeyedLocks()


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(state=StateSettings(integrity_secret=TEST_SECRET))


# ============================================================================
# Collaborators
# ============================================================================


@pytest.fixture
def chain() -> FakeChain:
    """One linked wallet holding 1 ETH on Ethereum and on Base."""
    fake = FakeChain()
    fake.link("u1", WALLET_A)
    fake.fund(WALLET_A, ONE_ETH, chain_id=1)
    fake.fund(WALLET_A, ONE_ETH, chain_id=8453)
    return fake


@pytest.fixture
def chat() -> RecordingChat:
    return RecordingChat()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def solver(chain, config) -> BridgeAmountSolver:
    return BridgeAmountSolver(
        chain,
        source_chain_id=config.bridge.source_chain_id,
        dest_chain_id=config.bridge.dest_chain_id,
        fee_margin_percent=config.bridge.fee_margin_percent,
        source_gas_reserve_wei=config.bridge.source_gas_reserve_wei,
        min_bridge_amount_wei=config.bridge.min_bridge_amount_wei,
    )


@pytest.fixture
def tool_ctx(identity, chain, chat, flows, solver, config) -> ToolContext:
    return ToolContext(
        identity=identity,
        chain=chain,
        chat=chat,
        flows=flows,
        solver=solver,
        config=config,
    )


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested from the waiter's parked sleep."""
    return []


@pytest_asyncio.fixture
async def waiter(flows, sessions, chain, chat, locks, config, sleeps):
    """Waiter whose timers never fire on their own; tests drive on_wait_elapsed."""

    async def parked_sleep(delay: float) -> None:
        sleeps.append(delay)
        await asyncio.Event().wait()

    w = CommitRevealWaiter(
        flows, sessions, chain, chat, locks, config.registration, sleep=parked_sleep
    )
    yield w
    await w.shutdown()


@pytest.fixture
def agent(llm, sessions, flows, chain, chat, solver, locks, waiter, config) -> OrchestrationAgent:
    return OrchestrationAgent(
        llm=llm,
        sessions=sessions,
        flows=flows,
        chain=chain,
        chat=chat,
        solver=solver,
        locks=locks,
        waiter=waiter,
        config=config,
    )
