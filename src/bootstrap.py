"""Process bootstrap: logging setup and dependency wiring.

Everything is constructed once here and passed down explicitly; there
are no module-level service singletons.

Example:
    config = load_config()
    configure_logging(config.logging)
    runtime = build_runtime(config, llm, chat, chain, redis_client)
    await runtime.start()
    ...
    await runtime.stop()
"""

import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone

from redis.asyncio import Redis

from src.config import AppConfig, LoggingSettings
from src.orchestrator.agent.client import OrchestrationAgent
from src.orchestrator.agent.llm import LLMClient
from src.orchestrator.agent.tools import ToolRegistry
from src.orchestrator.bridge.solver import BridgeAmountSolver
from src.orchestrator.flow_progress import FlowProgressor
from src.orchestrator.registration.waiter import CommitRevealWaiter
from src.services.agent_session_manager import ConversationSessionStore, KeyedLocks
from src.services.chain import ChainClient
from src.services.chat import ChatSurface
from src.services.conversation_handler import ConversationHandler
from src.services.flow_repository import FlowRepository
from src.services.metrics import MetricsRecorder
from src.services.state_store import RedisKeyValueBackend, SecureStateStore

logger = logging.getLogger(__name__)

TEXT_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(settings: LoggingSettings | None = None) -> None:
    """Configure root logging to stdout. Call once at process start."""
    settings = settings or LoggingSettings()
    handler = logging.StreamHandler(sys.stdout)
    if settings.format == "json":
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    logging.basicConfig(level=settings.level.upper(), handlers=[handler], force=True)
    logging.getLogger("src").setLevel(settings.level.upper())


@dataclass
class AgentRuntime:
    """Long-lived services for one process.

    Attributes:
        handler: Chat-event entry points.
        agent: The orchestration agent.
        waiter: Commit-reveal waiter; recovered on start, drained on stop.
        flows: Flow repository.
        sessions: Session store.
    """

    handler: ConversationHandler
    agent: OrchestrationAgent
    waiter: CommitRevealWaiter
    flows: FlowRepository
    sessions: ConversationSessionStore

    async def start(self) -> int:
        """Recover commit-reveal waits lost by a restart. Returns how many were rescheduled."""
        return await self.waiter.recover_pending_waits()

    async def stop(self) -> None:
        await self.waiter.shutdown()


def build_runtime(
    config: AppConfig,
    llm: LLMClient,
    chat: ChatSurface,
    chain: ChainClient,
    redis_client: Redis,
) -> AgentRuntime:
    """Wire every component from explicit collaborators.

    Args:
        config: Loaded application config.
        llm: LLM collaborator (e.g. AnthropicLLM).
        chat: Chat-surface collaborator.
        chain: Chain collaborator.
        redis_client: ``redis.asyncio`` client created with decode_responses=True.

    Returns:
        AgentRuntime ready to ``start()``.
    """
    backend = RedisKeyValueBackend(redis_client, key_prefix=config.state.key_prefix)
    store = SecureStateStore(
        backend,
        secret=config.state.integrity_secret,
        max_age_seconds=config.state.max_state_age_seconds,
    )
    flows = FlowRepository(store, ttl_seconds=config.state.flow_ttl_seconds)
    sessions = ConversationSessionStore(store, ttl_seconds=config.state.session_ttl_seconds)
    locks = KeyedLocks()
    metrics = MetricsRecorder(redis_client)

    waiter = CommitRevealWaiter(flows, sessions, chain, chat, locks, config.registration)
    progressor = FlowProgressor(flows, metrics, waiter)
    solver = BridgeAmountSolver(
        chain,
        source_chain_id=config.bridge.source_chain_id,
        dest_chain_id=config.bridge.dest_chain_id,
        fee_margin_percent=config.bridge.fee_margin_percent,
        source_gas_reserve_wei=config.bridge.source_gas_reserve_wei,
        min_bridge_amount_wei=config.bridge.min_bridge_amount_wei,
    )
    agent = OrchestrationAgent(
        llm=llm,
        sessions=sessions,
        flows=flows,
        chain=chain,
        chat=chat,
        solver=solver,
        locks=locks,
        tools=ToolRegistry(),
        waiter=waiter,
        progressor=progressor,
        metrics=metrics,
        config=config,
    )
    handler = ConversationHandler(agent, chat)
    logger.info(
        "Agent runtime built (model=%s, integrity=%s)",
        config.agent.model,
        "off" if store.insecure else "on",
    )
    return AgentRuntime(
        handler=handler, agent=agent, waiter=waiter, flows=flows, sessions=sessions
    )
