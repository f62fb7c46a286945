"""Commit-reveal waiter.

After the commit transaction is signed, the register transaction may only
be sent once the commitment is at least ``min_commitment_age_seconds`` old.
The waiter sleeps until then (plus a safety margin), re-estimates the
register gas now that the commitment exists on chain, moves the flow to
step2_pending and asks the user to confirm the final cost.

Timers are in-process asyncio tasks keyed by conversation. They are not
durable: ``recover_pending_waits`` rebuilds them after a restart from the
``commit_timestamp`` stored on each flow in step1_complete.

Example:
    waiter = CommitRevealWaiter(flows, sessions, chain, chat, locks, config.registration)
    waiter.schedule(identity, commit_timestamp_ms)
    ...
    await waiter.shutdown()
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from src.config import RegistrationSettings
from src.orchestrator.agent.tools.core import generate_safe_id
from src.orchestrator.models.flow import (
    FlowStatus,
    FlowType,
    RegistrationCosts,
    now_ms,
)
from src.orchestrator.models.session import (
    ConversationIdentity,
    ExpectedAction,
    PendingToolCall,
    SessionStatus,
)
from src.services.agent_session_manager import ConversationSessionStore, KeyedLocks
from src.services.chain import ChainClient, ChainError, RegistrationParams
from src.services.chat import ChatSurface, FormButton, FormRequest
from src.services.flow_repository import FlowRepository
from src.utils.units import format_price

logger = logging.getLogger(__name__)

PROTOCOL_MIN_COMMITMENT_AGE_SECONDS = 60
CONFIRM_ACTION = "register_confirmation"


class CommitRevealWaiter:
    """Single-shot continuation per conversation, fired when the commitment matures.

    Attributes:
        flows: Flow repository.
        sessions: Session store; the continuation marks the session as
            awaiting the final-cost confirmation.
        chain: Chain collaborator for the post-wait gas estimate.
        chat: Chat surface for the cost message and confirm form.
        locks: Per-conversation locks shared with the agent loop.
        settings: Registration settings (wait, margin).
    """

    def __init__(
        self,
        flows: FlowRepository,
        sessions: ConversationSessionStore,
        chain: ChainClient,
        chat: ChatSurface,
        locks: KeyedLocks,
        settings: RegistrationSettings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.flows = flows
        self.sessions = sessions
        self.chain = chain
        self.chat = chat
        self.locks = locks
        self.settings = settings or RegistrationSettings()
        self._sleep = sleep
        self._clock = clock
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def wait_seconds(self) -> int:
        """Full wait measured from the commit: protocol minimum plus margin."""
        minimum = max(PROTOCOL_MIN_COMMITMENT_AGE_SECONDS, self.settings.min_commitment_age_seconds)
        return minimum + self.settings.wait_safety_margin_seconds

    def delay_for(self, commit_timestamp_ms: int) -> float:
        """Seconds still to wait for a commit made at ``commit_timestamp_ms``."""
        elapsed = (self._clock() - commit_timestamp_ms) / 1000
        return max(0.0, self.wait_seconds - elapsed)

    def is_scheduled(self, identity: ConversationIdentity) -> bool:
        task = self._tasks.get(identity.key)
        return task is not None and not task.done()

    def schedule(self, identity: ConversationIdentity, commit_timestamp_ms: int) -> asyncio.Task:
        """Start (or restart) the timer for a conversation."""
        self.cancel(identity)
        delay = self.delay_for(commit_timestamp_ms)
        task = asyncio.create_task(self._run(identity, delay))
        self._tasks[identity.key] = task
        task.add_done_callback(lambda t, key=identity.key: self._forget(key, t))
        logger.info("Commit-reveal wait scheduled for %s in %.1fs", identity.key, delay)
        return task

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    def cancel(self, identity: ConversationIdentity) -> bool:
        task = self._tasks.pop(identity.key, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("Commit-reveal wait cancelled for %s", identity.key)
        return True

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def recover_pending_waits(self) -> int:
        """Reschedule every registration sitting in step1_complete.

        Returns:
            Number of waits scheduled.
        """
        flows = await self.flows.scan_flows(
            flow_type=FlowType.REGISTRATION, status=FlowStatus.STEP1_COMPLETE
        )
        scheduled = 0
        for flow in flows:
            if flow.data.commit_timestamp is None:
                logger.warning(
                    "Registration %s:%s has no commit timestamp; not rescheduling",
                    flow.user_id, flow.conversation_id,
                )
                continue
            identity = ConversationIdentity(
                user_id=flow.user_id,
                conversation_id=flow.conversation_id,
                channel_id=flow.channel_id,
            )
            self.schedule(identity, flow.data.commit_timestamp)
            scheduled += 1
        if scheduled:
            logger.info("Recovered %d pending commit-reveal wait(s)", scheduled)
        return scheduled

    async def _run(self, identity: ConversationIdentity, delay: float) -> None:
        if delay > 0:
            await self._sleep(delay)
        try:
            await self.on_wait_elapsed(identity)
        except Exception:
            logger.exception("Commit-reveal continuation failed for %s", identity.key)

    async def on_wait_elapsed(self, identity: ConversationIdentity) -> bool:
        """Re-estimate, advance the flow and prompt for the final confirmation.

        Does nothing when the flow is gone, is not a registration, or has
        moved past step1_complete.

        Returns:
            True if the flow was advanced to step2_pending.
        """
        async with self.locks.hold(identity.key):
            flow = await self.flows.get_active_flow(identity.user_id, identity.conversation_id)
            if (
                flow is None
                or flow.flow_type != FlowType.REGISTRATION
                or flow.status != FlowStatus.STEP1_COMPLETE
            ):
                logger.info("Commit-reveal wait for %s elapsed with nothing to do", identity.key)
                return False

            data = flow.data
            commitment = data.commitment
            if commitment is None:
                logger.error("Registration %s has no commitment", identity.key)
                return False

            params = RegistrationParams(
                label=commitment.name,
                owner=commitment.owner,
                duration_sec=commitment.duration_sec,
                secret=commitment.secret,
            )
            try:
                estimate = await self.chain.estimate_register_gas(
                    params, commitment.domain_price_wei
                )
            except ChainError as e:
                logger.error("Register gas re-estimate failed for %s: %s", identity.key, e)
                await self.chat.send_message(
                    identity.channel_id,
                    f"The waiting period for {data.name} is over, but I couldn't estimate "
                    "the final gas cost. Say 'continue' to try again.",
                    conversation_id=identity.conversation_id,
                )
                return False

            costs = RegistrationCosts(
                commit_gas_wei=data.costs.commit_gas_wei if data.costs else 0,
                register_gas_wei=estimate.cost_wei,
                is_register_estimate=False,
            )
            await self.flows.update_flow_data(
                identity.user_id, identity.conversation_id, {"costs": costs.model_dump()}
            )
            await self.flows.update_flow_status(
                identity.user_id, identity.conversation_id, FlowStatus.STEP2_PENDING
            )

            price = commitment.domain_price_wei
            summary = (
                f"The waiting period for {data.name} is over. Final cost: "
                f"{format_price(price)} ETH for the name plus "
                f"{format_price(estimate.cost_wei)} ETH register gas "
                f"(total {format_price(price + estimate.cost_wei)} ETH). Continue?"
            )
            await self.chat.send_message(
                identity.channel_id, summary, conversation_id=identity.conversation_id
            )

            tool_id = generate_safe_id("confirm", CONFIRM_ACTION)
            await self.chat.send_interaction_request(
                identity.channel_id,
                FormRequest(
                    id=tool_id,
                    title=f"Register {data.name}?",
                    components=[
                        FormButton(id="confirm", label="Register"),
                        FormButton(id="cancel", label="Cancel"),
                    ],
                    recipient=identity.user_id,
                ),
                conversation_id=identity.conversation_id,
            )

            session = await self.sessions.get_or_create(identity)
            session.add_message("assistant", summary)
            session.suspend(
                PendingToolCall(
                    tool_name="complete_registration",
                    tool_id=tool_id,
                    expected_action=ExpectedAction.REGISTRATION_REGISTER_CONFIRMATION,
                    flow_type=FlowType.REGISTRATION,
                    request_id=tool_id,
                ),
                SessionStatus.AWAITING_CONFIRMATION,
            )
            await self.sessions.save(session)
            logger.info("Registration %s ready for final confirmation", identity.key)
            return True
