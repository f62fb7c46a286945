"""Apply the answer to a pending interaction to the conversation's flow.

When the chat surface reports that the user signed (or rejected) a
transaction, or answered a form, the resume path calls
``FlowProgressor.apply`` before re-entering the agent loop. The progressor
records the transaction hash, advances the flow's status, clears finished
or rejected flows, and returns the plain-language message that is fed to
the model as the user's turn.
"""

import logging
from dataclasses import dataclass

from src.orchestrator.models.flow import (
    BridgeNextAction,
    FlowStatus,
    FlowType,
    now_ms,
)
from src.orchestrator.models.session import (
    ActionOutcome,
    ConversationIdentity,
    ExpectedAction,
    PendingToolCall,
)
from src.orchestrator.registration.waiter import CommitRevealWaiter
from src.services.flow_repository import FlowRepository
from src.services.metrics import MetricEvent, MetricsRecorder

logger = logging.getLogger(__name__)

FORM_ACTIONS = frozenset(
    {
        ExpectedAction.REGISTRATION_WALLET_SELECTION,
        ExpectedAction.REGISTRATION_REGISTER_CONFIRMATION,
        ExpectedAction.CONFIRMATION,
    }
)


def outcome_matches(pending: PendingToolCall, outcome: ActionOutcome) -> bool:
    """True when the outcome is the kind of answer the pending action asked for."""
    if pending.expected_action in FORM_ACTIONS:
        return outcome.kind in ("confirmation", "selection")
    return outcome.kind == "transaction"


@dataclass
class ProgressResult:
    """What the resume path feeds back to the loop.

    Attributes:
        message: Plain-language user-turn text describing the outcome.
        flow_cleared: Whether the flow was removed (finished or cancelled).
    """

    message: str
    flow_cleared: bool = False


class FlowProgressor:
    """Moves flows forward as signatures and confirmations arrive."""

    def __init__(
        self,
        flows: FlowRepository,
        metrics: MetricsRecorder | None = None,
        waiter: CommitRevealWaiter | None = None,
    ) -> None:
        self.flows = flows
        self.metrics = metrics or MetricsRecorder()
        self.waiter = waiter

    async def apply(
        self,
        identity: ConversationIdentity,
        pending: PendingToolCall,
        outcome: ActionOutcome,
    ) -> ProgressResult:
        """Apply ``outcome`` for the action described by ``pending``.

        Raises:
            FlowNotFoundError: If the flow disappeared between the resume
                path's check and the update.
        """
        action = pending.expected_action
        if outcome.kind == "transaction":
            event = MetricEvent.TRANSACTION_SIGNED if outcome.success else MetricEvent.TRANSACTION_REJECTED
            await self.metrics.track(event, user_id=identity.user_id, action=action.value)

        if action == ExpectedAction.REGISTRATION_WALLET_SELECTION:
            return await self._wallet_selected(identity, outcome)
        if action == ExpectedAction.REGISTRATION_REGISTER_CONFIRMATION:
            return await self._register_confirmed(identity, outcome)
        if action == ExpectedAction.CONFIRMATION:
            if outcome.success:
                return ProgressResult("I confirmed.")
            return ProgressResult("I declined.")

        if not outcome.success:
            return await self._cancel(identity, "I rejected the transaction, so cancel the operation.")

        tx_hash = outcome.tx_hash or ""
        if action == ExpectedAction.REGISTRATION_COMMIT:
            return await self._commit_signed(identity, tx_hash)
        if action == ExpectedAction.REGISTRATION_REGISTER:
            return await self._register_signed(identity, tx_hash)
        if action == ExpectedAction.BRIDGE_DEPOSIT:
            return await self._bridge_signed(identity, tx_hash)
        if action in (
            ExpectedAction.SUBDOMAIN_STEP_1,
            ExpectedAction.SUBDOMAIN_STEP_2,
            ExpectedAction.SUBDOMAIN_STEP_3,
        ):
            return await self._subdomain_signed(identity, action, tx_hash)
        if action in (ExpectedAction.TRANSFER, ExpectedAction.RENEWAL):
            return await self._single_step_signed(identity, action, tx_hash)

        logger.warning("No progress handler for %s", action.value)
        return ProgressResult(f"I signed the transaction ({tx_hash}).")

    # ------------------------------------------------------------------
    # Shared
    # ------------------------------------------------------------------

    async def _cancel(self, identity: ConversationIdentity, message: str) -> ProgressResult:
        await self.flows.clear_active_flow(identity.user_id, identity.conversation_id)
        if self.waiter is not None:
            self.waiter.cancel(identity)
        await self.metrics.track(MetricEvent.FLOW_CANCELLED, user_id=identity.user_id)
        return ProgressResult(message, flow_cleared=True)

    async def _finish(self, identity: ConversationIdentity, partial: dict) -> None:
        u, c = identity.user_id, identity.conversation_id
        await self.flows.update_flow_data(u, c, partial)
        await self.flows.update_flow_status(u, c, FlowStatus.COMPLETE)
        await self.flows.clear_active_flow(u, c)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def _wallet_selected(
        self, identity: ConversationIdentity, outcome: ActionOutcome
    ) -> ProgressResult:
        flow = await self.flows.get_active_flow(identity.user_id, identity.conversation_id)
        name = flow.data.name if flow is not None else "the name"
        if not outcome.success or not outcome.selection:
            return await self._cancel(identity, f"I cancelled the registration of {name}.")
        return ProgressResult(
            f"I picked wallet {outcome.selection} to own {name}. "
            "Continue the registration with that wallet."
        )

    async def _register_confirmed(
        self, identity: ConversationIdentity, outcome: ActionOutcome
    ) -> ProgressResult:
        flow = await self.flows.get_active_flow(identity.user_id, identity.conversation_id)
        name = flow.data.name if flow is not None else "the name"
        if not outcome.success:
            return await self._cancel(identity, f"I don't want to finish registering {name}. Cancel it.")
        return ProgressResult(f"I confirm the final cost for {name}. Complete the registration.")

    async def _commit_signed(self, identity: ConversationIdentity, tx_hash: str) -> ProgressResult:
        u, c = identity.user_id, identity.conversation_id
        committed_at = now_ms()
        flow = await self.flows.update_flow_data(
            u, c, {"commit_tx_hash": tx_hash, "commit_timestamp": committed_at}
        )
        await self.flows.update_flow_status(u, c, FlowStatus.STEP1_COMPLETE)
        if self.waiter is not None:
            self.waiter.schedule(identity, committed_at)
        await self.metrics.track(MetricEvent.COMMIT_COMPLETED, user_id=u, name=flow.data.name)
        return ProgressResult(
            f"I signed the commit transaction for {flow.data.name} ({tx_hash}). "
            "The waiting period has started."
        )

    async def _register_signed(self, identity: ConversationIdentity, tx_hash: str) -> ProgressResult:
        flow = await self.flows.get_active_flow(identity.user_id, identity.conversation_id)
        name = flow.data.name if flow is not None else "the name"
        await self._finish(identity, {"register_tx_hash": tx_hash})
        await self.metrics.track(
            MetricEvent.REGISTRATION_COMPLETED, user_id=identity.user_id, name=name
        )
        return ProgressResult(
            f"I signed the register transaction ({tx_hash}). {name} should now be mine."
        )

    # ------------------------------------------------------------------
    # Bridge
    # ------------------------------------------------------------------

    async def _bridge_signed(self, identity: ConversationIdentity, tx_hash: str) -> ProgressResult:
        flow = await self.flows.get_active_flow(identity.user_id, identity.conversation_id)
        hint = ""
        if flow is not None and flow.flow_type == FlowType.BRIDGE:
            data = flow.data
            if data.next_action == BridgeNextAction.CONTINUE_REGISTRATION and data.registration_name:
                hint = f" Once the funds arrive, continue registering {data.registration_name}."
            elif data.next_action == BridgeNextAction.WAIT_FOR_BRIDGE_COMPLETION:
                hint = " Let me know how long the funds take to arrive."
        await self._finish(identity, {"bridge_tx_hash": tx_hash, "bridge_timestamp": now_ms()})
        await self.metrics.track(MetricEvent.BRIDGE_INITIATED, user_id=identity.user_id)
        return ProgressResult(f"I signed the bridge deposit ({tx_hash}).{hint}")

    # ------------------------------------------------------------------
    # Subdomain
    # ------------------------------------------------------------------

    async def _subdomain_signed(
        self, identity: ConversationIdentity, action: ExpectedAction, tx_hash: str
    ) -> ProgressResult:
        u, c = identity.user_id, identity.conversation_id
        flow = await self.flows.get_active_flow(u, c)
        name = flow.data.full_name if flow is not None else "the subdomain"
        total = flow.data.total_steps if flow is not None else 3

        if action == ExpectedAction.SUBDOMAIN_STEP_1:
            await self.flows.update_flow_data(u, c, {"step1_tx_hash": tx_hash, "current_step": 2})
            await self.flows.update_flow_status(u, c, FlowStatus.STEP1_COMPLETE)
            return ProgressResult(
                f"I signed step 1 of {total} for {name} ({tx_hash}). Continue with the next step."
            )

        if action == ExpectedAction.SUBDOMAIN_STEP_2 and total == 3:
            await self.flows.update_flow_data(u, c, {"step2_tx_hash": tx_hash, "current_step": 3})
            await self.flows.update_flow_status(u, c, FlowStatus.STEP2_COMPLETE)
            return ProgressResult(
                f"I signed step 2 of 3 for {name} ({tx_hash}). Continue with the last step."
            )

        field_name = "step2_tx_hash" if action == ExpectedAction.SUBDOMAIN_STEP_2 else "step3_tx_hash"
        await self._finish(identity, {field_name: tx_hash})
        return ProgressResult(f"I signed the last step for {name} ({tx_hash}). It should be set up now.")

    # ------------------------------------------------------------------
    # Transfer / renewal
    # ------------------------------------------------------------------

    async def _single_step_signed(
        self, identity: ConversationIdentity, action: ExpectedAction, tx_hash: str
    ) -> ProgressResult:
        await self._finish(identity, {"tx_hash": tx_hash})
        what = "transfer" if action == ExpectedAction.TRANSFER else "renewal"
        return ProgressResult(f"I signed the {what} transaction ({tx_hash}).")
