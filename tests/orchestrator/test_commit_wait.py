"""Tests for CommitRevealWaiter: wait computation, continuation, scheduling and recovery."""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from src.config import RegistrationSettings
from src.orchestrator.models.flow import (
    Commitment,
    FlowStatus,
    RegistrationCosts,
    RegistrationFlow,
    RegistrationFlowData,
    now_ms,
)
from src.orchestrator.models.session import (
    ConversationIdentity,
    ExpectedAction,
    SessionStatus,
)
from src.orchestrator.registration.waiter import CommitRevealWaiter
from tests.helpers import WALLET_A

NOW_MS = 1_700_000_000_000
GWEI = 10**9


def _committed_flow(
    user_id: str = "u1",
    conversation_id: str = "c1",
    status: FlowStatus = FlowStatus.STEP1_COMPLETE,
    commit_timestamp: int | None = NOW_MS - 10_000,
) -> RegistrationFlow:
    return RegistrationFlow(
        user_id=user_id,
        conversation_id=conversation_id,
        channel_id="ch1",
        status=status,
        data=RegistrationFlowData(
            name="alice.eth",
            duration_years=1,
            commitment=Commitment(
                name="alice",
                secret="0x" + "11" * 32,
                commitment="0x" + "22" * 32,
                owner=WALLET_A,
                duration_sec=31_557_600,
                domain_price_wei=3 * 10**15,
            ),
            costs=RegistrationCosts(commit_gas_wei=50_000 * 10 * GWEI, register_gas_wei=300_000 * 10 * GWEI),
            selected_wallet=WALLET_A,
            commit_tx_hash="0xc0ffee",
            commit_timestamp=commit_timestamp,
        ),
    )


def _waiter(flows, sessions, chain, chat, locks, sleep, settings=None) -> CommitRevealWaiter:
    return CommitRevealWaiter(
        flows, sessions, chain, chat, locks, settings, sleep=sleep, clock=lambda: NOW_MS
    )


# =========================================================================
# Wait computation
# =========================================================================


class TestWaitComputation:

    @pytest.mark.parametrize(
        "configured,expected",
        [(60, 65), (30, 65), (0, 65), (120, 125)],
    )
    def test_wait_never_below_protocol_minimum(
        self, flows, sessions, chain, chat, locks, configured, expected
    ):
        settings = RegistrationSettings(min_commitment_age_seconds=configured)
        waiter = _waiter(flows, sessions, chain, chat, locks, AsyncMock(), settings)
        assert waiter.wait_seconds == expected

    def test_delay_counts_from_commit_time(self, flows, sessions, chain, chat, locks):
        waiter = _waiter(flows, sessions, chain, chat, locks, AsyncMock())
        assert waiter.delay_for(NOW_MS - 20_000) == pytest.approx(45.0)

    def test_delay_is_zero_once_elapsed(self, flows, sessions, chain, chat, locks):
        waiter = _waiter(flows, sessions, chain, chat, locks, AsyncMock())
        assert waiter.delay_for(NOW_MS - 600_000) == 0.0


# =========================================================================
# Continuation
# =========================================================================


class TestOnWaitElapsed:

    @pytest.mark.asyncio
    async def test_advances_flow_and_asks_for_confirmation(
        self, waiter, flows, sessions, chain, chat, identity
    ):
        await flows.set_active_flow(_committed_flow())

        assert await waiter.on_wait_elapsed(identity) is True

        flow = await flows.get_active_flow("u1", "c1")
        assert flow.status == FlowStatus.STEP2_PENDING
        assert flow.data.costs.is_register_estimate is False
        assert flow.data.costs.register_gas_wei == 260_000 * 10 * GWEI
        assert flow.data.costs.commit_gas_wei == 50_000 * 10 * GWEI

        _, _, provisional = chain.called("estimate_register_gas")[-1]
        assert provisional is False

        assert "Final cost" in chat.texts[-1]
        form = chat.forms[-1]
        assert [b.id for b in form.components] == ["confirm", "cancel"]
        assert form.recipient == "u1"

        session = await sessions.get("u1", "c1")
        assert session.status == SessionStatus.AWAITING_CONFIRMATION
        pending = session.pending_tool_call
        assert pending.tool_name == "complete_registration"
        assert pending.expected_action == ExpectedAction.REGISTRATION_REGISTER_CONFIRMATION
        assert pending.tool_id == form.id
        assert pending.request_id == form.id
        assert session.messages[-1].role == "assistant"

    @pytest.mark.asyncio
    async def test_nothing_to_do_without_flow(self, waiter, chat, identity):
        assert await waiter.on_wait_elapsed(identity) is False
        assert chat.messages == []
        assert chat.requests == []

    @pytest.mark.asyncio
    async def test_nothing_to_do_when_flow_moved_on(self, waiter, flows, chat, identity):
        await flows.set_active_flow(_committed_flow(status=FlowStatus.STEP2_PENDING))
        assert await waiter.on_wait_elapsed(identity) is False
        assert chat.requests == []

    @pytest.mark.asyncio
    async def test_gas_estimate_failure_leaves_flow_waiting(
        self, waiter, flows, chain, chat, identity
    ):
        await flows.set_active_flow(_committed_flow())
        chain.failing.add("estimate_register_gas")

        assert await waiter.on_wait_elapsed(identity) is False

        flow = await flows.get_active_flow("u1", "c1")
        assert flow.status == FlowStatus.STEP1_COMPLETE
        assert "couldn't estimate" in chat.texts[-1]
        assert chat.requests == []


# =========================================================================
# Scheduling
# =========================================================================


class TestScheduling:

    @pytest.mark.asyncio
    async def test_scheduled_task_sleeps_then_continues(
        self, flows, sessions, chain, chat, locks, identity
    ):
        sleep = AsyncMock()
        waiter = _waiter(flows, sessions, chain, chat, locks, sleep)
        await flows.set_active_flow(_committed_flow(commit_timestamp=NOW_MS - 10_000))

        task = waiter.schedule(identity, NOW_MS - 10_000)
        await task

        sleep.assert_awaited_once()
        assert sleep.await_args.args[0] == pytest.approx(55.0)
        flow = await flows.get_active_flow("u1", "c1")
        assert flow.status == FlowStatus.STEP2_PENDING
        assert not waiter.is_scheduled(identity)

    @pytest.mark.asyncio
    async def test_elapsed_wait_skips_sleep(self, flows, sessions, chain, chat, locks, identity):
        sleep = AsyncMock()
        waiter = _waiter(flows, sessions, chain, chat, locks, sleep)
        await flows.set_active_flow(_committed_flow(commit_timestamp=NOW_MS - 600_000))

        await waiter.schedule(identity, NOW_MS - 600_000)
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rescheduling_replaces_previous_timer(self, waiter, identity):
        first = waiter.schedule(identity, now_ms())
        second = waiter.schedule(identity, now_ms())

        with pytest.raises(asyncio.CancelledError):
            await first
        assert waiter.is_scheduled(identity)
        assert not second.done()

    @pytest.mark.asyncio
    async def test_cancel(self, waiter, identity):
        task = waiter.schedule(identity, now_ms())
        assert waiter.cancel(identity) is True
        with pytest.raises(asyncio.CancelledError):
            await task
        assert waiter.cancel(identity) is False
        assert not waiter.is_scheduled(identity)

    @pytest.mark.asyncio
    async def test_continuation_failure_is_logged(
        self, flows, sessions, chain, chat, locks, identity, caplog
    ):
        waiter = _waiter(flows, sessions, chain, chat, locks, AsyncMock())
        waiter.on_wait_elapsed = AsyncMock(side_effect=RuntimeError("redis gone"))

        with caplog.at_level(logging.ERROR):
            await waiter.schedule(identity, NOW_MS)
        assert "Commit-reveal continuation failed" in caplog.text


# =========================================================================
# Recovery
# =========================================================================


class TestRecovery:

    @pytest.mark.asyncio
    async def test_reschedules_waiting_registrations(self, waiter, flows, sleeps):
        await flows.set_active_flow(_committed_flow(conversation_id="c1", commit_timestamp=now_ms()))
        await flows.set_active_flow(_committed_flow(conversation_id="c2", commit_timestamp=None))
        await flows.set_active_flow(_committed_flow(conversation_id="c3", status=FlowStatus.STEP2_PENDING))

        assert await waiter.recover_pending_waits() == 1

        assert waiter.is_scheduled(ConversationIdentity("u1", "c1", "ch1"))
        assert not waiter.is_scheduled(ConversationIdentity("u1", "c2", "ch1"))
        assert not waiter.is_scheduled(ConversationIdentity("u1", "c3", "ch1"))
        await asyncio.sleep(0)
        assert len(sleeps) == 1

    @pytest.mark.asyncio
    async def test_nothing_to_recover(self, waiter):
        assert await waiter.recover_pending_waits() == 0
