"""End-to-end conversations through the agent, waiter and progressor.

Each test scripts the model's replies and plays the user's side by
resuming with signed transactions and button presses.
"""

import pytest

from src.orchestrator.models.flow import FlowStatus, FlowType, now_ms
from src.orchestrator.models.session import (
    ActionOutcome,
    ConversationIdentity,
    ExpectedAction,
    SessionStatus,
)
from tests.helpers import STRANGER, WALLET_A, text_response, tool_response


@pytest.mark.asyncio
async def test_full_registration(agent, llm, flows, sessions, waiter, chat, identity):
    """Commit, wait, confirm the final cost, register."""
    llm.queue(tool_response("prepare_registration", {"name": "alice.eth", "years": 1}))
    result = await agent.run("Register alice.eth for a year", identity)
    assert result.session.pending_tool_call.expected_action == ExpectedAction.REGISTRATION_COMMIT

    llm.queue(text_response("Commit is in. I'll let you know when the wait is over."))
    result = await agent.resume(
        identity, ActionOutcome.transaction("0xc0ffee", request_id=chat.last_payload.id)
    )
    assert result.session.status == SessionStatus.WAITING_PERIOD
    assert waiter.is_scheduled(identity)

    # The continuation normally fires from the timer; run it directly.
    await flows.update_flow_data("u1", "c1", {"commit_timestamp": now_ms() - 120_000})
    assert await waiter.on_wait_elapsed(identity) is True
    session = await sessions.get("u1", "c1")
    assert session.status == SessionStatus.AWAITING_CONFIRMATION
    assert "Final cost" in chat.texts[-1]

    llm.queue(tool_response("complete_registration"))
    result = await agent.resume(
        identity,
        ActionOutcome.confirmation("confirm", request_id=chat.last_payload.id),
    )
    assert result.status == "awaiting_action"
    assert result.session.pending_tool_call.request_id == chat.last_payload.id
    assert "I confirm the final cost for alice.eth" in llm.calls[-1].last_user_content
    register_tx = chat.transactions[-1]
    assert register_tx.value_wei == 3 * 10**15

    llm.queue(text_response("alice.eth is yours!"))
    result = await agent.resume(
        identity, ActionOutcome.transaction("0xfeed", request_id=chat.last_payload.id)
    )
    assert result.status == "complete"
    assert result.message == "alice.eth is yours!"
    assert result.session.status == SessionStatus.ACTIVE
    assert await flows.get_active_flow("u1", "c1") is None
    assert [tx.title for tx in chat.transactions] == [
        "Commit alice.eth (step 1 of 2)",
        "Register alice.eth (step 2 of 2)",
    ]


@pytest.mark.asyncio
async def test_declining_the_final_cost_cancels(agent, llm, flows, waiter, identity):
    llm.queue(tool_response("prepare_registration", {"name": "alice.eth"}))
    await agent.run("register alice.eth", identity)
    await agent.resume(identity, ActionOutcome.transaction("0xc0ffee"))
    await waiter.on_wait_elapsed(identity)

    llm.queue(text_response("Okay, cancelled."))
    result = await agent.resume(identity, ActionOutcome.confirmation("cancel"))

    assert result.status == "complete"
    assert await flows.get_active_flow("u1", "c1") is None


@pytest.mark.asyncio
async def test_bridge_when_mainnet_balance_is_short(agent, llm, chain, flows, chat, identity):
    """Registration fails on balance, the model bridges from Base instead."""
    chain.fund(WALLET_A, 10**15, chain_id=1)
    llm.queue(
        tool_response("prepare_registration", {"name": "alice.eth"}),
        tool_response(
            "prepare_bridge",
            {
                "amount_eth": "0.006",
                "next_action": "continue_registration",
                "registration_name": "alice.eth",
            },
            tool_id="toolu_02",
        ),
    )

    result = await agent.run("register alice.eth", identity)

    failed = llm.calls[1].last_user_content[0]
    assert failed["is_error"] is True
    assert "Insufficient balance on Ethereum" in failed["content"]
    assert result.status == "awaiting_action"
    assert result.session.pending_tool_call.expected_action == ExpectedAction.BRIDGE_DEPOSIT
    assert chat.transactions[-1].chain_id == 8453
    flow = await flows.get_active_flow("u1", "c1")
    assert flow.flow_type == FlowType.BRIDGE

    llm.queue(text_response("Bridging. I'll pick up the registration when the funds land."))
    result = await agent.resume(
        identity, ActionOutcome.transaction("0xb41d", request_id=chat.last_payload.id)
    )

    assert result.status == "complete"
    assert "continue registering alice.eth" in llm.calls[-1].last_user_content
    assert await flows.get_active_flow("u1", "c1") is None


@pytest.mark.asyncio
async def test_three_step_subdomain(agent, llm, chain, flows, chat, identity):
    chain.own("alice.eth", WALLET_A, is_wrapped=True)
    llm.queue(
        tool_response(
            "prepare_subdomain",
            {"parent_name": "alice.eth", "label": "pay", "resolve_address": STRANGER},
        )
    )
    await agent.run(f"create pay.alice.eth for {STRANGER}", identity)

    request_ids = []
    for step, tx_hash in ((1, "0x01"), (2, "0x02")):
        pending = (await agent.sessions.get("u1", "c1")).pending_tool_call
        request_ids.append(pending.request_id)
        llm.queue(tool_response("continue_subdomain"))
        result = await agent.resume(
            identity, ActionOutcome.transaction(tx_hash, request_id=chat.last_payload.id)
        )
        assert result.status == "awaiting_action", f"step {step}"

    pending = result.session.pending_tool_call
    request_ids.append(pending.request_id)
    llm.queue(text_response("pay.alice.eth now belongs to the new owner."))
    result = await agent.resume(
        identity, ActionOutcome.transaction("0x03", request_id=chat.last_payload.id)
    )

    assert result.status == "complete"
    assert request_ids == [tx.id for tx in chat.transactions]
    assert len(chat.transactions) == 3
    assert await flows.get_active_flow("u1", "c1") is None


@pytest.mark.asyncio
async def test_confirmed_transfer(agent, llm, chain, flows, chat, identity):
    """The model confirms the irreversible transfer before preparing it."""
    chain.own("alice.eth", WALLET_A)
    llm.queue(
        tool_response(
            "request_confirmation",
            {"message": f"Transfer alice.eth to {STRANGER}? This cannot be undone."},
        )
    )
    result = await agent.run(f"send alice.eth to {STRANGER}", identity)
    assert result.session.status == SessionStatus.AWAITING_CONFIRMATION

    llm.queue(tool_response("prepare_transfer", {"name": "alice.eth", "to_address": STRANGER}))
    result = await agent.resume(
        identity, ActionOutcome.confirmation("confirm", request_id=chat.last_payload.id)
    )
    assert llm.calls[-1].last_user_content.endswith("I confirmed.")
    assert result.session.status == SessionStatus.AWAITING_SIGNATURE

    result = await agent.resume(
        identity, ActionOutcome.transaction("0x7a", request_id=chat.last_payload.id)
    )
    assert result.status == "complete"
    assert await flows.get_active_flow("u1", "c1") is None


@pytest.mark.asyncio
async def test_one_live_flow_per_user(agent, llm, flows, identity):
    """A second conversation cannot start a flow while the first is in progress."""
    llm.queue(tool_response("prepare_registration", {"name": "alice.eth"}))
    await agent.run("register alice.eth", identity)

    other = ConversationIdentity(user_id="u1", conversation_id="c2", channel_id="ch1")
    llm.queue(
        tool_response("prepare_registration", {"name": "bobby.eth"}),
        text_response("Finish the other registration first."),
    )
    result = await agent.run("register bobby.eth", other)

    assert result.status == "complete"
    block = llm.calls[-1].last_user_content[0]
    assert block["is_error"] is True
    assert "another conversation" in block["content"]
    assert await flows.get_active_flow("u1", "c2") is None
    assert (await flows.get_active_flow("u1", "c1")).status == FlowStatus.STEP1_PENDING
