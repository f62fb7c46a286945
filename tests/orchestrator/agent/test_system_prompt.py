"""Tests for the orchestration agent's system prompt."""

from src.config import AppConfig, RegistrationSettings
from src.orchestrator.agent.system_prompt import build_system_prompt
from src.orchestrator.models.flow import (
    FlowStatus,
    RegistrationFlow,
    RegistrationFlowData,
    SubdomainFlow,
    SubdomainFlowData,
)


def test_idle_conversation():
    prompt = build_system_prompt()
    assert "No operation is in progress in this conversation." in prompt
    assert "bridge ETH from Base to Ethereum" in prompt


def test_configured_wait_is_quoted():
    config = AppConfig(registration=RegistrationSettings(min_commitment_age_seconds=90))
    assert "waits at least 90 seconds" in build_system_prompt(config=config)


def test_registration_in_waiting_period():
    flow = RegistrationFlow(
        user_id="u1",
        conversation_id="c1",
        channel_id="ch1",
        status=FlowStatus.STEP1_COMPLETE,
        data=RegistrationFlowData(name="alice.eth", duration_years=2, selected_wallet="0x" + "a" * 40),
    )

    prompt = build_system_prompt(flow)

    assert "**registration** (status `step1_complete`)" in prompt
    assert "- Name: alice.eth, 2 year(s)" in prompt
    assert "waiting period is running" in prompt


def test_subdomain_progress():
    flow = SubdomainFlow(
        user_id="u1",
        conversation_id="c1",
        channel_id="ch1",
        status=FlowStatus.STEP1_COMPLETE,
        data=SubdomainFlowData(
            subdomain="pay",
            parent_domain="alice.eth",
            full_name="pay.alice.eth",
            resolve_address="0x" + "c" * 40,
            recipient="0x" + "c" * 40,
            owner_wallet="0x" + "a" * 40,
            is_wrapped=False,
            current_step=2,
            total_steps=3,
        ),
    )
    assert "pay.alice.eth: step 2 of 3" in build_system_prompt(flow)
