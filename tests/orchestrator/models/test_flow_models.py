"""Tests for flow variants, the per-type status machine and action outcomes."""

import pytest
from pydantic import ValidationError

from src.orchestrator.models import (
    FLOW_TRANSITIONS,
    ActionOutcome,
    Commitment,
    FlowStatus,
    FlowType,
    RegistrationCosts,
    RegistrationFlow,
    RegistrationFlowData,
    SubdomainFlowData,
    allowed_transitions,
    can_transition,
    flow_from_dict,
    flow_to_dict,
)
from src.orchestrator.models.session import ConversationIdentity


class TestTransitions:
    """Allowed status moves per flow type."""

    def test_every_type_has_a_table(self):
        assert set(FLOW_TRANSITIONS) == set(FlowType)

    @pytest.mark.parametrize(
        "flow_type,current,target",
        [
            (FlowType.REGISTRATION, FlowStatus.INITIATED, FlowStatus.AWAITING_WALLET),
            (FlowType.REGISTRATION, FlowStatus.AWAITING_WALLET, FlowStatus.STEP1_PENDING),
            (FlowType.REGISTRATION, FlowStatus.STEP1_COMPLETE, FlowStatus.STEP2_PENDING),
            (FlowType.REGISTRATION, FlowStatus.STEP2_PENDING, FlowStatus.COMPLETE),
            (FlowType.BRIDGE, FlowStatus.INITIATED, FlowStatus.AWAITING_BRIDGE),
            (FlowType.BRIDGE, FlowStatus.AWAITING_BRIDGE, FlowStatus.COMPLETE),
            (FlowType.SUBDOMAIN, FlowStatus.STEP2_PENDING, FlowStatus.COMPLETE),
            (FlowType.SUBDOMAIN, FlowStatus.STEP2_PENDING, FlowStatus.STEP2_COMPLETE),
            (FlowType.SUBDOMAIN, FlowStatus.STEP3_PENDING, FlowStatus.COMPLETE),
            (FlowType.TRANSFER, FlowStatus.STEP1_PENDING, FlowStatus.COMPLETE),
            (FlowType.RENEWAL, FlowStatus.STEP1_PENDING, FlowStatus.COMPLETE),
        ],
    )
    def test_allowed(self, flow_type, current, target):
        assert can_transition(flow_type, current, target)

    @pytest.mark.parametrize(
        "flow_type,current,target",
        [
            (FlowType.REGISTRATION, FlowStatus.INITIATED, FlowStatus.COMPLETE),
            (FlowType.REGISTRATION, FlowStatus.STEP1_PENDING, FlowStatus.STEP2_PENDING),
            (FlowType.BRIDGE, FlowStatus.INITIATED, FlowStatus.STEP1_PENDING),
            (FlowType.TRANSFER, FlowStatus.STEP1_PENDING, FlowStatus.STEP1_COMPLETE),
            (FlowType.SUBDOMAIN, FlowStatus.STEP1_PENDING, FlowStatus.STEP2_PENDING),
        ],
    )
    def test_forbidden(self, flow_type, current, target):
        assert not can_transition(flow_type, current, target)

    @pytest.mark.parametrize("flow_type", list(FlowType))
    def test_failed_reachable_from_any_live_status(self, flow_type):
        for status in FLOW_TRANSITIONS[flow_type]:
            assert FlowStatus.FAILED in allowed_transitions(flow_type, status)

    @pytest.mark.parametrize("status", [FlowStatus.COMPLETE, FlowStatus.FAILED])
    def test_terminal_statuses_have_no_successors(self, status):
        for flow_type in FlowType:
            assert allowed_transitions(flow_type, status) == []


class TestFlowVariants:

    def test_discriminator_round_trip(self):
        flow = RegistrationFlow(
            user_id="u1",
            conversation_id="c1",
            channel_id="ch1",
            data=RegistrationFlowData(name="alice.eth", duration_years=2),
        )
        restored = flow_from_dict(flow_to_dict(flow))
        assert isinstance(restored, RegistrationFlow)
        assert restored.flow_type == FlowType.REGISTRATION
        assert restored.data.duration_years == 2

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValidationError):
            flow_from_dict(
                {"type": "staking", "user_id": "u1", "conversation_id": "c1", "channel_id": "ch1", "data": {}}
            )

    def test_updated_at_is_clamped_to_started_at(self):
        flow = RegistrationFlow(
            user_id="u1",
            conversation_id="c1",
            channel_id="ch1",
            started_at=2_000,
            updated_at=1_000,
            data=RegistrationFlowData(name="alice.eth", duration_years=1),
        )
        assert flow.updated_at == 2_000

    def test_subdomain_steps_are_two_or_three(self):
        with pytest.raises(ValidationError):
            SubdomainFlowData(
                subdomain="pay",
                parent_domain="alice.eth",
                full_name="pay.alice.eth",
                resolve_address="0x" + "a" * 40,
                recipient="0x" + "a" * 40,
                owner_wallet="0x" + "a" * 40,
                is_wrapped=False,
                total_steps=4,
            )

    def test_grand_total_includes_price_and_both_gas_legs(self):
        data = RegistrationFlowData(
            name="alice.eth",
            duration_years=1,
            commitment=Commitment(
                name="alice",
                secret="0x" + "11" * 32,
                commitment="0x" + "22" * 32,
                owner="0x" + "a" * 40,
                duration_sec=31_557_600,
                domain_price_wei=3 * 10**15,
            ),
            costs=RegistrationCosts(commit_gas_wei=5 * 10**14, register_gas_wei=3 * 10**15),
        )
        assert data.grand_total_wei == 3 * 10**15 + 5 * 10**14 + 3 * 10**15
        assert data.costs.is_register_estimate is True

    def test_grand_total_unknown_without_costs(self):
        assert RegistrationFlowData(name="alice.eth", duration_years=1).grand_total_wei is None


class TestActionOutcome:

    def test_signed_transaction(self):
        outcome = ActionOutcome.transaction("0xabc", request_id="tx_commit_AbCdEfGhIjKlMnOpQrStUvWx")
        assert outcome.success is True
        assert outcome.tx_hash == "0xabc"
        assert outcome.kind == "transaction"

    @pytest.mark.parametrize("tx_hash", [None, "", "0x"])
    def test_rejected_transaction(self, tx_hash):
        outcome = ActionOutcome.transaction(tx_hash)
        assert outcome.success is False
        assert outcome.tx_hash is None

    def test_confirmation(self):
        assert ActionOutcome.confirmation("confirm").success is True
        assert ActionOutcome.confirmation("cancel").success is False

    def test_selection(self):
        picked = ActionOutcome.selected("0x" + "a" * 40)
        assert picked.success is True
        assert picked.selection == "0x" + "a" * 40
        assert ActionOutcome.selected("cancel").success is False


def test_identity_key():
    assert ConversationIdentity("u1", "c1", "ch1").key == "u1:c1"
