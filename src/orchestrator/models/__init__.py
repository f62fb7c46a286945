"""Pydantic models for the orchestration layer.

This module exports the flow variants, their status machine, and the
conversation session models consumed by the agent loop.
"""

from src.orchestrator.models.flow import (
    FLOW_TRANSITIONS,
    BridgeFlow,
    BridgeFlowData,
    BridgeNextAction,
    Commitment,
    Flow,
    FlowStatus,
    FlowType,
    RegistrationCosts,
    RegistrationFlow,
    RegistrationFlowData,
    RenewalFlow,
    RenewalFlowData,
    SubdomainFlow,
    SubdomainFlowData,
    TransferContract,
    TransferFlow,
    TransferFlowData,
    allowed_transitions,
    can_transition,
    flow_from_dict,
    flow_to_dict,
)
from src.orchestrator.models.session import (
    ActionOutcome,
    ConversationIdentity,
    ConversationSession,
    CurrentAction,
    ExpectedAction,
    PendingToolCall,
    SessionMessage,
    SessionStatus,
)

__all__ = [
    # Flows
    "Flow",
    "FlowType",
    "FlowStatus",
    "FLOW_TRANSITIONS",
    "allowed_transitions",
    "can_transition",
    "flow_from_dict",
    "flow_to_dict",
    "Commitment",
    "RegistrationCosts",
    "RegistrationFlow",
    "RegistrationFlowData",
    "BridgeFlow",
    "BridgeFlowData",
    "BridgeNextAction",
    "SubdomainFlow",
    "SubdomainFlowData",
    "TransferContract",
    "TransferFlow",
    "TransferFlowData",
    "RenewalFlow",
    "RenewalFlowData",
    # Sessions
    "ActionOutcome",
    "ConversationIdentity",
    "ConversationSession",
    "CurrentAction",
    "ExpectedAction",
    "PendingToolCall",
    "SessionMessage",
    "SessionStatus",
]
