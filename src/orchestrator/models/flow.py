"""Flow models for in-flight, multi-step on-chain operations.

A Flow is the durable record of one operation (registration, bridge,
subdomain, transfer, renewal) for a (user, conversation) key. ``type`` is
the discriminator; ``data`` carries the variant payload. Status moves are
restricted per type by ``FLOW_TRANSITIONS``.

All wei amounts are plain Python ints; the state store takes care of
preserving values beyond JSON's safe integer range.
"""

import time
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator


class FlowType(str, Enum):
    """Closed set of operation kinds."""

    REGISTRATION = "registration"
    BRIDGE = "bridge"
    SUBDOMAIN = "subdomain"
    TRANSFER = "transfer"
    RENEWAL = "renewal"


class FlowStatus(str, Enum):
    """Union of every status any flow type can be in."""

    INITIATED = "initiated"
    AWAITING_WALLET = "awaiting_wallet"
    AWAITING_BRIDGE = "awaiting_bridge"
    STEP1_PENDING = "step1_pending"  # step 1 tx sent, awaiting signature/confirmation
    STEP1_COMPLETE = "step1_complete"
    STEP2_PENDING = "step2_pending"
    STEP2_COMPLETE = "step2_complete"
    STEP3_PENDING = "step3_pending"
    COMPLETE = "complete"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({FlowStatus.COMPLETE, FlowStatus.FAILED})

_S = FlowStatus

# Successors per status, excluding the implicit "any non-terminal -> failed".
FLOW_TRANSITIONS: dict[FlowType, dict[FlowStatus, tuple[FlowStatus, ...]]] = {
    FlowType.REGISTRATION: {
        _S.INITIATED: (_S.AWAITING_WALLET, _S.STEP1_PENDING),
        _S.AWAITING_WALLET: (_S.STEP1_PENDING,),
        _S.STEP1_PENDING: (_S.STEP1_COMPLETE,),
        _S.STEP1_COMPLETE: (_S.STEP2_PENDING,),  # set by the commit-reveal waiter
        _S.STEP2_PENDING: (_S.COMPLETE,),
    },
    FlowType.BRIDGE: {
        _S.INITIATED: (_S.AWAITING_BRIDGE,),
        _S.AWAITING_BRIDGE: (_S.COMPLETE,),
    },
    FlowType.SUBDOMAIN: {
        _S.INITIATED: (_S.STEP1_PENDING,),
        _S.STEP1_PENDING: (_S.STEP1_COMPLETE,),
        _S.STEP1_COMPLETE: (_S.STEP2_PENDING,),
        _S.STEP2_PENDING: (_S.STEP2_COMPLETE, _S.COMPLETE),  # COMPLETE when 2 steps
        _S.STEP2_COMPLETE: (_S.STEP3_PENDING,),
        _S.STEP3_PENDING: (_S.COMPLETE,),
    },
    FlowType.TRANSFER: {
        _S.INITIATED: (_S.STEP1_PENDING,),
        _S.STEP1_PENDING: (_S.COMPLETE,),
    },
    FlowType.RENEWAL: {
        _S.INITIATED: (_S.STEP1_PENDING,),
        _S.STEP1_PENDING: (_S.COMPLETE,),
    },
}


def allowed_transitions(flow_type: FlowType, status: FlowStatus) -> list[FlowStatus]:
    """Statuses reachable from ``status`` in one update for a flow type."""
    if status in TERMINAL_STATUSES:
        return []
    successors = list(FLOW_TRANSITIONS[flow_type].get(status, ()))
    successors.append(FlowStatus.FAILED)
    return successors


def can_transition(flow_type: FlowType, current: FlowStatus, target: FlowStatus) -> bool:
    return target in allowed_transitions(flow_type, current)


def now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Variant payloads
# ---------------------------------------------------------------------------


class Commitment(BaseModel):
    """Commit-reveal parameters. ``owner`` must be the wallet that signs register."""

    name: str = Field(..., description="Label without the .eth suffix")
    secret: str = Field(..., description="32-byte hex secret")
    commitment: str = Field(..., description="Commitment hash")
    owner: str
    duration_sec: int = Field(..., gt=0)
    domain_price_wei: int = Field(..., ge=0)


class RegistrationCosts(BaseModel):
    """Cost breakdown. ``is_register_estimate`` stays True until the post-wait re-estimate."""

    commit_gas_wei: int = Field(..., ge=0)
    register_gas_wei: int = Field(..., ge=0)
    is_register_estimate: bool = True

    def total_wei(self, domain_price_wei: int) -> int:
        return domain_price_wei + self.commit_gas_wei + self.register_gas_wei


class RegistrationFlowData(BaseModel):
    name: str = Field(..., description="Full name, e.g. alice.eth")
    duration_years: int = Field(..., ge=1)
    commitment: Commitment | None = None
    costs: RegistrationCosts | None = None
    selected_wallet: str | None = None
    commit_tx_hash: str | None = None
    commit_timestamp: int | None = Field(default=None, description="ms since epoch")
    register_tx_hash: str | None = None

    @property
    def grand_total_wei(self) -> int | None:
        if self.commitment is None or self.costs is None:
            return None
        return self.costs.total_wei(self.commitment.domain_price_wei)


class BridgeNextAction(str, Enum):
    CONTINUE_REGISTRATION = "continue_registration"
    WAIT_FOR_BRIDGE_COMPLETION = "wait_for_bridge_completion"
    NONE = "none"


class BridgeFlowData(BaseModel):
    source_chain_id: int
    dest_chain_id: int
    amount_wei: int = Field(..., ge=0, description="Amount sent on the source chain")
    target_wei: int = Field(..., ge=0, description="Amount needed on the destination")
    expected_output_wei: int = Field(..., ge=0)
    fee_wei: int = Field(..., ge=0)
    user_wallet: str
    bridge_tx_hash: str | None = None
    bridge_timestamp: int | None = None
    next_action: BridgeNextAction = BridgeNextAction.NONE
    registration_name: str | None = Field(
        default=None, description="Name to register once funds land"
    )


class SubdomainFlowData(BaseModel):
    subdomain: str
    parent_domain: str
    full_name: str
    resolve_address: str
    recipient: str
    owner_wallet: str
    is_wrapped: bool
    current_step: int = Field(default=1, ge=1, le=3)
    total_steps: Literal[2, 3]
    step1_tx_hash: str | None = None
    step2_tx_hash: str | None = None
    step3_tx_hash: str | None = None


class TransferContract(str, Enum):
    REGISTRY = "registry"
    NAME_WRAPPER = "name_wrapper"
    REGISTRAR = "registrar"


class TransferFlowData(BaseModel):
    domain: str
    recipient: str
    owner_wallet: str
    is_wrapped: bool
    contract: TransferContract
    irreversible: Literal[True] = True
    tx_hash: str | None = None


class RenewalFlowData(BaseModel):
    name: str
    label: str
    duration_years: int = Field(..., ge=1)
    duration_seconds: int = Field(..., gt=0)
    total_cost_wei: int = Field(..., ge=0)
    recommended_value_wei: int = Field(..., ge=0)
    current_expiry: int | None = Field(default=None, description="unix seconds")
    new_expiry: int | None = None
    owner_wallet: str
    is_wrapped: bool
    tx_hash: str | None = None


# ---------------------------------------------------------------------------
# Flow variants
# ---------------------------------------------------------------------------


class FlowBase(BaseModel):
    """Fields shared by every flow variant.

    Attributes:
        user_id: Chat user id.
        conversation_id: Thread id; with user_id forms the storage key.
        channel_id: Channel the conversation lives in.
        status: Current status (legal values depend on type).
        started_at: Creation time, ms since epoch.
        updated_at: Last mutation time, ms since epoch. Never below started_at.
    """

    user_id: str
    conversation_id: str
    channel_id: str
    status: FlowStatus = FlowStatus.INITIATED
    started_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)

    @model_validator(mode="after")
    def updated_not_before_started(self):
        if self.updated_at < self.started_at:
            self.updated_at = self.started_at
        return self

    @property
    def flow_type(self) -> FlowType:
        return FlowType(self.type)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class RegistrationFlow(FlowBase):
    type: Literal["registration"] = "registration"
    data: RegistrationFlowData


class BridgeFlow(FlowBase):
    type: Literal["bridge"] = "bridge"
    data: BridgeFlowData


class SubdomainFlow(FlowBase):
    type: Literal["subdomain"] = "subdomain"
    data: SubdomainFlowData


class TransferFlow(FlowBase):
    type: Literal["transfer"] = "transfer"
    data: TransferFlowData


class RenewalFlow(FlowBase):
    type: Literal["renewal"] = "renewal"
    data: RenewalFlowData


Flow = Annotated[
    Union[RegistrationFlow, BridgeFlow, SubdomainFlow, TransferFlow, RenewalFlow],
    Field(discriminator="type"),
]

FLOW_ADAPTER: TypeAdapter[Flow] = TypeAdapter(Flow)


def flow_from_dict(data: dict) -> Flow:
    """Validate a stored dict into the right Flow variant."""
    return FLOW_ADAPTER.validate_python(data)


def flow_to_dict(flow: FlowBase) -> dict:
    return flow.model_dump(mode="json")
