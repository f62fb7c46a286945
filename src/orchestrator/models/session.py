"""Conversation session models.

A ConversationSession is the short-lived chat context the agent loop
resumes from: recent messages, turn/cost accounting, and the marker for a
suspended tool call.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from src.orchestrator.models.flow import FlowType, now_ms
from src.services.state_store import escape_key_part

MAX_SESSION_MESSAGES = 20


@dataclass(frozen=True)
class ConversationIdentity:
    """Who and where: the (user, conversation) key plus the channel to reply in."""

    user_id: str
    conversation_id: str
    channel_id: str

    @property
    def key(self) -> str:
        return f"{escape_key_part(self.user_id)}:{escape_key_part(self.conversation_id)}"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    AWAITING_SIGNATURE = "awaiting_signature"
    WAITING_PERIOD = "waiting_period"
    COMPLETE = "complete"
    ERROR = "error"
    TIMEOUT = "timeout"


TERMINAL_SESSION_STATUSES = frozenset({SessionStatus.COMPLETE, SessionStatus.ERROR})
AWAITING_SESSION_STATUSES = frozenset(
    {SessionStatus.AWAITING_CONFIRMATION, SessionStatus.AWAITING_SIGNATURE}
)


class SessionMessage(BaseModel):
    role: Literal["user", "assistant", "tool_result"]
    content: str
    timestamp: int = Field(default_factory=now_ms)


class ExpectedAction(str, Enum):
    """What a suspended action is waiting for; drives how a resume is applied."""

    REGISTRATION_WALLET_SELECTION = "registration_wallet_selection"
    REGISTRATION_COMMIT = "registration_commit"
    REGISTRATION_REGISTER_CONFIRMATION = "registration_register_confirmation"
    REGISTRATION_REGISTER = "registration_register"
    BRIDGE_DEPOSIT = "bridge_deposit"
    SUBDOMAIN_STEP_1 = "subdomain_step_1"
    SUBDOMAIN_STEP_2 = "subdomain_step_2"
    SUBDOMAIN_STEP_3 = "subdomain_step_3"
    TRANSFER = "transfer"
    RENEWAL = "renewal"
    CONFIRMATION = "confirmation"


class PendingToolCall(BaseModel):
    """Marker for the action the loop is suspended on.

    Attributes:
        tool_name: Tool that suspended the loop.
        tool_id: Safety id of the interaction request.
        expected_action: What the resume path must apply, e.g. "registration_commit".
        flow_type: Flow the action belongs to; resume fails closed if it is gone.
        request_id: Chat-surface request id; resume outcomes must match it.
    """

    tool_name: str
    tool_id: str
    expected_action: ExpectedAction
    flow_type: FlowType | None = None
    request_id: str | None = None


NO_TX_HASHES = frozenset({"", "0x"})


class ActionOutcome(BaseModel):
    """An answer from the chat surface to a pending interaction request.

    Attributes:
        kind: "transaction" for signatures, "confirmation" for confirm/cancel
            forms, "selection" for option pickers (wallet choice).
        request_id: Request id the answer refers to.
        success: Signed / confirmed / picked something other than cancel.
        tx_hash: Transaction hash for signed transactions.
        selection: Chosen option id for selections.
    """

    kind: Literal["transaction", "confirmation", "selection"]
    request_id: str | None = None
    success: bool
    tx_hash: str | None = None
    selection: str | None = None

    @classmethod
    def transaction(cls, tx_hash: str | None, request_id: str | None = None) -> "ActionOutcome":
        signed = bool(tx_hash) and tx_hash not in NO_TX_HASHES
        return cls(
            kind="transaction",
            request_id=request_id,
            success=signed,
            tx_hash=tx_hash if signed else None,
        )

    @classmethod
    def confirmation(cls, button_id: str, request_id: str | None = None) -> "ActionOutcome":
        return cls(kind="confirmation", request_id=request_id, success=button_id == "confirm")

    @classmethod
    def selected(cls, option: str, request_id: str | None = None) -> "ActionOutcome":
        return cls(
            kind="selection",
            request_id=request_id,
            success=option != "cancel",
            selection=option,
        )


class CurrentAction(BaseModel):
    type: str
    step: int = 1
    total_steps: int = 1
    data: dict[str, Any] = Field(default_factory=dict)


class ConversationSession(BaseModel):
    """Rolling conversation state for one (user, conversation).

    Attributes:
        session_id: Opaque id generated at creation.
        status: Lifecycle status; complete/error sessions are not reused.
        messages: Most recent messages, capped at MAX_SESSION_MESSAGES.
        pending_tool_call: Set exactly while suspended for user action.
        turn_count: LLM calls made across the session.
        estimated_cost: Accrued LLM cost in USD.
    """

    session_id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    conversation_id: str
    channel_id: str
    status: SessionStatus = SessionStatus.ACTIVE
    messages: list[SessionMessage] = Field(default_factory=list)
    pending_tool_call: PendingToolCall | None = None
    current_action: CurrentAction | None = None
    turn_count: int = 0
    estimated_cost: float = 0.0
    started_at: int = Field(default_factory=now_ms)
    last_activity_at: int = Field(default_factory=now_ms)

    @classmethod
    def for_identity(cls, identity: ConversationIdentity) -> "ConversationSession":
        return cls(
            user_id=identity.user_id,
            conversation_id=identity.conversation_id,
            channel_id=identity.channel_id,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SESSION_STATUSES

    @property
    def is_awaiting_user_action(self) -> bool:
        return self.pending_tool_call is not None or self.status in AWAITING_SESSION_STATUSES

    def add_message(self, role: str, content: str) -> None:
        """Append a message, dropping the oldest beyond the cap."""
        self.messages.append(SessionMessage(role=role, content=content))
        if len(self.messages) > MAX_SESSION_MESSAGES:
            self.messages = self.messages[-MAX_SESSION_MESSAGES:]
        self.last_activity_at = now_ms()

    def suspend(self, pending: PendingToolCall, status: SessionStatus) -> None:
        self.pending_tool_call = pending
        self.status = status

    def clear_pending(self) -> None:
        self.pending_tool_call = None
        self.current_action = None
        self.status = SessionStatus.ACTIVE
