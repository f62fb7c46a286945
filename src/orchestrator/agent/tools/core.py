"""Shared internals for agent tools.

Contains the ToolContext handed to every handler, the ToolResult /
UserAction types, response helpers (_ok/_err/_await_user), safety id
generation, and the ToolDefinition wrapper that validates arguments at the
boundary. All tool handler submodules import from here.
"""

import json
import logging
import secrets
import string
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from src.config import AppConfig
from src.errors.domain import ActiveFlowConflictError, DomainError
from src.errors.formatter import AgentError, format_error
from src.orchestrator.bridge.solver import BridgeAmountSolver
from src.orchestrator.models.flow import FlowType
from src.orchestrator.models.session import ConversationIdentity, ExpectedAction
from src.services.chain import ChainClient, ChainError, EncodedCall
from src.services.chat import (
    ChatSurface,
    FormButton,
    FormRequest,
    InteractionPayload,
    TransactionRequest,
)
from src.services.flow_repository import FlowRepository
from src.utils.units import same_address

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_letters + string.digits
_SAFE_ID_SUFFIX_LENGTH = 24


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class UserAction:
    """Out-of-band action the user must take before the loop can continue.

    Attributes:
        kind: "transaction" (signature) or "form" (button pick).
        tool_id: Safety id of the interaction request.
        request_id: Id of the interaction request sent to the chat surface,
            which the surface answers with (same as tool_id).
        expected_action: Tag the resume path uses to apply the outcome.
        flow_type: Flow this action advances, if any.
        payload: The interaction request that was sent.
    """

    kind: Literal["transaction", "form"]
    tool_id: str
    request_id: str
    expected_action: ExpectedAction
    flow_type: FlowType | None
    payload: InteractionPayload


@dataclass
class ToolResult:
    success: bool
    data: Any = None
    error: str | None = None
    display_message: str | None = None
    requires_user_action: bool = False
    user_action: UserAction | None = None

    def to_content(self) -> str:
        """Serialize for a tool_result block."""
        body: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            body["data"] = self.data
        if self.error:
            body["error"] = self.error
        if self.display_message:
            body["display_message"] = self.display_message
        return json.dumps(body, default=str)


# ---------------------------------------------------------------------------
# Response Helpers
# ---------------------------------------------------------------------------


def _ok(data: Any = None, display_message: str | None = None) -> ToolResult:
    return ToolResult(success=True, data=data, display_message=display_message)


def _err(message: str) -> ToolResult:
    return ToolResult(success=False, error=message)


def _domain_err(exc: DomainError) -> ToolResult:
    """Turn a domain error into a precise, user-safe failure result."""
    return _err(format_error(exc.to_agent_error()))


def _await_user(
    action: UserAction, display_message: str, data: Any = None
) -> ToolResult:
    return ToolResult(
        success=True,
        data=data,
        display_message=display_message,
        requires_user_action=True,
        user_action=action,
    )


def generate_safe_id(prefix: str, action: str) -> str:
    """Id matching ^[A-Za-z0-9_-]+$, e.g. tx_commit_AbC...(24 chars)."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_SAFE_ID_SUFFIX_LENGTH))
    clean_action = "".join(ch if ch.isalnum() or ch in "_-" else "_" for ch in action)
    return f"{prefix}_{clean_action}_{suffix}"


# ---------------------------------------------------------------------------
# Tool context
# ---------------------------------------------------------------------------


@dataclass
class ToolContext:
    """Per-turn dependencies shared by every tool handler.

    Attributes:
        identity: The conversation the turn belongs to.
        chain: Chain collaborator.
        chat: Chat-surface collaborator.
        flows: Flow repository.
        solver: Bridge amount solver.
        config: Application configuration.
    """

    identity: ConversationIdentity
    chain: ChainClient
    chat: ChatSurface
    flows: FlowRepository
    solver: BridgeAmountSolver
    config: AppConfig = field(default_factory=AppConfig)

    async def send_message(self, text: str) -> None:
        await self.chat.send_message(
            self.identity.channel_id, text, conversation_id=self.identity.conversation_id
        )

    async def request_signature(
        self,
        action: str,
        title: str,
        call: EncodedCall,
        signer: str,
        expected_action: ExpectedAction,
        flow_type: FlowType | None,
    ) -> UserAction:
        """Send a transaction for signing and describe the pending action."""
        tool_id = generate_safe_id("tx", action)
        payload = TransactionRequest(
            id=tool_id,
            title=title,
            chain_id=call.chain_id,
            to=call.to,
            data=call.data,
            value_wei=call.value_wei,
            signer=signer,
            recipient=self.identity.user_id,
        )
        await self.chat.send_interaction_request(
            self.identity.channel_id, payload, conversation_id=self.identity.conversation_id
        )
        return UserAction(
            kind="transaction",
            tool_id=tool_id,
            request_id=tool_id,
            expected_action=expected_action,
            flow_type=flow_type,
            payload=payload,
        )

    async def request_form(
        self,
        action: str,
        title: str,
        buttons: list[FormButton],
        expected_action: ExpectedAction,
        flow_type: FlowType | None,
    ) -> UserAction:
        tool_id = generate_safe_id("confirm", action)
        payload = FormRequest(
            id=tool_id,
            title=title,
            components=buttons,
            recipient=self.identity.user_id,
        )
        await self.chat.send_interaction_request(
            self.identity.channel_id, payload, conversation_id=self.identity.conversation_id
        )
        return UserAction(
            kind="form",
            tool_id=tool_id,
            request_id=tool_id,
            expected_action=expected_action,
            flow_type=flow_type,
            payload=payload,
        )

    async def pick_wallet(self, requested: str | None) -> tuple[str | None, list[str]]:
        """Match ``requested`` against the user's linked wallets.

        Returns:
            (wallet, linked_wallets). wallet is the linked address matching
            ``requested`` (case-insensitive), the only linked wallet when
            nothing was requested, or None when ambiguous or unmatched.
        """
        wallets = await self.chain.get_linked_wallets(self.identity.user_id)
        if requested:
            match = next((w for w in wallets if same_address(w, requested)), None)
            return match, wallets
        if len(wallets) == 1:
            return wallets[0], wallets
        return None, wallets

    async def ensure_no_flow_elsewhere(self) -> None:
        """Refuse to start a flow while another conversation has a live one.

        Raises:
            ActiveFlowConflictError: With the other flow's type.
        """
        found = await self.flows.has_any_active_flow(self.identity.user_id)
        if found is None:
            return
        conversation_id, flow = found
        if conversation_id != self.identity.conversation_id:
            raise ActiveFlowConflictError(flow.type, conversation_id)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


class ToolArgs(BaseModel):
    """Base for per-tool argument models. Unknown arguments are rejected."""

    model_config = ConfigDict(extra="forbid")


class NoArgs(ToolArgs):
    pass


ToolHandler = Callable[[Any, ToolContext], Awaitable[ToolResult]]


@dataclass
class ToolDefinition:
    """A tool the model can call.

    The handler receives a validated instance of ``args_model``, never the
    raw argument dict.
    """

    name: str
    description: str
    args_model: type[ToolArgs]
    handler: ToolHandler

    @property
    def input_schema(self) -> dict[str, Any]:
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema

    def to_llm_schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }

    async def execute(self, raw_args: dict[str, Any], ctx: ToolContext) -> ToolResult:
        """Validate arguments and run the handler.

        Argument validation failures, domain errors and chain errors become
        failed results; anything else propagates to the loop.
        """
        try:
            args = self.args_model.model_validate(raw_args or {})
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'args'}: {err['msg']}"
                for err in e.errors()
            )
            return _err(
                AgentError.from_code("E-1003", tool=self.name, details=problems).message
            )
        try:
            return await self.handler(args, ctx)
        except DomainError as e:
            logger.info("Tool %s domain error: %s", self.name, e)
            return _domain_err(e)
        except ChainError as e:
            logger.error("Tool %s chain error: %s", self.name, e)
            return _err(format_error(AgentError.from_code("E-3002", details="network call failed")))
