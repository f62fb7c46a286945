"""Chat-event entry points.

Adapts inbound chat-surface events (a user message, the answer to a
signature request or form) to the orchestration agent. Each event is
handled independently; per-conversation ordering is enforced by the
agent's locks.

Example:
    handler = ConversationHandler(agent, chat)
    await handler.handle_message(IncomingMessage(user_id="u1", ...))
"""

import logging
from typing import Literal

from pydantic import BaseModel, Field

from src.errors.formatter import AgentError, format_error
from src.orchestrator.agent.client import AgentRunResult, OrchestrationAgent
from src.orchestrator.models.session import ActionOutcome, ConversationIdentity
from src.services.chat import ChatSurface

logger = logging.getLogger(__name__)


class IncomingMessage(BaseModel):
    user_id: str
    conversation_id: str
    channel_id: str
    text: str = ""

    @property
    def identity(self) -> ConversationIdentity:
        return ConversationIdentity(self.user_id, self.conversation_id, self.channel_id)


class InteractionResponse(BaseModel):
    """Answer to an interaction request.

    Attributes:
        kind: "transaction" for signature requests, "form" for button forms.
        request_id: Request id the answer refers to.
        tx_hash: Hash of the signed transaction; empty or "0x" when rejected.
        button_id: Button the user picked on a form.
    """

    user_id: str
    conversation_id: str
    channel_id: str
    kind: Literal["transaction", "form"]
    request_id: str | None = None
    tx_hash: str | None = None
    button_id: str | None = Field(default=None)

    @property
    def identity(self) -> ConversationIdentity:
        return ConversationIdentity(self.user_id, self.conversation_id, self.channel_id)

    def to_outcome(self) -> ActionOutcome:
        if self.kind == "transaction":
            return ActionOutcome.transaction(self.tx_hash, request_id=self.request_id)
        button = self.button_id or "cancel"
        if button in ("confirm", "cancel"):
            return ActionOutcome.confirmation(button, request_id=self.request_id)
        return ActionOutcome.selected(button, request_id=self.request_id)


class ConversationHandler:
    """Routes chat events to the agent and shields the user from internal failures."""

    def __init__(self, agent: OrchestrationAgent, chat: ChatSurface) -> None:
        self.agent = agent
        self.chat = chat

    async def handle_message(self, event: IncomingMessage) -> AgentRunResult:
        identity = event.identity
        try:
            return await self.agent.run(event.text, identity)
        except Exception:
            logger.exception("Failed to handle message for %s", identity.key)
            return await self._apologize(identity)

    async def handle_interaction_response(self, event: InteractionResponse) -> AgentRunResult:
        identity = event.identity
        outcome = event.to_outcome()
        logger.info(
            "Interaction response for %s: kind=%s success=%s",
            identity.key, outcome.kind, outcome.success,
        )
        try:
            return await self.agent.resume(identity, outcome)
        except Exception:
            logger.exception("Failed to resume %s", identity.key)
            return await self._apologize(identity)

    async def handle_cancel(self, event: IncomingMessage) -> AgentRunResult:
        identity = event.identity
        try:
            return await self.agent.cancel(identity)
        except Exception:
            logger.exception("Failed to cancel for %s", identity.key)
            return await self._apologize(identity)

    async def _apologize(self, identity: ConversationIdentity) -> AgentRunResult:
        error = AgentError.from_code("E-4010")
        message = format_error(error)
        await self.chat.send_message(
            identity.channel_id, message, conversation_id=identity.conversation_id
        )
        return AgentRunResult(status="error", message=message, error_code=error.code)
