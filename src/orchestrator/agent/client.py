"""Orchestration agent: the bounded, suspendable tool-calling loop.

The OrchestrationAgent drives the model through a sequence of tool calls
for one conversation. A turn calls the model once and runs the tools it
asked for. The loop ends when the model stops calling tools, when a tool
needs the user to sign or confirm something (the loop suspends), or when
the per-invocation turn cap is reached.

Entry points:
- run(message, identity): a new user message.
- resume(identity, outcome): the answer to a pending signature or form.
- cancel(identity): drop the pending action and the in-flight flow.

All three hold the conversation's lock for their whole read-modify-write,
and the commit-reveal continuation takes the same lock.
"""

import logging
from dataclasses import dataclass
from typing import Any, Literal

from src.config import AppConfig
from src.errors.domain import DomainError
from src.errors.formatter import AgentError, format_error
from src.orchestrator.agent.llm import LLMCallError, LLMClient, LLMParseError
from src.orchestrator.agent.system_prompt import build_system_prompt
from src.orchestrator.agent.tools import ToolRegistry
from src.orchestrator.agent.tools.core import ToolContext, ToolResult
from src.orchestrator.bridge.solver import BridgeAmountSolver
from src.orchestrator.flow_progress import FlowProgressor, outcome_matches
from src.orchestrator.models.flow import FlowStatus, FlowType
from src.orchestrator.models.session import (
    ActionOutcome,
    ConversationIdentity,
    ConversationSession,
    CurrentAction,
    PendingToolCall,
    SessionStatus,
)
from src.orchestrator.registration.waiter import CommitRevealWaiter
from src.services.agent_session_manager import ConversationSessionStore, KeyedLocks
from src.services.chain import ChainClient
from src.services.chat import ChatSurface
from src.services.flow_repository import FlowRepository
from src.services.metrics import MetricEvent, MetricsRecorder
from src.services.state_store import StateBackendError

logger = logging.getLogger(__name__)

CANCEL_PHRASES = frozenset({"cancel", "stop", "nevermind", "never mind", "abort"})
DONE_PHRASES = frozenset({"done", "signed", "completed", "confirmed"})

RunStatus = Literal["complete", "awaiting_action", "error", "max_turns", "parser_error"]


def _normalize_utterance(text: str) -> str:
    return text.strip().lower().rstrip(".!")


def is_cancel_request(text: str) -> bool:
    return _normalize_utterance(text) in CANCEL_PHRASES


def is_done_claim(text: str) -> bool:
    return _normalize_utterance(text) in DONE_PHRASES


@dataclass
class AgentRunResult:
    """Outcome of one run / resume / cancel call.

    Attributes:
        status: complete, awaiting_action, error, max_turns or parser_error.
        message: Last text shown to the user, if any.
        error_code: Registry code for error outcomes.
        session: The session as saved at the end of the call.
        turns: LLM calls made during this call.
    """

    status: RunStatus
    message: str | None = None
    error_code: str | None = None
    session: ConversationSession | None = None
    turns: int = 0


class OrchestrationAgent:
    """Runs the agent loop for any number of conversations.

    Collaborators are injected once at startup and shared across requests;
    all per-conversation state lives in the session and flow stores.
    """

    def __init__(
        self,
        llm: LLMClient,
        sessions: ConversationSessionStore,
        flows: FlowRepository,
        chain: ChainClient,
        chat: ChatSurface,
        solver: BridgeAmountSolver,
        locks: KeyedLocks | None = None,
        tools: ToolRegistry | None = None,
        waiter: CommitRevealWaiter | None = None,
        progressor: FlowProgressor | None = None,
        metrics: MetricsRecorder | None = None,
        config: AppConfig | None = None,
    ) -> None:
        self.llm = llm
        self.sessions = sessions
        self.flows = flows
        self.chain = chain
        self.chat = chat
        self.solver = solver
        self.locks = locks or KeyedLocks()
        self.tools = tools or ToolRegistry()
        self.waiter = waiter
        self.metrics = metrics or MetricsRecorder()
        self.progressor = progressor or FlowProgressor(flows, self.metrics, waiter)
        self.config = config or AppConfig()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run(self, message: str, identity: ConversationIdentity) -> AgentRunResult:
        """Handle a new user message."""
        text = (message or "").strip()
        if not text:
            return AgentRunResult(
                status="error",
                message=format_error(AgentError.from_code("E-1001")),
                error_code="E-1001",
            )

        async with self.locks.hold(identity.key):
            session = await self.sessions.get_or_create(identity)
            if session.turn_count == 0 and not session.messages:
                await self.metrics.track(
                    MetricEvent.AGENT_SESSION_STARTED, user_id=identity.user_id
                )

            if is_cancel_request(text):
                flow = await self.flows.get_active_flow(
                    identity.user_id, identity.conversation_id
                )
                if session.is_awaiting_user_action or flow is not None:
                    return await self._cancel_locked(identity, session)

            if session.is_awaiting_user_action:
                if not is_done_claim(text):
                    return await self._remind_pending(identity, session)
                text = self._note_manual_completion(session, text)

            return await self._run_loop(session, identity, text)

    async def resume(
        self, identity: ConversationIdentity, outcome: ActionOutcome
    ) -> AgentRunResult:
        """Continue a suspended conversation with the user's answer."""
        async with self.locks.hold(identity.key):
            session = await self.sessions.get(identity.user_id, identity.conversation_id)
            if session is None:
                return self._error_result("E-4011")

            pending = session.pending_tool_call
            if pending is None:
                return self._error_result("E-4012", session)

            if (
                pending.request_id
                and outcome.request_id
                and outcome.request_id != pending.request_id
            ) or not outcome_matches(pending, outcome):
                logger.warning(
                    "Stale action for %s: expected %s (%s), got %s (%s)",
                    identity.key, pending.request_id, pending.expected_action.value,
                    outcome.request_id, outcome.kind,
                )
                return self._error_result("E-4002", session)

            if pending.flow_type is not None:
                flow = await self.flows.get_active_flow(
                    identity.user_id, identity.conversation_id
                )
                if flow is None or flow.flow_type != pending.flow_type:
                    logger.warning(
                        "Pending %s for %s references a %s flow that is gone",
                        pending.expected_action.value, identity.key, pending.flow_type.value,
                    )
                    session.clear_pending()
                    await self.sessions.save(session)
                    result = self._error_result("E-4001", session)
                    await self._send(identity, result.message)
                    return result

            try:
                progress = await self.progressor.apply(identity, pending, outcome)
            except DomainError as e:
                logger.error(
                    "Could not apply %s for %s: %s",
                    pending.expected_action.value, identity.key, e,
                )
                session.clear_pending()
                await self.sessions.save(session)
                result = self._error_result("E-4001", session)
                await self._send(identity, result.message)
                return result
            session.clear_pending()
            return await self._run_loop(session, identity, progress.message)

    async def cancel(self, identity: ConversationIdentity) -> AgentRunResult:
        """Drop any pending action and in-flight flow for the conversation."""
        async with self.locks.hold(identity.key):
            session = await self.sessions.get(identity.user_id, identity.conversation_id)
            return await self._cancel_locked(identity, session)

    # ------------------------------------------------------------------
    # Gating
    # ------------------------------------------------------------------

    async def _cancel_locked(
        self, identity: ConversationIdentity, session: ConversationSession | None
    ) -> AgentRunResult:
        cleared = await self.flows.clear_active_flow(identity.user_id, identity.conversation_id)
        if self.waiter is not None:
            self.waiter.cancel(identity)
        had_pending = session is not None and session.pending_tool_call is not None

        if cleared or had_pending:
            ack = "Cancelled. Nothing else will be sent for you to sign."
            await self.metrics.track(MetricEvent.FLOW_CANCELLED, user_id=identity.user_id)
        else:
            ack = "There was nothing to cancel."

        if session is not None:
            session.clear_pending()
            session.add_message("user", "cancel")
            session.add_message("assistant", ack)
            await self.sessions.save(session)
        await self._send(identity, ack)
        logger.info("Cancelled pending work for %s (flow cleared=%s)", identity.key, cleared)
        return AgentRunResult(status="complete", message=ack, session=session)

    async def _remind_pending(
        self, identity: ConversationIdentity, session: ConversationSession
    ) -> AgentRunResult:
        reply = (
            "I'm still waiting for you to complete the pending action. "
            "Finish it in the request I sent, or say 'cancel' to stop."
        )
        await self._send(identity, reply)
        return AgentRunResult(status="awaiting_action", message=reply, session=session)

    def _note_manual_completion(self, session: ConversationSession, text: str) -> str:
        pending = session.pending_tool_call
        action = pending.expected_action.value if pending else "the pending action"
        session.clear_pending()
        return (
            f"{text}\n\n[SYSTEM: The user says they completed the pending action "
            f"({action}) outside the request flow. Check the operation status before "
            "continuing.]"
        )

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _build_window(self, session: ConversationSession, new_text: str) -> list[dict[str, Any]]:
        """Recent user/assistant history with strictly alternating roles, then ``new_text``."""
        recent = [m for m in session.messages if m.role in ("user", "assistant")]
        recent = recent[-self.config.agent.history_window:] if self.config.agent.history_window else []

        window: list[dict[str, Any]] = []
        for msg in recent:
            if window and window[-1]["role"] == msg.role:
                window[-1]["content"] += "\n\n" + msg.content
            else:
                window.append({"role": msg.role, "content": msg.content})
        while window and window[0]["role"] != "user":
            window.pop(0)

        if window and window[-1]["role"] == "user":
            window[-1]["content"] += "\n\n" + new_text
        else:
            window.append({"role": "user", "content": new_text})
        return window

    def _turn_cost(self, input_tokens: int, output_tokens: int) -> float:
        agent = self.config.agent
        return (
            input_tokens * agent.input_cost_per_1k + output_tokens * agent.output_cost_per_1k
        ) / 1000

    async def _run_loop(
        self, session: ConversationSession, identity: ConversationIdentity, user_text: str
    ) -> AgentRunResult:
        window = self._build_window(session, user_text)
        session.add_message("user", user_text)
        ctx = ToolContext(
            identity=identity,
            chain=self.chain,
            chat=self.chat,
            flows=self.flows,
            solver=self.solver,
            config=self.config,
        )
        max_turns = self.config.agent.max_turns
        turns = 0
        last_text: str | None = None

        try:
            flow = await self.flows.get_active_flow(identity.user_id, identity.conversation_id)
            system = build_system_prompt(flow, self.config)
            schemas = self.tools.schemas()

            while turns < max_turns:
                turns += 1
                session.turn_count += 1
                response = await self.llm.complete(system, schemas, window)
                session.estimated_cost += self._turn_cost(
                    response.usage.input_tokens, response.usage.output_tokens
                )

                text = response.text
                if text:
                    await self._send(identity, text)
                    session.add_message("assistant", text)
                    last_text = text

                invocations = response.tool_invocations
                if not invocations:
                    return await self._finish(session, identity, last_text, turns)

                window.append({"role": "assistant", "content": response.to_assistant_content()})
                result_blocks: list[dict[str, Any]] = []
                for invocation in invocations:
                    result = await self._execute_tool(invocation.name, invocation.arguments, ctx)
                    result_blocks.append(
                        {
                            "type": "tool_result",
                            "tool_use_id": invocation.id,
                            "content": result.to_content(),
                            "is_error": not result.success,
                        }
                    )
                    if result.requires_user_action and result.user_action is not None:
                        return await self._suspend(
                            session, identity, invocation.name, result, turns
                        )
                window.append({"role": "user", "content": result_blocks})

            return await self._max_turns(session, identity, turns)

        except LLMParseError as e:
            logger.warning("Unparseable model response for %s: %s", identity.key, e)
            session.status = SessionStatus.ACTIVE
            error = AgentError.from_code("E-1002", details=str(e))
            return await self._fail(session, identity, "parser_error", error, turns)
        except LLMCallError as e:
            logger.error("LLM call failed for %s: %s", identity.key, e)
            session.status = SessionStatus.ERROR
            return await self._fail(
                session, identity, "error", AgentError.from_code("E-3001"), turns
            )
        except Exception:
            logger.exception("Agent loop failed for %s", identity.key)
            session.status = SessionStatus.ERROR
            return await self._fail(
                session, identity, "error", AgentError.from_code("E-4010"), turns
            )

    async def _execute_tool(
        self, name: str, arguments: dict[str, Any], ctx: ToolContext
    ) -> ToolResult:
        tool = self.tools.get(name)
        if tool is None:
            logger.warning("Model called unknown tool %s", name)
            return ToolResult(success=False, error=f"Unknown tool: {name}")
        await self.metrics.track(
            MetricEvent.AGENT_TOOL_USED, user_id=ctx.identity.user_id, tool=name
        )
        return await tool.execute(arguments, ctx)

    # ------------------------------------------------------------------
    # Endings
    # ------------------------------------------------------------------

    async def _suspend(
        self,
        session: ConversationSession,
        identity: ConversationIdentity,
        tool_name: str,
        result: ToolResult,
        turns: int,
    ) -> AgentRunResult:
        action = result.user_action
        display = result.display_message or (
            f"Waiting for you to complete: {action.expected_action.value.replace('_', ' ')}."
        )
        session.add_message("assistant", display)
        session.suspend(
            PendingToolCall(
                tool_name=tool_name,
                tool_id=action.tool_id,
                expected_action=action.expected_action,
                flow_type=action.flow_type,
                request_id=action.request_id,
            ),
            SessionStatus.AWAITING_SIGNATURE
            if action.kind == "transaction"
            else SessionStatus.AWAITING_CONFIRMATION,
        )
        session.current_action = CurrentAction(
            type=action.expected_action.value,
            data=result.data if isinstance(result.data, dict) else {},
        )
        await self.sessions.save(session)
        await self.metrics.track(
            MetricEvent.AGENT_AWAITING_ACTION,
            user_id=identity.user_id,
            action=action.expected_action.value,
        )
        logger.info(
            "Suspended %s on %s (%s)", identity.key, tool_name, action.expected_action.value
        )
        return AgentRunResult(
            status="awaiting_action", message=display, session=session, turns=turns
        )

    async def _finish(
        self,
        session: ConversationSession,
        identity: ConversationIdentity,
        last_text: str | None,
        turns: int,
    ) -> AgentRunResult:
        flow = await self.flows.get_active_flow(identity.user_id, identity.conversation_id)
        if (
            flow is not None
            and flow.flow_type == FlowType.REGISTRATION
            and flow.status == FlowStatus.STEP1_COMPLETE
        ):
            session.status = SessionStatus.WAITING_PERIOD
        else:
            session.status = SessionStatus.ACTIVE
        session.pending_tool_call = None
        await self.sessions.save(session)
        await self.metrics.track(
            MetricEvent.AGENT_SESSION_COMPLETED, user_id=identity.user_id, turns=turns
        )
        return AgentRunResult(status="complete", message=last_text, session=session, turns=turns)

    async def _max_turns(
        self, session: ConversationSession, identity: ConversationIdentity, turns: int
    ) -> AgentRunResult:
        logger.warning("Turn limit reached for %s after %d turns", identity.key, turns)
        session.status = SessionStatus.ERROR
        await self.metrics.track(MetricEvent.AGENT_MAX_TURNS, user_id=identity.user_id)
        error = AgentError.from_code("E-5001", max_turns=self.config.agent.max_turns)
        message = format_error(error)
        await self._send(identity, message)
        session.add_message("assistant", message)
        await self.sessions.save(session)
        return AgentRunResult(
            status="max_turns",
            message=message,
            error_code=error.code,
            session=session,
            turns=turns,
        )

    async def _fail(
        self,
        session: ConversationSession,
        identity: ConversationIdentity,
        status: RunStatus,
        error: AgentError,
        turns: int,
    ) -> AgentRunResult:
        await self.metrics.track(
            MetricEvent.ERROR_OCCURRED, user_id=identity.user_id, code=error.code
        )
        message = format_error(error)
        try:
            await self._send(identity, message)
            await self.sessions.save(session)
        except StateBackendError as e:
            logger.error("Could not save session %s after failure: %s", identity.key, e)
        return AgentRunResult(
            status=status,
            message=message,
            error_code=error.code,
            session=session,
            turns=turns,
        )

    def _error_result(
        self, code: str, session: ConversationSession | None = None
    ) -> AgentRunResult:
        return AgentRunResult(
            status="error",
            message=format_error(AgentError.from_code(code)),
            error_code=code,
            session=session,
        )

    async def _send(self, identity: ConversationIdentity, text: str | None) -> None:
        if not text:
            return
        await self.chat.send_message(
            identity.channel_id, text, conversation_id=identity.conversation_id
        )
