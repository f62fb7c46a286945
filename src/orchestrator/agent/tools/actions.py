"""Conversation-only tools: plain messages and yes/no confirmations."""

from pydantic import Field

from src.orchestrator.agent.tools.core import (
    ToolArgs,
    ToolContext,
    ToolResult,
    _await_user,
    _ok,
)
from src.orchestrator.models.session import ExpectedAction
from src.services.chat import FormButton


class SendMessageArgs(ToolArgs):
    message: str = Field(..., min_length=1)


async def send_message_tool(args: SendMessageArgs, ctx: ToolContext) -> ToolResult:
    await ctx.send_message(args.message)
    return _ok({"sent": True})


class RequestConfirmationArgs(ToolArgs):
    message: str = Field(..., min_length=1, description="Question to confirm")
    confirm_label: str = Field(default="Confirm")
    cancel_label: str = Field(default="Cancel")


async def request_confirmation_tool(
    args: RequestConfirmationArgs, ctx: ToolContext
) -> ToolResult:
    """Ask a yes/no question with buttons and wait for the answer."""
    flow = await ctx.flows.get_active_flow(
        ctx.identity.user_id, ctx.identity.conversation_id
    )
    action = await ctx.request_form(
        "confirmation",
        args.message,
        [
            FormButton(id="confirm", label=args.confirm_label),
            FormButton(id="cancel", label=args.cancel_label),
        ],
        ExpectedAction.CONFIRMATION,
        flow.flow_type if flow is not None else None,
    )
    return _await_user(action, args.message)
