"""Subdomain creation tools.

Creating ``label.parent`` for someone else takes three transactions:
create the subdomain with the user's wallet as temporary owner, point it
at the resolve address, then hand ownership to the recipient. When the
resolve address is the user's own wallet, the transfer is skipped and the
flow has two steps.
"""

import logging

from pydantic import Field

from src.errors.domain import SubdomainExistsError, SubdomainLockedError
from src.orchestrator.agent.tools.core import (
    NoArgs,
    ToolArgs,
    ToolContext,
    ToolResult,
    _await_user,
    _err,
)
from src.orchestrator.agent.tools.names import _owning_wallet
from src.orchestrator.models.flow import (
    FlowStatus,
    FlowType,
    SubdomainFlow,
    SubdomainFlowData,
)
from src.orchestrator.models.session import ExpectedAction
from src.utils.ens_names import normalize_subdomain_label
from src.utils.units import is_address, same_address

logger = logging.getLogger(__name__)


class PrepareSubdomainArgs(ToolArgs):
    parent_name: str = Field(..., description="Parent name the user owns, e.g. alice.eth")
    label: str = Field(..., description="Subdomain label, e.g. 'pay' for pay.alice.eth")
    resolve_address: str = Field(
        ..., description="0x address the subdomain resolves to and is owned by"
    )


async def prepare_subdomain_tool(args: PrepareSubdomainArgs, ctx: ToolContext) -> ToolResult:
    """Start a subdomain flow and request the create transaction (step 1)."""
    ident = ctx.identity
    parent = args.parent_name.strip().lower()
    label = normalize_subdomain_label(args.label)
    if not is_address(args.resolve_address):
        return _err(f"{args.resolve_address} is not a valid 0x address.")
    full_name = f"{label}.{parent}"

    await ctx.ensure_no_flow_elsewhere()
    owner, ownership = await _owning_wallet(ctx, parent)
    if not ownership.can_create_subdomains:
        raise SubdomainLockedError(parent)
    if await ctx.chain.name_exists(full_name):
        raise SubdomainExistsError(full_name)

    total_steps = 2 if same_address(args.resolve_address, owner) else 3
    await ctx.flows.set_active_flow(
        SubdomainFlow(
            user_id=ident.user_id,
            conversation_id=ident.conversation_id,
            channel_id=ident.channel_id,
            data=SubdomainFlowData(
                subdomain=label,
                parent_domain=parent,
                full_name=full_name,
                resolve_address=args.resolve_address,
                recipient=args.resolve_address,
                owner_wallet=owner,
                is_wrapped=ownership.is_wrapped,
                total_steps=total_steps,
            ),
        )
    )

    call = await ctx.chain.encode_create_subdomain(parent, label, owner, ownership.is_wrapped)
    action = await ctx.request_signature(
        "subdomain_create",
        f"Create {full_name} (step 1 of {total_steps})",
        call,
        signer=owner,
        expected_action=ExpectedAction.SUBDOMAIN_STEP_1,
        flow_type=FlowType.SUBDOMAIN,
    )
    await ctx.flows.update_flow_status(
        ident.user_id, ident.conversation_id, FlowStatus.STEP1_PENDING
    )
    logger.info("Subdomain %s started (%d steps)", full_name, total_steps)
    return _await_user(
        action,
        f"Sign step 1 of {total_steps} to create {full_name}.",
        data={"name": full_name, "total_steps": total_steps, "owner": owner},
    )


async def continue_subdomain_tool(args: NoArgs, ctx: ToolContext) -> ToolResult:
    """Request the next subdomain transaction after the previous one was signed."""
    ident = ctx.identity
    flow = await ctx.flows.get_active_flow(ident.user_id, ident.conversation_id)
    if flow is None or flow.flow_type != FlowType.SUBDOMAIN:
        return _err("There is no subdomain creation in progress.")
    data = flow.data

    if flow.status == FlowStatus.STEP1_COMPLETE:
        call = await ctx.chain.encode_set_address(data.full_name, data.resolve_address)
        action = await ctx.request_signature(
            "subdomain_address",
            f"Point {data.full_name} at {data.resolve_address} (step 2 of {data.total_steps})",
            call,
            signer=data.owner_wallet,
            expected_action=ExpectedAction.SUBDOMAIN_STEP_2,
            flow_type=FlowType.SUBDOMAIN,
        )
        await ctx.flows.update_flow_status(
            ident.user_id, ident.conversation_id, FlowStatus.STEP2_PENDING
        )
        return _await_user(
            action,
            f"Sign step 2 of {data.total_steps} to set the address of {data.full_name}.",
            data={"name": data.full_name, "step": 2, "total_steps": data.total_steps},
        )

    if flow.status == FlowStatus.STEP2_COMPLETE:
        call = await ctx.chain.encode_subdomain_transfer(
            data.full_name, data.owner_wallet, data.recipient, data.is_wrapped
        )
        action = await ctx.request_signature(
            "subdomain_transfer",
            f"Transfer {data.full_name} to {data.recipient} (step 3 of 3)",
            call,
            signer=data.owner_wallet,
            expected_action=ExpectedAction.SUBDOMAIN_STEP_3,
            flow_type=FlowType.SUBDOMAIN,
        )
        await ctx.flows.update_flow_status(
            ident.user_id, ident.conversation_id, FlowStatus.STEP3_PENDING
        )
        return _await_user(
            action,
            f"Sign step 3 of 3 to hand {data.full_name} to {data.recipient}.",
            data={"name": data.full_name, "step": 3, "total_steps": 3},
        )

    return _err(
        f"The subdomain flow is at '{flow.status.value}'; wait for the pending "
        "transaction before continuing."
    )
