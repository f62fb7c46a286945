"""Bridge tool: move ETH from the source chain so the destination ends up with a target amount."""

import logging

from pydantic import Field

from src.orchestrator.agent.tools.core import (
    ToolArgs,
    ToolContext,
    ToolResult,
    _await_user,
    _err,
)
from src.orchestrator.models.flow import (
    BridgeFlow,
    BridgeFlowData,
    BridgeNextAction,
    FlowStatus,
    FlowType,
)
from src.orchestrator.models.session import ExpectedAction
from src.utils.units import chain_name, format_price, parse_ether

logger = logging.getLogger(__name__)


class PrepareBridgeArgs(ToolArgs):
    amount_eth: str = Field(
        ..., description="ETH needed on the destination chain after fees, e.g. '0.01'"
    )
    wallet_address: str | None = Field(
        default=None, description="Linked wallet to bridge from. Omit to use the only linked wallet."
    )
    next_action: BridgeNextAction = Field(
        default=BridgeNextAction.NONE,
        description="What to do once the funds land",
    )
    registration_name: str | None = Field(
        default=None, description="Name to register afterwards, with continue_registration"
    )


async def prepare_bridge_tool(args: PrepareBridgeArgs, ctx: ToolContext) -> ToolResult:
    """Solve the bridge amount, persist the flow and request the deposit signature."""
    settings = ctx.config.bridge
    ident = ctx.identity
    try:
        target = parse_ether(args.amount_eth)
    except ValueError as e:
        return _err(str(e))

    await ctx.ensure_no_flow_elsewhere()

    wallet, wallets = await ctx.pick_wallet(args.wallet_address)
    if wallet is None:
        if not wallets:
            return _err("No wallet is linked to your account. Link a wallet first.")
        return _err(
            "Tell me which wallet to bridge from: " + ", ".join(wallets)
        )

    balance = await ctx.chain.get_balance(wallet, settings.source_chain_id)
    plan = await ctx.solver.solve(target, wallet, balance)

    await ctx.flows.set_active_flow(
        BridgeFlow(
            user_id=ident.user_id,
            conversation_id=ident.conversation_id,
            channel_id=ident.channel_id,
            data=BridgeFlowData(
                source_chain_id=settings.source_chain_id,
                dest_chain_id=settings.dest_chain_id,
                amount_wei=plan.input_wei,
                target_wei=plan.target_wei,
                expected_output_wei=plan.expected_output_wei,
                fee_wei=plan.fee_wei,
                user_wallet=wallet,
                next_action=args.next_action,
                registration_name=args.registration_name,
            ),
        )
    )

    call = await ctx.chain.encode_bridge_deposit(
        plan.quote, wallet, settings.source_chain_id, settings.dest_chain_id
    )
    source = chain_name(settings.source_chain_id)
    dest = chain_name(settings.dest_chain_id)
    action = await ctx.request_signature(
        "bridge",
        f"Bridge {format_price(plan.input_wei)} ETH from {source} to {dest}",
        call,
        signer=wallet,
        expected_action=ExpectedAction.BRIDGE_DEPOSIT,
        flow_type=FlowType.BRIDGE,
    )
    await ctx.flows.update_flow_status(
        ident.user_id, ident.conversation_id, FlowStatus.AWAITING_BRIDGE
    )
    logger.info(
        "Bridge requested for %s: input=%d target=%d", ident.user_id, plan.input_wei, target
    )
    return _await_user(
        action,
        (
            f"Sign the bridge deposit on {source}: you send {format_price(plan.input_wei)} ETH "
            f"and receive about {format_price(plan.expected_output_wei)} ETH on {dest} "
            f"(fee {format_price(plan.fee_wei)} ETH)."
        ),
        data={
            "input_eth": format_price(plan.input_wei),
            "expected_output_eth": format_price(plan.expected_output_wei),
            "fee_eth": format_price(plan.fee_wei),
            "target_eth": format_price(target),
            "next_action": args.next_action.value,
        },
    )
