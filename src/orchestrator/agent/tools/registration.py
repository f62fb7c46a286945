"""Registration tools: prepare the commit, then complete the register step.

Registration is commit-reveal. ``prepare_registration`` builds and stores
the commitment and asks the user to sign the commit. Once it is signed the
commit-reveal waiter takes over. After the mandatory wait it re-estimates
gas, moves the flow to step2_pending and asks the user to confirm. Then
``complete_registration`` sends the register transaction.
"""

import logging
import secrets

from pydantic import Field

from src.errors.domain import (
    CommitmentWindowError,
    InsufficientBalanceError,
    InvalidDurationError,
    NameUnavailableError,
    OwnershipMismatchError,
)
from src.orchestrator.agent.tools.core import (
    NoArgs,
    ToolArgs,
    ToolContext,
    ToolResult,
    _await_user,
    _err,
)
from src.orchestrator.models.flow import (
    Commitment,
    FlowStatus,
    FlowType,
    RegistrationCosts,
    RegistrationFlow,
    RegistrationFlowData,
    now_ms,
)
from src.orchestrator.models.session import ExpectedAction
from src.services.chain import RegistrationParams
from src.services.chat import FormButton
from src.utils.ens_names import normalize_eth_name, years_to_seconds
from src.utils.units import chain_name, format_price, same_address, short_address

logger = logging.getLogger(__name__)


class PrepareRegistrationArgs(ToolArgs):
    name: str = Field(..., description="Name to register, e.g. alice.eth")
    years: int = Field(default=1, ge=1, description="Registration length in years")
    wallet_address: str | None = Field(
        default=None,
        description="Linked wallet that will own the name. Omit to use the only linked wallet.",
    )


async def _ask_for_wallet(
    ctx: ToolContext, full_name: str, years: int, wallets: list[str]
) -> ToolResult:
    ident = ctx.identity
    flow = RegistrationFlow(
        user_id=ident.user_id,
        conversation_id=ident.conversation_id,
        channel_id=ident.channel_id,
        data=RegistrationFlowData(name=full_name, duration_years=years),
    )
    await ctx.flows.set_active_flow(flow)
    buttons = [FormButton(id=w, label=short_address(w)) for w in wallets]
    buttons.append(FormButton(id="cancel", label="Cancel"))
    action = await ctx.request_form(
        "wallet_selection",
        f"Which wallet should own {full_name}?",
        buttons,
        ExpectedAction.REGISTRATION_WALLET_SELECTION,
        FlowType.REGISTRATION,
    )
    await ctx.flows.update_flow_status(
        ident.user_id, ident.conversation_id, FlowStatus.AWAITING_WALLET
    )
    return _await_user(
        action,
        f"You have {len(wallets)} linked wallets. Pick the one that should own {full_name}.",
        data={"name": full_name, "wallets": wallets},
    )


async def prepare_registration_tool(
    args: PrepareRegistrationArgs, ctx: ToolContext
) -> ToolResult:
    """Build the commitment, persist the flow and request the commit signature."""
    settings = ctx.config.registration
    ident = ctx.identity
    full_name, label = normalize_eth_name(args.name)
    if args.years > settings.max_years:
        raise InvalidDurationError(args.years, settings.max_years)

    await ctx.ensure_no_flow_elsewhere()

    availability = await ctx.chain.check_availability(full_name)
    if not availability.available:
        raise NameUnavailableError(full_name)

    wallet, wallets = await ctx.pick_wallet(args.wallet_address)
    if not wallets:
        return _err("No wallet is linked to your account. Link a wallet first.")
    if wallet is None and args.wallet_address:
        return _err(f"{args.wallet_address} is not one of your linked wallets.")
    if wallet is None:
        return await _ask_for_wallet(ctx, full_name, args.years, wallets)

    duration = years_to_seconds(args.years)
    price = await ctx.chain.rent_price(label, duration)
    params = RegistrationParams(
        label=label,
        owner=wallet,
        duration_sec=duration,
        secret="0x" + secrets.token_hex(32),
    )
    commitment_hash = await ctx.chain.make_commitment(params)
    commit_gas = await ctx.chain.estimate_commit_gas(commitment_hash, wallet)
    register_gas = await ctx.chain.estimate_register_gas(params, price, provisional=True)
    costs = RegistrationCosts(
        commit_gas_wei=commit_gas.cost_wei,
        register_gas_wei=register_gas.cost_wei,
        is_register_estimate=True,
    )
    total = costs.total_wei(price)

    balance = await ctx.chain.get_balance(wallet, settings.chain_id)
    if balance < total:
        raise InsufficientBalanceError(chain_name(settings.chain_id), total, balance)

    data = RegistrationFlowData(
        name=full_name,
        duration_years=args.years,
        commitment=Commitment(
            name=label,
            secret=params.secret,
            commitment=commitment_hash,
            owner=wallet,
            duration_sec=duration,
            domain_price_wei=price,
        ),
        costs=costs,
        selected_wallet=wallet,
    )

    existing = await ctx.flows.get_active_flow(ident.user_id, ident.conversation_id)
    if (
        existing is not None
        and existing.flow_type == FlowType.REGISTRATION
        and existing.status == FlowStatus.AWAITING_WALLET
        and existing.data.name == full_name
    ):
        await ctx.flows.update_flow_data(
            ident.user_id, ident.conversation_id, data.model_dump()
        )
    else:
        await ctx.flows.set_active_flow(
            RegistrationFlow(
                user_id=ident.user_id,
                conversation_id=ident.conversation_id,
                channel_id=ident.channel_id,
                data=data,
            )
        )

    call = await ctx.chain.encode_commit(commitment_hash)
    action = await ctx.request_signature(
        "commit",
        f"Commit {full_name} (step 1 of 2)",
        call,
        signer=wallet,
        expected_action=ExpectedAction.REGISTRATION_COMMIT,
        flow_type=FlowType.REGISTRATION,
    )
    await ctx.flows.update_flow_status(
        ident.user_id, ident.conversation_id, FlowStatus.STEP1_PENDING
    )
    logger.info("Registration commit requested for %s by %s", full_name, ident.user_id)

    return _await_user(
        action,
        (
            f"Sign the commit transaction for {full_name}. "
            f"Price: {format_price(price)} ETH, estimated total with gas: "
            f"{format_price(total)} ETH (the register gas is an estimate until "
            f"the {settings.min_commitment_age_seconds}-second wait is over)."
        ),
        data={
            "name": full_name,
            "years": args.years,
            "owner": wallet,
            "price_eth": format_price(price),
            "commit_gas_eth": format_price(costs.commit_gas_wei),
            "register_gas_eth": format_price(costs.register_gas_wei),
            "grand_total_eth": format_price(total),
            "is_register_estimate": True,
        },
    )


async def complete_registration_tool(args: NoArgs, ctx: ToolContext) -> ToolResult:
    """Send the register transaction once the commitment has matured."""
    settings = ctx.config.registration
    ident = ctx.identity
    flow = await ctx.flows.get_active_flow(ident.user_id, ident.conversation_id)
    if flow is None or flow.flow_type != FlowType.REGISTRATION:
        return _err("There is no registration in progress. Start with prepare_registration.")
    if flow.status == FlowStatus.STEP1_COMPLETE:
        return _err(
            "The commit is confirmed but the waiting period is not over yet. "
            "The user will be notified when registration can be completed."
        )
    if flow.status != FlowStatus.STEP2_PENDING:
        return _err(f"The registration is at '{flow.status.value}' and cannot be completed yet.")

    data = flow.data
    commitment = data.commitment
    if commitment is None or data.selected_wallet is None or data.commit_timestamp is None:
        return _err("The registration is missing its commitment. Start the registration again.")

    if not same_address(commitment.owner, data.selected_wallet):
        await ctx.flows.update_flow_status(ident.user_id, ident.conversation_id, FlowStatus.FAILED)
        await ctx.flows.clear_active_flow(ident.user_id, ident.conversation_id)
        raise OwnershipMismatchError(data.name, commitment.owner, data.selected_wallet)

    age_seconds = (now_ms() - data.commit_timestamp) / 1000
    if age_seconds < settings.min_commitment_age_seconds:
        raise CommitmentWindowError(
            f"The commitment is {int(age_seconds)}s old and needs "
            f"{settings.min_commitment_age_seconds}s before registering."
        )
    if age_seconds > settings.max_commitment_age_seconds:
        await ctx.flows.update_flow_status(ident.user_id, ident.conversation_id, FlowStatus.FAILED)
        await ctx.flows.clear_active_flow(ident.user_id, ident.conversation_id)
        raise CommitmentWindowError("The commitment has expired. Start the registration again.")

    params = RegistrationParams(
        label=commitment.name,
        owner=commitment.owner,
        duration_sec=commitment.duration_sec,
        secret=commitment.secret,
    )
    call = await ctx.chain.encode_register(params, commitment.domain_price_wei)
    action = await ctx.request_signature(
        "register",
        f"Register {data.name} (step 2 of 2)",
        call,
        signer=data.selected_wallet,
        expected_action=ExpectedAction.REGISTRATION_REGISTER,
        flow_type=FlowType.REGISTRATION,
    )
    return _await_user(
        action,
        f"Sign the register transaction to finish registering {data.name}.",
        data={"name": data.name, "owner": commitment.owner},
    )
