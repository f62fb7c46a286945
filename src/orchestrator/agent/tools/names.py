"""Renewal and transfer tools for names the user already owns."""

import logging

from pydantic import Field

from src.errors.domain import (
    InsufficientBalanceError,
    InvalidDurationError,
    OwnershipMismatchError,
)
from src.orchestrator.agent.tools.core import (
    ToolArgs,
    ToolContext,
    ToolResult,
    _await_user,
    _err,
)
from src.orchestrator.agent.tools.read import RENEWAL_VALUE_BUFFER_PERCENT
from src.orchestrator.models.flow import (
    FlowStatus,
    FlowType,
    RenewalFlow,
    RenewalFlowData,
    TransferContract,
    TransferFlow,
    TransferFlowData,
)
from src.orchestrator.models.session import ExpectedAction
from src.services.chain import NameOwnership
from src.utils.ens_names import ETH_SUFFIX, normalize_eth_name, years_to_seconds
from src.utils.units import chain_name, format_price, is_address, same_address

logger = logging.getLogger(__name__)


async def _owning_wallet(ctx: ToolContext, name: str) -> tuple[str, NameOwnership]:
    """Return (linked wallet that owns ``name``, its ownership record).

    Raises:
        OwnershipMismatchError: If none of the user's wallets owns the name.
    """
    ownership = await ctx.chain.get_ownership(name)
    wallets = await ctx.chain.get_linked_wallets(ctx.identity.user_id)
    owner = next((w for w in wallets if same_address(w, ownership.owner)), None)
    if owner is None:
        expected = wallets[0] if len(wallets) == 1 else "one of your linked wallets"
        raise OwnershipMismatchError(name, ownership.owner, expected)
    return owner, ownership


# ---------------------------------------------------------------------------
# Renewal
# ---------------------------------------------------------------------------


class PrepareRenewalArgs(ToolArgs):
    name: str = Field(..., description="Name to renew, e.g. alice.eth")
    years: int = Field(default=1, ge=1, description="Years to extend by")


async def prepare_renewal_tool(args: PrepareRenewalArgs, ctx: ToolContext) -> ToolResult:
    """Extend a name the user owns. Sends slightly more than the price; the excess is refunded."""
    settings = ctx.config.registration
    ident = ctx.identity
    full_name, label = normalize_eth_name(args.name)
    if args.years > settings.max_years:
        raise InvalidDurationError(args.years, settings.max_years)

    await ctx.ensure_no_flow_elsewhere()
    owner, ownership = await _owning_wallet(ctx, full_name)
    is_wrapped = ownership.is_wrapped

    expiry = await ctx.chain.get_expiry(full_name)
    duration = years_to_seconds(args.years)
    price = await ctx.chain.rent_price(label, duration)
    recommended = price * (100 + RENEWAL_VALUE_BUFFER_PERCENT) // 100

    balance = await ctx.chain.get_balance(owner, settings.chain_id)
    if balance < recommended:
        raise InsufficientBalanceError(chain_name(settings.chain_id), recommended, balance)

    new_expiry = expiry.expiry + duration if expiry.expiry is not None else None
    await ctx.flows.set_active_flow(
        RenewalFlow(
            user_id=ident.user_id,
            conversation_id=ident.conversation_id,
            channel_id=ident.channel_id,
            data=RenewalFlowData(
                name=full_name,
                label=label,
                duration_years=args.years,
                duration_seconds=duration,
                total_cost_wei=price,
                recommended_value_wei=recommended,
                current_expiry=expiry.expiry,
                new_expiry=new_expiry,
                owner_wallet=owner,
                is_wrapped=is_wrapped,
            ),
        )
    )

    call = await ctx.chain.encode_renew(label, duration, recommended)
    action = await ctx.request_signature(
        "renew",
        f"Renew {full_name} for {args.years} year(s)",
        call,
        signer=owner,
        expected_action=ExpectedAction.RENEWAL,
        flow_type=FlowType.RENEWAL,
    )
    await ctx.flows.update_flow_status(
        ident.user_id, ident.conversation_id, FlowStatus.STEP1_PENDING
    )
    return _await_user(
        action,
        (
            f"Sign the renewal of {full_name} for {args.years} year(s). "
            f"Price: {format_price(price)} ETH; the transaction sends "
            f"{format_price(recommended)} ETH and any excess is refunded."
        ),
        data={
            "name": full_name,
            "years": args.years,
            "price_eth": format_price(price),
            "value_eth": format_price(recommended),
            "current_expiry": expiry.expiry,
            "new_expiry": new_expiry,
        },
    )


# ---------------------------------------------------------------------------
# Transfer
# ---------------------------------------------------------------------------


class PrepareTransferArgs(ToolArgs):
    name: str = Field(..., description="Name to transfer, e.g. alice.eth or sub.alice.eth")
    to_address: str = Field(..., description="Recipient 0x address")


def transfer_contract_for(name: str, is_wrapped: bool) -> TransferContract:
    """Pick the contract that holds ownership for ``name``."""
    if is_wrapped:
        return TransferContract.NAME_WRAPPER
    if name.endswith(ETH_SUFFIX) and name.count(".") == 1:
        return TransferContract.REGISTRAR
    return TransferContract.REGISTRY


async def prepare_transfer_tool(args: PrepareTransferArgs, ctx: ToolContext) -> ToolResult:
    """Transfer ownership of a name. Single step, irreversible."""
    ident = ctx.identity
    full_name = args.name.strip().lower()
    if not is_address(args.to_address):
        return _err(f"{args.to_address} is not a valid 0x address.")

    await ctx.ensure_no_flow_elsewhere()
    owner, ownership = await _owning_wallet(ctx, full_name)
    is_wrapped = ownership.is_wrapped
    if same_address(owner, args.to_address):
        return _err(f"{full_name} is already owned by {args.to_address}.")

    contract = transfer_contract_for(full_name, is_wrapped)
    await ctx.flows.set_active_flow(
        TransferFlow(
            user_id=ident.user_id,
            conversation_id=ident.conversation_id,
            channel_id=ident.channel_id,
            data=TransferFlowData(
                domain=full_name,
                recipient=args.to_address,
                owner_wallet=owner,
                is_wrapped=is_wrapped,
                contract=contract,
            ),
        )
    )

    call = await ctx.chain.encode_transfer(full_name, owner, args.to_address, is_wrapped)
    action = await ctx.request_signature(
        "transfer",
        f"Transfer {full_name}",
        call,
        signer=owner,
        expected_action=ExpectedAction.TRANSFER,
        flow_type=FlowType.TRANSFER,
    )
    await ctx.flows.update_flow_status(
        ident.user_id, ident.conversation_id, FlowStatus.STEP1_PENDING
    )
    logger.info("Transfer of %s requested via %s", full_name, contract.value)
    return _await_user(
        action,
        (
            f"Sign to transfer {full_name} to {args.to_address}. "
            "This cannot be undone: the new owner gains full control of the name."
        ),
        data={
            "name": full_name,
            "recipient": args.to_address,
            "contract": contract.value,
            "irreversible": True,
        },
    )
