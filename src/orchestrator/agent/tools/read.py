"""Read-only tools: availability, pricing, expiry, ownership, balances, flow status.

None of these write state or ask the user for anything.
"""

import time
from datetime import datetime, timezone
from typing import Literal

from pydantic import Field

from src.orchestrator.agent.tools.core import NoArgs, ToolArgs, ToolContext, ToolResult, _ok
from src.utils.ens_names import normalize_eth_name, years_to_seconds
from src.utils.units import chain_name, format_ether, format_price, same_address

RENEWAL_VALUE_BUFFER_PERCENT = 5


def _iso_date(unix_seconds: int | None) -> str | None:
    if unix_seconds is None:
        return None
    return datetime.fromtimestamp(unix_seconds, tz=timezone.utc).strftime("%Y-%m-%d")


class CheckAvailabilityArgs(ToolArgs):
    names: list[str] = Field(
        ..., min_length=1, max_length=10, description="Names to check, e.g. ['alice.eth']"
    )


async def check_availability_tool(args: CheckAvailabilityArgs, ctx: ToolContext) -> ToolResult:
    """Check whether names can be registered and what they cost per year."""
    results = []
    lines = []
    for raw in args.names:
        full_name, _label = normalize_eth_name(raw)
        availability = await ctx.chain.check_availability(full_name)
        entry = {
            "name": full_name,
            "valid": availability.valid,
            "available": availability.available,
        }
        if availability.price_wei is not None:
            entry["price_wei"] = str(availability.price_wei)
            entry["price_eth"] = format_price(availability.price_wei)
        if availability.reason:
            entry["reason"] = availability.reason
        results.append(entry)

        if availability.available and availability.price_wei is not None:
            lines.append(f"{full_name} is available for {entry['price_eth']} ETH/year")
        elif availability.available:
            lines.append(f"{full_name} is available")
        else:
            lines.append(f"{full_name} is not available")
    return _ok({"results": results}, display_message="\n".join(lines))


class NameArgs(ToolArgs):
    name: str = Field(..., description="ENS name, e.g. alice.eth")


async def get_expiry_tool(args: NameArgs, ctx: ToolContext) -> ToolResult:
    full_name, _label = normalize_eth_name(args.name)
    expiry = await ctx.chain.get_expiry(full_name)
    if expiry.expiry is None:
        return _ok({"name": full_name, "registered": False})
    now = int(time.time())
    return _ok(
        {
            "name": full_name,
            "registered": True,
            "expiry": expiry.expiry,
            "expiry_date": _iso_date(expiry.expiry),
            "days_remaining": (expiry.expiry - now) // 86400,
            "expired": expiry.expiry <= now,
            "in_grace_period": bool(
                expiry.grace_period_end and expiry.expiry <= now < expiry.grace_period_end
            ),
        }
    )


async def verify_ownership_tool(args: NameArgs, ctx: ToolContext) -> ToolResult:
    """Resolve the effective owner (NameWrapper-aware) and compare with the user's wallets."""
    full_name = args.name.strip().lower()
    ownership = await ctx.chain.get_ownership(full_name)
    wallets = await ctx.chain.get_linked_wallets(ctx.identity.user_id)
    owning_wallet = next((w for w in wallets if same_address(w, ownership.owner)), None)
    return _ok(
        {
            "name": full_name,
            "owner": ownership.owner,
            "is_wrapped": ownership.is_wrapped,
            "owned_by_user": owning_wallet is not None,
            "owning_wallet": owning_wallet,
        }
    )


class BalanceArgs(ToolArgs):
    chain: Literal["ethereum", "base", "both"] = Field(
        default="both", description="Which chain's balances to read"
    )


async def check_balance_tool(args: BalanceArgs, ctx: ToolContext) -> ToolResult:
    wallets = await ctx.chain.get_linked_wallets(ctx.identity.user_id)
    chain_ids = []
    if args.chain in ("ethereum", "both"):
        chain_ids.append(ctx.config.registration.chain_id)
    if args.chain in ("base", "both"):
        chain_ids.append(ctx.config.bridge.source_chain_id)

    balances = []
    for wallet in wallets:
        for chain_id in chain_ids:
            wei = await ctx.chain.get_balance(wallet, chain_id)
            balances.append(
                {
                    "wallet": wallet,
                    "chain": chain_name(chain_id),
                    "chain_id": chain_id,
                    "balance_wei": str(wei),
                    "balance_eth": format_price(wei),
                }
            )
    return _ok({"wallets": wallets, "balances": balances})


class PriceArgs(ToolArgs):
    name: str = Field(..., description="ENS name, e.g. alice.eth")
    years: int = Field(default=1, ge=1, le=10)


async def get_registration_price_tool(args: PriceArgs, ctx: ToolContext) -> ToolResult:
    full_name, label = normalize_eth_name(args.name)
    price = await ctx.chain.rent_price(label, years_to_seconds(args.years))
    return _ok(
        {
            "name": full_name,
            "years": args.years,
            "price_wei": str(price),
            "price_eth": format_price(price),
        },
        display_message=f"Registering {full_name} for {args.years} year(s) costs {format_price(price)} ETH plus gas",
    )


async def get_renewal_price_tool(args: PriceArgs, ctx: ToolContext) -> ToolResult:
    full_name, label = normalize_eth_name(args.name)
    price = await ctx.chain.rent_price(label, years_to_seconds(args.years))
    recommended = price * (100 + RENEWAL_VALUE_BUFFER_PERCENT) // 100
    return _ok(
        {
            "name": full_name,
            "years": args.years,
            "price_wei": str(price),
            "price_eth": format_price(price),
            "recommended_value_eth": format_ether(recommended),
        }
    )


async def get_flow_status_tool(args: NoArgs, ctx: ToolContext) -> ToolResult:
    """Report the operation in progress for this conversation, if any."""
    flow = await ctx.flows.get_active_flow(
        ctx.identity.user_id, ctx.identity.conversation_id
    )
    if flow is None:
        return _ok({"active": False})
    data = flow.data.model_dump(mode="json")
    if isinstance(data.get("commitment"), dict):
        data["commitment"].pop("secret", None)
    return _ok(
        {
            "active": True,
            "type": flow.type,
            "status": flow.status.value,
            "data": data,
        }
    )
