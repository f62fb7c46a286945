"""System prompt builder for the orchestration agent.

Merges the assistant's identity, ENS domain knowledge, workflow rules and
safety rules with the operation currently in progress (if any), so the
model always knows where a resumed conversation left off.

Example:
    prompt = build_system_prompt(active_flow=await flows.get_active_flow(u, c))
"""

from datetime import datetime

from src.config import AppConfig
from src.orchestrator.models.flow import FlowBase, FlowStatus, FlowType
from src.utils.units import chain_name


def _build_flow_section(flow: FlowBase | None) -> str:
    """Describe the in-flight operation for the model.

    Args:
        flow: The conversation's active flow, or None.

    Returns:
        Markdown section text.
    """
    if flow is None:
        return "No operation is in progress in this conversation."

    lines = [
        f"An operation is in progress: **{flow.type}** (status `{flow.status.value}`).",
    ]
    data = flow.data
    if flow.flow_type == FlowType.REGISTRATION:
        lines.append(f"- Name: {data.name}, {data.duration_years} year(s)")
        if data.selected_wallet:
            lines.append(f"- Owner wallet: {data.selected_wallet}")
        if flow.status == FlowStatus.STEP1_COMPLETE:
            lines.append(
                "- The commit is confirmed; the mandatory waiting period is running. "
                "The user will be prompted automatically when it ends."
            )
        elif flow.status == FlowStatus.STEP2_PENDING:
            lines.append(
                "- The waiting period is over. Once the user confirms the final cost, "
                "call complete_registration."
            )
    elif flow.flow_type == FlowType.SUBDOMAIN:
        lines.append(
            f"- {data.full_name}: step {data.current_step} of {data.total_steps}. "
            "Call continue_subdomain for the next transaction."
        )
    elif flow.flow_type == FlowType.BRIDGE:
        lines.append(f"- Next action after bridging: {data.next_action.value}")
        if data.registration_name:
            lines.append(f"- Registration waiting on funds: {data.registration_name}")
    elif flow.flow_type == FlowType.TRANSFER:
        lines.append(f"- Transferring {data.domain} to {data.recipient}")
    elif flow.flow_type == FlowType.RENEWAL:
        lines.append(f"- Renewing {data.name} for {data.duration_years} year(s)")
    return "\n".join(lines)


def build_system_prompt(
    active_flow: FlowBase | None = None,
    config: AppConfig | None = None,
) -> str:
    """Build the complete system prompt for the orchestration agent.

    Args:
        active_flow: The conversation's in-flight operation, if any.
        config: Application config; supplies chain names and the commit wait.

    Returns:
        Complete system prompt string.
    """
    config = config or AppConfig()
    current_date = datetime.now().strftime("%Y-%m-%d")
    mainnet = chain_name(config.registration.chain_id)
    source = chain_name(config.bridge.source_chain_id)
    wait = config.registration.min_commitment_age_seconds

    return f"""You are an ENS assistant. You help users check, register, renew, transfer and \
create subdomains of .eth names, and bridge ETH from {source} to {mainnet} to pay for them.

Current date: {current_date}

## How operations work

- Read tools (check_availability, get_expiry, verify_ownership, check_balance, \
get_registration_price, get_renewal_price, get_flow_status) are free and safe. Use them \
before proposing any transaction.
- Write tools (prepare_registration, complete_registration, prepare_renewal, \
prepare_transfer, prepare_subdomain, continue_subdomain, prepare_bridge) send a transaction \
to the user for signing. The conversation pauses until the user signs or rejects it. Never \
call a second write tool in the same turn.
- Registration is commit-reveal: the user signs a commit, waits at least {wait} seconds, \
confirms the final cost, then signs the register transaction. Never skip or shorten the wait.
- Transfers are irreversible. Always confirm the recipient address before prepare_transfer.
- If the user lacks {mainnet} ETH but has ETH on {source}, offer prepare_bridge with the \
shortfall as amount_eth.

## Rules

- Quote prices in ETH with 4 decimals as returned by the tools. Do not invent prices, owners \
or balances.
- Only one operation can be in progress per user. If a tool reports another operation, tell \
the user to finish or cancel it first.
- When a tool fails, explain the reason it gives in plain words. Do not retry the same call \
unchanged.
- Keep replies short. The user is in a chat app.

## Current operation

{_build_flow_section(active_flow)}
"""
