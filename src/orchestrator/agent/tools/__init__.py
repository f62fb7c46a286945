"""Agent tool registration: canonical entrypoint.

Imports handler functions from submodules and assembles the tool
definitions the orchestration agent exposes to the model.
"""

from typing import Any

from src.orchestrator.agent.tools.actions import (
    RequestConfirmationArgs,
    SendMessageArgs,
    request_confirmation_tool,
    send_message_tool,
)
from src.orchestrator.agent.tools.bridge import PrepareBridgeArgs, prepare_bridge_tool
from src.orchestrator.agent.tools.core import (
    NoArgs,
    ToolContext,
    ToolDefinition,
    ToolResult,
    UserAction,
)
from src.orchestrator.agent.tools.names import (
    PrepareRenewalArgs,
    PrepareTransferArgs,
    prepare_renewal_tool,
    prepare_transfer_tool,
)
from src.orchestrator.agent.tools.read import (
    BalanceArgs,
    CheckAvailabilityArgs,
    NameArgs,
    PriceArgs,
    check_availability_tool,
    check_balance_tool,
    get_expiry_tool,
    get_flow_status_tool,
    get_registration_price_tool,
    get_renewal_price_tool,
    verify_ownership_tool,
)
from src.orchestrator.agent.tools.registration import (
    PrepareRegistrationArgs,
    complete_registration_tool,
    prepare_registration_tool,
)
from src.orchestrator.agent.tools.subdomain import (
    PrepareSubdomainArgs,
    continue_subdomain_tool,
    prepare_subdomain_tool,
)

__all__ = [
    "ToolContext",
    "ToolDefinition",
    "ToolRegistry",
    "ToolResult",
    "UserAction",
    "get_all_tool_definitions",
]


def get_all_tool_definitions() -> list[ToolDefinition]:
    """Return all tool definitions for the orchestration agent."""
    return [
        # Read
        ToolDefinition(
            name="check_availability",
            description="Check whether one or more .eth names can be registered and their yearly price.",
            args_model=CheckAvailabilityArgs,
            handler=check_availability_tool,
        ),
        ToolDefinition(
            name="get_expiry",
            description="Get the expiry date and grace period status of a registered name.",
            args_model=NameArgs,
            handler=get_expiry_tool,
        ),
        ToolDefinition(
            name="verify_ownership",
            description=(
                "Look up who owns a name (resolving wrapped names) and whether one of "
                "the user's linked wallets is the owner."
            ),
            args_model=NameArgs,
            handler=verify_ownership_tool,
        ),
        ToolDefinition(
            name="check_balance",
            description="Read ETH balances of the user's linked wallets on Ethereum and/or Base.",
            args_model=BalanceArgs,
            handler=check_balance_tool,
        ),
        ToolDefinition(
            name="get_registration_price",
            description="Get the registration price of a name for a number of years (gas not included).",
            args_model=PriceArgs,
            handler=get_registration_price_tool,
        ),
        ToolDefinition(
            name="get_renewal_price",
            description="Get the renewal price of a name and the recommended value to send.",
            args_model=PriceArgs,
            handler=get_renewal_price_tool,
        ),
        ToolDefinition(
            name="get_flow_status",
            description="Describe the operation currently in progress in this conversation, if any.",
            args_model=NoArgs,
            handler=get_flow_status_tool,
        ),
        # Write
        ToolDefinition(
            name="prepare_registration",
            description=(
                "Start registering a .eth name: builds the commitment and asks the user to "
                "sign the commit transaction. Registration finishes with "
                "complete_registration after the mandatory wait."
            ),
            args_model=PrepareRegistrationArgs,
            handler=prepare_registration_tool,
        ),
        ToolDefinition(
            name="complete_registration",
            description=(
                "Send the final register transaction. Only valid after the user confirmed "
                "the final cost once the waiting period ended."
            ),
            args_model=NoArgs,
            handler=complete_registration_tool,
        ),
        ToolDefinition(
            name="prepare_renewal",
            description="Renew a name the user owns for a number of years.",
            args_model=PrepareRenewalArgs,
            handler=prepare_renewal_tool,
        ),
        ToolDefinition(
            name="prepare_transfer",
            description=(
                "Transfer ownership of a name to another address. Irreversible: always "
                "confirm the recipient with the user first."
            ),
            args_model=PrepareTransferArgs,
            handler=prepare_transfer_tool,
        ),
        ToolDefinition(
            name="prepare_subdomain",
            description=(
                "Create a subdomain under a name the user owns, resolving to and owned by "
                "resolve_address. Takes 2 transactions, or 3 when the address is not the "
                "user's own wallet."
            ),
            args_model=PrepareSubdomainArgs,
            handler=prepare_subdomain_tool,
        ),
        ToolDefinition(
            name="continue_subdomain",
            description="Request the next transaction of a subdomain creation in progress.",
            args_model=NoArgs,
            handler=continue_subdomain_tool,
        ),
        ToolDefinition(
            name="prepare_bridge",
            description=(
                "Bridge ETH from Base to Ethereum so that at least amount_eth arrives after "
                "fees. Use when the user lacks mainnet ETH for an operation."
            ),
            args_model=PrepareBridgeArgs,
            handler=prepare_bridge_tool,
        ),
        # Actions
        ToolDefinition(
            name="send_message",
            description="Send a plain message to the user.",
            args_model=SendMessageArgs,
            handler=send_message_tool,
        ),
        ToolDefinition(
            name="request_confirmation",
            description="Ask the user a yes/no question with buttons and wait for the answer.",
            args_model=RequestConfirmationArgs,
            handler=request_confirmation_tool,
        ),
    ]


class ToolRegistry:
    """Name-indexed view over a list of tool definitions, in registration order."""

    def __init__(self, definitions: list[ToolDefinition] | None = None) -> None:
        defs = definitions if definitions is not None else get_all_tool_definitions()
        self._tools = {d.name: d for d in defs}

    def get(self, name: str) -> ToolDefinition | None:
        """Look up a tool by the name the model called it with.

        Args:
            name: Tool name from the model's tool_use block.

        Returns:
            The definition, or None for an unknown tool.
        """
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[dict[str, Any]]:
        """Build the tool list sent with every LLM request.

        Returns:
            One ``{"name", "description", "input_schema"}`` dict per tool,
            in registration order.
        """
        return [d.to_llm_schema() for d in self._tools.values()]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
