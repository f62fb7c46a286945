"""Error code registry with E-XXXX format codes.

This module defines the error code system for the ENS agent, organizing
errors into categories:
- E-1xxx: Input errors (empty message, unparseable model output, bad tool args)
- E-2xxx: Domain errors (balances, names, ownership, flows)
- E-3xxx: External-call errors (LLM, chain RPC, chat delivery)
- E-4xxx: Integrity and system errors
- E-5xxx: Agent loop errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    INPUT = "input"  # E-1xxx
    DOMAIN = "domain"  # E-2xxx
    EXTERNAL = "external"  # E-3xxx
    INTEGRITY = "integrity"  # E-4xxx (4001-4009)
    SYSTEM = "system"  # E-4xxx (4010+)
    LOOP = "loop"  # E-5xxx


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action user should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
    """

    code: str
    category: ErrorCategory
    title: str
    message_template: str
    remediation: str
    is_retryable: bool = False


ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Input errors (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.INPUT,
        title="Empty Message",
        message_template="I didn't catch anything in that message.",
        remediation="Send your request again, for example 'check alice.eth'.",
    ),
    "E-1002": ErrorCode(
        code="E-1002",
        category=ErrorCategory.INPUT,
        title="Unparseable Model Response",
        message_template="I couldn't make sense of my own reply: {details}",
        remediation="Please rephrase your request and try again.",
        is_retryable=True,
    ),
    "E-1003": ErrorCode(
        code="E-1003",
        category=ErrorCategory.INPUT,
        title="Invalid Tool Arguments",
        message_template="Invalid arguments for {tool}: {details}",
        remediation="Correct the arguments and call the tool again.",
    ),
    # Domain errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.DOMAIN,
        title="Insufficient Balance",
        message_template=(
            "Insufficient balance on {chain}: need {required} ETH, have {available} ETH "
            "(short {shortfall} ETH)."
        ),
        remediation="Top up the wallet or bridge funds from another chain.",
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.DOMAIN,
        title="Name Unavailable",
        message_template="{name} is not available for registration.",
        remediation="Pick a different name.",
    ),
    "E-2003": ErrorCode(
        code="E-2003",
        category=ErrorCategory.DOMAIN,
        title="Ownership Mismatch",
        message_template="{name} is owned by {owner}, not by {expected}.",
        remediation="Use the wallet that owns the name.",
    ),
    "E-2004": ErrorCode(
        code="E-2004",
        category=ErrorCategory.DOMAIN,
        title="Subdomain Creation Locked",
        message_template="{name} has burned the CANNOT_CREATE_SUBDOMAIN fuse.",
        remediation="Subdomains can no longer be created under this name.",
    ),
    "E-2005": ErrorCode(
        code="E-2005",
        category=ErrorCategory.DOMAIN,
        title="Bridge Amount Too Low",
        message_template="Bridge amount is below the minimum deposit of {minimum} ETH.",
        remediation="Bridge a larger amount.",
    ),
    "E-2006": ErrorCode(
        code="E-2006",
        category=ErrorCategory.DOMAIN,
        title="Bridge Fees Too High",
        message_template=(
            "Bridge fees too high: sending {input} ETH would only deliver {output} ETH, "
            "short of the {target} ETH needed."
        ),
        remediation="Try again later or fund the destination wallet directly.",
        is_retryable=True,
    ),
    "E-2007": ErrorCode(
        code="E-2007",
        category=ErrorCategory.DOMAIN,
        title="Flow Not Found",
        message_template="No active operation found for this conversation.",
        remediation="Start the operation again.",
    ),
    "E-2008": ErrorCode(
        code="E-2008",
        category=ErrorCategory.DOMAIN,
        title="Invalid Flow Transition",
        message_template="Cannot move {flow_type} from '{current}' to '{attempted}'.",
        remediation="Finish or cancel the current step first.",
    ),
    "E-2009": ErrorCode(
        code="E-2009",
        category=ErrorCategory.DOMAIN,
        title="Active Flow Elsewhere",
        message_template="You already have an active {flow_type} in another conversation.",
        remediation="Finish or cancel that operation before starting a new one.",
    ),
    "E-2010": ErrorCode(
        code="E-2010",
        category=ErrorCategory.DOMAIN,
        title="Invalid Duration",
        message_template="Duration must be between 1 and {max_years} years, got {years}.",
        remediation="Pick a duration in the supported range.",
    ),
    "E-2011": ErrorCode(
        code="E-2011",
        category=ErrorCategory.DOMAIN,
        title="Invalid Name",
        message_template="'{name}' is not a valid .eth name: {reason}",
        remediation="Names need at least 3 characters and may not contain dots in the label.",
    ),
    "E-2012": ErrorCode(
        code="E-2012",
        category=ErrorCategory.DOMAIN,
        title="Subdomain Exists",
        message_template="{name} already exists.",
        remediation="Pick a different subdomain label.",
    ),
    "E-2013": ErrorCode(
        code="E-2013",
        category=ErrorCategory.DOMAIN,
        title="Commitment Window",
        message_template="{details}",
        remediation="Wait for the commitment to mature, or start the registration again.",
    ),
    # External-call errors (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.EXTERNAL,
        title="LLM API Failure",
        message_template="I'm having a technical issue right now.",
        remediation="Please try again in a moment.",
        is_retryable=True,
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.EXTERNAL,
        title="Chain RPC Failure",
        message_template="Could not reach the network: {details}",
        remediation="Please try again in a moment.",
        is_retryable=True,
    ),
    "E-3003": ErrorCode(
        code="E-3003",
        category=ErrorCategory.EXTERNAL,
        title="State Backend Failure",
        message_template="State storage is unavailable: {details}",
        remediation="Please try again in a moment.",
        is_retryable=True,
    ),
    # Integrity errors (E-40xx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.INTEGRITY,
        title="Pending Action Expired",
        message_template="That request is no longer active.",
        remediation="Start the operation again.",
    ),
    "E-4002": ErrorCode(
        code="E-4002",
        category=ErrorCategory.INTEGRITY,
        title="Stale Action",
        message_template="That response does not match the action I'm waiting for.",
        remediation="Use the most recent request, or cancel and start again.",
    ),
    # System errors (E-401x)
    "E-4010": ErrorCode(
        code="E-4010",
        category=ErrorCategory.SYSTEM,
        title="Unexpected Error",
        message_template="Sorry, something went wrong while processing your request.",
        remediation="Please try again.",
        is_retryable=True,
    ),
    "E-4011": ErrorCode(
        code="E-4011",
        category=ErrorCategory.SYSTEM,
        title="No Active Session",
        message_template="No active session found.",
        remediation="Send a new message to start a conversation.",
    ),
    "E-4012": ErrorCode(
        code="E-4012",
        category=ErrorCategory.SYSTEM,
        title="No Pending Action",
        message_template="There is no pending action to resume.",
        remediation="Send a new message to continue.",
    ),
    # Loop errors (E-5xxx)
    "E-5001": ErrorCode(
        code="E-5001",
        category=ErrorCategory.LOOP,
        title="Step Limit Reached",
        message_template="I reached my step limit ({max_turns}) for this request.",
        remediation="Send a simpler request or start again.",
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category.

    Args:
        category: The error category to filter by.

    Returns:
        List of ErrorCode objects in the specified category.
    """
    return [e for e in ERROR_REGISTRY.values() if e.category == category]
