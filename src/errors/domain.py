"""Typed domain exceptions for user-facing error mapping.

Tools catch DomainError subclasses and turn them into precise,
actionable messages via ``to_agent_error()``. Nothing here carries
internal detail that should not reach the user.

Usage:
    # In a service or tool
    raise InsufficientBalanceError("Ethereum", required_wei, available_wei)

    # At the tool boundary
    try:
        ...
    except DomainError as e:
        return _err(format_error(e.to_agent_error()))
"""

from src.errors.formatter import AgentError
from src.utils.units import format_ether


class DomainError(Exception):
    """Base exception for all domain errors."""

    code = "E-4010"

    def __init__(self, message: str) -> None:
        super().__init__(message)

    def template_context(self) -> dict:
        return {}

    def to_agent_error(self) -> AgentError:
        """Map to the registry entry for this error type."""
        return AgentError.from_code(self.code, **self.template_context())


class NotFoundError(DomainError):
    """Resource was not found."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ConflictError(DomainError):
    """Resource conflict."""


class ValidationError(DomainError):
    """Validation failure."""


class FlowNotFoundError(NotFoundError):
    """No flow exists for the (user, conversation) key."""

    code = "E-2007"

    def __init__(self, user_id: str, conversation_id: str) -> None:
        super().__init__("Flow", f"{user_id}:{conversation_id}")
        self.user_id = user_id
        self.conversation_id = conversation_id


class InvalidFlowTransition(DomainError):
    """Raised when attempting a status change the flow's state machine forbids.

    Attributes:
        flow_type: Type of the flow being updated.
        current: The flow's current status.
        attempted: The status that was requested.
        allowed: Valid targets from the current status.
    """

    code = "E-2008"

    def __init__(self, flow_type, current, attempted, allowed) -> None:
        self.flow_type = flow_type
        self.current = current
        self.attempted = attempted
        self.allowed = list(allowed)
        allowed_str = ", ".join(s.value for s in self.allowed) or "none (terminal)"
        super().__init__(
            f"Cannot transition {flow_type.value} flow from '{current.value}' to "
            f"'{attempted.value}'. Allowed transitions: {allowed_str}"
        )

    def template_context(self) -> dict:
        return {
            "flow_type": self.flow_type.value,
            "current": self.current.value,
            "attempted": self.attempted.value,
        }


class ActiveFlowConflictError(ConflictError):
    """The user already has a live flow in a different conversation."""

    code = "E-2009"

    def __init__(self, flow_type: str, conversation_id: str) -> None:
        super().__init__(
            f"Active {flow_type} flow already running in conversation {conversation_id}"
        )
        self.flow_type = flow_type
        self.conversation_id = conversation_id

    def template_context(self) -> dict:
        return {"flow_type": self.flow_type}


class InsufficientBalanceError(DomainError):
    """Wallet cannot cover the required amount; carries the exact shortfall."""

    code = "E-2001"

    def __init__(self, chain: str, required_wei: int, available_wei: int) -> None:
        self.chain = chain
        self.required_wei = required_wei
        self.available_wei = available_wei
        self.shortfall_wei = max(required_wei - available_wei, 0)
        super().__init__(
            f"Insufficient balance on {chain}: need {required_wei} wei, have {available_wei} wei"
        )

    def template_context(self) -> dict:
        return {
            "chain": self.chain,
            "required": format_ether(self.required_wei),
            "available": format_ether(self.available_wei),
            "shortfall": format_ether(self.shortfall_wei),
        }


class NameUnavailableError(DomainError):
    code = "E-2002"

    def __init__(self, name: str) -> None:
        super().__init__(f"{name} is not available")
        self.name = name

    def template_context(self) -> dict:
        return {"name": self.name}


class InvalidNameError(ValidationError):
    code = "E-2011"

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Invalid name {name!r}: {reason}")
        self.name = name
        self.reason = reason

    def template_context(self) -> dict:
        return {"name": self.name, "reason": self.reason}


class InvalidDurationError(ValidationError):
    code = "E-2010"

    def __init__(self, years: int, max_years: int) -> None:
        super().__init__(f"Invalid duration: {years} years")
        self.years = years
        self.max_years = max_years

    def template_context(self) -> dict:
        return {"years": self.years, "max_years": self.max_years}


class OwnershipMismatchError(DomainError):
    """The wallet acting on a name is not its owner (or commitment owner != signer)."""

    code = "E-2003"

    def __init__(self, name: str, owner: str | None, expected: str) -> None:
        super().__init__(f"{name} owned by {owner}, expected {expected}")
        self.name = name
        self.owner = owner
        self.expected = expected

    def template_context(self) -> dict:
        return {"name": self.name, "owner": self.owner or "nobody", "expected": self.expected}


class SubdomainLockedError(DomainError):
    """Parent name has burned CANNOT_CREATE_SUBDOMAIN."""

    code = "E-2004"

    def __init__(self, name: str) -> None:
        super().__init__(f"{name} cannot create subdomains")
        self.name = name

    def template_context(self) -> dict:
        return {"name": self.name}


class SubdomainExistsError(ConflictError):
    code = "E-2012"

    def __init__(self, name: str) -> None:
        super().__init__(f"{name} already exists")
        self.name = name

    def template_context(self) -> dict:
        return {"name": self.name}


class CommitmentWindowError(DomainError):
    """Register attempted before the commitment matured or after it expired."""

    code = "E-2013"

    def template_context(self) -> dict:
        return {"details": str(self)}


class BridgeAmountTooLowError(DomainError):
    code = "E-2005"

    def __init__(self, minimum_wei: int) -> None:
        super().__init__(f"Bridge amount below minimum deposit {minimum_wei} wei")
        self.minimum_wei = minimum_wei

    def template_context(self) -> dict:
        return {"minimum": format_ether(self.minimum_wei)}


class BridgeFeesTooHighError(DomainError):
    """Even the fee-inflated input does not deliver the target on the destination."""

    code = "E-2006"

    def __init__(self, input_wei: int, output_wei: int, target_wei: int) -> None:
        super().__init__(
            f"Bridge of {input_wei} wei yields {output_wei} wei, below target {target_wei} wei"
        )
        self.input_wei = input_wei
        self.output_wei = output_wei
        self.target_wei = target_wei

    def template_context(self) -> dict:
        return {
            "input": format_ether(self.input_wei),
            "output": format_ether(self.output_wei),
            "target": format_ether(self.target_wei),
        }
