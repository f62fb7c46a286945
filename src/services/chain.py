"""Chain collaborator contract.

The agent never talks to an RPC node directly. Everything it needs from
the chain (availability and pricing, ownership, gas estimates, commitment
hashes, call encoding, bridge quotes) comes through ``ChainClient``, whose
methods return the typed results below. Implementations wrap a web3
library; tests use a scripted fake.

Implementations raise ``ChainError`` for RPC/transport failures. Domain
conditions (name taken, not owner) are expressed in the result types, not
as exceptions.
"""

from typing import Protocol

from pydantic import BaseModel, Field


class ChainError(Exception):
    """RPC or transport failure talking to a chain."""


class NameAvailability(BaseModel):
    name: str = Field(..., description="Full name, e.g. alice.eth")
    valid: bool = True
    available: bool
    price_wei: int | None = Field(default=None, description="1-year rent price")
    reason: str | None = None


class NameExpiry(BaseModel):
    name: str
    expiry: int | None = Field(default=None, description="unix seconds; None if unregistered")
    grace_period_end: int | None = None


class NameOwnership(BaseModel):
    """Resolved owner. For wrapped names ``owner`` is the NameWrapper holder."""

    name: str
    owner: str | None = None
    registry_owner: str | None = None
    is_wrapped: bool = False
    can_create_subdomains: bool = Field(
        default=True, description="False once CANNOT_CREATE_SUBDOMAIN is burned"
    )


class GasEstimate(BaseModel):
    gas_units: int = Field(..., ge=0)
    gas_price_wei: int = Field(..., ge=0)

    @property
    def cost_wei(self) -> int:
        return self.gas_units * self.gas_price_wei


class EncodedCall(BaseModel):
    """A contract call ready to be signed."""

    chain_id: int
    to: str
    data: str
    value_wei: int = 0
    contract: str = Field(default="", description="Logical contract name, e.g. registrar")


class BridgeQuote(BaseModel):
    """Bridge quote for a given input amount."""

    input_wei: int
    output_wei: int
    fee_wei: int
    is_amount_too_low: bool = False
    min_deposit_wei: int | None = None
    estimated_fill_seconds: int | None = None


class RegistrationParams(BaseModel):
    label: str
    owner: str
    duration_sec: int
    secret: str


class ChainClient(Protocol):
    """Typed, side-effect-free chain access used by tools and the waiter."""

    async def get_linked_wallets(self, user_id: str) -> list[str]: ...

    async def check_availability(self, name: str) -> NameAvailability: ...

    async def get_expiry(self, name: str) -> NameExpiry: ...

    async def get_ownership(self, name: str) -> NameOwnership: ...

    async def name_exists(self, name: str) -> bool: ...

    async def get_balance(self, address: str, chain_id: int) -> int: ...

    async def rent_price(self, label: str, duration_sec: int) -> int: ...

    async def make_commitment(self, params: RegistrationParams) -> str: ...

    async def estimate_commit_gas(self, commitment: str, account: str) -> GasEstimate: ...

    async def estimate_register_gas(
        self, params: RegistrationParams, value_wei: int, provisional: bool = False
    ) -> GasEstimate:
        """Estimate register gas.

        ``provisional=True`` is used before the commitment exists on chain,
        when a real estimate would revert; implementations return a
        conservative heuristic instead.
        """
        ...

    async def encode_commit(self, commitment: str) -> EncodedCall: ...

    async def encode_register(self, params: RegistrationParams, value_wei: int) -> EncodedCall: ...

    async def encode_renew(self, label: str, duration_sec: int, value_wei: int) -> EncodedCall: ...

    async def encode_transfer(
        self, name: str, owner: str, recipient: str, is_wrapped: bool
    ) -> EncodedCall: ...

    async def encode_create_subdomain(
        self, parent: str, label: str, owner: str, is_wrapped: bool
    ) -> EncodedCall: ...

    async def encode_set_address(self, name: str, address: str) -> EncodedCall: ...

    async def encode_subdomain_transfer(
        self, name: str, owner: str, recipient: str, is_wrapped: bool
    ) -> EncodedCall: ...

    async def bridge_quote(
        self, amount_wei: int, depositor: str, source_chain_id: int, dest_chain_id: int
    ) -> BridgeQuote: ...

    async def encode_bridge_deposit(
        self, quote: BridgeQuote, depositor: str, source_chain_id: int, dest_chain_id: int
    ) -> EncodedCall: ...
