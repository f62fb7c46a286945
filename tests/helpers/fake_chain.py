"""Scripted ChainClient for tests.

State is plain dicts the test sets up directly. Every call is recorded in
``calls`` as ``(method, args)``; methods listed in ``failing`` raise
ChainError.
"""

import hashlib
from collections.abc import Callable

from src.services.chain import (
    BridgeQuote,
    ChainError,
    EncodedCall,
    GasEstimate,
    NameAvailability,
    NameExpiry,
    NameOwnership,
    RegistrationParams,
)
from src.utils.ens_names import SECONDS_PER_YEAR

WALLET_A = "0x" + "a" * 40
WALLET_B = "0x" + "b" * 40
STRANGER = "0x" + "c" * 40

CONTROLLER = "0x253553366Da8546fC250F225fe3d25d0C782303b"
NAME_WRAPPER = "0xD4416b13d2b3a9aBae7AcD5D6C2BbDBE25686401"
REGISTRY = "0x00000000000C2E074eC69A0dFb2997BA6C7d2e1e"
RESOLVER = "0x231b0Ee14048e9dCcD1d247744d114a4EB5E8E63"
SPOKE_POOL = "0x09aea4b2242abC8bb4BB78D537A67a245A7bEC64"

ONE_ETH = 10**18


class FakeChain:
    """In-memory chain. Defaults: 0.003 ETH/year rent, 10 gwei gas, 1% bridge fee."""

    def __init__(self) -> None:
        self.wallets: dict[str, list[str]] = {}
        self.registered: set[str] = set()
        self.owners: dict[str, NameOwnership] = {}
        self.expiries: dict[str, int] = {}
        self.balances: dict[tuple[str, int], int] = {}
        self.price_per_year_wei = 3 * 10**15
        self.gas_price_wei = 10 * 10**9
        self.bridge_fee_bps = 100
        self.bridge_min_deposit_wei = 10**15
        self.quote_fn: Callable[[int], BridgeQuote] | None = None
        self.failing: set[str] = set()
        self.calls: list[tuple[str, tuple]] = []

    # ------------------------------------------------------------------
    # Setup helpers
    # ------------------------------------------------------------------

    def link(self, user_id: str, *wallets: str) -> None:
        self.wallets[user_id] = list(wallets)

    def fund(self, address: str, wei: int, chain_id: int = 1) -> None:
        self.balances[(address.lower(), chain_id)] = wei

    def own(
        self,
        name: str,
        owner: str,
        is_wrapped: bool = False,
        can_create_subdomains: bool = True,
        expiry: int | None = None,
    ) -> None:
        self.registered.add(name)
        self.owners[name] = NameOwnership(
            name=name,
            owner=owner,
            registry_owner=NAME_WRAPPER if is_wrapped else owner,
            is_wrapped=is_wrapped,
            can_create_subdomains=can_create_subdomains,
        )
        if expiry is not None:
            self.expiries[name] = expiry

    def called(self, method: str) -> list[tuple]:
        return [args for name, args in self.calls if name == method]

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, args))
        if method in self.failing:
            raise ChainError(f"{method} failed: connection refused")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_linked_wallets(self, user_id: str) -> list[str]:
        self._record("get_linked_wallets", user_id)
        return list(self.wallets.get(user_id, []))

    async def check_availability(self, name: str) -> NameAvailability:
        self._record("check_availability", name)
        available = name not in self.registered
        return NameAvailability(
            name=name,
            available=available,
            price_wei=self.price_per_year_wei if available else None,
        )

    async def get_expiry(self, name: str) -> NameExpiry:
        self._record("get_expiry", name)
        expiry = self.expiries.get(name)
        return NameExpiry(
            name=name,
            expiry=expiry,
            grace_period_end=expiry + 90 * 86400 if expiry is not None else None,
        )

    async def get_ownership(self, name: str) -> NameOwnership:
        self._record("get_ownership", name)
        return self.owners.get(name) or NameOwnership(name=name)

    async def name_exists(self, name: str) -> bool:
        self._record("name_exists", name)
        return name in self.registered

    async def get_balance(self, address: str, chain_id: int) -> int:
        self._record("get_balance", address, chain_id)
        return self.balances.get((address.lower(), chain_id), 0)

    async def rent_price(self, label: str, duration_sec: int) -> int:
        self._record("rent_price", label, duration_sec)
        return self.price_per_year_wei * duration_sec // SECONDS_PER_YEAR

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def make_commitment(self, params: RegistrationParams) -> str:
        self._record("make_commitment", params)
        digest = hashlib.sha256(
            f"{params.label}|{params.owner}|{params.duration_sec}|{params.secret}".encode()
        ).hexdigest()
        return "0x" + digest

    async def estimate_commit_gas(self, commitment: str, account: str) -> GasEstimate:
        self._record("estimate_commit_gas", commitment, account)
        return GasEstimate(gas_units=50_000, gas_price_wei=self.gas_price_wei)

    async def estimate_register_gas(
        self, params: RegistrationParams, value_wei: int, provisional: bool = False
    ) -> GasEstimate:
        self._record("estimate_register_gas", params, value_wei, provisional)
        units = 300_000 if provisional else 260_000
        return GasEstimate(gas_units=units, gas_price_wei=self.gas_price_wei)

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    async def encode_commit(self, commitment: str) -> EncodedCall:
        self._record("encode_commit", commitment)
        return EncodedCall(chain_id=1, to=CONTROLLER, data="0xf14fcbc8" + commitment[2:], contract="controller")

    async def encode_register(self, params: RegistrationParams, value_wei: int) -> EncodedCall:
        self._record("encode_register", params, value_wei)
        return EncodedCall(
            chain_id=1, to=CONTROLLER, data="0x74694a2b", value_wei=value_wei, contract="controller"
        )

    async def encode_renew(self, label: str, duration_sec: int, value_wei: int) -> EncodedCall:
        self._record("encode_renew", label, duration_sec, value_wei)
        return EncodedCall(
            chain_id=1, to=CONTROLLER, data="0xacf1a841", value_wei=value_wei, contract="controller"
        )

    async def encode_transfer(
        self, name: str, owner: str, recipient: str, is_wrapped: bool
    ) -> EncodedCall:
        self._record("encode_transfer", name, owner, recipient, is_wrapped)
        to = NAME_WRAPPER if is_wrapped else REGISTRY
        return EncodedCall(chain_id=1, to=to, data="0x23b872dd", contract="transfer")

    async def encode_create_subdomain(
        self, parent: str, label: str, owner: str, is_wrapped: bool
    ) -> EncodedCall:
        self._record("encode_create_subdomain", parent, label, owner, is_wrapped)
        to = NAME_WRAPPER if is_wrapped else REGISTRY
        return EncodedCall(chain_id=1, to=to, data="0x5ef2c7f0", contract="subdomain")

    async def encode_set_address(self, name: str, address: str) -> EncodedCall:
        self._record("encode_set_address", name, address)
        return EncodedCall(chain_id=1, to=RESOLVER, data="0xd5fa2b00", contract="resolver")

    async def encode_subdomain_transfer(
        self, name: str, owner: str, recipient: str, is_wrapped: bool
    ) -> EncodedCall:
        self._record("encode_subdomain_transfer", name, owner, recipient, is_wrapped)
        to = NAME_WRAPPER if is_wrapped else REGISTRY
        return EncodedCall(chain_id=1, to=to, data="0x5b0fc9c3", contract="subdomain")

    # ------------------------------------------------------------------
    # Bridge
    # ------------------------------------------------------------------

    async def bridge_quote(
        self, amount_wei: int, depositor: str, source_chain_id: int, dest_chain_id: int
    ) -> BridgeQuote:
        self._record("bridge_quote", amount_wei, depositor, source_chain_id, dest_chain_id)
        if self.quote_fn is not None:
            return self.quote_fn(amount_wei)
        fee = amount_wei * self.bridge_fee_bps // 10_000
        return BridgeQuote(
            input_wei=amount_wei,
            output_wei=amount_wei - fee,
            fee_wei=fee,
            is_amount_too_low=amount_wei < self.bridge_min_deposit_wei,
            min_deposit_wei=self.bridge_min_deposit_wei,
            estimated_fill_seconds=12,
        )

    async def encode_bridge_deposit(
        self, quote: BridgeQuote, depositor: str, source_chain_id: int, dest_chain_id: int
    ) -> EncodedCall:
        self._record("encode_bridge_deposit", quote, depositor, source_chain_id, dest_chain_id)
        return EncodedCall(
            chain_id=source_chain_id,
            to=SPOKE_POOL,
            data="0x7b939232",
            value_wei=quote.input_wei,
            contract="spoke_pool",
        )
