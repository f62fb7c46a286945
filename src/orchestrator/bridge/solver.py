"""Bridge amount solver.

Works out how much to send from the source chain so that, after the
bridge's proportional fee, the destination receives at least the target.
It is a two-pass estimate-then-confirm, not a fixed-point search:

1. Quote the target itself to learn the fee: ``fee = target - output``.
   There is no local minimum check; the bridge decides what is too small.
2. Inflate the fee by the safety margin and add it to the target:
   ``candidate = target + ceil(fee * (100 + margin) / 100)``,
   computed in integers.
3. Re-quote the candidate. If the bridge rejects it as too small, or its
   output is still below the target, fail. Never under-fund.
4. Check the source balance covers ``candidate + source gas reserve``,
   reporting the exact shortfall if not.

Same inputs and quotes always give the same plan.
"""

import logging
from dataclasses import dataclass

from src.errors.domain import (
    BridgeAmountTooLowError,
    BridgeFeesTooHighError,
    InsufficientBalanceError,
)
from src.services.chain import BridgeQuote, ChainClient
from src.utils.units import chain_name

logger = logging.getLogger(__name__)

MIN_FEE_MARGIN_PERCENT = 10


@dataclass(frozen=True)
class BridgePlan:
    """Result of a successful solve.

    Attributes:
        target_wei: Amount required on the destination chain.
        input_wei: Amount to send from the source chain.
        expected_output_wei: Output of the confirming quote (>= target).
        fee_wei: Fee reported by the confirming quote.
        source_gas_reserve_wei: Gas reserved on the source chain.
        total_source_wei: input + gas reserve; what the balance must cover.
        quote: The confirming quote, used to encode the deposit.
    """

    target_wei: int
    input_wei: int
    expected_output_wei: int
    fee_wei: int
    source_gas_reserve_wei: int
    total_source_wei: int
    quote: BridgeQuote


class BridgeAmountSolver:
    """Computes a bridge input that covers a destination target after fees."""

    def __init__(
        self,
        chain: ChainClient,
        source_chain_id: int = 8453,
        dest_chain_id: int = 1,
        fee_margin_percent: int = MIN_FEE_MARGIN_PERCENT,
        source_gas_reserve_wei: int = 10**15,
        min_bridge_amount_wei: int = 10**15,
    ) -> None:
        if fee_margin_percent < MIN_FEE_MARGIN_PERCENT:
            raise ValueError(
                f"fee_margin_percent must be at least {MIN_FEE_MARGIN_PERCENT}"
            )
        self.chain = chain
        self.source_chain_id = source_chain_id
        self.dest_chain_id = dest_chain_id
        self.fee_margin_percent = fee_margin_percent
        self.source_gas_reserve_wei = source_gas_reserve_wei
        self.min_bridge_amount_wei = min_bridge_amount_wei

    async def _quote(self, amount_wei: int, depositor: str) -> BridgeQuote:
        return await self.chain.bridge_quote(
            amount_wei, depositor, self.source_chain_id, self.dest_chain_id
        )

    def candidate_input(self, target_wei: int, first_output_wei: int) -> int:
        """Target plus the margin-inflated fee observed on the first quote, rounded up."""
        fee = max(target_wei - first_output_wei, 0)
        return target_wei + -(-fee * (100 + self.fee_margin_percent) // 100)

    async def solve(
        self, target_wei: int, depositor: str, source_balance_wei: int
    ) -> BridgePlan:
        """Plan a bridge that lands at least ``target_wei`` on the destination.

        Args:
            target_wei: Amount needed on the destination chain.
            depositor: Wallet sending on the source chain.
            source_balance_wei: That wallet's source-chain balance.

        Returns:
            BridgePlan with the input to send.

        Raises:
            BridgeAmountTooLowError: The bridge rejects the candidate as too small.
            BridgeFeesTooHighError: The confirming quote still falls short.
            InsufficientBalanceError: Balance does not cover input + gas.
        """
        first = await self._quote(target_wei, depositor)
        candidate = self.candidate_input(target_wei, first.output_wei)

        confirm = await self._quote(candidate, depositor)
        if confirm.is_amount_too_low:
            raise BridgeAmountTooLowError(
                confirm.min_deposit_wei or self.min_bridge_amount_wei
            )
        if confirm.output_wei < target_wei:
            raise BridgeFeesTooHighError(candidate, confirm.output_wei, target_wei)

        total_source = candidate + self.source_gas_reserve_wei
        if source_balance_wei < total_source:
            raise InsufficientBalanceError(
                chain_name(self.source_chain_id), total_source, source_balance_wei
            )

        logger.info(
            "Bridge plan: target=%d input=%d output=%d fee=%d",
            target_wei, candidate, confirm.output_wei, confirm.fee_wei,
        )
        return BridgePlan(
            target_wei=target_wei,
            input_wei=candidate,
            expected_output_wei=confirm.output_wei,
            fee_wei=confirm.fee_wei,
            source_gas_reserve_wei=self.source_gas_reserve_wei,
            total_source_wei=total_source,
            quote=confirm,
        )
