"""
ETH allocation for the next proposal.

allocation = (treasury balance - ETH committed by live proposals) * percent / 100,
clamped to [min_eth, max_eth] and rounded. Any read failure falls back to
the configured default so the agent keeps proposing.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from .chain import ACTIVE_STATES, ChainReader, ChainReadError, wei_to_eth
from .config import AllocationConfig
from .proposal_text import decode_amount
from .subgraph import ProposalIndexClient, ProposalIndexError

logger = logging.getLogger(__name__)


@dataclass
class AllocationResult:
    """Chosen allocation and the figures behind it."""

    amount_eth: Decimal
    treasury_balance_eth: Decimal | None = None
    committed_eth: Decimal | None = None
    available_eth: Decimal | None = None
    fallback_reason: str | None = None

    @property
    def used_fallback(self) -> bool:
        return self.fallback_reason is not None

    def to_dict(self) -> dict[str, Any]:
        def fmt(value: Decimal | None) -> str | None:
            return None if value is None else str(value)

        return {
            "amountEth": str(self.amount_eth),
            "treasuryBalanceEth": fmt(self.treasury_balance_eth),
            "committedEth": fmt(self.committed_eth),
            "availableEth": fmt(self.available_eth),
            "fallbackReason": self.fallback_reason,
        }


class AllocationCalculator:
    """Sizes proposals relative to uncommitted treasury funds."""

    def __init__(
        self,
        config: AllocationConfig,
        chain: ChainReader,
        index_client: ProposalIndexClient,
        treasury_address: str | None,
    ):
        self.config = config
        self.chain = chain
        self.index_client = index_client
        self.treasury_address = treasury_address

    def _quantize(self, amount: Decimal) -> Decimal:
        exponent = Decimal(1).scaleb(-self.config.decimals)
        return amount.quantize(exponent, rounding=ROUND_HALF_UP)

    def _fallback(self, reason: str, **figures: Decimal | None) -> AllocationResult:
        logger.warning(
            f"Allocation falling back to {self.config.default_eth} ETH: {reason}"
        )
        return AllocationResult(
            amount_eth=self._clamp(self.config.default_eth),
            fallback_reason=reason,
            **figures,
        )

    def _clamp(self, amount: Decimal) -> Decimal:
        return self._quantize(max(self.config.min_eth, min(self.config.max_eth, amount)))

    def bound(self, available: Decimal) -> Decimal:
        """Apply percent, clamp to the safety bounds, then round."""
        return self._clamp(available * self.config.percent / Decimal(100))

    async def committed_eth(self) -> Decimal:
        """Sum of ``Amount: X ETH`` over proposals the governor still considers live."""
        proposals = await self.index_client.fetch_page(first=self.config.active_scan_limit)
        total = Decimal(0)
        for proposal in proposals:
            try:
                state = await self.chain.proposal_state(proposal.proposal_id)
            except ChainReadError as e:
                logger.debug(f"Skipping proposal {proposal.proposal_id}: {e}")
                continue
            if state not in ACTIVE_STATES:
                continue
            amount = decode_amount(proposal.description)
            if amount is None:
                logger.debug(f"No amount in proposal {proposal.proposal_id}, counting 0")
                continue
            total += amount
        return total

    async def calculate(self) -> AllocationResult:
        """Compute the allocation for the next proposal. Never raises on read errors."""
        if not self.treasury_address:
            return self._fallback("treasury address not configured")

        try:
            balance = wei_to_eth(await self.chain.get_balance(self.treasury_address))
            committed = await self.committed_eth()
        except (ChainReadError, ProposalIndexError) as e:
            return self._fallback(f"read failed: {e}")

        available = balance - committed
        logger.info(
            f"Treasury {balance:.6f} ETH, committed {committed:.6f} ETH, "
            f"available {available:.6f} ETH"
        )
        if available < 0:
            return self._fallback(
                "committed value exceeds treasury balance",
                treasury_balance_eth=balance,
                committed_eth=committed,
                available_eth=available,
            )

        amount = self.bound(available)
        logger.info(f"Allocation ({self.config.percent}%): {amount} ETH")
        return AllocationResult(
            amount_eth=amount,
            treasury_balance_eth=balance,
            committed_eth=committed,
            available_eth=available,
        )
