"""
Analysis gate: decide whether a single coin enters the suggestion queue.

Checks run cheapest first. Proposal history is consulted before the
scoring model is called, and the queue is only checked once the score
clears the threshold. The gate never submits proposals; that is the
orchestrator's job.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from .coins import CoinDirectoryClient, CoinDirectoryError, Holding, ResolvedAsset
from .history import ProposalHistory
from .models import (
    ProposalHistoryEntry,
    Suggestion,
    SuggestionCandidate,
    SuggestionSource,
    utc_now,
)
from .scoring import ScoringClient, clamp_confidence
from .store import SuggestionStore

logger = logging.getLogger(__name__)


class GateOutcome(str, Enum):
    """What the gate decided."""

    RECENTLY_PROPOSED = "recently_proposed"
    BELOW_THRESHOLD = "below_threshold"
    ALREADY_QUEUED = "already_queued"
    QUEUED = "queued"


@dataclass
class GateDecision:
    """Outcome of evaluating one identifier."""

    outcome: GateOutcome
    asset: ResolvedAsset
    reason: str
    confidence_score: float
    already_held: bool = False
    suggested_allocation_usd: float | None = None
    recent_proposal: ProposalHistoryEntry | None = None
    suggestion: Suggestion | None = None

    @property
    def queued(self) -> bool:
        return self.outcome == GateOutcome.QUEUED

    @property
    def proposal_submitted(self) -> bool | str:
        """``"pending"`` when queued, otherwise False."""
        return "pending" if self.queued else False

    def to_dict(self) -> dict[str, Any]:
        coin = self.asset.coin
        return {
            "username": self.asset.identifier,
            "creatorAddress": self.asset.creator_address,
            "coinId": coin.address,
            "symbol": (self.recent_proposal.coin_symbol if self.recent_proposal else None) or coin.symbol,
            "name": (self.recent_proposal.coin_name if self.recent_proposal else None) or coin.name,
            "creatorName": self.asset.creator_name,
            "pfpUrl": self.asset.pfp_url,
            "currentPriceUsd": coin.current_price_usd,
            "volume24hUsd": coin.volume_24h_usd,
            "alreadyHeld": self.already_held,
            "reason": self.reason,
            "confidenceScore": self.confidence_score,
            "suggestedAllocationUsd": self.suggested_allocation_usd,
            "outcome": self.outcome.value,
            "proposalSubmitted": self.proposal_submitted,
            "recentProposal": self.recent_proposal.to_dict() if self.recent_proposal else None,
            "suggestionId": self.suggestion.id if self.suggestion else None,
        }


def find_holding(holdings: list[Holding], coin_address: str) -> Holding | None:
    needle = coin_address.lower()
    for holding in holdings:
        if holding.coin_address.lower() == needle:
            return holding
    return None


class AnalysisGate:
    """Screens one candidate coin and queues it when it passes."""

    def __init__(
        self,
        store: SuggestionStore,
        history: ProposalHistory,
        coins: CoinDirectoryClient,
        scorer: ScoringClient,
        treasury_address: str | None,
        duplicate_window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.history = history
        self.coins = coins
        self.scorer = scorer
        self.treasury_address = treasury_address
        self.duplicate_window = duplicate_window
        self.clock = clock or utc_now

    async def _holding(self, coin_address: str) -> Holding | None:
        if not self.treasury_address:
            return None
        try:
            holdings = await self.coins.get_holdings(self.treasury_address)
        except CoinDirectoryError as e:
            logger.warning(f"Holdings lookup failed, treating as not held: {e}")
            return None
        return find_holding(holdings, coin_address)

    async def evaluate(
        self,
        identifier: str,
        confidence_threshold: float,
        submitted_by: str | None = None,
    ) -> GateDecision:
        """
        Resolve, screen and maybe queue one coin.

        Raises:
            ResolutionError: identifier could not be mapped to a coin
            ScoringError: the scoring model failed
        """
        asset = await self.coins.resolve(identifier)
        coin = asset.coin
        logger.info(f"Evaluating {coin.label} ({coin.address})")

        recent = await self.history.was_recently_proposed(coin.address, self.duplicate_window)
        if recent is not None:
            hours = recent.hours_ago(self.clock())
            logger.info(
                f"{coin.label} was proposed {hours:.1f}h ago in {recent.proposal_id}, skipping scoring"
            )
            return GateDecision(
                outcome=GateOutcome.RECENTLY_PROPOSED,
                asset=asset,
                reason=(
                    f"Proposal already submitted {hours:.1f}h ago "
                    f"(proposal {recent.proposal_id}). Duplicate prevention active."
                ),
                confidence_score=0.0,
                recent_proposal=recent,
            )

        holding = await self._holding(coin.address)
        context = {
            "creator": {
                "username": asset.identifier,
                "address": asset.creator_address,
            },
            "coin": {
                "symbol": coin.symbol or "Unknown",
                "name": coin.name or "Unknown",
                "address": coin.address,
                "currentPriceUsd": coin.current_price_usd if coin.current_price_usd is not None else "N/A",
                "volume24hUsd": coin.volume_24h_usd if coin.volume_24h_usd is not None else "N/A",
            },
            "daoExposure": {
                "alreadyHeld": holding is not None,
                "currentHoldingUsd": (holding.balance_usd if holding else None) or 0,
            },
        }
        score = await self.scorer.score_asset(context)
        confidence = clamp_confidence(score.confidence_score)

        decision = GateDecision(
            outcome=GateOutcome.BELOW_THRESHOLD,
            asset=asset,
            reason=score.reason,
            confidence_score=confidence,
            already_held=holding is not None,
            suggested_allocation_usd=score.suggested_allocation_usd,
        )

        if confidence < confidence_threshold:
            logger.info(
                f"{coin.label} scored {confidence:.2f}, below threshold {confidence_threshold:.2f}"
            )
            return decision

        if self.store.is_queued(coin.address):
            logger.info(f"{coin.label} is already pending in the queue")
            decision.outcome = GateOutcome.ALREADY_QUEUED
            decision.reason = (
                "Suggestion not accepted: This coin is already in the queue awaiting processing."
            )
            return decision

        decision.suggestion = self.store.enqueue(
            SuggestionCandidate(
                coin_address=coin.address,
                coin_symbol=coin.symbol,
                coin_name=coin.name,
                creator_address=asset.creator_address,
                creator_name=asset.creator_name,
                pfp_url=asset.pfp_url,
                current_price_usd=coin.current_price_usd,
                volume_24h_usd=coin.volume_24h_usd,
                reason=score.reason,
                confidence_score=confidence,
                suggested_allocation_usd=score.suggested_allocation_usd,
                source=SuggestionSource.MANUAL,
                submitted_by=submitted_by or asset.identifier,
            )
        )
        decision.outcome = GateOutcome.QUEUED
        return decision
