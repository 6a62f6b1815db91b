"""
Run orchestrator: one scheduled agent tick.

Each tick either drains the oldest pending suggestion or, with an empty
queue, discovers one fresh coin. At most one proposal is submitted per
tick, and ticks are paced by a run marker.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any

from .allocation import AllocationCalculator, AllocationResult
from .config import AgentConfig
from .discovery import Discovery
from .markers import RunMarker
from .models import Suggestion, SuggestionSource, SuggestionStatus
from .proposal_text import ProposalDetails
from .proposals import AssetManagerClient, SubmissionReceipt, build_governor_proposal
from .services import AgentServices
from .store import InvalidTransition, SuggestionNotFound, SuggestionStore

logger = logging.getLogger(__name__)

REQUIRED_SETTINGS = (
    "dao.treasury_address",
    "dao.governor_address",
    "chain.state_selector",
)


class RunOutcome(str, Enum):
    """How an agent tick ended."""

    SKIPPED_COOLDOWN = "skipped_cooldown"
    DRAINED = "drained"
    NO_CANDIDATES = "no_candidates"
    BELOW_THRESHOLD = "below_threshold"
    PROPOSED = "proposed"
    BUSY = "busy"


@dataclass
class RunReport:
    """Summary of one tick."""

    outcome: RunOutcome
    message: str = ""
    suggestion: Suggestion | None = None
    coin_address: str | None = None
    confidence_score: float | None = None
    allocation: AllocationResult | None = None
    receipt: SubmissionReceipt | None = None
    cooldown_remaining: timedelta | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "message": self.message,
            "suggestionId": self.suggestion.id if self.suggestion else None,
            "coinAddress": self.coin_address,
            "confidenceScore": self.confidence_score,
            "allocation": self.allocation.to_dict() if self.allocation else None,
            "txHash": self.receipt.tx_hash if self.receipt else None,
            "proposalId": self.receipt.proposal_id if self.receipt else None,
        }


class Orchestrator:
    """Drives queue draining, discovery and proposal submission."""

    def __init__(
        self,
        config: AgentConfig,
        store: SuggestionStore,
        allocation: AllocationCalculator,
        asset_manager: AssetManagerClient,
        discovery: Discovery,
        marker: RunMarker,
    ):
        self.config = config
        self.store = store
        self.allocation = allocation
        self.asset_manager = asset_manager
        self.discovery = discovery
        self.marker = marker

    @classmethod
    def from_services(cls, services: AgentServices) -> "Orchestrator":
        config = services.config
        return cls(
            config=config,
            store=services.store,
            allocation=services.allocation,
            asset_manager=services.asset_manager,
            discovery=Discovery(
                coins=services.coins,
                history=services.history,
                scorer=services.scorer,
                treasury_address=config.dao.treasury_address,
                duplicate_window=config.duplicate_window,
                discovery_count=config.discovery_count,
                max_candidates=config.max_candidates,
            ),
            marker=RunMarker(
                config.agent_marker_path, timedelta(minutes=config.cooldown_minutes)
            ),
        )

    async def submit_buy(
        self,
        coin_address: str,
        reason: str,
        coin_symbol: str | None = None,
        coin_name: str | None = None,
        source: SuggestionSource = SuggestionSource.AGENT,
        confidence_score: float | None = None,
    ) -> tuple[AllocationResult, SubmissionReceipt]:
        """Allocate, build and submit one buy proposal."""
        allocation = await self.allocation.calculate()
        details = ProposalDetails(
            coin_address=coin_address,
            coin_symbol=coin_symbol,
            coin_name=coin_name,
            amount_eth=allocation.amount_eth,
            reason=reason,
            slippage_percent=self.config.slippage_percent,
            source=SuggestionSource(source).value,
            confidence_score=confidence_score,
        )
        logger.info(
            f"Building proposal: {allocation.amount_eth} ETH of {coin_symbol or coin_address} "
            f"(max slippage {self.config.slippage_percent}%)"
        )
        trade_call = await self.asset_manager.build_trade_call(
            coin_address,
            allocation.amount_eth,
            self.config.slippage_percent,
            recipient=self.config.dao.treasury_address,
        )
        proposal = build_governor_proposal(details, trade_call)
        receipt = await self.asset_manager.submit_proposal(proposal)
        return allocation, receipt

    async def process_suggestion(self, suggestion: Suggestion) -> RunReport:
        """
        Submit a proposal for a queued suggestion.

        On success the suggestion is completed (and leaves the queue). On any
        failure it is marked failed with the error message and the error is
        re-raised.
        """
        self.store.set_status(suggestion.id, SuggestionStatus.PROCESSING)
        logger.info(
            f"Processing suggestion {suggestion.id}: "
            f"{suggestion.coin_name or suggestion.coin_symbol or suggestion.coin_address} "
            f"(confidence {suggestion.confidence_score:.2f}, source {suggestion.source.value})"
        )

        try:
            allocation, receipt = await self.submit_buy(
                suggestion.coin_address,
                suggestion.reason,
                coin_symbol=suggestion.coin_symbol,
                coin_name=suggestion.coin_name,
                source=suggestion.source,
                confidence_score=suggestion.confidence_score,
            )
        except Exception as e:
            logger.exception(f"Failed to process suggestion {suggestion.id}")
            self.store.set_status(
                suggestion.id,
                SuggestionStatus.FAILED,
                error_message=str(e) or e.__class__.__name__,
            )
            raise

        completed = self.store.set_status(
            suggestion.id,
            SuggestionStatus.COMPLETED,
            proposal_id=receipt.proposal_id,
            tx_hash=receipt.tx_hash,
        )
        logger.info(f"Suggestion {suggestion.id} submitted in tx {receipt.tx_hash}")
        return RunReport(
            outcome=RunOutcome.DRAINED,
            message=f"Submitted queued suggestion {suggestion.id}",
            suggestion=completed,
            coin_address=completed.coin_address,
            confidence_score=completed.confidence_score,
            allocation=allocation,
            receipt=receipt,
        )

    async def discover_and_propose(self) -> RunReport:
        """Pick one fresh coin and propose it directly if confident enough."""
        found = await self.discovery.find_candidates()
        if not found.candidates:
            return RunReport(
                outcome=RunOutcome.NO_CANDIDATES,
                message="No coins left after holdings and history filters",
            )

        choice = await self.discovery.pick(found.candidates)
        if choice is None:
            return RunReport(
                outcome=RunOutcome.NO_CANDIDATES,
                message="Model did not pick one of the candidates",
            )

        coin, pick = choice.coin, choice.pick
        threshold = self.config.confidence_threshold
        logger.info(f"Model picked {coin.label} at {pick.confidence_score:.2f}: {pick.reason}")
        if pick.confidence_score < threshold:
            return RunReport(
                outcome=RunOutcome.BELOW_THRESHOLD,
                message=f"Confidence {pick.confidence_score:.2f} below threshold {threshold:.2f}",
                coin_address=coin.address,
                confidence_score=pick.confidence_score,
            )

        allocation, receipt = await self.submit_buy(
            coin.address,
            pick.reason,
            coin_symbol=coin.symbol,
            coin_name=coin.name,
            source=SuggestionSource.AGENT,
            confidence_score=pick.confidence_score,
        )
        return RunReport(
            outcome=RunOutcome.PROPOSED,
            message=f"Proposed {coin.label}",
            coin_address=coin.address,
            confidence_score=pick.confidence_score,
            allocation=allocation,
            receipt=receipt,
        )

    async def run_once(self) -> RunReport:
        """One scheduled tick. Raises ConfigurationError before touching the marker."""
        self.config.require(*REQUIRED_SETTINGS)

        remaining = self.marker.cooldown_remaining()
        if remaining is not None:
            minutes = remaining.total_seconds() / 60
            logger.info(f"Cooldown active, {minutes:.1f} minute(s) remaining")
            return RunReport(
                outcome=RunOutcome.SKIPPED_COOLDOWN,
                message=f"Cooldown active ({minutes:.1f} min remaining)",
                cooldown_remaining=remaining,
            )

        self.marker.record()

        if self.config.reclaim_stale_after_minutes:
            self.store.reclaim_stale(timedelta(minutes=self.config.reclaim_stale_after_minutes))

        in_flight = self.store.list_by_status(SuggestionStatus.PROCESSING)
        if in_flight:
            # Only one suggestion may be processing; wait for it or for reclaim
            logger.warning(
                f"Suggestion {in_flight[0].id} is still processing "
                f"(since {in_flight[0].processing_started_at}), skipping this tick"
            )
            return RunReport(
                outcome=RunOutcome.BUSY,
                message=f"Suggestion {in_flight[0].id} is still processing",
                suggestion=in_flight[0],
            )

        pending = self.store.next_pending()
        if pending is not None:
            logger.info("Queue has pending suggestions, draining before discovery")
            return await self.process_suggestion(pending)

        logger.info("Queue is empty, running discovery")
        return await self.discover_and_propose()

    async def retry_failed(self, suggestion_id: str) -> RunReport:
        """Push a failed suggestion through submission again, under the same id."""
        self.config.require(*REQUIRED_SETTINGS)
        suggestion = self.store.get(suggestion_id)
        if suggestion is None:
            raise SuggestionNotFound(f"Suggestion not found: {suggestion_id}")
        if suggestion.status != SuggestionStatus.FAILED:
            raise InvalidTransition(
                f"Only failed suggestions can be retried ({suggestion_id} is {suggestion.status.value})"
            )
        return await self.process_suggestion(suggestion)
