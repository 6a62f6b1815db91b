"""
Proposal executor: the second scheduled job.

Finds the newest of the agent's own proposals that the governor reports
as Succeeded or Queued and executes it. One execution per run.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any

from .chain import EXECUTABLE_STATES, ChainReader, ChainReadError
from .config import AgentConfig
from .markers import RunMarker
from .proposal_text import decode_description
from .proposals import AssetManagerClient, GovernorProposal, SubmissionError, SubmissionReceipt
from .services import AgentServices
from .subgraph import IndexedProposal, ProposalIndexClient, ProposalIndexError

logger = logging.getLogger(__name__)


class ExecutorOutcome(str, Enum):
    SKIPPED_COOLDOWN = "skipped_cooldown"
    NOTHING_TO_EXECUTE = "nothing_to_execute"
    EXECUTED = "executed"


@dataclass
class ExecutorReport:
    outcome: ExecutorOutcome
    message: str = ""
    scanned: int = 0
    proposal_id: str | None = None
    receipt: SubmissionReceipt | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "message": self.message,
            "scanned": self.scanned,
            "proposalId": self.proposal_id,
            "txHash": self.receipt.tx_hash if self.receipt else None,
        }


def governor_call(proposal: IndexedProposal) -> GovernorProposal | None:
    """Rebuild ``execute`` arguments from the index, or None if incomplete."""
    if not proposal.targets or not (
        len(proposal.targets) == len(proposal.values) == len(proposal.calldatas)
    ):
        return None
    return GovernorProposal(
        targets=list(proposal.targets),
        values=list(proposal.values),
        calldatas=list(proposal.calldatas),
        description=proposal.description,
    )


class ProposalExecutor:
    """Executes passed buy proposals."""

    def __init__(
        self,
        config: AgentConfig,
        index_client: ProposalIndexClient,
        chain: ChainReader,
        asset_manager: AssetManagerClient,
        marker: RunMarker,
    ):
        self.config = config
        self.index_client = index_client
        self.chain = chain
        self.asset_manager = asset_manager
        self.marker = marker

    @classmethod
    def from_services(cls, services: AgentServices) -> "ProposalExecutor":
        config = services.config
        return cls(
            config=config,
            index_client=services.index_client,
            chain=services.chain,
            asset_manager=services.asset_manager,
            marker=RunMarker(
                config.executor_marker_path,
                timedelta(minutes=config.executor_cooldown_minutes),
            ),
        )

    async def run_once(self) -> ExecutorReport:
        self.config.require("dao.governor_address", "chain.state_selector")

        remaining = self.marker.cooldown_remaining()
        if remaining is not None:
            minutes = remaining.total_seconds() / 60
            logger.info(f"Executor cooldown active, {minutes:.1f} minute(s) remaining")
            return ExecutorReport(
                outcome=ExecutorOutcome.SKIPPED_COOLDOWN,
                message=f"Cooldown active ({minutes:.1f} min remaining)",
            )

        self.marker.record()

        try:
            proposals = await self.index_client.fetch_page(first=self.config.execute_scan_limit)
        except ProposalIndexError as e:
            logger.warning(f"Could not list proposals: {e}")
            return ExecutorReport(
                outcome=ExecutorOutcome.NOTHING_TO_EXECUTE,
                message="Proposal index unavailable",
            )

        scanned = 0
        for proposal in proposals:
            if decode_description(proposal.description) is None:
                continue
            scanned += 1

            try:
                state = await self.chain.proposal_state(proposal.proposal_id)
            except ChainReadError as e:
                logger.warning(f"State check failed for {proposal.proposal_id}: {e}")
                continue

            if state not in EXECUTABLE_STATES:
                logger.debug(f"Proposal {proposal.proposal_id} is {state.name}")
                continue

            call = governor_call(proposal)
            if call is None:
                logger.warning(
                    f"Proposal {proposal.proposal_id} is {state.name} but the index has no call data"
                )
                continue

            logger.info(
                f"Executing proposal #{proposal.proposal_number} ({proposal.proposal_id}), state {state.name}"
            )
            try:
                receipt = await self.asset_manager.execute_proposal(proposal.proposal_id, call)
            except SubmissionError as e:
                logger.error(f"Execution of {proposal.proposal_id} failed: {e}")
                continue

            return ExecutorReport(
                outcome=ExecutorOutcome.EXECUTED,
                message=f"Executed proposal {proposal.proposal_id}",
                scanned=scanned,
                proposal_id=proposal.proposal_id,
                receipt=receipt,
            )

        return ExecutorReport(
            outcome=ExecutorOutcome.NOTHING_TO_EXECUTE,
            message=f"No executable proposals among {scanned} scanned",
            scanned=scanned,
        )
