"""
Proposal history oracle: was a coin already proposed recently?

Nothing is cached locally. Every query walks the proposal index from the
newest proposal backwards and stops at the first one older than the
window.

When the index is unavailable the history reads as empty, so callers see
"nothing recently proposed" and keep working. Duplicate prevention is
therefore best-effort: an index outage can let a repeat proposal through.
"""

import logging
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .models import ProposalHistoryEntry, utc_now
from .proposal_text import decode_description
from .subgraph import ProposalIndexClient, ProposalIndexError

logger = logging.getLogger(__name__)


@dataclass
class ExcludedAddress:
    """A candidate address held back because it was proposed recently."""

    coin_address: str
    proposal_id: str
    hours_ago: float
    reason: str


@dataclass
class ProposalFilterResult:
    allowed: list[str] = field(default_factory=list)
    excluded: list[ExcludedAddress] = field(default_factory=list)


class ProposalHistory:
    """Read-through view of recent proposals for duplicate checks."""

    def __init__(
        self,
        index_client: ProposalIndexClient,
        clock: Callable[[], datetime] | None = None,
    ):
        self.index_client = index_client
        self.clock = clock or utc_now

    async def recent_proposals(
        self, window: timedelta
    ) -> AsyncIterator[ProposalHistoryEntry]:
        """Yield proposals created within ``window`` of now, newest first."""
        cutoff = self.clock() - window
        try:
            async for proposal in self.index_client.iter_proposals():
                if proposal.time_created < cutoff:
                    return

                decoded = decode_description(proposal.description)
                if decoded is None:
                    logger.info(
                        f"Proposal {proposal.proposal_id} names no coin address, skipping"
                    )
                    continue

                yield ProposalHistoryEntry(
                    coin_address=decoded.coin_address,
                    coin_symbol=decoded.coin_symbol,
                    coin_name=decoded.coin_name,
                    proposal_id=proposal.proposal_id,
                    submitted_at=proposal.time_created,
                    tx_hash=proposal.transaction_hash,
                    block_number=proposal.snapshot_block_number,
                )
        except ProposalIndexError as e:
            logger.warning(f"Proposal history unavailable, assuming none: {e}")

    async def was_recently_proposed(
        self, coin_address: str, window: timedelta
    ) -> ProposalHistoryEntry | None:
        """Most recent proposal for this address within the window, if any."""
        needle = coin_address.lower()
        async for entry in self.recent_proposals(window):
            if entry.coin_address.lower() == needle:
                return entry
        return None

    async def filter_unproposed(
        self, coin_addresses: Iterable[str], window: timedelta
    ) -> ProposalFilterResult:
        """Split addresses into allowed and recently proposed, from one history fetch."""
        latest: dict[str, ProposalHistoryEntry] = {}
        async for entry in self.recent_proposals(window):
            latest.setdefault(entry.coin_address.lower(), entry)

        now = self.clock()
        result = ProposalFilterResult()
        for address in coin_addresses:
            entry = latest.get(address.lower())
            if entry is None:
                result.allowed.append(address)
                continue
            hours = entry.hours_ago(now)
            result.excluded.append(
                ExcludedAddress(
                    coin_address=address,
                    proposal_id=entry.proposal_id,
                    hours_ago=hours,
                    reason=f"Proposed {hours:.1f}h ago in proposal {entry.proposal_id}",
                )
            )

        if result.excluded:
            logger.info(f"Excluded {len(result.excluded)} recently proposed coin(s)")
        return result
