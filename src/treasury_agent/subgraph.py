"""
Builder DAO subgraph client (the proposal index).

The index lists a DAO's proposals newest-first. It does not know which
proposals are still live; callers that care re-check state on chain.
"""

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx

from .config import SubgraphConfig

logger = logging.getLogger(__name__)

PROPOSALS_QUERY = """
query proposals($where: Proposal_filter, $first: Int!, $skip: Int!) {
  proposals(
    where: $where
    first: $first
    skip: $skip
    orderBy: timeCreated
    orderDirection: desc
  ) {
    proposalId
    proposalNumber
    description
    title
    timeCreated
    transactionHash
    snapshotBlockNumber
    targets
    values
    calldatas
  }
}
"""


class ProposalIndexError(Exception):
    """The proposal index could not be queried or returned garbage."""


@dataclass
class IndexedProposal:
    """One proposal as reported by the index."""

    proposal_id: str
    time_created: datetime
    description: str = ""
    title: str | None = None
    proposal_number: int | None = None
    transaction_hash: str | None = None
    snapshot_block_number: int | None = None
    targets: list[str] = field(default_factory=list)
    values: list[int] = field(default_factory=list)
    calldatas: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "IndexedProposal":
        """Parse a subgraph row. Raises ProposalIndexError on malformed rows."""
        try:
            created = datetime.fromtimestamp(int(data["timeCreated"]), tz=UTC)
            block = data.get("snapshotBlockNumber")
            number = data.get("proposalNumber")
            return cls(
                proposal_id=str(data["proposalId"]),
                time_created=created,
                description=data.get("description") or "",
                title=data.get("title"),
                proposal_number=int(number) if number is not None else None,
                transaction_hash=data.get("transactionHash"),
                snapshot_block_number=int(block) if block is not None else None,
                targets=list(data.get("targets") or []),
                values=[int(v) for v in data.get("values") or []],
                calldatas=list(data.get("calldatas") or []),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProposalIndexError(f"Malformed proposal row: {e}") from e


class ProposalIndexClient:
    """GraphQL client for one DAO's proposals."""

    def __init__(self, config: SubgraphConfig, dao_address: str):
        self.url = config.url
        self.timeout = config.timeout_seconds
        self.page_size = config.page_size
        self.max_pages = config.max_pages
        self.dao_address = dao_address.lower()

    async def fetch_page(self, first: int, skip: int = 0) -> list[IndexedProposal]:
        """Fetch one page of proposals, newest first."""
        payload = {
            "query": PROPOSALS_QUERY,
            "variables": {
                "where": {"dao": self.dao_address},
                "first": first,
                "skip": skip,
            },
        }

        logger.debug(f"Querying proposal index (first={first}, skip={skip})")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as e:
                raise ProposalIndexError(f"Proposal index request failed: {e}") from e
            except ValueError as e:
                raise ProposalIndexError(f"Proposal index returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ProposalIndexError("Proposal index returned a non-object payload")
        if data.get("errors"):
            raise ProposalIndexError(f"Proposal index errors: {data['errors']}")

        rows = (data.get("data") or {}).get("proposals")
        if not isinstance(rows, list):
            raise ProposalIndexError("Proposal index payload has no proposals list")
        return [IndexedProposal.from_api(row) for row in rows]

    async def iter_proposals(
        self,
        page_size: int | None = None,
        max_pages: int | None = None,
    ) -> AsyncIterator[IndexedProposal]:
        """Yield proposals newest-first, fetching further pages on demand."""
        page_size = page_size or self.page_size
        max_pages = max_pages or self.max_pages

        for page in range(max_pages):
            proposals = await self.fetch_page(first=page_size, skip=page * page_size)
            for proposal in proposals:
                yield proposal
            if len(proposals) < page_size:
                return
