"""Tests for the proposal index client."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from treasury_agent.config import SubgraphConfig
from treasury_agent.subgraph import IndexedProposal, ProposalIndexClient, ProposalIndexError


def row(n: int, **overrides):
    data = {
        "proposalId": f"0x{n:064x}",
        "proposalNumber": str(n),
        "description": f"# Buy C{n}",
        "title": f"Buy C{n}",
        "timeCreated": str(1767225600 - n * 60),
        "transactionHash": f"0xtx{n}",
        "snapshotBlockNumber": "123",
        "targets": ["0x" + "3" * 40],
        "values": ["1000"],
        "calldatas": ["0xdeadbeef"],
    }
    data.update(overrides)
    return data


@pytest.fixture
def client():
    return ProposalIndexClient(
        SubgraphConfig(url="http://subgraph.test", page_size=2, max_pages=3),
        dao_address="0xABC",
    )


def patched_client(responses):
    mock_client = AsyncMock()
    mock_client.post.side_effect = responses
    mock_client.__aenter__.return_value = mock_client
    mock_client.__aexit__.return_value = None
    return mock_client


class TestIndexedProposal:
    def test_from_api(self):
        proposal = IndexedProposal.from_api(row(1))

        assert proposal.proposal_id == f"0x{1:064x}"
        assert proposal.time_created == datetime(2025, 12, 31, 23, 59, tzinfo=UTC)
        assert proposal.proposal_number == 1
        assert proposal.values == [1000]

    def test_malformed_row(self):
        with pytest.raises(ProposalIndexError):
            IndexedProposal.from_api({"proposalId": "1", "timeCreated": "soon"})


class TestFetchPage:
    @pytest.mark.asyncio
    async def test_sends_dao_filter(self, client, mock_response):
        """The DAO address is lowercased into the where clause."""
        with patch("httpx.AsyncClient") as MockClient:
            mock_client = patched_client([mock_response({"data": {"proposals": [row(1)]}})])
            MockClient.return_value = mock_client

            proposals = await client.fetch_page(first=5, skip=10)

        assert len(proposals) == 1
        payload = mock_client.post.call_args.kwargs["json"]
        assert payload["variables"] == {"where": {"dao": "0xabc"}, "first": 5, "skip": 10}

    @pytest.mark.asyncio
    async def test_graphql_errors(self, client, mock_response):
        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = patched_client(
                [mock_response({"errors": [{"message": "bad query"}]})]
            )

            with pytest.raises(ProposalIndexError):
                await client.fetch_page(first=5)

    @pytest.mark.asyncio
    async def test_http_error(self, client, mock_response):
        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = patched_client([mock_response({}, status_code=502)])

            with pytest.raises(ProposalIndexError):
                await client.fetch_page(first=5)

    @pytest.mark.asyncio
    async def test_network_error(self, client):
        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = patched_client(httpx.ConnectError("refused"))

            with pytest.raises(ProposalIndexError):
                await client.fetch_page(first=5)


class TestIterProposals:
    @pytest.mark.asyncio
    async def test_stops_on_short_page(self, client, mock_response):
        """A page shorter than page_size is the last one."""
        with patch("httpx.AsyncClient") as MockClient:
            mock_client = patched_client(
                [
                    mock_response({"data": {"proposals": [row(1), row(2)]}}),
                    mock_response({"data": {"proposals": [row(3)]}}),
                ]
            )
            MockClient.return_value = mock_client

            ids = [p.proposal_number async for p in client.iter_proposals()]

        assert ids == [1, 2, 3]
        assert mock_client.post.call_count == 2

    @pytest.mark.asyncio
    async def test_respects_max_pages(self, client, mock_response):
        full = mock_response({"data": {"proposals": [row(1), row(2)]}})
        with patch("httpx.AsyncClient") as MockClient:
            mock_client = patched_client([full, full, full, full])
            MockClient.return_value = mock_client

            proposals = [p async for p in client.iter_proposals()]

        assert len(proposals) == 6
        assert mock_client.post.call_count == 3
