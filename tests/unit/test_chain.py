"""Tests for the JSON-RPC chain reader."""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from treasury_agent.chain import ChainReader, ChainReadError, ProposalState, wei_to_eth
from treasury_agent.config import ChainConfig, ConfigurationError

GOVERNOR = "0x" + "2" * 40


def rpc_client(mock_response, result=None, error=None):
    body = {"jsonrpc": "2.0", "id": 1}
    if error is not None:
        body["error"] = error
    else:
        body["result"] = result
    mock_client = AsyncMock()
    mock_client.post.return_value = mock_response(body)
    mock_client.__aenter__.return_value = mock_client
    mock_client.__aexit__.return_value = None
    return mock_client


@pytest.fixture
def reader():
    return ChainReader(
        ChainConfig(rpc_url="http://rpc.test", state_selector="0x3e4f49e6"),
        governor_address=GOVERNOR,
    )


class TestChainReader:
    @pytest.mark.asyncio
    async def test_get_balance(self, reader, mock_response):
        with patch("httpx.AsyncClient") as MockClient:
            mock_client = rpc_client(mock_response, result=hex(10**18))
            MockClient.return_value = mock_client

            balance = await reader.get_balance("0xtreasury")

        assert balance == 10**18
        payload = mock_client.post.call_args.kwargs["json"]
        assert payload["method"] == "eth_getBalance"
        assert payload["params"] == ["0xtreasury", "latest"]

    @pytest.mark.asyncio
    async def test_rpc_error(self, reader, mock_response):
        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = rpc_client(
                mock_response, error={"code": -32000, "message": "boom"}
            )

            with pytest.raises(ChainReadError):
                await reader.get_balance("0xtreasury")

    @pytest.mark.asyncio
    async def test_proposal_state(self, reader, mock_response):
        """state(bytes32) is called with the id padded to 32 bytes."""
        with patch("httpx.AsyncClient") as MockClient:
            mock_client = rpc_client(mock_response, result="0x" + "0" * 63 + "5")
            MockClient.return_value = mock_client

            state = await reader.proposal_state("0xabc")

        assert state == ProposalState.QUEUED
        call = mock_client.post.call_args.kwargs["json"]["params"][0]
        assert call["to"] == GOVERNOR
        assert call["data"] == "0x3e4f49e6" + "abc".rjust(64, "0")

    @pytest.mark.asyncio
    async def test_unknown_state(self, reader, mock_response):
        with patch("httpx.AsyncClient") as MockClient:
            MockClient.return_value = rpc_client(mock_response, result="0x" + "0" * 62 + "63")

            with pytest.raises(ChainReadError):
                await reader.proposal_state("0xabc")

    @pytest.mark.asyncio
    async def test_state_needs_selector(self):
        reader = ChainReader(ChainConfig(rpc_url="http://rpc.test"), governor_address=GOVERNOR)

        with pytest.raises(ConfigurationError):
            await reader.proposal_state("0xabc")


def test_wei_to_eth():
    assert wei_to_eth(15 * 10**17) == Decimal("1.5")
