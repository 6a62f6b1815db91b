"""Tests for the Zora coin directory client."""

from unittest.mock import AsyncMock, patch

import pytest

from treasury_agent.coins import CoinDirectoryClient, CoinDirectoryError, ResolutionError
from treasury_agent.config import CoinsConfig, ConfigurationError

COIN = "0x" + "c" * 40
CREATOR = "0x" + "e" * 40


def coin_node(address=COIN, symbol="ART", name="Art Coin", **extra):
    node = {
        "address": address,
        "symbol": symbol,
        "name": name,
        "creatorAddress": CREATOR,
        "tokenPrice": {"priceInUsdc": "0.0012"},
        "volume24h": "150.5",
        "marketCap": "12000",
    }
    node.update(extra)
    return node


def explore_payload(*nodes):
    return {"exploreList": {"edges": [{"node": n} for n in nodes]}}


@pytest.fixture
def client():
    return CoinDirectoryClient(CoinsConfig(api_base="http://zora.test", api_key="zora-key"))


@pytest.fixture
def routed(mock_response):
    """Patch httpx with a client that answers GETs from a path -> payload table.

    A payload of None means 404; an Exception instance is raised.
    """

    def _install(routes):
        async def get(url, params=None, headers=None):
            path = url.removeprefix("http://zora.test")
            key = (path, params.get("listType")) if path == "/explore" else path
            payload = routes.get(key, routes.get(path))
            if isinstance(payload, Exception):
                raise payload
            if payload is None:
                return mock_response({}, status_code=404)
            return mock_response(payload)

        mock_client = AsyncMock()
        mock_client.get.side_effect = get
        mock_client.__aenter__.return_value = mock_client
        mock_client.__aexit__.return_value = None
        MockClient.return_value = mock_client
        return mock_client

    with patch("httpx.AsyncClient") as MockClient:
        yield _install


class TestCoinDirectory:
    @pytest.mark.asyncio
    async def test_explore(self, client, routed):
        mock_client = routed({("/explore", "NEW"): explore_payload(coin_node())})

        coins = await client.explore("NEW", count=5)

        assert [c.address for c in coins] == [COIN]
        assert coins[0].current_price_usd == 0.0012
        assert coins[0].volume_24h_usd == 150.5
        assert mock_client.get.call_args.kwargs["headers"]["api-key"] == "zora-key"

    @pytest.mark.asyncio
    async def test_explore_skips_null_edges(self, client, routed):
        """Null edges and edges without a node are ignored."""
        routed(
            {
                ("/explore", "NEW"): {
                    "exploreList": {"edges": [None, {"node": None}, {"node": coin_node()}]}
                }
            }
        )

        coins = await client.explore("NEW")

        assert [c.address for c in coins] == [COIN]

    @pytest.mark.asyncio
    async def test_get_coin_not_found(self, client, routed):
        routed({"/coin": None})
        assert await client.get_coin(COIN) is None

    @pytest.mark.asyncio
    async def test_server_error(self, client, mock_response):
        with patch("httpx.AsyncClient") as MockClient:
            mock_client = AsyncMock()
            mock_client.get.return_value = mock_response({}, status_code=500)
            mock_client.__aenter__.return_value = mock_client
            mock_client.__aexit__.return_value = None
            MockClient.return_value = mock_client

            with pytest.raises(CoinDirectoryError):
                await client.get_coin(COIN)

    @pytest.mark.asyncio
    async def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("ZORA_API_KEY", raising=False)
        client = CoinDirectoryClient(CoinsConfig(api_base="http://zora.test"))

        with pytest.raises(ConfigurationError):
            await client.explore("NEW")

    @pytest.mark.asyncio
    async def test_holdings(self, client, routed):
        routed(
            {
                "/profileBalances": {
                    "profile": {
                        "coinBalances": {
                            "edges": [
                                {"node": {"balance": "10", "coin": {"address": COIN, "creatorAddress": CREATOR}}},
                                {"node": {"balance": "1", "coin": {}}},
                            ]
                        }
                    }
                }
            }
        )

        holdings = await client.get_holdings("0xtreasury")

        assert len(holdings) == 1
        assert holdings[0].creator_address == CREATOR


class TestSearch:
    @pytest.mark.asyncio
    async def test_exact_match_preferred(self, client, routed):
        """An exact symbol match wins over an earlier partial match."""
        partial = coin_node(address="0x" + "1" * 40, symbol="ARTSY", name="Artsy")
        routed({("/explore", "MOST_VALUABLE_CREATORS"): explore_payload(partial, coin_node())})

        found = await client.search("art")

        assert found.address == COIN

    @pytest.mark.asyncio
    async def test_failing_list_skipped(self, client, routed):
        routed(
            {
                ("/explore", "MOST_VALUABLE_CREATORS"): CoinDirectoryError("down"),
                ("/explore", "TOP_VOLUMES_24H"): explore_payload(coin_node()),
            }
        )

        found = await client.search("Art Coin")

        assert found.address == COIN

    @pytest.mark.asyncio
    async def test_no_match(self, client, routed):
        routed({"/explore": explore_payload(coin_node())})
        assert await client.search("zzz") is None


class TestResolve:
    """Identifier resolution order."""

    @pytest.mark.asyncio
    async def test_coin_address(self, client, routed):
        routed({"/coin": {"zora20Token": coin_node()}})

        resolved = await client.resolve(COIN)

        assert resolved.coin_address == COIN
        assert resolved.creator_address == CREATOR

    @pytest.mark.asyncio
    async def test_creator_wallet_address(self, client, routed):
        """An address that is not a coin resolves to the creator's first coin."""
        routed(
            {
                "/coin": None,
                "/profileCoins": {"profile": {"createdCoins": {"edges": [{"node": coin_node()}]}}},
            }
        )

        resolved = await client.resolve(CREATOR)

        assert resolved.coin_address == COIN
        assert resolved.creator_address == CREATOR

    @pytest.mark.asyncio
    async def test_address_without_coin(self, client, routed):
        routed({"/coin": None, "/profileCoins": {"profile": {}}})

        with pytest.raises(ResolutionError):
            await client.resolve(CREATOR)

    @pytest.mark.asyncio
    async def test_malformed_address(self, client):
        with pytest.raises(ResolutionError):
            await client.resolve("0x1234")

    @pytest.mark.asyncio
    async def test_handle_via_profile_coins(self, client, routed):
        routed(
            {
                "/explore": explore_payload(),
                "/profileCoins": {"profile": {"createdCoins": {"edges": [{"node": coin_node()}]}}},
                "/profile": {"profile": {"handle": "artist", "displayName": "The Artist",
                                         "publicWallet": {"walletAddress": CREATOR}}},
                "/coin": {"zora20Token": coin_node()},
            }
        )

        resolved = await client.resolve("artist")

        assert resolved.coin_address == COIN
        assert resolved.creator_name == "The Artist"

    @pytest.mark.asyncio
    async def test_nothing_found(self, client, routed):
        routed({"/explore": explore_payload(), "/profileCoins": None, "/profile": None})

        with pytest.raises(ResolutionError):
            await client.resolve("nobody")
