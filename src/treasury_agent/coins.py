"""
Zora coin directory client.

Wraps the Zora REST API used to discover creator coins, look up coin
metrics, resolve handles to coin addresses and list the DAO's holdings.

API documentation: https://docs.zora.co/coins/sdk
"""

import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx

from .config import CoinsConfig, ConfigurationError

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


class ExploreList:
    """Explore list types, in the order discovery and search walk them."""

    MOST_VALUABLE = "MOST_VALUABLE_CREATORS"
    TOP_VOLUME_24H = "TOP_VOLUMES_24H"
    NEW = "NEW"
    LAST_TRADED = "LAST_TRADED"

    ALL = (MOST_VALUABLE, TOP_VOLUME_24H, NEW, LAST_TRADED)


class CoinDirectoryError(Exception):
    """The coin directory could not be queried."""


class ResolutionError(Exception):
    """An identifier could not be mapped to a coin."""


def _float_or_none(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _unwrap(payload: Any) -> dict[str, Any]:
    # REST responses may or may not carry a top-level "data" envelope
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload if isinstance(payload, dict) else {}


def _edges(container: dict[str, Any] | None) -> list[dict[str, Any]]:
    if not container:
        return []
    return [
        edge.get("node") or {}
        for edge in container.get("edges") or []
        if isinstance(edge, dict)
    ]


@dataclass
class CoinInfo:
    """A coin with the market figures the agent cares about."""

    address: str
    symbol: str | None = None
    name: str | None = None
    creator_address: str | None = None
    creator_handle: str | None = None
    current_price_usd: float | None = None
    volume_24h_usd: float | None = None
    market_cap: str | None = None
    total_supply: str | None = None

    @classmethod
    def from_api(cls, node: dict[str, Any]) -> "CoinInfo":
        price = (node.get("tokenPrice") or {}).get("priceInUsdc")
        return cls(
            address=node.get("address") or "",
            symbol=node.get("symbol") or None,
            name=node.get("name") or None,
            creator_address=node.get("creatorAddress") or None,
            creator_handle=(node.get("creatorProfile") or {}).get("handle"),
            current_price_usd=_float_or_none(price),
            volume_24h_usd=_float_or_none(node.get("volume24h")),
            market_cap=node.get("marketCap") or None,
            total_supply=node.get("totalSupply") or None,
        )

    @property
    def label(self) -> str:
        return self.symbol or self.name or self.address

    def to_summary(self, rank: int) -> dict[str, Any]:
        """Compact description for the scoring model."""
        return {
            "rank": rank,
            "coinId": self.address,
            "name": self.name or "Unknown",
            "symbol": self.symbol or "N/A",
            "creator": self.creator_address or "Unknown",
            "currentPrice": self.current_price_usd if self.current_price_usd is not None else "N/A",
            "volume24h": self.volume_24h_usd if self.volume_24h_usd is not None else "N/A",
            "marketCap": self.market_cap or "N/A",
            "totalSupply": self.total_supply or "N/A",
        }


@dataclass
class Profile:
    """A Zora profile."""

    identifier: str
    address: str | None = None
    handle: str | None = None
    display_name: str | None = None
    pfp_url: str | None = None
    creator_coin_address: str | None = None

    @classmethod
    def from_api(cls, identifier: str, data: dict[str, Any]) -> "Profile":
        avatar = data.get("avatar") or {}
        pfp = data.get("pfpUrl") or (avatar.get("medium") if isinstance(avatar, dict) else None)
        wallet = (data.get("publicWallet") or {}).get("walletAddress")
        return cls(
            identifier=identifier,
            address=wallet or data.get("address"),
            handle=data.get("handle") or data.get("username"),
            display_name=data.get("displayName") or data.get("handle") or data.get("username"),
            pfp_url=pfp,
            creator_coin_address=(data.get("creatorCoin") or {}).get("address"),
        )


@dataclass
class Holding:
    """A coin balance held by an address."""

    coin_address: str
    balance: str | None = None
    balance_usd: float | None = None
    creator_address: str | None = None


@dataclass
class ResolvedAsset:
    """Result of mapping a user-supplied identifier to a coin."""

    identifier: str
    coin: CoinInfo
    creator_address: str
    creator_name: str | None = None
    pfp_url: str | None = None

    @property
    def coin_address(self) -> str:
        return self.coin.address


class CoinDirectoryClient:
    """Client for the Zora REST API."""

    def __init__(self, config: CoinsConfig):
        self.api_base = config.api_base.rstrip("/")
        self.api_key = config.get_api_key()
        self.chain_id = config.chain_id
        self.timeout = config.timeout_seconds
        self.search_count = config.search_count

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any] | None:
        """GET an endpoint. Returns None on 404."""
        if not self.api_key:
            raise ConfigurationError("coins.api_key (or its environment variable) is not set")

        url = f"{self.api_base}{path}"
        headers = {"api-key": self.api_key, "Accept": "application/json"}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.get(url, params=params, headers=headers)
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                return _unwrap(response.json())
            except httpx.HTTPError as e:
                raise CoinDirectoryError(f"GET {path} failed: {e}") from e
            except ValueError as e:
                raise CoinDirectoryError(f"GET {path} returned invalid JSON: {e}") from e

    async def explore(self, list_type: str, count: int = 25) -> list[CoinInfo]:
        """Coins from one explore list, in list order."""
        data = await self._get("/explore", {"listType": list_type, "count": count})
        nodes = _edges((data or {}).get("exploreList"))
        return [CoinInfo.from_api(node) for node in nodes if node.get("address")]

    async def get_coin(self, address: str) -> CoinInfo | None:
        data = await self._get("/coin", {"address": address, "chain": self.chain_id})
        token = (data or {}).get("zora20Token")
        if not token or not token.get("address"):
            return None
        return CoinInfo.from_api(token)

    async def get_profile(self, identifier: str) -> Profile | None:
        data = await self._get("/profile", {"identifier": identifier})
        profile = (data or {}).get("profile")
        if not profile:
            return None
        return Profile.from_api(identifier, profile)

    async def get_profile_coins(self, identifier: str, count: int = 1) -> list[CoinInfo]:
        data = await self._get("/profileCoins", {"identifier": identifier, "count": count})
        profile = (data or {}).get("profile") or {}
        container = profile.get("createdCoins") or profile.get("coins")
        return [CoinInfo.from_api(node) for node in _edges(container) if node.get("address")]

    async def get_holdings(self, address: str, count: int = 100) -> list[Holding]:
        """Coin balances held by an address (the DAO treasury)."""
        data = await self._get("/profileBalances", {"identifier": address, "count": count})
        profile = (data or {}).get("profile") or {}
        holdings = []
        for node in _edges(profile.get("coinBalances")):
            coin = node.get("coin") or {}
            if not coin.get("address"):
                continue
            holdings.append(
                Holding(
                    coin_address=coin["address"],
                    balance=node.get("balance"),
                    balance_usd=_float_or_none(node.get("balanceUsd")),
                    creator_address=coin.get("creatorAddress"),
                )
            )
        return holdings

    async def search(self, term: str) -> CoinInfo | None:
        """Find a coin by name or symbol across the explore lists.

        Each list is checked for an exact match before a partial one.
        Lists that fail are skipped.
        """
        needle = term.lower().strip()
        for list_type in ExploreList.ALL:
            try:
                coins = await self.explore(list_type, count=self.search_count)
            except CoinDirectoryError as e:
                logger.info(f"Search skipped {list_type}: {e}")
                continue

            for coin in coins:
                if needle in ((coin.name or "").lower().strip(), (coin.symbol or "").lower().strip()):
                    return coin
            for coin in coins:
                if needle in (coin.name or "").lower() or needle in (coin.symbol or "").lower():
                    return coin
        return None

    async def resolve(self, identifier: str) -> ResolvedAsset:
        """
        Map an address, coin name/symbol or Zora handle to a coin.

        Raises:
            ResolutionError: nothing matched
        """
        identifier = (identifier or "").strip()
        if not identifier:
            raise ResolutionError("An identifier is required")

        if identifier.startswith("0x"):
            if not ADDRESS_RE.match(identifier):
                raise ResolutionError(f"Not a valid address: {identifier}")
            return await self._resolve_address(identifier)

        found = await self.search(identifier)
        if found is not None:
            logger.info(f"Resolved {identifier!r} via search to {found.address}")
            profile = await self._profile_or_none(identifier)
            coin = await self._coin_or_none(found.address) or found
            return ResolvedAsset(
                identifier=identifier,
                coin=coin,
                creator_address=coin.creator_address or coin.address,
                creator_name=coin.name or coin.symbol or identifier,
                pfp_url=profile.pfp_url if profile else None,
            )

        try:
            created = await self.get_profile_coins(identifier)
        except CoinDirectoryError as e:
            logger.info(f"Profile coins lookup failed for {identifier!r}: {e}")
            created = []
        if created:
            profile = await self._profile_or_none(identifier)
            coin = await self._coin_or_none(created[0].address) or created[0]
            logger.info(f"Resolved {identifier!r} via profile coins to {coin.address}")
            return ResolvedAsset(
                identifier=identifier,
                coin=coin,
                creator_address=(profile.address if profile else None) or coin.creator_address or coin.address,
                creator_name=(profile.display_name if profile else None) or coin.name or identifier,
                pfp_url=profile.pfp_url if profile else None,
            )

        profile = await self._profile_or_none(identifier)
        if profile and profile.creator_coin_address:
            coin = await self._coin_or_none(profile.creator_coin_address)
            if coin is not None:
                logger.info(f"Resolved {identifier!r} via creator coin to {coin.address}")
                return ResolvedAsset(
                    identifier=identifier,
                    coin=coin,
                    creator_address=profile.address or coin.creator_address or coin.address,
                    creator_name=profile.display_name or identifier,
                    pfp_url=profile.pfp_url,
                )

        raise ResolutionError(
            f'Could not find a coin for "{identifier}". '
            "Provide a coin address (0x...), a coin name or symbol, or a Zora username."
        )

    async def _resolve_address(self, address: str) -> ResolvedAsset:
        coin = await self._coin_or_none(address)
        if coin is not None:
            return ResolvedAsset(
                identifier=address,
                coin=coin,
                creator_address=coin.creator_address or address,
                creator_name=coin.creator_handle or coin.name or address,
            )

        # Not a coin: treat it as a creator wallet
        try:
            created = await self.get_profile_coins(address)
        except CoinDirectoryError as e:
            raise ResolutionError(f"Could not look up {address}: {e}") from e
        if not created:
            raise ResolutionError(
                f"No creator coin found for {address}. It is not a coin address "
                "and the creator has not launched a coin."
            )
        coin = await self._coin_or_none(created[0].address) or created[0]
        return ResolvedAsset(
            identifier=address,
            coin=coin,
            creator_address=address,
            creator_name=coin.name or address,
        )

    async def _coin_or_none(self, address: str) -> CoinInfo | None:
        try:
            return await self.get_coin(address)
        except CoinDirectoryError as e:
            logger.info(f"Coin lookup failed for {address}: {e}")
            return None

    async def _profile_or_none(self, identifier: str) -> Profile | None:
        try:
            return await self.get_profile(identifier)
        except CoinDirectoryError as e:
            logger.debug(f"Profile lookup failed for {identifier}: {e}")
            return None
