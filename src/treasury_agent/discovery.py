"""
Fresh-candidate discovery for agent runs with an empty queue.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from .coins import CoinDirectoryClient, CoinDirectoryError, CoinInfo, ExploreList
from .history import ExcludedAddress, ProposalHistory
from .scoring import Pick, ScoringClient

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryResult:
    """Candidates that survived filtering, plus what was filtered out."""

    candidates: list[CoinInfo] = field(default_factory=list)
    fetched: int = 0
    held: int = 0
    excluded: list[ExcludedAddress] = field(default_factory=list)


@dataclass
class DiscoveryPick:
    """The model's choice, joined back to its candidate."""

    coin: CoinInfo
    pick: Pick


def dedupe_coins(coins: list[CoinInfo]) -> list[CoinInfo]:
    """Drop repeated addresses (case-insensitive), keeping the first."""
    seen: set[str] = set()
    unique = []
    for coin in coins:
        key = coin.address.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(coin)
    return unique


class Discovery:
    """Finds and picks one coin the DAO neither holds nor recently proposed."""

    def __init__(
        self,
        coins: CoinDirectoryClient,
        history: ProposalHistory,
        scorer: ScoringClient,
        treasury_address: str | None,
        duplicate_window: timedelta = timedelta(hours=24),
        discovery_count: int = 25,
        max_candidates: int = 20,
    ):
        self.coins = coins
        self.history = history
        self.scorer = scorer
        self.treasury_address = treasury_address
        self.duplicate_window = duplicate_window
        self.discovery_count = discovery_count
        self.max_candidates = max_candidates

    async def _fetch(self) -> list[CoinInfo]:
        fetched: list[CoinInfo] = []
        for list_type in ExploreList.ALL:
            try:
                coins = await self.coins.explore(list_type, count=self.discovery_count)
            except CoinDirectoryError as e:
                logger.warning(f"Discovery source {list_type} failed: {e}")
                continue
            logger.info(f"Fetched {len(coins)} coin(s) from {list_type}")
            fetched.extend(coins)
        return fetched

    async def _held_addresses(self) -> set[str]:
        if not self.treasury_address:
            return set()
        try:
            holdings = await self.coins.get_holdings(self.treasury_address)
        except CoinDirectoryError as e:
            logger.warning(f"Holdings lookup failed, assuming none held: {e}")
            return set()
        return {h.coin_address.lower() for h in holdings}

    async def find_candidates(self) -> DiscoveryResult:
        fetched = await self._fetch()
        result = DiscoveryResult(fetched=len(fetched))
        unique = dedupe_coins(fetched)
        if not unique:
            return result

        held = await self._held_addresses()
        not_held = [
            coin
            for coin in unique
            if coin.address.lower() not in held
            and not (coin.creator_address and coin.creator_address.lower() in held)
        ]
        result.held = len(unique) - len(not_held)

        filtered = await self.history.filter_unproposed(
            [coin.address for coin in not_held], self.duplicate_window
        )
        result.excluded = filtered.excluded
        allowed = {address.lower() for address in filtered.allowed}

        remaining = [coin for coin in not_held if coin.address.lower() in allowed]
        result.candidates = remaining[: self.max_candidates]
        logger.info(
            f"Discovery: {len(fetched)} fetched, {len(unique)} unique, {result.held} held, "
            f"{len(result.excluded)} recently proposed, {len(result.candidates)} to score"
        )
        return result

    async def pick(self, candidates: list[CoinInfo]) -> DiscoveryPick | None:
        """Let the model choose. Returns None if it picks something off the list."""
        if not candidates:
            return None
        summaries = [coin.to_summary(rank) for rank, coin in enumerate(candidates, start=1)]
        choice = await self.scorer.pick_best(summaries)

        wanted = choice.coin_address.lower()
        for coin in candidates:
            if coin.address.lower() == wanted:
                return DiscoveryPick(coin=coin, pick=choice)

        logger.warning(f"Model picked {choice.coin_address}, which was not a candidate")
        return None
