"""
Wiring of stores and external clients from configuration.
"""

from dataclasses import dataclass

from .allocation import AllocationCalculator
from .chain import ChainReader
from .coins import CoinDirectoryClient
from .config import AgentConfig
from .gate import AnalysisGate
from .history import ProposalHistory
from .proposals import AssetManagerClient
from .scoring import ScoringClient
from .store import JsonFileRepository, SuggestionStore
from .subgraph import ProposalIndexClient


def open_store(config: AgentConfig) -> SuggestionStore:
    """Suggestion store backed by the configured queue file."""
    repository = JsonFileRepository(
        config.suggestions_path, lock_timeout=config.lock_timeout_seconds
    )
    return SuggestionStore(repository)


@dataclass
class AgentServices:
    """Everything a run needs, built once per process."""

    config: AgentConfig
    store: SuggestionStore
    index_client: ProposalIndexClient
    history: ProposalHistory
    chain: ChainReader
    allocation: AllocationCalculator
    coins: CoinDirectoryClient
    scorer: ScoringClient
    asset_manager: AssetManagerClient

    @classmethod
    def from_config(cls, config: AgentConfig) -> "AgentServices":
        """Build clients. Raises ConfigurationError if the DAO token is unset."""
        config.require("dao.token_address")
        index_client = ProposalIndexClient(config.subgraph, config.dao.token_address)
        chain = ChainReader(config.chain, governor_address=config.dao.governor_address)
        return cls(
            config=config,
            store=open_store(config),
            index_client=index_client,
            history=ProposalHistory(index_client),
            chain=chain,
            allocation=AllocationCalculator(
                config.allocation, chain, index_client, config.dao.treasury_address
            ),
            coins=CoinDirectoryClient(config.coins),
            scorer=ScoringClient(config.llm),
            asset_manager=AssetManagerClient(config.asset_manager),
        )

    def gate(self) -> AnalysisGate:
        return AnalysisGate(
            store=self.store,
            history=self.history,
            coins=self.coins,
            scorer=self.scorer,
            treasury_address=self.config.dao.treasury_address,
            duplicate_window=self.config.duplicate_window,
        )
