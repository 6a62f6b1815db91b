"""
Configuration for treasury-agent.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

PLUGIN_NAME = "datasette-treasury-queue"


class ConfigurationError(Exception):
    """A required setting (credential, address, selector) is missing."""


@dataclass
class LLMConfig:
    """Scoring model configuration (OpenAI-compatible chat completions)."""

    provider: str = "openai"  # openai, ollama, llama_cpp
    model: str = "gpt-4o-mini"
    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    api_key_env: str | None = "OPENAI_API_KEY"
    temperature: float = 0.7
    timeout_seconds: float = 60.0

    def get_api_key(self) -> str | None:
        """Get API key from config or environment."""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


@dataclass
class DaoConfig:
    """Addresses identifying the DAO."""

    treasury_address: str | None = None
    governor_address: str | None = None
    # DAO entity id in the subgraph
    token_address: str | None = "0x3740fea2a46ca4414b4afde16264389642e6596a"


@dataclass
class ChainConfig:
    """JSON-RPC connection for balance and contract reads."""

    rpc_url: str = "https://mainnet.base.org"
    timeout_seconds: float = 15.0
    # 4-byte selector of the governor's state(bytes32) view, hex encoded
    state_selector: str | None = None


@dataclass
class SubgraphConfig:
    """Builder DAO subgraph (proposal index)."""

    url: str = (
        "https://api.goldsky.com/api/public/project_cm33ek8kjx6pz010i2c3w8z25"
        "/subgraphs/nouns-builder-base-mainnet/latest/gn"
    )
    timeout_seconds: float = 15.0
    page_size: int = 100
    max_pages: int = 10


@dataclass
class CoinsConfig:
    """Zora coin directory API."""

    api_base: str = "https://api-sdk.zora.engineering"
    api_key: str | None = None
    api_key_env: str | None = "ZORA_API_KEY"
    chain_id: int = 8453
    timeout_seconds: float = 15.0
    search_count: int = 100

    def get_api_key(self) -> str | None:
        """Get API key from config or environment."""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


@dataclass
class AssetManagerConfig:
    """Service that builds trade calldata and signs/submits governor calls."""

    base_url: str = "http://127.0.0.1:8787"
    api_key: str | None = None
    api_key_env: str | None = "ASSET_MANAGER_API_KEY"
    timeout_seconds: float = 60.0

    def get_api_key(self) -> str | None:
        """Get API key from config or environment."""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


@dataclass
class AllocationConfig:
    """Bounds for the per-proposal ETH allocation."""

    percent: Decimal = Decimal("1")
    min_eth: Decimal = Decimal("0.0001")
    max_eth: Decimal = Decimal("0.1")
    default_eth: Decimal = Decimal("0.01")
    decimals: int = 4
    active_scan_limit: int = 100


@dataclass
class AgentConfig:
    """Complete treasury-agent configuration."""

    data_dir: Path = field(default_factory=lambda: Path("data"))
    queue_path: Path | None = None
    cooldown_minutes: float = 12
    executor_cooldown_minutes: float = 12
    duplicate_window_hours: float = 24
    confidence_threshold: float = 0.3
    max_candidates: int = 20
    discovery_count: int = 25
    slippage_percent: float = 5
    execute_scan_limit: int = 50
    reclaim_stale_after_minutes: float | None = 60
    lock_timeout_seconds: float = 10.0

    dao: DaoConfig = field(default_factory=DaoConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
    subgraph: SubgraphConfig = field(default_factory=SubgraphConfig)
    coins: CoinsConfig = field(default_factory=CoinsConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    asset_manager: AssetManagerConfig = field(default_factory=AssetManagerConfig)
    allocation: AllocationConfig = field(default_factory=AllocationConfig)

    @property
    def suggestions_path(self) -> Path:
        """Location of the persisted suggestions queue."""
        if self.queue_path is not None:
            return self.queue_path
        return self.data_dir / "suggestions-queue.json"

    @property
    def agent_marker_path(self) -> Path:
        return self.data_dir / "last-agent-run.json"

    @property
    def executor_marker_path(self) -> Path:
        return self.data_dir / "last-executor-run.json"

    @property
    def duplicate_window(self) -> timedelta:
        return timedelta(hours=self.duplicate_window_hours)

    def require(self, *names: str) -> None:
        """Fail fast if any dotted setting (e.g. ``dao.treasury_address``) is unset."""
        missing = []
        for name in names:
            value: Any = self
            for part in name.split("."):
                value = getattr(value, part, None)
            if not value:
                missing.append(name)
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AgentConfig":
        """Create config from a dictionary (e.g., from YAML)."""
        config = cls()

        if "data_dir" in data:
            config.data_dir = Path(data["data_dir"])
        if data.get("queue_path"):
            config.queue_path = Path(data["queue_path"])
        for key in (
            "cooldown_minutes",
            "executor_cooldown_minutes",
            "duplicate_window_hours",
            "confidence_threshold",
            "max_candidates",
            "discovery_count",
            "slippage_percent",
            "execute_scan_limit",
            "reclaim_stale_after_minutes",
            "lock_timeout_seconds",
        ):
            if key in data:
                setattr(config, key, data[key])

        if "dao" in data:
            dao = data["dao"]
            config.dao = DaoConfig(
                treasury_address=dao.get("treasury_address"),
                governor_address=dao.get("governor_address"),
                token_address=dao.get("token_address", config.dao.token_address),
            )

        if "chain" in data:
            chain = data["chain"]
            config.chain = ChainConfig(
                rpc_url=chain.get("rpc_url", config.chain.rpc_url),
                timeout_seconds=chain.get("timeout_seconds", 15.0),
                state_selector=chain.get("state_selector"),
            )

        if "subgraph" in data:
            sg = data["subgraph"]
            config.subgraph = SubgraphConfig(
                url=sg.get("url", config.subgraph.url),
                timeout_seconds=sg.get("timeout_seconds", 15.0),
                page_size=sg.get("page_size", 100),
                max_pages=sg.get("max_pages", 10),
            )

        if "coins" in data:
            coins = data["coins"]
            config.coins = CoinsConfig(
                api_base=coins.get("api_base", config.coins.api_base),
                api_key=coins.get("api_key"),
                api_key_env=coins.get("api_key_env", "ZORA_API_KEY"),
                chain_id=coins.get("chain_id", 8453),
                timeout_seconds=coins.get("timeout_seconds", 15.0),
                search_count=coins.get("search_count", 100),
            )

        if "llm" in data:
            llm = data["llm"]
            config.llm = LLMConfig(
                provider=llm.get("provider", "openai"),
                model=llm.get("model", "gpt-4o-mini"),
                base_url=llm.get("base_url", "https://api.openai.com/v1"),
                api_key=llm.get("api_key"),
                api_key_env=llm.get("api_key_env", "OPENAI_API_KEY"),
                temperature=llm.get("temperature", 0.7),
                timeout_seconds=llm.get("timeout_seconds", 60.0),
            )

        if "asset_manager" in data:
            am = data["asset_manager"]
            config.asset_manager = AssetManagerConfig(
                base_url=am.get("base_url", config.asset_manager.base_url),
                api_key=am.get("api_key"),
                api_key_env=am.get("api_key_env", "ASSET_MANAGER_API_KEY"),
                timeout_seconds=am.get("timeout_seconds", 60.0),
            )

        if "allocation" in data:
            alloc = data["allocation"]
            defaults = AllocationConfig()
            config.allocation = AllocationConfig(
                percent=Decimal(str(alloc.get("percent", defaults.percent))),
                min_eth=Decimal(str(alloc.get("min_eth", defaults.min_eth))),
                max_eth=Decimal(str(alloc.get("max_eth", defaults.max_eth))),
                default_eth=Decimal(str(alloc.get("default_eth", defaults.default_eth))),
                decimals=alloc.get("decimals", defaults.decimals),
                active_scan_limit=alloc.get("active_scan_limit", defaults.active_scan_limit),
            )

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "AgentConfig":
        """Load config from a YAML file (datasette.yaml format)."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        # Agent config lives under plugins.datasette-treasury-queue.agent
        plugin_config = data.get("plugins", {}).get(PLUGIN_NAME, {}) or {}
        return cls.from_dict(plugin_config.get("agent", {}) or {})

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for JSON serialization (no secrets)."""
        return {
            "data_dir": str(self.data_dir),
            "queue_path": str(self.suggestions_path),
            "cooldown_minutes": self.cooldown_minutes,
            "duplicate_window_hours": self.duplicate_window_hours,
            "confidence_threshold": self.confidence_threshold,
            "max_candidates": self.max_candidates,
            "slippage_percent": self.slippage_percent,
            "dao": {
                "treasury_address": self.dao.treasury_address,
                "governor_address": self.dao.governor_address,
                "token_address": self.dao.token_address,
            },
            "llm": {
                "provider": self.llm.provider,
                "model": self.llm.model,
                "base_url": self.llm.base_url,
            },
            "allocation": {
                "percent": str(self.allocation.percent),
                "min_eth": str(self.allocation.min_eth),
                "max_eth": str(self.allocation.max_eth),
                "default_eth": str(self.allocation.default_eth),
            },
        }
