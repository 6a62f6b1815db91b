"""Shared pytest fixtures for treasury-agent tests."""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from datasette.app import Datasette

from treasury_agent.config import PLUGIN_NAME, AgentConfig
from treasury_agent.models import SuggestionCandidate, SuggestionSource
from treasury_agent.store import JsonFileRepository, SuggestionStore
from treasury_agent.subgraph import IndexedProposal, ProposalIndexError

TREASURY = "0x" + "1" * 40
GOVERNOR = "0x" + "2" * 40
DAO_TOKEN = "0x3740fea2a46ca4414b4afde16264389642e6596a"
STATE_SELECTOR = "0x3e4f49e6"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class FixedClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeIndexClient:
    """Stands in for ProposalIndexClient with a fixed, newest-first list."""

    def __init__(self, proposals=None, error: Exception | None = None):
        self.proposals = list(proposals or [])
        self.error = error
        self.yielded = 0
        self.calls = 0

    async def iter_proposals(self, page_size=None, max_pages=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        for proposal in self.proposals:
            self.yielded += 1
            yield proposal

    async def fetch_page(self, first, skip=0):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.proposals[skip : skip + first]


def indexed_proposal(
    proposal_id: str,
    created: datetime,
    address: str | None = None,
    symbol: str = "COIN",
    amount: str | None = None,
    description: str | None = None,
    **kwargs,
) -> IndexedProposal:
    """Build an IndexedProposal whose description names ``address``."""
    if description is None:
        lines = [f"# Buy {symbol}", "", "Name: Some Coin", f"Symbol: {symbol}"]
        if address:
            lines.append(f"Address: {address}")
        if amount:
            lines.append(f"Amount: {amount} ETH")
        description = "\n".join(lines)
    return IndexedProposal(
        proposal_id=proposal_id,
        time_created=created,
        description=description,
        **kwargs,
    )


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def make_index():
    """Factory for fake proposal index clients."""
    return FakeIndexClient


@pytest.fixture
def make_proposal():
    return indexed_proposal


@pytest.fixture
def index_error():
    return ProposalIndexError("subgraph down")


@pytest.fixture
def queue_path(tmp_path):
    return tmp_path / "data" / "suggestions-queue.json"


@pytest.fixture
def store(queue_path, clock):
    """A suggestion store over a temporary queue file."""
    return SuggestionStore(JsonFileRepository(queue_path, lock_timeout=2), clock=clock)


@pytest.fixture
def make_candidate():
    """Factory for suggestion candidates."""

    def _make(address: str = "0x" + "a" * 40, **kwargs) -> SuggestionCandidate:
        defaults = {
            "reason": "Active creator with growing holder base",
            "confidence_score": 0.8,
            "source": SuggestionSource.MANUAL,
            "coin_symbol": "COIN",
            "coin_name": "Some Coin",
        }
        defaults.update(kwargs)
        return SuggestionCandidate(coin_address=address, **defaults)

    return _make


@pytest.fixture
def agent_settings(tmp_path):
    """Plugin-style agent settings with every required value filled in."""
    return {
        "data_dir": str(tmp_path / "data"),
        "dao": {
            "treasury_address": TREASURY,
            "governor_address": GOVERNOR,
            "token_address": DAO_TOKEN,
        },
        "chain": {"rpc_url": "http://rpc.test", "state_selector": STATE_SELECTOR},
        "subgraph": {"url": "http://subgraph.test"},
        "coins": {"api_base": "http://zora.test", "api_key": "zora-key"},
        "llm": {"base_url": "http://llm.test/v1", "api_key": "llm-key"},
        "asset_manager": {"base_url": "http://assets.test", "api_key": "am-key"},
    }


@pytest.fixture
def agent_config(agent_settings):
    return AgentConfig.from_dict(agent_settings)


@pytest.fixture
def mock_response():
    """Create a mock httpx response."""

    def _make_response(json_data, status_code=200):
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = json_data
        response.text = str(json_data)
        response.raise_for_status = MagicMock()
        if status_code >= 400:
            from httpx import HTTPStatusError

            response.raise_for_status.side_effect = HTTPStatusError(
                "Error", request=MagicMock(), response=response
            )
        return response

    return _make_response


@pytest.fixture
def datasette(agent_settings):
    """Create a Datasette instance with the plugin configured."""
    return Datasette(
        memory=True,
        config={
            "plugins": {
                PLUGIN_NAME: {
                    "agent": agent_settings,
                }
            },
        },
    )
