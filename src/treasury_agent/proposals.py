"""
Governor proposal building and the asset-manager service client.

The asset manager holds the agent's signing keys. It builds swap calldata
for a coin purchase, submits governor ``propose`` transactions and
executes passed proposals. This module only builds the proposal locally
and relays it.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import httpx

from .chain import WEI_PER_ETH
from .config import AssetManagerConfig, ConfigurationError
from .proposal_text import ProposalDetails, encode_description

logger = logging.getLogger(__name__)


class SubmissionError(Exception):
    """The asset manager rejected or failed a request."""


def eth_to_wei(amount: Decimal) -> int:
    return int(amount * WEI_PER_ETH)


@dataclass
class TradeCall:
    """One contract call that performs the buy."""

    target: str
    value: int
    calldata: str


@dataclass
class GovernorProposal:
    """Arguments for the governor's ``propose``."""

    targets: list[str] = field(default_factory=list)
    values: list[int] = field(default_factory=list)
    calldatas: list[str] = field(default_factory=list)
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "targets": self.targets,
            # wei values exceed JSON number precision
            "values": [str(v) for v in self.values],
            "calldatas": self.calldatas,
            "description": self.description,
        }


@dataclass
class SubmissionReceipt:
    """What the asset manager reports back after a submission."""

    tx_hash: str
    proposal_id: str | None = None


def build_governor_proposal(details: ProposalDetails, trade_call: TradeCall) -> GovernorProposal:
    """Assemble governor arguments for a single buy."""
    return GovernorProposal(
        targets=[trade_call.target],
        values=[trade_call.value],
        calldatas=[trade_call.calldata],
        description=encode_description(details),
    )


class AssetManagerClient:
    """HTTP client for the asset-manager service."""

    def __init__(self, config: AssetManagerConfig):
        self.base_url = config.base_url.rstrip("/")
        self.api_key = config.get_api_key()
        self.timeout = config.timeout_seconds

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.api_key:
            raise ConfigurationError(
                "asset_manager.api_key (or its environment variable) is not set"
            )

        headers = {"Authorization": f"Bearer {self.api_key}"}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    f"{self.base_url}{path}", json=payload, headers=headers
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                raise SubmissionError(
                    f"POST {path} returned {e.response.status_code}: {e.response.text[:200]}"
                ) from e
            except httpx.HTTPError as e:
                raise SubmissionError(f"POST {path} failed: {e}") from e
            except ValueError as e:
                raise SubmissionError(f"POST {path} returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise SubmissionError(f"POST {path} returned a non-object payload")
        return data

    async def build_trade_call(
        self,
        coin_address: str,
        amount_eth: Decimal,
        slippage_percent: float,
        recipient: str | None,
    ) -> TradeCall:
        """Ask the service for the calldata that buys ``amount_eth`` of a coin."""
        data = await self._post(
            "/trade-calls",
            {
                "coinAddress": coin_address,
                "amountWei": str(eth_to_wei(amount_eth)),
                "slippagePercent": slippage_percent,
                "recipient": recipient,
            },
        )
        try:
            return TradeCall(
                target=data["target"],
                value=int(data["value"]),
                calldata=data["calldata"],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SubmissionError(f"Malformed trade call: {data!r}") from e

    async def submit_proposal(self, proposal: GovernorProposal) -> SubmissionReceipt:
        """Submit a governor proposal. Does not wait for confirmation."""
        data = await self._post("/proposals", proposal.to_dict())
        tx_hash = data.get("txHash")
        if not tx_hash:
            raise SubmissionError(f"Submission returned no txHash: {data!r}")
        proposal_id = data.get("proposalId")
        logger.info(f"Proposal submitted: tx {tx_hash}")
        return SubmissionReceipt(
            tx_hash=tx_hash,
            proposal_id=str(proposal_id) if proposal_id is not None else None,
        )

    async def execute_proposal(
        self, proposal_id: str, proposal: GovernorProposal
    ) -> SubmissionReceipt:
        """Execute a passed proposal; the service derives the description hash."""
        payload = proposal.to_dict()
        payload["proposalId"] = proposal_id
        data = await self._post("/proposals/execute", payload)
        tx_hash = data.get("txHash")
        if not tx_hash:
            raise SubmissionError(f"Execution returned no txHash: {data!r}")
        logger.info(f"Proposal {proposal_id} executed: tx {tx_hash}")
        return SubmissionReceipt(tx_hash=tx_hash, proposal_id=proposal_id)
