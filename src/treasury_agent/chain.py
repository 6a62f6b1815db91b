"""
Minimal JSON-RPC reader for balances and governor state.
"""

import itertools
import logging
from decimal import Decimal
from enum import IntEnum
from typing import Any

import httpx

from .config import ChainConfig, ConfigurationError

logger = logging.getLogger(__name__)

WEI_PER_ETH = 10**18


class ProposalState(IntEnum):
    """Governor proposal states, as returned by ``state(bytes32)``."""

    PENDING = 0
    ACTIVE = 1
    CANCELED = 2
    DEFEATED = 3
    SUCCEEDED = 4
    QUEUED = 5
    EXPIRED = 6
    EXECUTED = 7


# States whose ETH value is still committed
ACTIVE_STATES = frozenset(
    {ProposalState.PENDING, ProposalState.ACTIVE, ProposalState.SUCCEEDED, ProposalState.QUEUED}
)
EXECUTABLE_STATES = frozenset({ProposalState.SUCCEEDED, ProposalState.QUEUED})


class ChainReadError(Exception):
    """A JSON-RPC read failed."""


def _strip_hex(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


class ChainReader:
    """Read-only access to the chain over JSON-RPC."""

    def __init__(self, config: ChainConfig, governor_address: str | None = None):
        self.rpc_url = config.rpc_url
        self.timeout = config.timeout_seconds
        self.state_selector = config.state_selector
        self.governor_address = governor_address
        self._ids = itertools.count(1)

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(self.rpc_url, json=payload)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as e:
                raise ChainReadError(f"{method} failed: {e}") from e
            except ValueError as e:
                raise ChainReadError(f"{method} returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ChainReadError(f"{method} returned a non-object payload")
        if data.get("error"):
            raise ChainReadError(f"{method} error: {data['error']}")
        if "result" not in data:
            raise ChainReadError(f"{method} returned no result")
        return data["result"]

    async def get_balance(self, address: str) -> int:
        """Native balance in wei."""
        result = await self._rpc("eth_getBalance", [address, "latest"])
        try:
            return int(result, 16)
        except (TypeError, ValueError) as e:
            raise ChainReadError(f"Unparsable balance {result!r}") from e

    async def call(self, to: str, data: str) -> str:
        """Run a view function and return the raw hex result."""
        result = await self._rpc("eth_call", [{"to": to, "data": data}, "latest"])
        if not isinstance(result, str):
            raise ChainReadError(f"Unexpected eth_call result {result!r}")
        return result

    async def proposal_state(self, proposal_id: str) -> ProposalState:
        """Governor state for a bytes32 proposal id."""
        if not self.state_selector or not self.governor_address:
            raise ConfigurationError(
                "chain.state_selector and dao.governor_address are required to read proposal state"
            )
        selector = _strip_hex(self.state_selector)
        argument = _strip_hex(proposal_id).rjust(64, "0")
        raw = await self.call(self.governor_address, f"0x{selector}{argument}")
        try:
            return ProposalState(int(_strip_hex(raw) or "0", 16))
        except ValueError as e:
            raise ChainReadError(f"Unknown proposal state {raw!r} for {proposal_id}") from e


def wei_to_eth(wei: int) -> Decimal:
    """Wei as a Decimal amount of ETH."""
    return Decimal(wei) / Decimal(WEI_PER_ETH)
