"""
Data models for treasury-agent.

Suggestions are persisted as camelCase JSON so queue files written by
earlier deployments stay readable.
"""

import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class SuggestionStatus(str, Enum):
    """Lifecycle status of a queued suggestion."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SuggestionSource(str, Enum):
    """Where a suggestion came from."""

    MANUAL = "manual"
    AGENT = "agent"


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def generate_suggestion_id() -> str:
    return f"suggestion_{secrets.token_hex(8)}"


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class SuggestionCandidate:
    """Everything about a suggestion that the caller supplies."""

    coin_address: str
    reason: str
    confidence_score: float
    source: SuggestionSource = SuggestionSource.MANUAL
    coin_symbol: str | None = None
    coin_name: str | None = None
    creator_address: str | None = None
    creator_name: str | None = None
    pfp_url: str | None = None
    current_price_usd: float | None = None
    volume_24h_usd: float | None = None
    suggested_allocation_usd: float | None = None
    submitted_by: str | None = None


@dataclass
class Suggestion:
    """A candidate investment awaiting or having undergone processing."""

    id: str
    coin_address: str
    reason: str
    confidence_score: float
    source: SuggestionSource
    added_at: str
    status: SuggestionStatus = SuggestionStatus.PENDING
    coin_symbol: str | None = None
    coin_name: str | None = None
    creator_address: str | None = None
    creator_name: str | None = None
    pfp_url: str | None = None
    current_price_usd: float | None = None
    volume_24h_usd: float | None = None
    suggested_allocation_usd: float | None = None
    submitted_by: str | None = None

    # Outcome
    processing_started_at: str | None = None
    processed_at: str | None = None
    proposal_id: str | None = None
    tx_hash: str | None = None
    error_message: str | None = None

    @classmethod
    def from_candidate(
        cls, candidate: SuggestionCandidate, added_at: datetime
    ) -> "Suggestion":
        return cls(
            id=generate_suggestion_id(),
            coin_address=candidate.coin_address,
            reason=candidate.reason,
            confidence_score=candidate.confidence_score,
            source=SuggestionSource(candidate.source),
            added_at=added_at.isoformat(),
            coin_symbol=candidate.coin_symbol,
            coin_name=candidate.coin_name,
            creator_address=candidate.creator_address,
            creator_name=candidate.creator_name,
            pfp_url=candidate.pfp_url,
            current_price_usd=candidate.current_price_usd,
            volume_24h_usd=candidate.volume_24h_usd,
            suggested_allocation_usd=candidate.suggested_allocation_usd,
            submitted_by=candidate.submitted_by,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted (camelCase) representation."""
        return {
            "id": self.id,
            "coinId": self.coin_address,
            "coinSymbol": self.coin_symbol,
            "coinName": self.coin_name,
            "creatorAddress": self.creator_address,
            "creatorName": self.creator_name,
            "pfpUrl": self.pfp_url,
            "currentPriceUsd": self.current_price_usd,
            "volume24hUsd": self.volume_24h_usd,
            "reason": self.reason,
            "confidenceScore": self.confidence_score,
            "suggestedAllocationUsd": self.suggested_allocation_usd,
            "source": self.source.value,
            "submittedBy": self.submitted_by,
            "addedAt": self.added_at,
            "status": self.status.value,
            "processingStartedAt": self.processing_started_at,
            "processedAt": self.processed_at,
            "proposalId": self.proposal_id,
            "txHash": self.tx_hash,
            "errorMessage": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Suggestion":
        """Create from the persisted representation.

        Raises KeyError/ValueError for records missing an id, address or
        a recognised status.
        """
        return cls(
            id=data["id"],
            coin_address=data["coinId"],
            reason=data.get("reason") or "",
            confidence_score=_optional_float(data.get("confidenceScore")) or 0.0,
            source=SuggestionSource(data.get("source", "manual")),
            added_at=data.get("addedAt") or "",
            status=SuggestionStatus(data.get("status", "pending")),
            coin_symbol=data.get("coinSymbol"),
            coin_name=data.get("coinName"),
            creator_address=data.get("creatorAddress"),
            creator_name=data.get("creatorName"),
            pfp_url=data.get("pfpUrl"),
            current_price_usd=_optional_float(data.get("currentPriceUsd")),
            volume_24h_usd=_optional_float(data.get("volume24hUsd")),
            suggested_allocation_usd=_optional_float(data.get("suggestedAllocationUsd")),
            submitted_by=data.get("submittedBy"),
            processing_started_at=data.get("processingStartedAt"),
            processed_at=data.get("processedAt"),
            proposal_id=data.get("proposalId"),
            tx_hash=data.get("txHash"),
            error_message=data.get("errorMessage"),
        )


@dataclass
class QueueDocument:
    """The whole persisted queue: ordered suggestions plus last-updated stamp."""

    suggestions: list[Suggestion] = field(default_factory=list)
    last_updated: str | None = None

    def find(self, suggestion_id: str) -> Suggestion | None:
        for suggestion in self.suggestions:
            if suggestion.id == suggestion_id:
                return suggestion
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "suggestions": [s.to_dict() for s in self.suggestions],
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueueDocument":
        if not isinstance(data, dict) or not isinstance(data.get("suggestions"), list):
            raise ValueError("Queue document must contain a 'suggestions' list")
        return cls(
            suggestions=[Suggestion.from_dict(item) for item in data["suggestions"]],
            last_updated=data.get("lastUpdated"),
        )


@dataclass
class QueueStats:
    """Counts per status."""

    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    last_updated: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "pending": self.pending,
            "processing": self.processing,
            "completed": self.completed,
            "failed": self.failed,
            "lastUpdated": self.last_updated,
        }


@dataclass
class ProposalHistoryEntry:
    """A past governance proposal recovered from the proposal index.

    Never persisted; rebuilt on every history query.
    """

    coin_address: str
    proposal_id: str
    submitted_at: datetime
    coin_symbol: str | None = None
    coin_name: str | None = None
    tx_hash: str | None = None
    block_number: int | None = None

    def hours_ago(self, now: datetime) -> float:
        return (now - self.submitted_at).total_seconds() / 3600

    def to_dict(self) -> dict[str, Any]:
        return {
            "coinAddress": self.coin_address,
            "coinSymbol": self.coin_symbol,
            "coinName": self.coin_name,
            "proposalId": self.proposal_id,
            "submittedAt": self.submitted_at.isoformat(),
            "txHash": self.tx_hash,
            "blockNumber": self.block_number,
        }
