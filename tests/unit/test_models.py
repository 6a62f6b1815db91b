"""Tests for treasury-agent data models."""

from datetime import UTC, datetime

import pytest

from treasury_agent.models import (
    QueueDocument,
    Suggestion,
    SuggestionSource,
    SuggestionStatus,
    parse_timestamp,
)


class TestSuggestionSerialization:
    """Persisted suggestions use the camelCase queue format."""

    def test_reads_existing_queue_record(self):
        """A record in the established queue format should load."""
        record = {
            "id": "suggestion_1700000000000_abc123",
            "coinId": "0x" + "a" * 40,
            "coinSymbol": "ART",
            "coinName": "Art Coin",
            "currentPriceUsd": 0.0012,
            "volume24hUsd": None,
            "reason": "Real artist",
            "confidenceScore": 0.65,
            "source": "manual",
            "submittedBy": "artist",
            "addedAt": "2025-01-01T00:00:00.000Z",
            "status": "pending",
        }

        suggestion = Suggestion.from_dict(record)

        assert suggestion.coin_address == "0x" + "a" * 40
        assert suggestion.volume_24h_usd is None
        assert suggestion.source == SuggestionSource.MANUAL
        assert suggestion.status == SuggestionStatus.PENDING

    def test_to_dict_uses_queue_keys(self):
        suggestion = Suggestion(
            id="suggestion_x",
            coin_address="0xabc",
            reason="r",
            confidence_score=0.5,
            source=SuggestionSource.AGENT,
            added_at="2025-01-01T00:00:00+00:00",
        )

        data = suggestion.to_dict()

        assert data["coinId"] == "0xabc"
        assert data["confidenceScore"] == 0.5
        assert data["source"] == "agent"
        assert data["status"] == "pending"

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError):
            Suggestion.from_dict({"id": "x", "coinId": "0x1", "status": "exploded"})


class TestQueueDocument:
    def test_requires_suggestions_list(self):
        """Wrong shapes are rejected so the repository can treat them as corrupt."""
        with pytest.raises(ValueError):
            QueueDocument.from_dict({"suggestions": "nope"})
        with pytest.raises(ValueError):
            QueueDocument.from_dict([])


class TestParseTimestamp:
    def test_zulu_suffix(self):
        assert parse_timestamp("2025-01-01T00:00:00.000Z") == datetime(2025, 1, 1, tzinfo=UTC)

    def test_naive_is_utc(self):
        assert parse_timestamp("2025-01-01T00:00:00").tzinfo is not None

    def test_garbage(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None
