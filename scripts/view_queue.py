#!/usr/bin/env python3
"""Print the suggestion queue."""

import argparse
from pathlib import Path

from treasury_agent.models import Suggestion, SuggestionStatus
from treasury_agent.store import JsonFileRepository, SuggestionStore


def format_suggestion(position: int, suggestion: Suggestion) -> str:
    label = suggestion.coin_name or suggestion.coin_symbol or "Unknown"
    lines = [
        f"{position}. {label} [{suggestion.status.value}]",
        f"   ID: {suggestion.id}",
        f"   Coin: {suggestion.coin_address}",
        f"   Confidence: {suggestion.confidence_score * 100:.1f}%",
        f"   Source: {suggestion.source.value}"
        + (f" (by {suggestion.submitted_by})" if suggestion.submitted_by else ""),
        f"   Added: {suggestion.added_at}",
        f"   Reason: {suggestion.reason}",
    ]
    if suggestion.processed_at:
        lines.append(f"   Processed: {suggestion.processed_at}")
    if suggestion.tx_hash:
        lines.append(f"   Tx: {suggestion.tx_hash}")
    if suggestion.error_message:
        lines.append(f"   Error: {suggestion.error_message}")
    return "\n".join(lines)


def main() -> None:
    parser = argparse.ArgumentParser(description="View the suggestion queue")
    parser.add_argument(
        "--queue",
        type=Path,
        default=Path("data/suggestions-queue.json"),
        help="Path to the queue file (default: data/suggestions-queue.json)",
    )
    parser.add_argument(
        "--status",
        choices=[s.value for s in SuggestionStatus],
        help="Only show suggestions with this status",
    )
    args = parser.parse_args()

    store = SuggestionStore(JsonFileRepository(args.queue))
    stats = store.stats()
    print(
        f"Total: {stats.total}  pending: {stats.pending}  processing: {stats.processing}  "
        f"completed: {stats.completed}  failed: {stats.failed}"
    )
    if stats.last_updated:
        print(f"Last updated: {stats.last_updated}")

    suggestions = (
        store.list_by_status(SuggestionStatus(args.status)) if args.status else store.list_all()
    )
    if not suggestions:
        print("\nQueue is empty.")
        return

    print()
    for position, suggestion in enumerate(suggestions, start=1):
        print(format_suggestion(position, suggestion))
        print()


if __name__ == "__main__":
    main()
