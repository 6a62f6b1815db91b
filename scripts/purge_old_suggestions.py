#!/usr/bin/env python3
"""Purge finished (completed/failed) suggestions from the queue file."""

import argparse
from datetime import timedelta
from pathlib import Path

from treasury_agent.store import JsonFileRepository, SuggestionStore


def purge(queue_path: Path, days: int) -> int:
    """Delete suggestions processed more than N days ago."""
    store = SuggestionStore(JsonFileRepository(queue_path))
    return store.purge_finished(timedelta(days=days))


def main() -> None:
    parser = argparse.ArgumentParser(description="Purge old finished suggestions")
    parser.add_argument(
        "--queue",
        type=Path,
        default=Path("data/suggestions-queue.json"),
        help="Path to the queue file (default: data/suggestions-queue.json)",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=7,
        help="Delete suggestions processed more than this many days ago (default: 7)",
    )
    args = parser.parse_args()

    deleted = purge(args.queue, args.days)
    print(f"Deleted {deleted} suggestion(s) processed more than {args.days} days ago")


if __name__ == "__main__":
    main()
