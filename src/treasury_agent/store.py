"""
Persistent suggestion store.

The queue is one JSON document rewritten as a whole on every change. All
load-mutate-save cycles go through ``SuggestionRepository.transaction()``,
which holds a file lock for the duration so the API server and the
scheduled agent serialize their writes.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path

import filelock

from .models import (
    QueueDocument,
    QueueStats,
    Suggestion,
    SuggestionCandidate,
    SuggestionStatus,
    parse_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

# status -> statuses it may move to
VALID_TRANSITIONS: dict[SuggestionStatus, set[SuggestionStatus]] = {
    SuggestionStatus.PENDING: {SuggestionStatus.PROCESSING},
    SuggestionStatus.PROCESSING: {SuggestionStatus.COMPLETED, SuggestionStatus.FAILED},
    SuggestionStatus.FAILED: {SuggestionStatus.PROCESSING},
    SuggestionStatus.COMPLETED: set(),
}

FINISHED_STATUSES = (SuggestionStatus.COMPLETED, SuggestionStatus.FAILED)


class StoreError(Exception):
    """Base class for suggestion store errors."""


class SuggestionNotFound(StoreError):
    """No suggestion with the given id."""


class InvalidTransition(StoreError):
    """The requested status change is not allowed."""


class StoreLockError(StoreError):
    """The queue lock could not be acquired in time."""


class SuggestionRepository(ABC):
    """Load/save access to the queue document."""

    @abstractmethod
    def load(self) -> QueueDocument:
        """Return the current document (empty if unreadable)."""

    @abstractmethod
    def save(self, document: QueueDocument) -> None:
        """Persist the whole document."""

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[QueueDocument]:
        """Yield the loaded document and save it on normal exit."""


class JsonFileRepository(SuggestionRepository):
    """Queue document stored as JSON on disk, guarded by ``<file>.lock``."""

    def __init__(self, path: Path, lock_timeout: float = 10.0):
        self.path = Path(path)
        self.lock_path = self.path.with_suffix(self.path.suffix + ".lock")
        self.lock_timeout = lock_timeout
        self._lock = filelock.FileLock(str(self.lock_path), timeout=lock_timeout)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._lock.acquire()
        except filelock.Timeout as e:
            raise StoreLockError(f"Could not acquire lock for {self.path}") from e
        try:
            yield
        finally:
            self._lock.release()

    def _read(self) -> QueueDocument:
        if not self.path.exists():
            return QueueDocument()
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            return QueueDocument.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unreadable queue file {self.path}, starting empty: {e}")
            return QueueDocument()

    def _write(self, document: QueueDocument) -> None:
        document.last_updated = utc_now().isoformat()
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document.to_dict(), f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def load(self) -> QueueDocument:
        with self._locked():
            return self._read()

    def save(self, document: QueueDocument) -> None:
        with self._locked():
            self._write(document)

    @contextmanager
    def transaction(self) -> Iterator[QueueDocument]:
        with self._locked():
            document = self._read()
            yield document
            self._write(document)


class SuggestionStore:
    """CRUD and status transitions over the suggestion queue.

    The store does not police duplicates; that is the analysis gate's job.
    """

    def __init__(
        self,
        repository: SuggestionRepository,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repository = repository
        self.clock = clock or utc_now

    def enqueue(self, candidate: SuggestionCandidate) -> Suggestion:
        """Add a candidate as a new pending suggestion."""
        with self.repository.transaction() as doc:
            existing = {s.id for s in doc.suggestions}
            suggestion = Suggestion.from_candidate(candidate, self.clock())
            while suggestion.id in existing:
                suggestion = Suggestion.from_candidate(candidate, self.clock())
            doc.suggestions.append(suggestion)

        logger.info(
            f"Queued suggestion {suggestion.id} for {suggestion.coin_symbol or suggestion.coin_address}"
        )
        return suggestion

    def next_pending(self) -> Suggestion | None:
        """Oldest pending suggestion, by insertion order."""
        for suggestion in self.repository.load().suggestions:
            if suggestion.status == SuggestionStatus.PENDING:
                return suggestion
        return None

    def set_status(
        self,
        suggestion_id: str,
        status: SuggestionStatus,
        proposal_id: str | None = None,
        tx_hash: str | None = None,
        error_message: str | None = None,
    ) -> Suggestion:
        """
        Move a suggestion to a new status.

        Completing a suggestion removes it from the queue in the same write;
        the completed record is returned to the caller.

        Raises:
            SuggestionNotFound: unknown id
            InvalidTransition: transition not allowed, a second record
                entering processing, or failing without an error message
        """
        status = SuggestionStatus(status)
        with self.repository.transaction() as doc:
            suggestion = doc.find(suggestion_id)
            if suggestion is None:
                raise SuggestionNotFound(f"Suggestion not found: {suggestion_id}")

            if status not in VALID_TRANSITIONS[suggestion.status]:
                raise InvalidTransition(
                    f"Cannot move {suggestion_id} from {suggestion.status.value} to {status.value}"
                )

            now = self.clock().isoformat()
            if status == SuggestionStatus.PROCESSING:
                busy = [
                    s.id
                    for s in doc.suggestions
                    if s.status == SuggestionStatus.PROCESSING and s.id != suggestion_id
                ]
                if busy:
                    raise InvalidTransition(
                        f"Suggestion {busy[0]} is already processing"
                    )
                suggestion.processing_started_at = now
                suggestion.processed_at = None
                suggestion.proposal_id = None
                suggestion.tx_hash = None
                suggestion.error_message = None
            elif status == SuggestionStatus.FAILED:
                if not error_message:
                    raise InvalidTransition("Failing a suggestion requires an error message")
                suggestion.processed_at = now
                suggestion.error_message = error_message
                suggestion.proposal_id = proposal_id
                suggestion.tx_hash = tx_hash
            else:
                suggestion.processed_at = now
                suggestion.proposal_id = proposal_id
                suggestion.tx_hash = tx_hash

            suggestion.status = status
            if status == SuggestionStatus.COMPLETED:
                doc.suggestions.remove(suggestion)

        logger.info(f"Suggestion {suggestion_id} -> {status.value}")
        return suggestion

    def remove(self, suggestion_id: str) -> bool:
        """Delete a suggestion. Returns False if it was already gone."""
        with self.repository.transaction() as doc:
            suggestion = doc.find(suggestion_id)
            if suggestion is None:
                return False
            doc.suggestions.remove(suggestion)
        logger.info(f"Removed suggestion {suggestion_id}")
        return True

    def get(self, suggestion_id: str) -> Suggestion | None:
        return self.repository.load().find(suggestion_id)

    def list_all(self) -> list[Suggestion]:
        return list(self.repository.load().suggestions)

    def list_by_status(self, status: SuggestionStatus) -> list[Suggestion]:
        status = SuggestionStatus(status)
        return [s for s in self.repository.load().suggestions if s.status == status]

    def list_pending(self) -> list[Suggestion]:
        return self.list_by_status(SuggestionStatus.PENDING)

    def stats(self) -> QueueStats:
        doc = self.repository.load()
        stats = QueueStats(total=len(doc.suggestions), last_updated=doc.last_updated)
        for suggestion in doc.suggestions:
            setattr(stats, suggestion.status.value, getattr(stats, suggestion.status.value) + 1)
        return stats

    def is_queued(self, coin_address: str) -> bool:
        """True if a *pending* suggestion exists for this address."""
        needle = coin_address.lower()
        return any(
            s.coin_address.lower() == needle
            for s in self.repository.load().suggestions
            if s.status == SuggestionStatus.PENDING
        )

    def purge_finished(self, older_than: timedelta = timedelta(days=7)) -> int:
        """Drop completed/failed suggestions processed before the cutoff."""
        cutoff = self.clock() - older_than
        with self.repository.transaction() as doc:
            keep = []
            for suggestion in doc.suggestions:
                processed = parse_timestamp(suggestion.processed_at)
                if (
                    suggestion.status in FINISHED_STATUSES
                    and processed is not None
                    and processed < cutoff
                ):
                    continue
                keep.append(suggestion)
            removed = len(doc.suggestions) - len(keep)
            doc.suggestions[:] = keep

        if removed:
            logger.info(f"Purged {removed} finished suggestion(s)")
        return removed

    def reclaim_stale(self, max_age: timedelta) -> list[Suggestion]:
        """Fail processing suggestions that have been stuck longer than max_age."""
        now = self.clock()
        reclaimed = []
        with self.repository.transaction() as doc:
            for suggestion in doc.suggestions:
                if suggestion.status != SuggestionStatus.PROCESSING:
                    continue
                started = parse_timestamp(suggestion.processing_started_at)
                if started is not None and now - started < max_age:
                    continue
                suggestion.status = SuggestionStatus.FAILED
                suggestion.processed_at = now.isoformat()
                suggestion.error_message = (
                    f"Reclaimed: stuck in processing since {suggestion.processing_started_at or 'unknown'}"
                )
                reclaimed.append(suggestion)

        for suggestion in reclaimed:
            logger.warning(f"Reclaimed stale suggestion {suggestion.id}")
        return reclaimed
