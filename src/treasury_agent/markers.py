"""
Run markers for cooldown gating of scheduled jobs.
"""

import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from .models import parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class RunMarker:
    """Last-run timestamp for one scheduled job, stored as ``{"timestamp": ...}``."""

    def __init__(
        self,
        path: Path,
        cooldown: timedelta,
        clock: Callable[[], datetime] | None = None,
    ):
        self.path = Path(path)
        self.cooldown = cooldown
        self.clock = clock or utc_now

    def last_run(self) -> datetime | None:
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            return parse_timestamp(data.get("timestamp"))
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable run marker {self.path}: {e}")
            return None

    def cooldown_remaining(self) -> timedelta | None:
        """Time left before the job may run again, or None if it may run now."""
        last = self.last_run()
        if last is None:
            return None
        elapsed = self.clock() - last
        if elapsed < self.cooldown:
            return self.cooldown - elapsed
        return None

    def record(self) -> datetime:
        """Stamp this attempt. Called before any work so failures still count."""
        now = self.clock()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"timestamp": now.isoformat()}, f)
        return now
