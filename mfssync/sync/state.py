"""Persisted sync-from timestamp.

A run that finishes without errors records its start time. The next run
can use it as the change-time threshold, so only files touched since then
are uploaded again.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..utils import format_timestamp

logger = logging.getLogger(__name__)


@dataclass
class SyncTimestamp:
    """Contents of a timestamp file."""

    last_sync: int
    """UNIX time at which the recorded run started"""

    source: Optional[str] = None
    """Local directory of the recorded run"""

    destination: Optional[str] = None
    """Remote directory of the recorded run"""

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "last_sync": self.last_sync,
            "last_sync_utc": format_timestamp(self.last_sync),
            "source": self.source,
            "destination": self.destination,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SyncTimestamp":
        """Create SyncTimestamp from dictionary."""
        return cls(
            last_sync=int(data["last_sync"]),
            source=data.get("source"),
            destination=data.get("destination"),
        )


class SyncTimestampFile:
    """Reads and writes the timestamp file.

    The file holds a JSON object; a file containing just an integer is
    accepted as well.
    """

    def __init__(self, path: Path):
        """Initialize timestamp file.

        Args:
            path: Location of the timestamp file
        """
        self.path = path

    def read(self) -> int:
        """Read the recorded run start time.

        Returns:
            UNIX time in seconds

        Raises:
            OSError: If the file cannot be read
            ValueError: If the content is not a valid timestamp
        """
        text = self.path.read_text(encoding="utf-8").strip()
        if text.isdigit():
            return int(text)
        try:
            data = json.loads(text)
            state = SyncTimestamp.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise ValueError(f"Invalid timestamp file {self.path}: {e}") from e
        if state.last_sync < 0:
            raise ValueError(f"Negative timestamp in {self.path}")
        logger.debug(
            f"Loaded sync timestamp {format_timestamp(state.last_sync)} "
            f"from {self.path}"
        )
        return state.last_sync

    def write(
        self,
        timestamp: int,
        source: Optional[str] = None,
        destination: Optional[str] = None,
    ) -> None:
        """Record a run start time, replacing the file atomically.

        Args:
            timestamp: UNIX time in seconds
            source: Local directory of the run
            destination: Remote directory of the run
        """
        state = SyncTimestamp(
            last_sync=timestamp, source=source, destination=destination
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(state.to_dict(), f, indent=2)
        os.replace(tmp_path, self.path)
        logger.debug(
            f"Saved sync timestamp {format_timestamp(timestamp)} to {self.path}"
        )
