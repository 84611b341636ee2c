"""Run configuration for a sync."""

from dataclasses import dataclass
from typing import Optional


class SyncConfigError(ValueError):
    """Raised when a sync configuration is invalid."""


@dataclass
class SyncConfig:
    """Options controlling one sync run."""

    verbosity: int = 0
    """Detail level of progress output (higher = more detail)"""

    nocopy: bool = False
    """Add files by local-path reference (filestore) instead of copying bytes"""

    sync_from: Optional[int] = None
    """UNIX time; files with a change time at or below it are presumed
    unchanged. None selects size comparison instead."""

    flush_interval: Optional[float] = None
    """Seconds between explicit flushes during the walk. None flushes only
    after the walk and after the symlink pass."""

    def __post_init__(self) -> None:
        if self.verbosity < 0:
            raise SyncConfigError(f"Verbosity cannot be negative: {self.verbosity}")
        if self.sync_from is not None and self.sync_from < 0:
            raise SyncConfigError(
                f"Sync-from threshold cannot be negative: {self.sync_from}"
            )

    @property
    def uses_change_time(self) -> bool:
        """Whether files are compared by change time instead of size."""
        return self.sync_from is not None

    @property
    def store_autoflush(self) -> bool:
        """Whether the store should flush after every write by itself.

        Only a non-positive flush interval asks for that; otherwise the
        flush scheduler and the final flushes are the only commits.
        """
        return self.flush_interval is not None and self.flush_interval <= 0
