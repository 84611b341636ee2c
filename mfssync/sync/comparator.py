"""Change detection for local files against their remote counterparts."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .config import SyncConfig
from .scanner import LocalEntry


class SyncAction(str, Enum):
    """Actions that can be taken for a local file."""

    UPLOAD = "upload"
    """Add local content and copy it onto the remote path"""

    SKIP = "skip"
    """Remote copy is presumed current"""


@dataclass
class SyncDecision:
    """Represents a decision about how to sync a file."""

    action: SyncAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    @property
    def upload(self) -> bool:
        return self.action == SyncAction.UPLOAD


class ChangeFilter:
    """Decides whether a local file needs to be (re)uploaded.

    Two modes, selected by ``config.sync_from``:

    * size comparison (no threshold): upload when the file is new remotely
      or the recorded remote size differs. Edits that keep the byte length
      are not detected.
    * change time (threshold ``T``): upload when the file is new remotely
      or its ctime is strictly after ``T``. Sizes are not consulted, so a
      change whose ctime did not advance past ``T`` is missed.
    """

    def __init__(self, config: SyncConfig):
        """Initialize change filter.

        Args:
            config: Sync configuration providing the mode
        """
        self.config = config

    def decide(
        self,
        existed_remotely: bool,
        local: LocalEntry,
        remote_size: Optional[int],
    ) -> SyncDecision:
        """Compare one local file with what the remote directory recorded.

        Args:
            existed_remotely: Whether the name was in the remote listing
            local: Local file metadata
            remote_size: Remote size from the listing (if it existed)

        Returns:
            SyncDecision for this file
        """
        if not existed_remotely:
            return SyncDecision(SyncAction.UPLOAD, "New local file")

        sync_from = self.config.sync_from
        if sync_from is not None:
            if local.ctime > sync_from:
                return SyncDecision(
                    SyncAction.UPLOAD,
                    f"Changed after threshold ({local.ctime:.0f} > {sync_from})",
                )
            return SyncDecision(SyncAction.SKIP, "Unchanged since threshold")

        if remote_size != local.size:
            return SyncDecision(
                SyncAction.UPLOAD,
                f"Size differs ({local.size} vs {remote_size})",
            )
        return SyncDecision(SyncAction.SKIP, "Files are identical (same size)")

    def should_upload(
        self,
        existed_remotely: bool,
        local: LocalEntry,
        remote_size: Optional[int],
    ) -> bool:
        """Whether the file has to be uploaded."""
        return self.decide(existed_remotely, local, remote_size).upload
