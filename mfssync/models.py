"""Data models for store daemon API responses."""

from dataclasses import dataclass
from typing import Any

# Entry types as reported by files/ls (numeric) and files/stat (string)
ENTRY_TYPE_FILE = 0
ENTRY_TYPE_DIRECTORY = 1


@dataclass
class MfsEntry:
    """One child of a remote MFS directory listing."""

    name: str
    """Entry name (last path component)"""

    size: int
    """File size in bytes (0 for directories)"""

    hash: str
    """Content hash (CID) of the entry"""

    type: int = ENTRY_TYPE_FILE
    """Entry type: 0 = file, 1 = directory"""

    @property
    def is_directory(self) -> bool:
        return self.type == ENTRY_TYPE_DIRECTORY

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "MfsEntry":
        """Create an MfsEntry from one element of a files/ls ``Entries`` list."""
        return cls(
            name=data.get("Name", ""),
            size=int(data.get("Size") or 0),
            hash=data.get("Hash", ""),
            type=int(data.get("Type") or ENTRY_TYPE_FILE),
        )


@dataclass
class MfsStat:
    """Result of stat-ing one MFS path."""

    hash: str
    size: int
    cumulative_size: int = 0
    type: str = "file"
    blocks: int = 0

    @property
    def is_directory(self) -> bool:
        return self.type == "directory"

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "MfsStat":
        """Create an MfsStat from a files/stat response."""
        return cls(
            hash=data.get("Hash", ""),
            size=int(data.get("Size") or 0),
            cumulative_size=int(data.get("CumulativeSize") or 0),
            type=data.get("Type", "file"),
            blocks=int(data.get("Blocks") or 0),
        )


def entries_from_listing(data: dict[str, Any]) -> list[MfsEntry]:
    """Convert a files/ls response into entries.

    The daemon reports an empty directory as ``{"Entries": null}``.
    """
    raw_entries = data.get("Entries") or []
    return [MfsEntry.from_api_response(item) for item in raw_entries]
