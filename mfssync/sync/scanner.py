"""Local directory scanning for sync operations."""

import logging
import stat
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..exceptions import FilenameEncodingError, UnsupportedEntryError

logger = logging.getLogger(__name__)


class EntryType(str, Enum):
    """Kinds of local entries the reconciler distinguishes."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


@dataclass
class LocalEntry:
    """Represents a local directory entry with metadata."""

    name: str
    """Entry name (last path component)"""

    path: Path
    """Absolute path to the entry"""

    relative_path: str
    """Path relative to the sync root (forward slashes)"""

    type: EntryType
    """File, directory or symlink (symlinks are not followed)"""

    size: int
    """Size in bytes as reported by lstat"""

    ctime: float
    """Metadata change time (Unix timestamp)"""

    @property
    def is_file(self) -> bool:
        return self.type == EntryType.FILE

    @property
    def is_directory(self) -> bool:
        return self.type == EntryType.DIRECTORY

    @property
    def is_symlink(self) -> bool:
        return self.type == EntryType.SYMLINK

    @classmethod
    def from_path(cls, entry_path: Path, base_path: Path) -> "LocalEntry":
        """Create a LocalEntry from a path.

        Args:
            entry_path: Absolute path to the entry
            base_path: Sync root for calculating relative paths

        Returns:
            LocalEntry instance

        Raises:
            FilenameEncodingError: If the name is not valid unicode
            UnsupportedEntryError: For fifos, sockets and device nodes
            OSError: If the entry cannot be stat-ed
        """
        name = entry_path.name
        check_name(name)

        st = entry_path.lstat()
        if stat.S_ISLNK(st.st_mode):
            entry_type = EntryType.SYMLINK
        elif stat.S_ISDIR(st.st_mode):
            entry_type = EntryType.DIRECTORY
        elif stat.S_ISREG(st.st_mode):
            entry_type = EntryType.FILE
        else:
            raise UnsupportedEntryError(
                f"Unsupported file type {_describe_mode(st.st_mode)}: {entry_path}"
            )

        return cls(
            name=name,
            path=entry_path,
            relative_path=entry_path.relative_to(base_path).as_posix(),
            type=entry_type,
            size=st.st_size,
            ctime=st.st_ctime,
        )


def check_name(name: str) -> None:
    """Ensure a file name can be sent to the store as UTF-8.

    Undecodable bytes in file names surface as lone surrogates
    (``surrogateescape``), which cannot be encoded.
    """
    try:
        name.encode("utf-8")
    except UnicodeEncodeError as e:
        raise FilenameEncodingError(name) from e


def _describe_mode(mode: int) -> str:
    if stat.S_ISFIFO(mode):
        return "fifo"
    if stat.S_ISSOCK(mode):
        return "socket"
    if stat.S_ISCHR(mode) or stat.S_ISBLK(mode):
        return "device"
    return oct(stat.S_IFMT(mode))


class DirectoryScanner:
    """Lists local directories one level at a time.

    Entries are yielded in the order the filesystem reports them; callers
    must not depend on that order.
    """

    def __init__(self, root: Path):
        """Initialize directory scanner.

        Args:
            root: Canonical sync root, base for relative paths
        """
        self.root = root

    def iter_paths(self, directory: Path) -> Iterator[Path]:
        """Yield the paths of a directory's children.

        Raises:
            OSError: If the directory cannot be read
        """
        yield from directory.iterdir()

    def entry(self, path: Path) -> LocalEntry:
        """Read fresh metadata for one child path."""
        return LocalEntry.from_path(path, self.root)
