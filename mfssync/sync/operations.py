"""Store operations used by the sync engine."""

import logging
from pathlib import Path

from ..api import MfsClient
from ..exceptions import MfsNotFoundError
from ..models import MfsEntry, MfsStat

logger = logging.getLogger(__name__)


class SyncOperations:
    """The set of store calls reconciliation needs, on top of MfsClient."""

    def __init__(self, client: MfsClient):
        """Initialize sync operations.

        Args:
            client: Store daemon API client
        """
        self.client = client

    def list_directory(self, path: str) -> list[MfsEntry]:
        """List the children of a remote directory."""
        return self.client.files_ls(path)

    def create_directory(self, path: str) -> None:
        """Create a remote directory, including missing parents."""
        self.client.files_mkdir(path, parents=True)

    def remove(self, path: str, recursive: bool = True) -> None:
        """Remove a remote path.

        Args:
            path: Remote path
            recursive: Remove non-empty directories with their contents
        """
        self.client.files_rm(path, recursive=recursive)

    def stat(self, path: str) -> MfsStat:
        """Stat a remote path."""
        return self.client.files_stat(path)

    def add(self, local_path: Path, nocopy: bool = False) -> str:
        """Add a local file's content to the store, unpinned.

        Args:
            local_path: Local file to add
            nocopy: Reference the file in place instead of copying its bytes

        Returns:
            Content hash
        """
        return self.client.add(local_path, nocopy=nocopy, pin=False)

    def copy_hash_to(self, path: str, content_hash: str) -> None:
        """Point a remote path at content, replacing whatever was there.

        Args:
            path: Remote destination path
            content_hash: Hash of the content to link
        """
        try:
            self.client.files_rm(path, recursive=True)
        except MfsNotFoundError:
            pass
        self.client.files_cp(f"/ipfs/{content_hash}", path)

    def upload_file(self, local_path: Path, remote_path: str, nocopy: bool) -> str:
        """Add a local file and place it at a remote path.

        Returns:
            Content hash of the uploaded file
        """
        content_hash = self.add(local_path, nocopy=nocopy)
        self.copy_hash_to(remote_path, content_hash)
        return content_hash

    def flush(self, path: str) -> str:
        """Commit pending changes under a remote path.

        Returns:
            Hash of the flushed path
        """
        return self.client.files_flush(path)
