"""Deferred symlink handling.

Symlinks are not stored as links remotely. During the walk each symlink is
recorded as a task; once the walk has finished and been flushed, every task
is resolved against the remote tree and the symlink's remote path receives
a copy of its target's current content. Resolving during the walk could
reference a target that has not been synced yet in the same run.
"""

import logging
import os
import posixpath
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from ..exceptions import MfsAPIError, SymlinkResolutionError
from ..utils import ARROW, join_remote
from .errors import ErrorAccumulator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SymlinkTask:
    """A symlink waiting for the second pass."""

    source_path: str
    """Symlink location relative to the sync root (forward slashes)"""

    target_relative: str
    """Path from the symlink's directory to its resolved target"""

    def remote_source(self, remote_root: str) -> str:
        """Remote path where the symlink's copy is placed."""
        return join_remote(remote_root, self.source_path)

    def remote_target(self, remote_root: str) -> str:
        """Remote path of the symlink's target."""
        source_dir = posixpath.dirname(self.remote_source(remote_root))
        return join_remote(source_dir, self.target_relative)

    @classmethod
    def from_local(cls, link_path: Path, root: Path) -> "SymlinkTask":
        """Build a task for a local symlink.

        Args:
            link_path: Path of the symlink (below ``root``)
            root: Canonical sync root

        Raises:
            SymlinkResolutionError: If the target lies outside the sync root
                or is a directory containing the symlink
            OSError: If the target does not exist or cannot be resolved
            RuntimeError: On symlink loops (older Python versions)
        """
        target = link_path.resolve(strict=True)
        try:
            target.relative_to(root)
        except ValueError as e:
            raise SymlinkResolutionError(
                f"Symlink target {target} is outside of {root}"
            ) from e
        if target == root:
            raise SymlinkResolutionError("Symlink points at the sync root")
        # A copy of an ancestor would contain the copy itself
        link_dir = link_path.parent.resolve()
        if link_dir == target or target in link_dir.parents:
            raise SymlinkResolutionError(
                f"Symlink target {target} is an ancestor of the symlink"
            )

        source_path = link_path.relative_to(root).as_posix()
        target_relative = Path(os.path.relpath(target, link_path.parent)).as_posix()
        return cls(source_path=source_path, target_relative=target_relative)


class SymlinkDeferralQueue:
    """Symlink tasks collected during the walk."""

    def __init__(self) -> None:
        self._tasks: list[SymlinkTask] = []

    def add(self, task: SymlinkTask) -> None:
        self._tasks.append(task)

    def extend(self, other: "SymlinkDeferralQueue") -> None:
        self._tasks.extend(other)

    def __iter__(self) -> Iterator[SymlinkTask]:
        return iter(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def materialize(self, operations, remote_root: str, ctx) -> ErrorAccumulator:
        """Copy each symlink's target content onto the symlink's remote path.

        Must run after the walk has been flushed, so every non-symlink path
        has its final content for this run. Failures are recorded per
        symlink and never stop the pass.

        Args:
            operations: SyncOperations for store calls
            remote_root: Remote path of the sync root
            ctx: SyncContext with output and stats

        Returns:
            Failures recorded during the pass
        """
        errors = ErrorAccumulator(ctx.output)

        for task in self._tasks:
            source = task.remote_source(remote_root)
            target = task.remote_target(remote_root)
            try:
                target_stat = operations.stat(target)
            except Exception as e:
                errors.record(source, SymlinkResolutionError(f"{target}: {e}"))
                continue

            try:
                current_hash = operations.stat(source).hash
            except MfsAPIError:
                current_hash = None

            if current_hash == target_stat.hash:
                logger.debug(f"Symlink {source} already matches {target}")
                ctx.stats["symlinks_unchanged"] += 1
                continue

            try:
                operations.copy_hash_to(source, target_stat.hash)
            except Exception as e:
                errors.record(source, e)
                continue

            ctx.stats["symlinks_copied"] += 1
            ctx.output.detail(1, f"{target_stat.hash} {ARROW} {source}")

        return errors
