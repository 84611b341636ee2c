"""Core sync engine: recursive reconciliation and run phases."""

import logging
import posixpath
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from ..api import MfsClient
from ..exceptions import MfsAPIError, MfsConfigError, MfsNetworkError
from ..models import MfsEntry
from ..output import OutputFormatter
from ..utils import ARROW, is_absolute_remote, join_remote
from .comparator import ChangeFilter
from .config import SyncConfig
from .errors import EntryFailure, ErrorAccumulator
from .flush import FlushScheduler
from .operations import SyncOperations
from .scanner import DirectoryScanner, LocalEntry
from .symlinks import SymlinkDeferralQueue, SymlinkTask

logger = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    """Phases of one run, in the order they are entered."""

    INIT = "init"
    TREE_WALK = "tree_walk"
    FLUSH_1 = "flush_1"
    SYMLINK_PASS = "symlink_pass"
    FLUSH_2 = "flush_2"
    REPORT = "report"


PHASE_ORDER = list(SyncPhase)


class RunOutcome(str, Enum):
    """Terminal outcome of a run that produced a root hash."""

    SUCCESS = "success"
    SUCCESS_WITH_ERRORS = "success_with_errors"


def create_empty_stats() -> dict:
    """Create an empty statistics dictionary.

    Returns:
        Dictionary with zero counts for all stat categories
    """
    return {
        "uploads": 0,
        "skips": 0,
        "deletes_remote": 0,
        "directories_created": 0,
        "symlinks_deferred": 0,
        "symlinks_copied": 0,
        "symlinks_unchanged": 0,
        "flushes": 0,
    }


@dataclass
class SyncContext:
    """State threaded by reference through the recursive walk."""

    config: SyncConfig
    flusher: FlushScheduler
    output: OutputFormatter
    scanner: DirectoryScanner
    change_filter: ChangeFilter
    destination: str = "/"
    stats: dict = field(default_factory=create_empty_stats)


@dataclass
class ReconcileResult:
    """What one directory's reconciliation hands back to its caller."""

    symlinks: SymlinkDeferralQueue = field(default_factory=SymlinkDeferralQueue)
    errors: ErrorAccumulator = field(default_factory=ErrorAccumulator)

    def merge(self, other: "ReconcileResult") -> None:
        self.symlinks.extend(other.symlinks)
        self.errors.merge(other.errors)


@dataclass
class RunResult:
    """Result of a complete run."""

    root_hash: str
    """Hash of the destination directory after the final flush"""

    errors: int
    """Number of per-entry failures"""

    stats: dict = field(default_factory=create_empty_stats)
    failures: list[EntryFailure] = field(default_factory=list)

    @property
    def outcome(self) -> RunOutcome:
        if self.errors:
            return RunOutcome.SUCCESS_WITH_ERRORS
        return RunOutcome.SUCCESS

    @property
    def exit_code(self) -> int:
        return 0 if self.errors == 0 else 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "root_hash": self.root_hash,
            "errors": self.errors,
            "outcome": self.outcome.value,
            "stats": dict(self.stats),
            "failures": [
                {"path": f.identity, "error": f.cause} for f in self.failures
            ],
        }


class SyncEngine:
    """Mirrors a local directory onto an MFS directory."""

    def __init__(
        self,
        client: MfsClient,
        output: Optional[OutputFormatter] = None,
    ):
        """Initialize sync engine.

        Args:
            client: Store daemon API client
            output: Output formatter for progress lines and errors
        """
        self.client = client
        self.output = output or OutputFormatter()
        self.operations = SyncOperations(client)
        self.phase = SyncPhase.INIT

    def _enter_phase(self, phase: SyncPhase) -> None:
        """Advance to the next phase; phases are never re-entered."""
        current = PHASE_ORDER.index(self.phase)
        if PHASE_ORDER.index(phase) != current + 1:
            raise RuntimeError(
                f"Cannot enter phase {phase.value} from {self.phase.value}"
            )
        logger.debug(f"Phase {self.phase.value} -> {phase.value}")
        self.phase = phase

    def run(
        self,
        source: Path,
        destination: str,
        config: SyncConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> RunResult:
        """Sync a local directory to a remote MFS directory.

        Args:
            source: Local directory to mirror
            destination: Absolute MFS path of the destination directory
            config: Run configuration
            clock: Monotonic time source for flush scheduling

        Returns:
            RunResult with the resulting root hash and error count

        Raises:
            ValueError: If the source is missing or not a directory
            MfsConfigError: If the destination is not an absolute MFS path
            MfsAPIError: If the destination root cannot be prepared, flushed
                or stat-ed

        Examples:
            >>> engine = SyncEngine(MfsClient())
            >>> result = engine.run(Path("/data"), "/backup", SyncConfig())
            >>> print(result.root_hash)
        """
        self.phase = SyncPhase.INIT
        run_start = time.time()

        if not source.exists():
            raise ValueError(f"Local directory does not exist: {source}")
        if not source.is_dir():
            raise ValueError(f"Local path is not a directory: {source}")
        root = source.resolve(strict=True)

        if not is_absolute_remote(destination):
            raise MfsConfigError(
                f"Destination must be an absolute MFS path: {destination!r}"
            )
        destination = join_remote(destination)

        # The scheduler and the phase flushes are the only commits unless a
        # non-positive interval asks the store to flush every write itself
        self.client.autoflush = config.store_autoflush

        flusher = FlushScheduler(
            lambda: self.operations.flush(destination),
            interval=config.flush_interval,
            clock=clock,
        )
        ctx = SyncContext(
            config=config,
            flusher=flusher,
            output=self.output,
            scanner=DirectoryScanner(root),
            change_filter=ChangeFilter(config),
            destination=destination,
        )
        logger.debug(
            f"Syncing {root} -> {destination} "
            f"(mode: {'ctime' if config.uses_change_time else 'size'}, "
            f"nocopy: {config.nocopy}, flush interval: {config.flush_interval})"
        )

        self._enter_phase(SyncPhase.TREE_WALK)
        result = self.reconcile_directory(root, destination, ctx)

        self._enter_phase(SyncPhase.FLUSH_1)
        self.operations.flush(destination)

        self._enter_phase(SyncPhase.SYMLINK_PASS)
        if len(result.symlinks):
            logger.debug(f"Materializing {len(result.symlinks)} symlink(s)")
        result.errors.merge(
            result.symlinks.materialize(self.operations, destination, ctx)
        )

        self._enter_phase(SyncPhase.FLUSH_2)
        self.operations.flush(destination)

        self._enter_phase(SyncPhase.REPORT)
        root_hash = self.operations.stat(destination).hash
        ctx.stats["flushes"] = flusher.flush_count + 2

        logger.debug(
            f"Sync finished in {time.time() - run_start:.2f}s with "
            f"{result.errors.count} error(s): {ctx.stats}"
        )
        return RunResult(
            root_hash=root_hash,
            errors=result.errors.count,
            stats=ctx.stats,
            failures=list(result.errors.failures),
        )

    def reconcile_directory(
        self, local_dir: Path, remote_dir: str, ctx: SyncContext
    ) -> ReconcileResult:
        """Make one remote directory match one local directory, recursively.

        Each local entry is handled in isolation: a failure is recorded and
        the remaining entries are still processed. Remote entries without a
        local counterpart are removed afterwards.

        Args:
            local_dir: Local directory
            remote_dir: Corresponding remote path
            ctx: Run context

        Returns:
            Deferred symlinks and failures of this subtree

        Raises:
            MfsAPIError: If the remote directory cannot be created
            OSError: If the local directory cannot be read
        """
        dir_start = time.time()
        ctx.output.detail(2, f"Entering {remote_dir}")

        result = ReconcileResult(errors=ErrorAccumulator(ctx.output))
        remote_state: dict[str, MfsEntry] = {
            entry.name: entry
            for entry in self._ensure_remote_directory(remote_dir, ctx)
        }

        for path in ctx.scanner.iter_paths(local_dir):
            try:
                self._process_entry(path, remote_dir, remote_state, ctx, result)
            except Exception as e:
                result.errors.record(str(path), e)

        for name in remote_state:
            stale_path = join_remote(remote_dir, name)
            try:
                self.operations.remove(stale_path, recursive=True)
            except Exception as e:
                result.errors.record(stale_path, e)
                continue
            ctx.stats["deletes_remote"] += 1
            logger.debug(f"Removed stale {stale_path}")

        logger.debug(
            f"Reconciled {remote_dir} in {time.time() - dir_start:.2f}s"
        )
        return result

    def _ensure_remote_directory(
        self, remote_dir: str, ctx: SyncContext
    ) -> list[MfsEntry]:
        """List a remote directory, creating it if it cannot be listed.

        Listing a file returns the file itself as the only entry, so such a
        listing is confirmed with a stat before it is trusted.

        Returns:
            Current children (empty for a newly created directory)
        """
        try:
            entries = self.operations.list_directory(remote_dir)
            if self._is_directory_listing(remote_dir, entries):
                return entries
            ctx.output.detail(3, f"{remote_dir} is not a directory")
        except MfsNetworkError:
            raise
        except MfsAPIError as e:
            ctx.output.detail(3, f"Listing {remote_dir} failed: {e}")

        try:
            self.operations.remove(remote_dir, recursive=True)
        except MfsAPIError as e:
            logger.debug(f"Ignoring failed removal of {remote_dir}: {e}")

        self.operations.create_directory(remote_dir)
        ctx.stats["directories_created"] += 1
        if ctx.output.verbosity >= 1:
            dir_hash = self.operations.stat(remote_dir).hash
            ctx.output.detail(1, f"{dir_hash} {ARROW} {remote_dir}")
        return []

    def _is_directory_listing(
        self, remote_dir: str, entries: list[MfsEntry]
    ) -> bool:
        if len(entries) != 1 or entries[0].is_directory:
            return True
        if entries[0].name != posixpath.basename(remote_dir):
            return True
        return self.operations.stat(remote_dir).is_directory

    def _process_entry(
        self,
        path: Path,
        remote_dir: str,
        remote_state: dict[str, MfsEntry],
        ctx: SyncContext,
        result: ReconcileResult,
    ) -> None:
        """Handle one local directory entry.

        Raises:
            Exception: Any failure; the caller records it for this entry
        """
        # Mark as seen first so a failing entry never deletes its remote copy
        remote = remote_state.pop(path.name, None)
        entry = ctx.scanner.entry(path)
        remote_path = join_remote(remote_dir, entry.name)

        if entry.is_directory:
            if remote is not None and not remote.is_directory:
                self.operations.remove(remote_path, recursive=True)
            result.merge(self.reconcile_directory(entry.path, remote_path, ctx))

        elif entry.is_symlink:
            task = SymlinkTask.from_local(entry.path, ctx.scanner.root)
            result.symlinks.add(task)
            ctx.stats["symlinks_deferred"] += 1
            ctx.output.detail(2, f"Postponing symlink {entry.relative_path}")

        elif self._sync_file(entry, remote, remote_path, ctx):
            try:
                ctx.flusher.tick()
            except Exception as e:
                result.errors.record(f"flush {ctx.destination}", e)

    def _sync_file(
        self,
        entry: LocalEntry,
        remote: Optional[MfsEntry],
        remote_path: str,
        ctx: SyncContext,
    ) -> bool:
        """Upload a file if the change filter asks for it.

        Returns:
            True if the file was uploaded
        """
        existed = remote is not None and not remote.is_directory
        decision = ctx.change_filter.decide(
            existed, entry, remote.size if remote is not None and existed else None
        )
        if not decision.upload:
            ctx.stats["skips"] += 1
            logger.debug(f"Skipping {entry.relative_path}: {decision.reason}")
            return False

        upload_start = time.time()
        content_hash = self.operations.upload_file(
            entry.path, remote_path, nocopy=ctx.config.nocopy
        )
        ctx.stats["uploads"] += 1
        logger.debug(
            f"Uploaded {entry.relative_path} ({decision.reason}) in "
            f"{time.time() - upload_start:.2f}s"
        )
        ctx.output.detail(1, f"{content_hash} {ARROW} {remote_path}")
        return True
