"""Sync engine for mfssync - one-way mirroring of a local tree into MFS."""

from .comparator import ChangeFilter, SyncAction, SyncDecision
from .config import SyncConfig, SyncConfigError
from .engine import (
    ReconcileResult,
    RunOutcome,
    RunResult,
    SyncContext,
    SyncEngine,
    SyncPhase,
)
from .errors import EntryFailure, ErrorAccumulator
from .flush import FlushScheduler
from .operations import SyncOperations
from .scanner import DirectoryScanner, EntryType, LocalEntry
from .state import SyncTimestamp, SyncTimestampFile
from .symlinks import SymlinkDeferralQueue, SymlinkTask

__all__ = [
    "SyncEngine",
    "SyncContext",
    "SyncPhase",
    "RunOutcome",
    "RunResult",
    "ReconcileResult",
    "SyncConfig",
    "SyncConfigError",
    "SyncOperations",
    "ChangeFilter",
    "SyncAction",
    "SyncDecision",
    "FlushScheduler",
    "ErrorAccumulator",
    "EntryFailure",
    "DirectoryScanner",
    "EntryType",
    "LocalEntry",
    "SymlinkDeferralQueue",
    "SymlinkTask",
    "SyncTimestamp",
    "SyncTimestampFile",
]
