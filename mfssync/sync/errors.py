"""Accumulation of per-entry failures."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..output import OutputFormatter

logger = logging.getLogger(__name__)


@dataclass
class EntryFailure:
    """One failed entry."""

    identity: str
    """Local or remote path identifying the entry"""

    cause: str
    """Description of the underlying error"""


class ErrorAccumulator:
    """Counts failures without interrupting the walk.

    Every recorded failure is logged and, when an output formatter is
    attached, printed as ``Error processing <entry>: <cause>``.
    """

    def __init__(self, output: Optional[OutputFormatter] = None):
        self.output = output
        self.failures: list[EntryFailure] = []

    @property
    def count(self) -> int:
        return len(self.failures)

    def __bool__(self) -> bool:
        return bool(self.failures)

    def __len__(self) -> int:
        return len(self.failures)

    def record(self, identity: str, error: BaseException) -> None:
        """Record a failure for one entry.

        Args:
            identity: Path identifying the entry
            error: The exception raised while processing it
        """
        cause = str(error) or type(error).__name__
        self.failures.append(EntryFailure(identity=identity, cause=cause))
        logger.debug(f"Failure #{self.count} at {identity}", exc_info=error)
        if self.output is not None:
            self.output.error(f"Error processing {identity}: {cause}")

    def merge(self, other: "ErrorAccumulator") -> None:
        """Take over the failures recorded by a nested call."""
        self.failures.extend(other.failures)
