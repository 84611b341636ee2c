"""Rate limiting of explicit flush calls during a long walk."""

import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class FlushScheduler:
    """Issues a flush at most once per interval.

    Flushing commits pending MFS changes up to the root and is expensive
    compared to per-file operations. ``tick()`` is called after every
    upload; without an interval it does nothing and the run relies on the
    flushes after each phase.
    """

    def __init__(
        self,
        flush: Callable[[], object],
        interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize flush scheduler.

        Args:
            flush: Callable committing the destination tree
            interval: Minimum seconds between flushes (None disables ticks)
            clock: Monotonic time source
        """
        self._flush = flush
        self.interval = interval
        self._clock = clock
        self.next_deadline = clock()
        self.flush_count = 0

    @property
    def enabled(self) -> bool:
        return self.interval is not None

    def tick(self) -> bool:
        """Flush if the deadline has passed.

        Returns:
            True if a flush was issued
        """
        if not self.enabled:
            return False

        now = self._clock()
        if now <= self.next_deadline:
            return False

        self._flush()
        self.flush_count += 1
        self.next_deadline = now + self.interval
        logger.debug(
            f"Flushed (#{self.flush_count}), next flush after "
            f"{self.interval:.1f}s"
        )
        return True
