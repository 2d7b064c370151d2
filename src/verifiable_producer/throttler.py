"""
Throughput Throttler

Paces a send loop to approximately a target number of messages per second.

PACING RULE:
- Expected elapsed time for N sends at rate R is N * 1000 / R milliseconds
  from the loop start
- Before message i is considered done, N = i + 1
- If the loop is strictly ahead of that schedule, sleep until it is not

There is no smoothing and no burst allowance: a loop that falls behind
(slow broker, GC pause) simply stops sleeping until it catches up.
"""

import threading
import time
from typing import Callable, Optional


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds."""
    return time.monotonic() * 1000.0


class ThroughputThrottler:
    """
    Decides whether, and for how long, a send loop should pause.

    Args:
        target_throughput: Messages/second; <= 0 disables throttling
        start_ms: Loop start timestamp (same clock as ``clock``)
        wakeup: Optional event; when set, a pending ``throttle()`` returns early
        clock: Millisecond clock (default: monotonic)

    Example:
        >>> throttler = ThroughputThrottler(100, monotonic_ms())
        >>> for i in range(1000):
        ...     send_start = monotonic_ms()
        ...     send(i)
        ...     if throttler.should_throttle(i, send_start):
        ...         throttler.throttle()
    """

    def __init__(
        self,
        target_throughput: float,
        start_ms: float,
        wakeup: Optional[threading.Event] = None,
        clock: Callable[[], float] = monotonic_ms,
    ):
        self.target_throughput = target_throughput
        self.start_ms = start_ms
        self.wakeup = wakeup
        self.clock = clock
        # Absolute deadline computed by the last should_throttle() == True
        self._deadline_ms: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return self.target_throughput > 0

    def expected_elapsed_ms(self, message_index: int) -> float:
        """Time the loop should have taken to send message_index + 1 messages."""
        return (message_index + 1) * 1000.0 / self.target_throughput

    def should_throttle(self, message_index: int, send_start_ms: float) -> bool:
        """
        Check whether the loop is ahead of schedule.

        Args:
            message_index: Zero-based index of the message just sent
            send_start_ms: When the send of that message started

        Returns:
            True if the loop should call throttle() before the next send
        """
        if not self.enabled:
            return False

        expected_ms = self.expected_elapsed_ms(message_index)
        if send_start_ms - self.start_ms < expected_ms:
            self._deadline_ms = self.start_ms + expected_ms
            return True
        return False

    def sleep_ms(self) -> float:
        """Remaining pause before the next send; never negative."""
        if not self.enabled or self._deadline_ms is None:
            return 0.0
        return max(0.0, self._deadline_ms - self.clock())

    def throttle(self) -> None:
        """Block the calling thread until the next send is due."""
        remaining_ms = self.sleep_ms()
        self._deadline_ms = None
        if remaining_ms <= 0:
            return

        if self.wakeup is not None:
            self.wakeup.wait(remaining_ms / 1000.0)
        else:
            time.sleep(remaining_ms / 1000.0)
