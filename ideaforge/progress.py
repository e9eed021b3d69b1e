"""Simulated progress for a generation whose real progress is not observable.

The upstream service gives no progress signal, so this module *estimates* a
completion percentage from elapsed wall-clock time alone.  It is a UX
affordance for progress bars, not a measurement: the number says nothing
about how much work the backend has actually done.

The curve is logarithmic, fast at first and flattening out::

    progress = log10((elapsed / expected) * 9 + 1) * 45

and it is held strictly below ``cap_before_completion`` until the caller
confirms completion with :meth:`ProgressEstimator.complete`, at which point it
jumps to exactly 100.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable

COMPLETE = 100.0


def estimate_progress(
    elapsed_ms: float,
    expected_duration_ms: float,
    cap_before_completion: float,
) -> float:
    """Pure estimate for *elapsed_ms*; always ``>= 0`` and ``< cap_before_completion``."""
    if elapsed_ms <= 0:
        return 0.0
    raw = math.log10((elapsed_ms / expected_duration_ms) * 9 + 1) * 45
    return min(raw, math.nextafter(cap_before_completion, 0.0))


class ProgressEstimator:
    """Tracks a simulated, monotonic progress value for one request.

    Args:
        expected_duration_ms: Typical time the request takes.
        cap_before_completion: Ceiling (strictly below 100) the estimate stays
            under until :meth:`complete` is called.
        clock: Monotonic clock returning seconds; injectable for tests.
    """

    def __init__(
        self,
        expected_duration_ms: float = 20000,
        cap_before_completion: float = 92.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if expected_duration_ms <= 0:
            raise ValueError("expected_duration_ms must be positive")
        if not 0 < cap_before_completion < COMPLETE:
            raise ValueError("cap_before_completion must be between 0 and 100 (exclusive)")

        self.expected_duration_ms = expected_duration_ms
        self.cap_before_completion = cap_before_completion
        self._clock = clock
        self._started_at: float | None = None
        self._last = 0.0
        self._complete = False

    def estimate(self, elapsed_ms: float) -> float:
        return estimate_progress(elapsed_ms, self.expected_duration_ms, self.cap_before_completion)

    def start(self) -> None:
        """Start (or restart) timing."""
        self._started_at = self._clock()
        self._last = 0.0
        self._complete = False

    def complete(self) -> None:
        """Mark the underlying request as resolved."""
        self._complete = True

    @property
    def is_complete(self) -> bool:
        return self._complete

    @property
    def elapsed_ms(self) -> float:
        if self._started_at is None:
            return 0.0
        return (self._clock() - self._started_at) * 1000.0

    @property
    def progress(self) -> float:
        """Current percentage; never decreases, 100 only after :meth:`complete`."""
        if self._complete:
            return COMPLETE
        self._last = max(self._last, self.estimate(self.elapsed_ms))
        return self._last
