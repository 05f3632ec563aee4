"""Deadline token for bounding long-running computations."""

from __future__ import annotations

import time
from typing import Optional

from spanflow.core.errors import DeadlineExceeded


class Deadline:
    """Wall-clock deadline shared by the stages of one run.

    Parameters
    ----------
    timeout_sec : float, optional
        Seconds from construction until expiry. ``None`` never expires.

    Example
    -------
    >>> deadline = Deadline(5.0)
    >>> for k in range(n):
    ...     deadline.check("floyd-warshall")
    """

    def __init__(self, timeout_sec: Optional[float] = None):
        if timeout_sec is not None and timeout_sec <= 0:
            raise ValueError(f"timeout_sec must be positive, got {timeout_sec}")
        self.timeout_sec = timeout_sec
        self._start = time.monotonic()
        self._cancelled = False

    @classmethod
    def never(cls) -> Deadline:
        return cls(None)

    def cancel(self) -> None:
        """Expire the deadline immediately."""
        self._cancelled = True

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._start

    @property
    def remaining(self) -> Optional[float]:
        if self.timeout_sec is None:
            return None
        return max(0.0, self.timeout_sec - self.elapsed)

    def expired(self) -> bool:
        if self._cancelled:
            return True
        return self.timeout_sec is not None and self.elapsed > self.timeout_sec

    def check(self, stage: str = "") -> None:
        """Raise DeadlineExceeded if the deadline has passed."""
        if self.expired():
            where = f" during {stage}" if stage else ""
            raise DeadlineExceeded(
                f"Deadline of {self.timeout_sec}s exceeded{where} "
                f"(elapsed {self.elapsed:.2f}s)"
            )
