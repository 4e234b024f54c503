"""
Shared run deadline and the matching tenacity stop strategy.
"""

import time

from tenacity.stop import stop_base


class Deadline:
    """
    Absolute point in time computed once from a timeout.

    :param timeout: Seconds from now
    :param clock: Monotonic clock, injectable for tests
    """

    def __init__(self, timeout: float, clock=time.monotonic):
        self.timeout = timeout
        self._clock = clock
        self._expires_at = clock() + timeout

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def __repr__(self):
        return f"<Deadline timeout={self.timeout}s remaining={self.remaining():.2f}s>"


class stop_at_deadline(stop_base):
    """Stop retrying once the shared deadline has passed."""

    def __init__(self, deadline: Deadline):
        self.deadline = deadline

    def __call__(self, retry_state) -> bool:
        return self.deadline.expired()
