"""
Per-side outcomes, the combined verdict, and the one-shot completion channel.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger("Results")


class Side(Enum):
    CONTAINER = "container"
    LOCAL = "local"


@dataclass(frozen=True)
class Outcome:
    """
    Result of one side of a test. ``error`` is None on success.
    ``output`` carries captured container output for diagnostics.
    """
    side: Side
    error: Optional[BaseException] = None
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class Verdict:
    """
    Combined pass/fail result of one test run.
    """
    name: str
    cause: Optional[BaseException] = None
    container_output: str = ""
    elapsed: float = 0.0

    @property
    def passed(self) -> bool:
        return self.cause is None

    @classmethod
    def failure(cls, name: str, cause: BaseException, elapsed: float = 0.0) -> "Verdict":
        return cls(name=name, cause=cause, elapsed=elapsed)

    def describe(self) -> str:
        if self.passed:
            return f"{self.name}: PASS ({self.elapsed:.2f}s)"
        return f"{self.name}: FAIL ({type(self.cause).__name__}: {self.cause})"


class CompletionChannel:
    """
    One-shot channel delivering a single Outcome for one side into the aggregator's queue.
    Only the first send counts; later sends are dropped.
    """

    def __init__(self, side: Side, events: "queue.Queue[Outcome]"):
        self.side = side
        self._events = events
        self._lock = threading.Lock()
        self._sent = False

    @property
    def sent(self) -> bool:
        return self._sent

    def send(self, error: Optional[BaseException] = None, output: str = "") -> bool:
        """
        Report completion of this side.

        :param error: None for success, otherwise the failure
        :param output: Captured output (container side)
        :return: True if this call delivered the outcome
        """
        with self._lock:
            if self._sent:
                logger.debug(f"Ignoring extra {self.side.value} result: {error}")
                return False
            self._sent = True
        self._events.put(Outcome(self.side, error, output))
        return True
