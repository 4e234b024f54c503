"""
Fan-in of the two side outcomes into one verdict, bounded by the run deadline.
"""

import logging
import queue
import time

from core.deadline import Deadline
from core.exceptions import DeadlineExceededError
from core.results import Outcome, Side, Verdict

logger = logging.getLogger("Aggregator")


class ResultAggregator:
    """
    Waits for the container and local outcomes on a shared queue.

    The first failing outcome observed is the verdict's cause. A local failure
    does not end the wait: the container is still awaited so both sides are
    accounted for, but never past the deadline. Outcomes arriving after the
    deadline are never read.
    """

    def __init__(self, events: "queue.Queue[Outcome]", clock=time.monotonic):
        self.events = events
        self._clock = clock

    def wait(self, name: str, deadline: Deadline) -> Verdict:
        """
        Block until both sides reported or the deadline fires.

        :param name: Test name for the verdict
        :param deadline: Shared run deadline
        :return: Combined Verdict
        """
        started = self._clock()
        container = None
        local_done = False
        failure = None

        while container is None or not local_done:
            remaining = deadline.remaining()
            if remaining <= 0:
                return self._on_deadline(name, deadline, container, failure, started)

            try:
                outcome = self.events.get(timeout=remaining)
            except queue.Empty:
                continue

            if outcome.side is Side.CONTAINER:
                container = outcome
                logger.info(f"{name}: Container finished.")
            else:
                local_done = True
                logger.info(f"{name}: Local finished.")
                if not outcome.ok:
                    logger.warning(f"{name}: local test failed: {outcome.error}")

            if not outcome.ok and failure is None:
                failure = outcome

        return Verdict(
            name=name,
            cause=failure.error if failure else None,
            container_output=container.output,
            elapsed=self._clock() - started,
        )

    def _on_deadline(self, name, deadline, container, failure, started):
        elapsed = self._clock() - started
        output = container.output if container else ""
        if failure is not None:
            logger.warning(f"{name}: deadline reached after {failure.side.value} side failed")
            return Verdict(name=name, cause=failure.error, container_output=output, elapsed=elapsed)

        waiting_for = "container" if container is None else "local action"
        logger.error(f"{name}: timed out waiting for {waiting_for}")
        cause = DeadlineExceededError(f"timed out after {deadline.timeout:.1f} seconds")
        return Verdict(name=name, cause=cause, container_output=output, elapsed=elapsed)
