"""
Orchestrates a single two-sided test:
start the container, exchange addresses, run our side, combine both outcomes.
"""

import logging
import queue
import threading
import time
from enum import Enum
from typing import Dict, Iterable, Optional

from core.address_exchange import announce_address, discover_container_address
from core.aggregator import ResultAggregator
from core.config import ContainerConfig, NetworkConfig, Timings
from core.container_runner import ContainerHandle, ContainerRunner
from core.core_report import SuiteReport, log_container
from core.deadline import Deadline
from core.exceptions import ContainerError, DomainError, NotFoundError, OrchestrationError
from core.registry import TestcaseRegistry
from core.results import CompletionChannel, Side, Verdict
from core.testcase import Testcase

logger = logging.getLogger("Orchestrator")


class RunState(Enum):
    INITIALIZING = "initializing"
    STARTING = "starting"
    HANDSHAKE_LISTENING = "handshake-listening"
    HANDSHAKE_ANNOUNCING = "handshake-announcing"
    RUNNING = "running"
    AGGREGATING = "aggregating"
    DONE = "done"


def container_failure(output: str, error: Optional[BaseException]) -> Optional[BaseException]:
    """
    Classify a container exit: a failure reported by the agent's test logic becomes
    a DomainError, anything else stays an infrastructure error.

    :param output: Combined container output
    :param error: Error reported by the runner, None on clean exit
    :return: Error for the container Outcome, or None
    """
    if error is None:
        return None
    if "RESULT:FAILURE" in output:
        details = [line[len("ERROR:"):].strip() for line in output.splitlines() if line.startswith("ERROR:")]
        reason = details[-1] if details else str(error)
        return DomainError(f"container action failed: {reason}")
    return error


class Orchestrator:
    """
    Runs testcases from a registry against a container runner.

    :param registry: Frozen TestcaseRegistry
    :param runner: ContainerRunner for the isolated side
    :param timeout: Deadline in seconds covering the address exchange and the result wait
    :param exchange_port: Port the agent listens on for our address
    :param artifacts_dir: Directory for container logs and summary (optional)
    :param clock: Monotonic clock, injectable for tests
    :param sleep: Sleep used by the retry loops, injectable for tests
    """

    def __init__(self, registry: TestcaseRegistry, runner: ContainerRunner, timeout: float = Timings.RUN_TIMEOUT,
                 exchange_port: int = NetworkConfig.IP_EXCHANGE_PORT, artifacts_dir=None,
                 clock=time.monotonic, sleep=time.sleep):
        self.registry = registry
        self.runner = runner
        self.timeout = timeout
        self.exchange_port = exchange_port
        self.artifacts_dir = artifacts_dir
        self._clock = clock
        self._sleep = sleep
        self.state = RunState.INITIALIZING

    def _set_state(self, name: str, state: RunState):
        logger.debug(f"{name}: {self.state.value} -> {state.value}")
        self.state = state

    def run(self, name: str) -> Verdict:
        """
        Run one test end to end. Never raises for test or infrastructure failures;
        the failure is the verdict's cause.

        :param name: Registered test name
        :return: Verdict
        """
        started = self._clock()
        self.state = RunState.INITIALIZING
        logger.info(f">>> {name} <<<")

        try:
            testcase = self.registry.lookup(name)
        except NotFoundError as e:
            logger.error(str(e))
            return self._finish(name, Verdict.failure(name, e), started)

        self._set_state(name, RunState.STARTING)
        try:
            handle = self.runner.start(["--name", name], capabilities=ContainerConfig.CAPABILITIES)
        except ContainerError as e:
            logger.error(f"{name}: failed to start container: {e}")
            return self._finish(name, Verdict.failure(name, e), started)

        events = queue.Queue()
        deadline = Deadline(self.timeout, self._clock)
        waiter = threading.Thread(target=self._wait_container,
                                  args=(name, handle, CompletionChannel(Side.CONTAINER, events)),
                                  name=f"{name}-container", daemon=True)
        waiter.start()

        drain = False
        try:
            verdict = self._exchange_and_run(name, testcase, handle, events, deadline)
        except OrchestrationError as e:
            logger.error(f"{name}: {e}")
            verdict = Verdict.failure(name, e)
            drain = True
        except Exception as e:
            logger.error(f"{name}: unexpected error: {e}")
            verdict = Verdict.failure(name, e)
            drain = True
        finally:
            self._cleanup(name, handle)

        if drain:
            # The container was already started; its outcome is discarded
            waiter.join(Timings.DRAIN_TIMEOUT)

        return self._finish(name, verdict, started)

    @staticmethod
    def _cleanup(name: str, handle: ContainerHandle):
        try:
            handle.cleanup()
        except Exception as e:
            logger.warning(f"{name}: container cleanup failed: {e}")

    def _exchange_and_run(self, name: str, testcase: Testcase, handle: ContainerHandle,
                          events: queue.Queue, deadline: Deadline) -> Verdict:
        self._set_state(name, RunState.HANDSHAKE_LISTENING)
        ip = discover_container_address(handle, deadline, sleep=self._sleep)

        self._set_state(name, RunState.HANDSHAKE_ANNOUNCING)
        announce_address(ip, self.exchange_port, deadline, sleep=self._sleep)

        self._set_state(name, RunState.RUNNING)
        channel = CompletionChannel(Side.LOCAL, events)
        threading.Thread(target=self._run_local, args=(testcase, ip, channel),
                         name=f"{name}-local", daemon=True).start()

        self._set_state(name, RunState.AGGREGATING)
        return ResultAggregator(events, self._clock).wait(name, deadline)

    def _wait_container(self, name: str, handle: ContainerHandle, channel: CompletionChannel):
        try:
            output, error = handle.wait()
        except Exception as e:
            output, error = "", ContainerError(f"waiting for container failed: {e}")
        log_container(name, output, error, self.artifacts_dir)
        channel.send(container_failure(output, error), output)

    @staticmethod
    def _run_local(testcase: Testcase, ip: str, channel: CompletionChannel):
        try:
            testcase.local_action(ip, channel)
        except Exception as e:
            channel.send(e)
            return
        if not channel.sent:
            channel.send()

    def _finish(self, name: str, verdict: Verdict, started: float) -> Verdict:
        verdict.elapsed = self._clock() - started
        self._set_state(name, RunState.DONE)
        if verdict.passed:
            logger.info(f"✓ {verdict.describe()}")
        else:
            logger.error(f"✖ {verdict.describe()}")
        return verdict

    def run_suite(self, names: Optional[Iterable[str]] = None, report: Optional[SuiteReport] = None) -> Dict[str, Verdict]:
        """
        Run tests sequentially.

        :param names: Test names, all registered tests if None
        :param report: SuiteReport collecting verdicts (optional)
        :return: Dictionary of test name to Verdict
        """
        names = list(names) if names is not None else self.registry.names()
        report = report if report is not None else SuiteReport()
        logger.info(f"=== Running {len(names)} test(s) ===")

        results = {}
        for name in names:
            verdict = self.run(name)
            results[name] = verdict
            report.add(verdict)

        report.log_summary()
        report.write(self.artifacts_dir)
        return results
