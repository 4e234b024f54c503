"""
Packet filter test suite.
Runs each test's container side in an isolated environment and its local side on this host.
"""

import argparse
import logging
import sys

from agent.plugins import build_registry
from core.config import ContainerConfig, RemoteConfig, ReportPaths, Timings, setup_logging
from core.container_runner import DockerRunner
from core.core_orchestrator import Orchestrator
from core.core_report import SuiteReport

logger = logging.getLogger("Suite")


def make_runner(args):
    """
    Build the runner selected on the command line.

    :param args: Parsed arguments
    :return: ContainerRunner
    """
    if args.runner == 'ssh':
        from core.remote_executor import RemoteDeviceExecutor

        device = dict(RemoteConfig.DEVICE)
        if args.host:
            device['ip'] = args.host
        if args.user:
            device['user'] = args.user
        if args.password:
            device['password'] = args.password
        return RemoteDeviceExecutor(device)

    return DockerRunner(image=args.image, runtime=args.runtime)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Two-sided packet filter test suite")
    parser.add_argument('--tests', default=None,
                        help='Comma-separated test names (default: all)')
    parser.add_argument('--list', action='store_true',
                        help='List available tests and exit')
    parser.add_argument('--runner', choices=['docker', 'ssh'], default='docker',
                        help='Where the container side runs')
    parser.add_argument('--image', default=ContainerConfig.IMAGE,
                        help='Docker image holding the test agent')
    parser.add_argument('--runtime', default=ContainerConfig.RUNTIME,
                        help='Docker runtime (e.g. runsc)')
    parser.add_argument('--host', default=None,
                        help='Remote host IP for the ssh runner')
    parser.add_argument('--user', default=None,
                        help='SSH username for the ssh runner')
    parser.add_argument('--password', default=None,
                        help='SSH password for the ssh runner')
    parser.add_argument('--timeout', type=float, default=Timings.RUN_TIMEOUT,
                        help='Per-test deadline in seconds')
    parser.add_argument('--artifacts-dir', default=None,
                        help=f'Directory for container logs (default: ${ReportPaths.ARTIFACTS_ENV})')
    parser.add_argument('--verbose', action='store_true',
                        help='Enable debug logging')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose)

    registry = build_registry()
    if args.list:
        for name in registry.names():
            print(name)
        return 0

    names = [t.strip() for t in args.tests.split(',') if t.strip()] if args.tests else registry.names()
    artifacts_dir = ReportPaths.artifacts_dir(args.artifacts_dir)

    runner = make_runner(args)
    orchestrator = Orchestrator(registry, runner, timeout=args.timeout, artifacts_dir=artifacts_dir)
    report = SuiteReport()

    try:
        orchestrator.run_suite(names, report)
    except KeyboardInterrupt:
        logger.warning("\n⚠ Suite interrupted")
        return 130
    finally:
        close = getattr(runner, 'close', None)
        if close:
            close()

    if report.passed:
        logger.info("✓ Test suite completed")
        return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())
