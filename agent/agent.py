"""
Container-side entrypoint.
Learns the local host's address from the exchange handshake, then runs the test's container action.

Usage: python -m agent.agent --name FilterInputDropUDP
"""

import argparse
import logging
import sys

from core.address_exchange import learn_peer_address
from core.config import NetworkConfig, Timings, setup_logging
from core.exceptions import HandshakeError, NotFoundError

logger = logging.getLogger("Agent")


def run_container_side(registry, name, port=NetworkConfig.IP_EXCHANGE_PORT, accept_timeout=None):
    """
    Look up the test, wait for the local host to announce itself, run the container action.

    :param registry: TestcaseRegistry to resolve ``name`` from
    :param name: Test name
    :param port: Exchange port to listen on
    :param accept_timeout: Seconds to wait for the local host (None blocks)
    :raises NotFoundError: Unknown test name
    :raises HandshakeError: If the address exchange fails
    """
    test = registry.lookup(name)
    logger.info(f"Running test {name!r}")

    ip = learn_peer_address(port, timeout=accept_timeout)
    test.container_action(ip)


def main(argv=None, registry=None):
    parser = argparse.ArgumentParser(description="Packet filter test agent")
    parser.add_argument('--name', required=True, help='Name of the test to run')
    parser.add_argument('--port', type=int, default=NetworkConfig.IP_EXCHANGE_PORT,
                        help='Port to receive the local address on')
    parser.add_argument('--timeout', type=float, default=Timings.RUN_TIMEOUT,
                        help='Seconds to wait for the local host to announce itself')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    if registry is None:
        from agent.plugins import build_registry
        registry = build_registry()

    try:
        run_container_side(registry, args.name, args.port, accept_timeout=args.timeout)
    except (NotFoundError, HandshakeError) as e:
        print(f"ERROR:{e}")
        return 1
    except Exception as e:
        print(f"ERROR:Failed running test {args.name!r}: {e}")
        print("RESULT:FAILURE")
        return 1

    print("RESULT:SUCCESS")
    return 0


if __name__ == "__main__":
    sys.exit(main())
