"""
INPUT chain filter tests.
"""

import socket

from agent.iptables_utils import filter_table, listen_udp, send_udp_loop
from core.config import NetworkConfig, Timings
from core.exceptions import DomainError
from core.testcase import Testcase

DROP_PORT = NetworkConfig.DROP_PORT
ACCEPT_PORT = NetworkConfig.ACCEPT_PORT


def expect_no_packets(port, duration=Timings.SENDLOOP_DURATION):
    """Listen on port and fail if anything arrives before the timeout."""
    try:
        n = listen_udp(port, duration)
    except socket.timeout:
        # Reading timed out and never received a packet
        return
    except OSError as e:
        raise DomainError(f"error reading: {e}") from e
    raise DomainError(f"packets on port {port} should have been dropped, but got a packet with {n} bytes")


class FilterInputDropUDP(Testcase):
    """Drop all inbound UDP traffic."""

    @property
    def name(self):
        return "FilterInputDropUDP"

    def container_action(self, ip):
        filter_table("-A", "INPUT", "-p", "udp", "-j", "DROP")
        expect_no_packets(DROP_PORT)

    def local_action(self, ip, channel):
        send_udp_loop(ip, DROP_PORT, Timings.SENDLOOP_DURATION)
        channel.send()


class FilterInputDropUDPPort(Testcase):
    """Drop UDP traffic to a single destination port."""

    @property
    def name(self):
        return "FilterInputDropUDPPort"

    def container_action(self, ip):
        filter_table("-A", "INPUT", "-p", "udp", "-m", "udp", "--destination-port", str(DROP_PORT), "-j", "DROP")
        expect_no_packets(DROP_PORT)

    def local_action(self, ip, channel):
        send_udp_loop(ip, DROP_PORT, Timings.SENDLOOP_DURATION)
        channel.send()


class FilterInputDropDifferentUDPPort(Testcase):
    """Dropping one UDP port doesn't drop packets on other ports."""

    @property
    def name(self):
        return "FilterInputDropDifferentUDPPort"

    def container_action(self, ip):
        filter_table("-A", "INPUT", "-p", "udp", "-m", "udp", "--destination-port", str(DROP_PORT), "-j", "DROP")

        try:
            listen_udp(ACCEPT_PORT, Timings.SENDLOOP_DURATION)
        except OSError as e:
            raise DomainError(f"packets on port {ACCEPT_PORT} should be allowed, but encountered an error: {e}") from e

    def local_action(self, ip, channel):
        send_udp_loop(ip, ACCEPT_PORT, Timings.SENDLOOP_DURATION)
        channel.send()
