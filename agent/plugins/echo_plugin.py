"""
Harness sanity test: no filter rules, the container must see our packets.
"""

import socket

from agent.iptables_utils import listen_udp, send_udp_loop
from core.config import NetworkConfig, Timings
from core.exceptions import DomainError
from core.testcase import Testcase


class Echo(Testcase):

    def __init__(self, port=NetworkConfig.ACCEPT_PORT, duration=Timings.SENDLOOP_DURATION):
        self.port = port
        self.duration = duration

    @property
    def name(self):
        return "Echo"

    def container_action(self, ip):
        try:
            listen_udp(self.port, self.duration)
        except socket.timeout:
            raise DomainError(f"no packet from {ip} arrived on port {self.port} within {self.duration}s") from None

    def local_action(self, ip, channel):
        send_udp_loop(ip, self.port, self.duration)
        channel.send()
