"""
Helpers shared by the packet filter test bodies: iptables invocation and UDP send/receive.
"""

import logging
import socket
import subprocess
import time

from core.config import Timings
from core.exceptions import DomainError

logger = logging.getLogger("Iptables")


def filter_table(*args):
    """
    Run an iptables command against the filter table.

    :param args: iptables arguments, e.g. ("-A", "INPUT", "-p", "udp", "-j", "DROP")
    :raises DomainError: If iptables is missing or exits non-zero
    """
    cmd = ["iptables", "-t", "filter", *args]
    logger.info(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise DomainError(f"failed to run iptables: {e}") from e

    if result.returncode != 0:
        output = (result.stdout + result.stderr).strip()
        raise DomainError(f"error running iptables with args {list(args)}\nerror: exit {result.returncode}\noutput: {output}")


def listen_udp(port: int, timeout: float) -> int:
    """
    Wait for one UDP datagram on ``port``.

    :param port: Local UDP port
    :param timeout: Seconds to wait
    :return: Size of the first datagram received
    :raises socket.timeout: If nothing arrives in time
    """
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(("", port))
        sock.settimeout(timeout)
        data, addr = sock.recvfrom(1024)
        logger.info(f"Received {len(data)} bytes from {addr[0]}:{addr[1]}")
        return len(data)


def send_udp_loop(ip: str, port: int, duration: float, interval: float = Timings.SENDLOOP_INTERVAL):
    """
    Send a one byte datagram to ip:port every ``interval`` seconds for ``duration`` seconds.

    Send errors (e.g. connection refused while the remote is not listening yet,
    or because it drops our packets) are ignored; the remote reports a failure
    if it doesn't get a packet it needs.
    """
    end = time.monotonic() + duration
    sent = 0
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.connect((ip, port))
        while time.monotonic() < end:
            try:
                sock.send(b"\x00")
                sent += 1
            except OSError as e:
                logger.debug(f"send to {ip}:{port} failed: {e}")
            time.sleep(interval)
    logger.debug(f"Sent {sent} datagrams to {ip}:{port}")
    return sent
