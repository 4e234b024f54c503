"""
One-shot address exchange between the container and the local host.

The container listens on a well-known TCP port and learns the local host's
address from the first inbound connection. The local host learns the
container's address from the runner, then dials that port until the
container is ready, writes a single marker byte and hangs up.
"""

import ipaddress
import logging
import socket
import time

from tenacity import RetryError, Retrying, retry_if_exception_type, retry_if_result, wait_fixed

from core.config import NetworkConfig, Timings
from core.deadline import Deadline, stop_at_deadline
from core.exceptions import (AcceptError, ContainerError, DeadlineExceededError, HandshakeTimeoutError,
                             InvalidAddressError, ListenError, WriteError)

logger = logging.getLogger("AddressExchange")


def learn_peer_address(port: int = NetworkConfig.IP_EXCHANGE_PORT, timeout: float = None, host: str = "") -> str:
    """
    Accept exactly one connection on ``port`` and return the peer's IP.
    The listener and the accepted connection are closed on every path.

    :param port: TCP port to listen on
    :param timeout: Seconds to wait for the connection (None blocks)
    :param host: Interface to bind, all interfaces by default
    :return: Remote IPv4 address of the connecting peer
    :raises ListenError: If the listener cannot be set up
    :raises AcceptError: If accepting fails or times out
    """
    try:
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    except OSError as e:
        raise ListenError(f"failed listening for IP: {e}") from e

    with listener:
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((host, port))
            listener.listen(1)
        except OSError as e:
            raise ListenError(f"failed listening for IP on port {port}: {e}") from e

        listener.settimeout(timeout)
        logger.debug(f"Waiting for peer address on port {port}")
        try:
            conn, (peer_ip, peer_port) = listener.accept()
        except OSError as e:
            raise AcceptError(f"failed accepting IP: {e}") from e

        with conn:
            logger.info(f"Connected to {peer_ip}:{peer_port}")
            return peer_ip


def announce_address(ip: str, port: int = NetworkConfig.IP_EXCHANGE_PORT, deadline: Deadline = None,
                     interval: float = Timings.DIAL_INTERVAL, connect=socket.create_connection,
                     sleep=time.sleep) -> None:
    """
    Give the container our address by connecting to its exchange port.
    The container may not be listening yet, so dialing is retried until the deadline.

    :param ip: Container address
    :param port: Container exchange port
    :param deadline: Shared run deadline
    :param interval: Pause between dial attempts
    :param connect: Callable(address, timeout) returning a connected socket
    :param sleep: Sleep function used between attempts
    :raises HandshakeTimeoutError: If no attempt succeeds before the deadline
    :raises WriteError: If the marker byte cannot be written
    """
    deadline = deadline or Deadline(Timings.RUN_TIMEOUT)
    retryer = Retrying(
        stop=stop_at_deadline(deadline),
        wait=wait_fixed(interval),
        retry=retry_if_exception_type(OSError),
        sleep=sleep,
        before_sleep=lambda state: logger.debug(
            f"Dial {ip}:{port} attempt {state.attempt_number} failed: {state.outcome.exception()}"),
    )

    try:
        conn = retryer(connect, (ip, port), Timings.DIAL_TIMEOUT)
    except RetryError as e:
        raise HandshakeTimeoutError(
            f"timed out waiting to send IP after {deadline.timeout} seconds, "
            f"most recent error: {e.last_attempt.exception()}") from None

    with conn:
        try:
            conn.sendall(NetworkConfig.EXCHANGE_MARKER)
        except OSError as e:
            raise WriteError(f"error writing to container: {e}") from e
    logger.debug(f"Announced our address to {ip}:{port}")


def discover_container_address(handle, deadline: Deadline = None,
                               interval: float = Timings.ADDRESS_POLL_INTERVAL, sleep=time.sleep) -> str:
    """
    Poll the container handle until it reports an address.
    The container might not have started yet, so empty answers and runner errors are retried.

    :param handle: ContainerHandle exposing find_address()
    :param deadline: Shared run deadline
    :param interval: Pause between polls
    :param sleep: Sleep function used between polls
    :return: Validated IP address string
    :raises DeadlineExceededError: If no address is reported before the deadline
    :raises InvalidAddressError: If the reported address does not parse
    """
    deadline = deadline or Deadline(Timings.RUN_TIMEOUT)
    retryer = Retrying(
        stop=stop_at_deadline(deadline),
        wait=wait_fixed(interval),
        retry=retry_if_exception_type(ContainerError) | retry_if_result(lambda address: not address),
        sleep=sleep,
    )

    try:
        address = retryer(handle.find_address)
    except RetryError:
        raise DeadlineExceededError(
            f"timed out getting IP after {deadline.timeout} seconds") from None

    address = address.strip()
    try:
        ipaddress.IPv4Address(address)
    except ValueError:
        raise InvalidAddressError(f"invalid IP: {address!r}") from None

    logger.info(f"Container has IP of {address}")
    return address
