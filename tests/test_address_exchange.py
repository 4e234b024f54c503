import socket
import threading

import pytest

from core.address_exchange import announce_address, discover_container_address, learn_peer_address
from core.deadline import Deadline
from core.exceptions import (AcceptError, ContainerError, DeadlineExceededError, HandshakeTimeoutError,
                             InvalidAddressError, ListenError, WriteError)
from fakes import FakeHandle


class FakeConn:

    def __init__(self, fail_write=False):
        self.fail_write = fail_write
        self.sent = b""
        self.closed = False

    def sendall(self, data):
        if self.fail_write:
            raise BrokenPipeError("broken pipe")
        self.sent += data

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True


class FlakyConnect:
    """Refuses the first ``failures`` dials, then hands out ``conn``."""

    def __init__(self, failures, conn=None):
        self.failures = failures
        self.conn = conn or FakeConn()
        self.calls = []

    def __call__(self, address, timeout=None):
        self.calls.append(address)
        if len(self.calls) <= self.failures:
            raise ConnectionRefusedError("connection refused")
        return self.conn


def test_exchange_over_loopback(tcp_port):
    learned = {}

    def container_side():
        learned["ip"] = learn_peer_address(tcp_port, timeout=5, host="127.0.0.1")

    listener = threading.Thread(target=container_side)
    listener.start()

    announce_address("127.0.0.1", tcp_port, Deadline(5))
    listener.join(5)

    assert learned["ip"] == "127.0.0.1"


def test_learn_times_out_without_peer(tcp_port):
    with pytest.raises(AcceptError):
        learn_peer_address(tcp_port, timeout=0.1, host="127.0.0.1")


def test_learn_fails_when_port_is_taken():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen(1)
        port = busy.getsockname()[1]

        with pytest.raises(ListenError):
            learn_peer_address(port, timeout=0.1, host="127.0.0.1")


def test_announce_retries_until_listener_is_ready(clock):
    connect = FlakyConnect(failures=3)

    announce_address("10.0.0.2", 2349, Deadline(10, clock), interval=0.2, connect=connect, sleep=clock.sleep)

    assert len(connect.calls) == 4
    assert connect.calls[0] == ("10.0.0.2", 2349)
    assert clock.sleeps == [0.2, 0.2, 0.2]
    assert connect.conn.sent == b"\x00"
    assert connect.conn.closed


def test_announce_gives_up_at_deadline(clock):
    connect = FlakyConnect(failures=1000)

    with pytest.raises(HandshakeTimeoutError, match="connection refused") as excinfo:
        announce_address("10.0.0.2", 2349, Deadline(1, clock), interval=0.2, connect=connect, sleep=clock.sleep)

    assert isinstance(excinfo.value, TimeoutError)
    # 1s deadline / 0.2s interval, plus the first attempt
    assert 6 <= len(connect.calls) <= 7


def test_announce_write_failure(clock):
    connect = FlakyConnect(failures=0, conn=FakeConn(fail_write=True))

    with pytest.raises(WriteError):
        announce_address("10.0.0.2", 2349, Deadline(1, clock), connect=connect, sleep=clock.sleep)
    assert connect.conn.closed


def test_discover_polls_until_address_is_reported(clock):
    handle = FakeHandle(addresses=["", "", "172.17.0.3"])

    ip = discover_container_address(handle, Deadline(10, clock), interval=0.25, sleep=clock.sleep)

    assert ip == "172.17.0.3"
    assert handle.find_calls == 3
    assert clock.sleeps == [0.25, 0.25]


def test_discover_retries_runner_errors(clock):
    handle = FakeHandle(addresses=[ContainerError("no such container"), "172.17.0.4"])

    assert discover_container_address(handle, Deadline(10, clock), sleep=clock.sleep) == "172.17.0.4"


def test_discover_times_out(clock):
    handle = FakeHandle(addresses=[""])

    with pytest.raises(DeadlineExceededError, match="timed out getting IP"):
        discover_container_address(handle, Deadline(1, clock), interval=0.25, sleep=clock.sleep)
    assert clock.now - 100.0 >= 1


def test_discover_rejects_invalid_address(clock):
    handle = FakeHandle(addresses=["not-an-ip"])

    with pytest.raises(InvalidAddressError, match="not-an-ip"):
        discover_container_address(handle, Deadline(1, clock), sleep=clock.sleep)
    assert handle.find_calls == 1


def test_discover_rejects_ipv6_address(clock):
    handle = FakeHandle(addresses=["fd00::2"])

    with pytest.raises(InvalidAddressError, match="fd00::2"):
        discover_container_address(handle, Deadline(1, clock), sleep=clock.sleep)
