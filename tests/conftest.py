import socket

import pytest

from fakes import FakeClock, free_port


@pytest.fixture
def tcp_port():
    return free_port()


@pytest.fixture
def udp_port():
    return free_port(socket.SOCK_DGRAM)


@pytest.fixture
def clock():
    return FakeClock()
