import socket
import threading

from agent.agent import run_container_side
from core.container_runner import ContainerHandle, ContainerRunner
from core.exceptions import ContainerError


def free_port(kind=socket.SOCK_STREAM):
    with socket.socket(socket.AF_INET, kind) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class FakeClock:
    """Manual clock; sleep() advances time instantly."""

    def __init__(self, start=100.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeHandle(ContainerHandle):
    """
    Container handle with scripted addresses.
    wait() blocks until finish() or cleanup() is called.
    """

    def __init__(self, addresses=("127.0.0.1",), output="RESULT:SUCCESS", error=None):
        self.addresses = list(addresses)
        self.output = output
        self.error = error
        self.finished = threading.Event()
        self.cleanup_calls = 0
        self.find_calls = 0

    def finish(self, output=None, error=None):
        if output is not None:
            self.output = output
        self.error = error
        self.finished.set()

    def wait(self, timeout=None):
        self.finished.wait(timeout)
        return self.output, self.error

    def find_address(self):
        self.find_calls += 1
        answer = self.addresses.pop(0) if len(self.addresses) > 1 else self.addresses[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    def cleanup(self):
        self.cleanup_calls += 1
        self.finished.set()


class FakeRunner(ContainerRunner):

    def __init__(self, handle=None, error=None):
        self.handle = handle or FakeHandle()
        self.error = error
        self.starts = []

    def start(self, args, capabilities=()):
        self.starts.append((list(args), list(capabilities)))
        if self.error:
            raise self.error
        return self.handle


class InProcessHandle(ContainerHandle):
    """Runs the real agent container side in a thread on the loopback interface."""

    def __init__(self, registry, name, port):
        self.cleanup_calls = 0
        self._result = None
        self._thread = threading.Thread(target=self._run, args=(registry, name, port), daemon=True)
        self._thread.start()

    def _run(self, registry, name, port):
        try:
            run_container_side(registry, name, port, accept_timeout=10)
        except Exception as e:
            self._result = (f"ERROR:{e}\nRESULT:FAILURE", ContainerError("container exited with status 1"))
        else:
            self._result = ("RESULT:SUCCESS", None)

    def wait(self, timeout=None):
        self._thread.join(timeout)
        return self._result

    def find_address(self):
        return "127.0.0.1"

    def cleanup(self):
        self.cleanup_calls += 1


class InProcessRunner(ContainerRunner):

    def __init__(self, registry, port):
        self.registry = registry
        self.port = port
        self.handles = []

    def start(self, args, capabilities=()):
        name = args[args.index("--name") + 1]
        handle = InProcessHandle(self.registry, name, self.port)
        self.handles.append(handle)
        return handle


class UdpGateway:
    """
    Forwards datagrams from its own port to a target port on the loopback interface,
    unless a drop rule was installed. Stands in for the INPUT chain in process.
    """

    def __init__(self, target_port):
        self.target_port = target_port
        self.drop = threading.Event()
        self.forwarded = 0
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.settimeout(0.1)
        self.port = self._sock.getsockname()[1]
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._forward, daemon=True)
        self._thread.start()

    def _forward(self):
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as out:
            while not self._stopped.is_set():
                try:
                    data = self._sock.recv(4096)
                except socket.timeout:
                    continue
                except OSError:
                    return
                if not self.drop.is_set():
                    out.sendto(data, ("127.0.0.1", self.target_port))
                    self.forwarded += 1

    def close(self):
        self._stopped.set()
        self._thread.join(1)
        self._sock.close()
