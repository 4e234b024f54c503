import logging
import os
import re
import sys
from pathlib import Path


# --- PATH CONFIGURATION ---
class Paths:
    """
    Centralized path configuration using pathlib for robust cross-platform resolution.
    """
    # Absolute path to the repository root
    BASE_DIR = Path(__file__).resolve().parent.parent

    DOCKER_DIR = BASE_DIR / "docker"

    # Remote path for agent deployment over SSH
    REMOTE_WORK_DIR = "/tmp/iptables_test_agent"

    @staticmethod
    def sanitize_name(name: str) -> str:
        """
        Sanitize a test name for safe filesystem and container naming.
        Replaces spaces and special chars with underscores.

        :param name: Original name
        :return: Sanitized name safe for paths and commands
        """
        safe = re.sub(r'[^\w\-]', '_', name)
        safe = re.sub(r'_+', '_', safe)
        return safe.strip('_')


# --- NETWORK CONFIGURATION ---
class NetworkConfig:
    """
    Ports used by the address exchange and by the packet filter test bodies.
    """
    # Port the container listens on to receive the address of the local host
    IP_EXCHANGE_PORT = 2349

    DROP_PORT = 2401
    ACCEPT_PORT = 2402

    # One byte marker written by the connector side, content is ignored
    EXCHANGE_MARKER = b"\x00"


class ContainerConfig:
    """
    Docker image and container settings for the isolated side of a test.
    """
    IMAGE = "iptables-tests"
    NAME_PREFIX = "iptables-test"
    RUNTIME = os.environ.get("RUNTIME") or None
    CAPABILITIES = ["NET_ADMIN"]
    AGENT_COMMAND = ["python3", "-m", "agent.agent"]


class RemoteConfig:
    """
    Dedicated Linux host used as the isolated side when running over SSH.
    The account must be able to run iptables (root).
    """
    DEVICE = {
        "name": "iptables_host",
        "ip": "192.168.50.20",
        "user": "root",
        "password": "66668888",
        "python_path": "python3",
    }


class Timings:
    """
    Timeout and delay constants (in seconds).
    """
    # Covers address discovery, address announce and the result wait
    RUN_TIMEOUT = 10
    DIAL_INTERVAL = 0.2
    ADDRESS_POLL_INTERVAL = 0.25
    DIAL_TIMEOUT = 1
    # Bounded join of the container waiter after an aborted handshake
    DRAIN_TIMEOUT = 5
    SSH_TIMEOUT = 10
    SENDLOOP_DURATION = 2
    SENDLOOP_INTERVAL = 0.1
    COMMAND_POLL_INTERVAL = 0.5


class Limits:
    """
    Retry and attempt limits for operations.
    """
    SSH_RETRIES = 5
    CONNECTION_RETRY_DELAY = 5


class ReportPaths:
    """
    Where container logs and the suite summary are written.
    """
    ARTIFACTS_ENV = "TEST_UNDECLARED_OUTPUTS_DIR"
    SUMMARY_FILENAME = "summary.json"

    @staticmethod
    def artifacts_dir(override=None):
        """
        Resolve the artifacts directory from an explicit value or the environment.

        :param override: Directory passed on the command line (optional)
        :return: Path or None if no directory is configured
        """
        value = override or os.environ.get(ReportPaths.ARTIFACTS_ENV)
        return Path(value) if value else None


# --- LOGGING SYSTEM ---
class ConsoleOverwriterHandler(logging.StreamHandler):
    """
    Custom logging handler that overwrites the current console line.
    """

    def emit(self, record):
        """
        Emit a record, clearing the line before writing.

        :param record: LogRecord instance
        """
        try:
            msg = self.format(record)
            stream = self.stream
            stream.write('\r' + ' ' * 80 + '\r')
            stream.write(msg + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


class MinimalFormatter(logging.Formatter):
    """
    Minimalist colored formatter with symbols for log levels.
    """
    GREY = "\x1b[38;5;240m"
    GREEN = "\x1b[32m"
    YELLOW = "\x1b[33m"
    RED = "\x1b[31m"
    RESET = "\x1b[0m"

    def format(self, record):
        if record.levelno == logging.DEBUG:
            prefix = f"{self.GREY}d{self.RESET}"
            msg_color = self.GREY
        elif record.levelno == logging.INFO:
            prefix = f"{self.GREEN}•{self.RESET}"
            msg_color = self.RESET
        elif record.levelno == logging.WARNING:
            prefix = f"{self.YELLOW}⚠{self.RESET}"
            msg_color = self.YELLOW
        elif record.levelno >= logging.ERROR:
            prefix = f"{self.RED}✖{self.RESET}"
            msg_color = self.RED
        else:
            prefix = ""
            msg_color = self.RESET

        logger_name = f"{self.GREY}[{record.name}]{self.RESET} " if record.name != "root" else ""
        timestamp = f"{self.GREY}{self.formatTime(record, '%H:%M:%S')}{self.RESET}"
        return f"{timestamp} {prefix} {logger_name}{msg_color}{record.getMessage()}{self.RESET}"


def setup_logging(verbose: bool = False):
    """
    Configure root logger with custom console handler.

    :param verbose: If True, set level to DEBUG, otherwise INFO
    :return: Configured root logger
    """
    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler = ConsoleOverwriterHandler(sys.stdout)
    console_handler.setFormatter(MinimalFormatter())
    root_logger.addHandler(console_handler)

    logging.getLogger("paramiko").setLevel(logging.WARNING)

    return root_logger
