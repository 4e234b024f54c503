"""
Runners for the isolated side of a test.
A runner starts the agent and hands back a handle used to wait for it,
find its address and clean it up.
"""

import logging
import secrets
import subprocess
import threading
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from core.config import ContainerConfig, Paths
from core.exceptions import ContainerError

logger = logging.getLogger("ContainerRunner")


class ContainerHandle(ABC):
    """
    A running isolated environment.
    """

    @abstractmethod
    def wait(self, timeout: Optional[float] = None) -> Tuple[str, Optional[Exception]]:
        """
        Block until the agent exits.

        :param timeout: Seconds to wait (None blocks)
        :return: Tuple of (combined output, error or None)
        """

    @abstractmethod
    def find_address(self) -> str:
        """
        :return: Address of the environment, or "" if not known yet
        :raises ContainerError: If the runner cannot be queried
        """

    @abstractmethod
    def cleanup(self) -> None:
        """Release the environment. Safe to call more than once."""


class ContainerRunner(ABC):

    @abstractmethod
    def start(self, args: Sequence[str], capabilities: Sequence[str] = ()) -> ContainerHandle:
        """
        Start the agent with ``args`` without waiting for it to finish.

        :param args: Agent arguments (e.g. ['--name', 'FilterInputDropUDP'])
        :param capabilities: Linux capabilities the agent needs
        :return: ContainerHandle
        :raises ContainerError: If the environment cannot be started
        """


class DockerHandle(ContainerHandle):
    """
    Foreground `docker run` process plus the container name used for inspect/rm.
    """

    def __init__(self, name: str, process: subprocess.Popen, docker_bin: str = "docker"):
        self.name = name
        self.process = process
        self.docker_bin = docker_bin
        self._cleaned = False
        self._lock = threading.Lock()

    def wait(self, timeout=None):
        try:
            output, _ = self.process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            return "", ContainerError(f"{self.name}: container still running after {timeout}s")

        output = output.decode(errors="replace") if isinstance(output, bytes) else (output or "")
        if self.process.returncode != 0:
            return output, ContainerError(f"{self.name}: container exited with status {self.process.returncode}")
        return output, None

    def find_address(self) -> str:
        cmd = [self.docker_bin, "inspect", "-f",
               "{{range .NetworkSettings.Networks}}{{.IPAddress}}{{end}}", self.name]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=5)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ContainerError(f"{self.name}: docker inspect failed: {e}") from e

        if result.returncode != 0:
            raise ContainerError(f"{self.name}: docker inspect failed: {result.stderr.strip()}")
        return result.stdout.strip()

    def cleanup(self):
        with self._lock:
            if self._cleaned:
                return
            self._cleaned = True

        logger.debug(f"{self.name}: Removing container")
        try:
            result = subprocess.run([self.docker_bin, "rm", "-f", self.name],
                                    capture_output=True, text=True, timeout=30)
            if result.returncode != 0:
                logger.warning(f"{self.name}: docker rm failed: {result.stderr.strip()}")
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"{self.name}: docker rm failed: {e}")

        if self.process.poll() is None:
            self.process.kill()


class DockerRunner(ContainerRunner):
    """
    Starts the test agent in a fresh container from ``image``.

    :param image: Image holding this repository and iptables
    :param name_prefix: Prefix for generated container names
    :param runtime: Optional OCI runtime passed as --runtime (e.g. runsc)
    """

    def __init__(self, image: str = ContainerConfig.IMAGE, name_prefix: str = ContainerConfig.NAME_PREFIX,
                 runtime: Optional[str] = ContainerConfig.RUNTIME, docker_bin: str = "docker"):
        self.image = image
        self.name_prefix = name_prefix
        self.runtime = runtime
        self.docker_bin = docker_bin

    def _container_name(self) -> str:
        return f"{Paths.sanitize_name(self.name_prefix)}-{secrets.token_hex(4)}"

    def build_command(self, name: str, args: Sequence[str], capabilities: Sequence[str] = ()) -> List[str]:
        cmd = [self.docker_bin, "run", "--name", name]
        if self.runtime:
            cmd.append(f"--runtime={self.runtime}")
        cmd += [f"--cap-add={cap}" for cap in capabilities]
        cmd.append(self.image)
        cmd += ContainerConfig.AGENT_COMMAND
        cmd += list(args)
        return cmd

    def start(self, args, capabilities=()):
        name = self._container_name()
        cmd = self.build_command(name, args, capabilities)
        logger.info(f"{name}: Starting container from {self.image}")
        logger.debug(f"{name}: {' '.join(cmd)}")
        try:
            process = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
        except OSError as e:
            raise ContainerError(f"failed to start container {name}: {e}") from e
        return DockerHandle(name, process, self.docker_bin)
