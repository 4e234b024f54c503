import logging
import shlex
import socket
import threading
import time
from typing import Optional

import paramiko
from scp import SCPClient
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from core.config import Limits, Paths, Timings
from core.container_runner import ContainerHandle, ContainerRunner
from core.exceptions import ContainerError

logger = logging.getLogger("RemoteExec")


class RemoteHandle(ContainerHandle):
    """
    Agent process running on a remote host over one SSH session channel.
    """

    def __init__(self, executor: "RemoteDeviceExecutor", channel: paramiko.Channel):
        self.executor = executor
        self.channel = channel
        self.name = executor.name
        self._cleaned = False
        self._lock = threading.Lock()

    def wait(self, timeout=None):
        """
        Poll the channel until the agent exits.
        Uses polling to avoid blocking indefinitely on dead SSH links.
        """
        chunks = []
        start_time = time.monotonic()
        try:
            while not self.channel.exit_status_ready():
                if timeout and (time.monotonic() - start_time > timeout):
                    return self._decode(chunks), ContainerError(f"{self.name}: agent still running after {timeout}s")
                while self.channel.recv_ready():
                    chunks.append(self.channel.recv(4096))
                time.sleep(Timings.COMMAND_POLL_INTERVAL)

            while True:
                data = self.channel.recv(4096)
                if not data:
                    break
                chunks.append(data)
            exit_status = self.channel.recv_exit_status()
        except (socket.error, paramiko.SSHException) as e:
            return self._decode(chunks), ContainerError(f"{self.name}: SSH channel failed: {e}")

        output = self._decode(chunks)
        if exit_status != 0:
            return output, ContainerError(f"{self.name}: agent exited with status {exit_status}")
        return output, None

    @staticmethod
    def _decode(chunks):
        return b"".join(chunks).decode(errors="replace")

    def find_address(self) -> str:
        return self.executor.ip

    def cleanup(self):
        with self._lock:
            if self._cleaned:
                return
            self._cleaned = True

        try:
            if not self.channel.exit_status_ready():
                logger.debug(f"{self.name}: Stopping leftover agent")
                self.executor.exec_command_verbose("pkill -f 'agent.agent --name'", "Stop agent")
            self.channel.close()

            if self.executor.reset_filter:
                self.executor.exec_command_verbose("iptables -t filter -F", "Flush filter table")
        except (socket.error, paramiko.SSHException) as e:
            logger.warning(f"{self.name}: Cleanup failed: {e}")


class RemoteDeviceExecutor(ContainerRunner):
    """
    Runs the test agent on a dedicated remote Linux host.
    Handles SSH connection, agent deployment, and agent execution.

    :param device_config: Dictionary with 'name', 'ip', 'user', 'password' and optional 'python_path'
    :param reset_filter: Flush the remote filter table when a run is cleaned up
    """

    def __init__(self, device_config, reset_filter: bool = True):
        self.config = device_config
        self.name = device_config["name"]
        self.ip = device_config["ip"]
        self.user = device_config["user"]
        self.password = device_config["password"]
        self.python_cmd = device_config.get("python_path", "python3")
        self.reset_filter = reset_filter

        self.ssh: Optional[paramiko.SSHClient] = None
        self.remote_dir = Paths.REMOTE_WORK_DIR
        self.deployed = False

    @retry(stop=stop_after_attempt(Limits.SSH_RETRIES), wait=wait_fixed(Limits.CONNECTION_RETRY_DELAY),
           retry=retry_if_exception_type((socket.error, paramiko.SSHException)), reraise=True)
    def connect(self):
        """
        Establish SSH connection to the remote host.
        """
        logger.info(f"{self.name}: Connecting to {self.ip}...")
        self.ssh = paramiko.SSHClient()
        self.ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        self.ssh.connect(self.ip, username=self.user, password=self.password, timeout=Timings.SSH_TIMEOUT)

    def close(self):
        """
        Close SSH connection to the remote host.
        """
        if self.ssh:
            self.ssh.close()
            self.ssh = None

    def exec_command_verbose(self, cmd, description):
        """
        Execute SSH command and log output verbosely.

        :param cmd: Command string to execute
        :param description: Human-readable description for logging
        :return: Tuple of (exit_status, stdout, stderr)
        """
        logger.debug(f"{self.name}: {description}: {cmd}")
        stdin, stdout, stderr = self.ssh.exec_command(cmd)
        exit_status = stdout.channel.recv_exit_status()
        out_str = stdout.read().decode().strip()
        err_str = stderr.read().decode().strip()

        if exit_status != 0:
            logger.error(f"{self.name}: {description} Failed (Exit {exit_status})")
            if out_str:
                logger.error(f"{self.name}: STDOUT: {out_str}")
            if err_str:
                logger.error(f"{self.name}: STDERR: {err_str}")
        else:
            logger.debug(f"{self.name}: {description}")
            if out_str:
                logger.debug(f"{self.name}: STDOUT: {out_str}")

        return exit_status, out_str, err_str

    def deploy_agent(self):
        """
        Copy the core and agent packages into the remote work directory.
        """
        logger.info(f"{self.name}: Deploying agent to {self.remote_dir}")
        exit_status, _, err = self.exec_command_verbose(f"mkdir -p {self.remote_dir}", "Create remote dir")
        if exit_status != 0:
            raise ContainerError(f"{self.name}: mkdir failed for {self.remote_dir}. Error: {err}")

        packages = [str(Paths.BASE_DIR / "core"), str(Paths.BASE_DIR / "agent")]
        try:
            with SCPClient(self.ssh.get_transport()) as scp:
                scp.put(packages, remote_path=self.remote_dir, recursive=True)
        except Exception as e:
            logger.error(f"{self.name}: SCP transfer failed: {e}")
            raise ContainerError(f"{self.name}: agent deployment failed: {e}") from e

        self.deployed = True
        logger.info(f"{self.name}: Deployment finished successfully.")

    def start(self, args, capabilities=()):
        if capabilities and self.user != "root":
            logger.warning(f"{self.name}: capabilities {list(capabilities)} need a root login, running as {self.user}")

        try:
            if self.ssh is None:
                self.connect()
            if not self.deployed:
                self.deploy_agent()

            full_cmd = f"cd {self.remote_dir} && {self.python_cmd} -m agent.agent {shlex.join(args)}"
            logger.debug(f"{self.name}: Executing Agent Command: {full_cmd}")

            channel = self.ssh.get_transport().open_session()
            channel.set_combine_stderr(True)
            channel.exec_command(full_cmd)
        except (socket.error, paramiko.SSHException) as e:
            raise ContainerError(f"{self.name}: failed to start agent: {e}") from e

        return RemoteHandle(self, channel)
