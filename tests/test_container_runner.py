import subprocess
from unittest import mock

import pytest

from core import container_runner
from core.container_runner import DockerHandle, DockerRunner
from core.exceptions import ContainerError


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def test_build_command():
    runner = DockerRunner(image="iptables-tests", runtime="runsc")

    cmd = runner.build_command("iptables-test-1a2b", ["--name", "FilterInputDropUDP"], ["NET_ADMIN"])

    assert cmd == ["docker", "run", "--name", "iptables-test-1a2b", "--runtime=runsc", "--cap-add=NET_ADMIN",
                   "iptables-tests", "python3", "-m", "agent.agent", "--name", "FilterInputDropUDP"]


def test_build_command_without_runtime():
    cmd = DockerRunner(image="img", runtime=None).build_command("c", ["--name", "Echo"])
    assert not any(part.startswith("--runtime") for part in cmd)


def test_start_launches_foreground_container(monkeypatch):
    popen = mock.Mock()
    monkeypatch.setattr(container_runner.subprocess, "Popen", popen)

    handle = DockerRunner(image="img", name_prefix="iptables test", runtime=None).start(["--name", "Echo"])

    assert handle.name.startswith("iptables_test-")
    args, kwargs = popen.call_args
    assert args[0][:4] == ["docker", "run", "--name", handle.name]
    assert kwargs["stderr"] == subprocess.STDOUT


def test_start_failure(monkeypatch):
    monkeypatch.setattr(container_runner.subprocess, "Popen", mock.Mock(side_effect=FileNotFoundError("docker")))

    with pytest.raises(ContainerError):
        DockerRunner(image="img").start(["--name", "Echo"])


def test_wait_reports_exit_status():
    process = mock.Mock(returncode=1)
    process.communicate.return_value = (b"ERROR:boom\nRESULT:FAILURE\n", None)

    output, error = DockerHandle("c1", process).wait()

    assert "RESULT:FAILURE" in output
    assert isinstance(error, ContainerError)


def test_wait_success():
    process = mock.Mock(returncode=0)
    process.communicate.return_value = (b"RESULT:SUCCESS\n", None)

    assert DockerHandle("c1", process).wait() == ("RESULT:SUCCESS\n", None)


def test_find_address(monkeypatch):
    run = mock.Mock(return_value=completed(stdout="172.17.0.2\n"))
    monkeypatch.setattr(container_runner.subprocess, "run", run)

    assert DockerHandle("c1", mock.Mock()).find_address() == "172.17.0.2"
    assert run.call_args[0][0][:2] == ["docker", "inspect"]


def test_find_address_before_container_exists(monkeypatch):
    monkeypatch.setattr(container_runner.subprocess, "run",
                        mock.Mock(return_value=completed(returncode=1, stderr="No such object: c1")))

    with pytest.raises(ContainerError, match="No such object"):
        DockerHandle("c1", mock.Mock()).find_address()


def test_cleanup_is_idempotent(monkeypatch):
    run = mock.Mock(return_value=completed())
    monkeypatch.setattr(container_runner.subprocess, "run", run)
    process = mock.Mock()
    process.poll.return_value = None
    handle = DockerHandle("c1", process)

    handle.cleanup()
    handle.cleanup()

    run.assert_called_once()
    assert run.call_args[0][0] == ["docker", "rm", "-f", "c1"]
    process.kill.assert_called_once()
