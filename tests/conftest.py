"""
Pytest configuration and shared fixtures.
"""

import json
import tempfile
from pathlib import Path

import pytest

from k8s_libvirt.exceptions import CommandFailedError
from k8s_libvirt.models.cluster import ClusterConfig, Host, Inventory, SSHSettings
from k8s_libvirt.util.process import CommandResult
from k8s_libvirt.workspace import Workspace


class FakeRunner:
    """
    Stand-in for run_command.

    Rules match when their pattern is a substring of the joined command line;
    the first matching rule with uses left answers. Unmatched commands succeed
    with default_stdout.
    """

    def __init__(self, default_stdout: str = ""):
        self.calls: list[tuple[list[str], dict]] = []
        self.default_stdout = default_stdout
        self._rules: list[dict] = []

    def add(self, pattern: str, returncode: int = 0, stdout: str = "", stderr: str = "", times=None):
        self._rules.append(
            {
                "pattern": pattern,
                "returncode": returncode,
                "stdout": stdout,
                "stderr": stderr,
                "times": times,
            }
        )
        return self

    def __call__(self, cmd, **kwargs) -> CommandResult:
        cmd = [str(part) for part in cmd]
        self.calls.append((cmd, kwargs))
        line = " ".join(cmd)

        result = CommandResult(cmd, 0, self.default_stdout)
        for rule in self._rules:
            if rule["pattern"] in line and rule["times"] != 0:
                if rule["times"] is not None:
                    rule["times"] -= 1
                result = CommandResult(cmd, rule["returncode"], rule["stdout"], rule["stderr"])
                break

        if kwargs.get("check") and not result.ok:
            raise CommandFailedError(cmd, result.returncode, result.stderr)
        return result

    def commands(self, pattern: str = "") -> list[list[str]]:
        return [cmd for cmd, _ in self.calls if pattern in " ".join(cmd)]


def adhoc(host: str, status: str, body: str = "", rc: int | None = None) -> str:
    """Format ansible ad-hoc output for one host."""
    if status in ("SUCCESS", "UNREACHABLE") or (status == "FAILED" and rc is None):
        bang = "!" if status in ("FAILED", "UNREACHABLE") else ""
        return f"{host} | {status}{bang} => {json.dumps(json.loads(body or '{}'), indent=4)}\n"
    suffix = f" | rc={rc}" if rc is not None else ""
    return f"{host} | {status}{suffix} >>\n{body}\n"


def ping_ok(*hosts: str) -> str:
    return "".join(adhoc(h, "SUCCESS", '{"changed": false, "ping": "pong"}') for h in hosts)


@pytest.fixture
def temp_workspace():
    """Create a temporary workspace for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        workspace = Workspace(Path(tmpdir))
        workspace.initialize()
        yield workspace


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def cluster_config(tmp_path):
    config = ClusterConfig()
    key = tmp_path / "id_rsa"
    key.write_text("key")
    config.ssh = SSHSettings(private_key=str(key))
    return config


@pytest.fixture
def inventory():
    return Inventory(
        control_plane=[Host("k8scpnode1", "192.168.150.10")],
        workers=[Host("k8swrknode1", "192.168.150.11"), Host("k8swrknode2", "192.168.150.12")],
        variables={"ansible_user": "ubuntu"},
    )


@pytest.fixture
def node_ips():
    return {
        "k8swrknode2": "192.168.150.12",
        "k8scpnode1": "192.168.150.10",
        "k8swrknode1": "192.168.150.11",
    }


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
