"""Pytest configuration and shared fixtures"""

import tempfile
from typing import Dict, List, Optional, Tuple

import pytest
from packaging.version import Version

from cruntime.errors import CommandError
from cruntime.runtime.docker import DockerRuntime
from cruntime.sysinit import ServiceManager
from cruntime.transport.base import CommandRunner, RunResult


class FakeRunner(CommandRunner):
    """Records commands and answers them from prefix rules"""

    def __init__(self):
        self.commands: List[List[str]] = []
        self.envs: List[Optional[Dict[str, str]]] = []
        self.copied: List[Tuple[str, bytes, str]] = []
        self.removed: List[str] = []
        self.rules: List[Tuple[List[str], int, str, str]] = []
        self.copy_error: Optional[Exception] = None
        self.remove_error: Optional[Exception] = None

    def on(self, prefix: List[str], stdout: str = "", returncode: int = 0, stderr: str = "") -> "FakeRunner":
        """Answer commands starting with ``prefix``; later rules win"""
        self.rules.append((list(prefix), returncode, stdout, stderr))
        return self

    def fail(self, prefix: List[str], stderr: str = "failed", stdout: str = "") -> "FakeRunner":
        return self.on(prefix, stdout=stdout, returncode=1, stderr=stderr)

    def run_cmd(self, args, env=None):
        self.commands.append(list(args))
        self.envs.append(env)
        for prefix, returncode, stdout, stderr in reversed(self.rules):
            if args[:len(prefix)] == prefix:
                if returncode != 0:
                    raise CommandError(args, returncode, stdout, stderr)
                return RunResult(args, returncode, stdout, stderr)
        return RunResult(args, 0, "", "")

    def copy(self, asset):
        if self.copy_error is not None:
            raise self.copy_error
        data = asset.open().read()
        asset.close()
        self.copied.append((asset.target_path, data, asset.permissions))

    def remove(self, asset):
        if self.remove_error is not None:
            raise self.remove_error
        self.removed.append(asset.target_path)

    def ran(self, prefix: List[str]) -> List[List[str]]:
        """Recorded commands starting with ``prefix``"""
        return [c for c in self.commands if c[:len(prefix)] == prefix]


class FakeServiceManager(ServiceManager):
    """Tracks service state the way systemd would report it"""

    def __init__(self, active: Optional[List[str]] = None):
        self.calls: List[Tuple[str, str]] = []
        self.enabled = set()
        self.masked = set()
        self.running = set(active or [])
        self.failures: Dict[Tuple[str, str], Exception] = {}

    def fail_on(self, action: str, svc: str, error: Optional[Exception] = None) -> None:
        self.failures[(action, svc)] = error or CommandError(["systemctl", action, svc], 1, "", f"{action} {svc} failed")

    def _record(self, action: str, svc: str) -> None:
        self.calls.append((action, svc))
        if (action, svc) in self.failures:
            raise self.failures[(action, svc)]

    def enable(self, svc):
        self._record("enable", svc)
        self.enabled.add(svc)

    def disable(self, svc):
        self._record("disable", svc)
        self.enabled.discard(svc)

    def start(self, svc):
        self._record("start", svc)
        self.running.add(svc)

    def stop(self, svc):
        self._record("stop", svc)
        self.running.discard(svc)

    def force_stop(self, svc):
        self._record("force_stop", svc)
        self.running.discard(svc)

    def restart(self, svc):
        self._record("restart", svc)
        self.running.add(svc)

    def mask(self, svc):
        self._record("mask", svc)
        self.masked.add(svc)

    def unmask(self, svc):
        self._record("unmask", svc)
        self.masked.discard(svc)

    def active(self, svc):
        self.calls.append(("active", svc))
        return svc in self.running

    def state(self):
        return (frozenset(self.enabled), frozenset(self.masked), frozenset(self.running))


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def init():
    return FakeServiceManager()


@pytest.fixture
def docker_runtime(runner, init):
    """Docker runtime in native (dockershim) mode"""
    return DockerRuntime(runner, init, kubernetes_version=Version("1.23.3"))


@pytest.fixture
def cri_docker_runtime(runner, init):
    """Docker runtime fronted by cri-dockerd"""
    return DockerRuntime(
        runner,
        init,
        socket="/var/run/cri-dockerd.sock",
        kubernetes_version=Version("1.28.3"),
        use_cri=True,
        cri_service="cri-docker.socket",
    )


@pytest.fixture
def sample_config_data():
    """Sample configuration data for testing"""
    return {
        "runtime": {"type": "docker"},
        "cluster": {
            "kubernetes_version": "v1.28.3",
            "driver": "ssh",
            "network_plugin": "cni",
        },
        "transport": {
            "type": "ssh",
            "options": {"password": "test_password", "user": "testuser"},
        },
        "targets": [
            {"host": "192.168.1.100", "port": 22, "user": "ubuntu"},
        ],
    }
