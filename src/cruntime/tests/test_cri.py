"""Tests for crictl and runc helpers"""

import json

import pytest

from cruntime.errors import ParseError, RuntimeAdapterError
from cruntime.runtime import cri
from cruntime.runtime.base import ContainerState, ListContainersOptions


class TestCrictlPath:
    def test_resolved(self, runner):
        runner.on(["which", "crictl"], stdout="/usr/local/bin/crictl\n")
        assert cri.crictl_path(runner) == "/usr/local/bin/crictl"

    def test_fallback(self, runner):
        runner.fail(["which", "crictl"])
        assert cri.crictl_path(runner) == "crictl"


class TestListCRIContainers:
    """Test container listing through crictl"""

    def test_all(self, runner):
        runner.on(["sudo", "crictl", "ps"], stdout="aaa\nbbb\n")
        ids = cri.list_cri_containers(runner, "", ListContainersOptions())
        assert ids == ["aaa", "bbb"]
        assert runner.commands == [["which", "crictl"], ["sudo", "crictl", "ps", "-a", "--quiet"]]

    def test_uses_resolved_crictl(self, runner):
        runner.on(["which", "crictl"], stdout="/usr/local/bin/crictl\n")
        runner.on(["sudo", "/usr/local/bin/crictl", "ps"], stdout="aaa\n")

        assert cri.list_cri_containers(runner, "", ListContainersOptions()) == ["aaa"]
        assert runner.commands[-1] == ["sudo", "/usr/local/bin/crictl", "ps", "-a", "--quiet"]

    def test_running_with_name(self, runner):
        cri.list_cri_containers(runner, "", ListContainersOptions(ContainerState.RUNNING, name="etcd"))
        assert runner.ran(["sudo", "crictl"]) == [["sudo", "crictl", "ps", "-a", "--quiet", "--state=Running", "--name=etcd"]]

    def test_namespaces_dedup(self, runner):
        runner.on(["sudo", "crictl", "ps"], stdout="aaa\nbbb\n")
        ids = cri.list_cri_containers(
            runner, "", ListContainersOptions(namespaces=["kube-system", "default"]))

        assert ids == ["aaa", "bbb"]
        assert [c[-1] for c in runner.ran(["sudo", "crictl", "ps"])] == [
            "io.kubernetes.pod.namespace=kube-system",
            "io.kubernetes.pod.namespace=default",
        ]

    def test_paused_filters_through_runc(self, runner):
        runner.on(["sudo", "crictl", "ps"], stdout="aaa\nbbb\nccc\n")
        runner.on(["sudo", "runc"], stdout=json.dumps([
            {"id": "aaa", "status": "running"},
            {"id": "bbb", "status": "paused"},
        ]))

        ids = cri.list_cri_containers(runner, "/run/runc", ListContainersOptions(ContainerState.PAUSED))

        assert ids == ["bbb"]
        assert runner.commands[-1] == ["sudo", "runc", "--root", "/run/runc", "list", "-f", "json"]

    def test_runc_garbage(self, runner):
        runner.on(["sudo", "runc"], stdout="{not json")
        with pytest.raises(ParseError):
            cri.list_cri_containers(runner, "", ListContainersOptions(ContainerState.PAUSED))

    def test_crictl_failure(self, runner):
        runner.fail(["sudo", "crictl"])
        with pytest.raises(RuntimeAdapterError, match="crictl list"):
            cri.list_cri_containers(runner, "", ListContainersOptions())


class TestContainerActions:
    """Test bulk container actions"""

    def test_kill(self, runner):
        runner.on(["which", "crictl"], stdout="/usr/bin/crictl\n")
        cri.kill_cri_containers(runner, ["a", "b"])
        assert runner.commands[-1] == ["sudo", "/usr/bin/crictl", "rm", "--force", "a", "b"]

    def test_stop(self, runner):
        runner.fail(["which", "crictl"])
        cri.stop_cri_containers(runner, ["a"])
        assert runner.commands[-1] == ["sudo", "crictl", "stop", "--timeout=10", "a"]

    @pytest.mark.parametrize("action", [cri.kill_cri_containers, cri.stop_cri_containers])
    def test_empty_is_noop(self, runner, action):
        action(runner, [])
        assert runner.commands == []

    def test_pause_one_command_per_id(self, runner):
        cri.pause_cri_containers(runner, "", ["a", "b"])
        assert runner.commands == [["sudo", "runc", "pause", "a"], ["sudo", "runc", "pause", "b"]]

    def test_unpause_uses_resume(self, runner):
        cri.unpause_cri_containers(runner, "", ["a"])
        assert runner.commands == [["sudo", "runc", "resume", "a"]]

    def test_stop_failure(self, runner):
        runner.fail(["sudo", "crictl", "stop"])
        with pytest.raises(RuntimeAdapterError, match="crictl stop"):
            cri.stop_cri_containers(runner, ["a"])


class TestImagesAndLogs:
    def test_pull(self, runner):
        cri.pull_cri_image(runner, "nginx")
        assert runner.commands[-1] == ["sudo", "crictl", "pull", "nginx"]

    def test_remove_failure(self, runner):
        runner.fail(["sudo", "crictl", "rmi"])
        with pytest.raises(RuntimeAdapterError, match="crictl rmi"):
            cri.remove_cri_image(runner, "nginx")

    def test_log_cmd(self, runner):
        assert cri.cri_container_log_cmd(runner, "abc", 50, True) == "sudo crictl logs --tail 50 --follow abc"
        assert cri.cri_container_log_cmd(runner, "abc", 0, False) == "sudo crictl logs abc"
