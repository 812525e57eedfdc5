"""Tests for the cri-dockerd network plugin configurator"""

from unittest.mock import patch

import pytest
from jinja2 import TemplateError

from cruntime.errors import CommandError, RuntimeAdapterError, TemplateRenderError
from cruntime.runtime import network
from cruntime.runtime.network import (
    CRI_DOCKER_SERVICE_CONF_FILE,
    configure_network_plugin,
    render_service_conf,
)

CNI_FLAGS = (
    "--cni-bin-dir=/opt/cni/bin",
    "--cni-cache-dir=/var/lib/cni/cache",
    "--cni-conf-dir=/etc/cni/net.mk",
    "--hairpin-mode=promiscuous-bridge",
)


class TestRenderServiceConf:
    """Test drop-in rendering"""

    def test_cni(self):
        conf = render_service_conf("cni").decode("utf-8")
        lines = conf.splitlines()
        assert lines[0] == "[Service]"
        assert lines[1] == "ExecStart="
        assert lines[2].startswith("ExecStart=/usr/bin/cri-dockerd --container-runtime-endpoint fd:// --network-plugin=cni")
        for flag in CNI_FLAGS:
            assert flag in lines[2]

    def test_custom_conf_dir(self):
        conf = render_service_conf("cni", "/etc/cni/net.d").decode("utf-8")
        assert "--cni-conf-dir=/etc/cni/net.d" in conf

    def test_other_plugin_has_no_cni_flags(self):
        conf = render_service_conf("kubenet").decode("utf-8")
        assert "--network-plugin=kubenet\n" in conf
        assert "--cni-" not in conf


class TestConfigureNetworkPlugin:
    """Test writing the drop-in and restarting cri-docker"""

    def test_empty_plugin_changes_nothing(self, cri_docker_runtime, runner, init):
        configure_network_plugin(cri_docker_runtime, runner, "")
        assert runner.commands == []
        assert runner.copied == []
        assert init.calls == []

    def test_cni(self, cri_docker_runtime, runner, init):
        configure_network_plugin(cri_docker_runtime, runner, "cni")

        assert runner.commands == [["sudo", "mkdir", "-p", "/etc/systemd/system/cri-docker.service.d"]]
        assert len(runner.copied) == 1
        path, data, perms = runner.copied[0]
        assert path == CRI_DOCKER_SERVICE_CONF_FILE
        assert perms == "0644"
        for flag in CNI_FLAGS:
            assert flag.encode("utf-8") in data
        assert init.calls == [("restart", "cri-docker")]

    def test_render_failure_writes_nothing(self, cri_docker_runtime, runner, init):
        with patch.object(network, "service_conf_template") as template:
            template.return_value.render.side_effect = TemplateError("boom")
            with pytest.raises(TemplateRenderError):
                configure_network_plugin(cri_docker_runtime, runner, "cni")

        assert runner.commands == []
        assert runner.copied == []
        assert init.calls == []

    def test_mkdir_failure(self, cri_docker_runtime, runner, init):
        runner.fail(["sudo", "mkdir"])
        with pytest.raises(RuntimeAdapterError, match="failed to create directory"):
            configure_network_plugin(cri_docker_runtime, runner, "cni")
        assert init.calls == []

    def test_copy_failure(self, cri_docker_runtime, runner, init):
        runner.copy_error = CommandError(["scp"], 1, "", "no space left")
        with pytest.raises(RuntimeAdapterError, match="failed to copy template"):
            configure_network_plugin(cri_docker_runtime, runner, "cni")
        assert init.calls == []

    def test_restart_failure_propagates(self, cri_docker_runtime, runner, init):
        init.fail_on("restart", "cri-docker")
        with pytest.raises(CommandError):
            configure_network_plugin(cri_docker_runtime, runner, "cni")
