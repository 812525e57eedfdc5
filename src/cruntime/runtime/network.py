"""Network plugin configuration for cri-dockerd"""

import functools
import logging
import posixpath

from jinja2 import Environment, StrictUndefined, Template, TemplateError

from cruntime.assets import MemoryAsset
from cruntime.errors import CommandError, RuntimeAdapterError, TemplateRenderError
from cruntime.runtime.base import Runtime
from cruntime.transport.base import CommandRunner

logger = logging.getLogger(__name__)

CNI_BIN_DIR = "/opt/cni/bin"
CNI_CONF_DIR = "/etc/cni/net.mk"
CNI_CACHE_DIR = "/var/lib/cni/cache"

CRI_DOCKER_SERVICE = "cri-docker"
CRI_DOCKER_SERVICE_CONF_FILE = "/etc/systemd/system/cri-docker.service.d/10-cni.conf"

_CRI_DOCKER_SERVICE_CONF = """[Service]
ExecStart=
ExecStart=/usr/bin/cri-dockerd --container-runtime-endpoint fd:// --network-plugin={{ network_plugin }}{{ extra_arguments }}
"""


@functools.lru_cache(maxsize=None)
def service_conf_template() -> Template:
    """The compiled cri-docker drop-in template"""
    env = Environment(autoescape=False, undefined=StrictUndefined, keep_trailing_newline=True)
    return env.from_string(_CRI_DOCKER_SERVICE_CONF)


def render_service_conf(network_plugin: str, cni_conf_dir: str = CNI_CONF_DIR) -> bytes:
    """Render the cri-docker drop-in for a network plugin

    Raises:
        TemplateRenderError: If the template cannot be rendered
    """
    args = ""
    if network_plugin == "cni":
        args += f" --cni-bin-dir={CNI_BIN_DIR}"
        args += f" --cni-cache-dir={CNI_CACHE_DIR}"
        args += f" --cni-conf-dir={cni_conf_dir}"
        args += " --hairpin-mode=promiscuous-bridge"

    try:
        rendered = service_conf_template().render(network_plugin=network_plugin, extra_arguments=args)
    except TemplateError as e:
        raise TemplateRenderError(f"failed to execute template: {e}") from e
    return rendered.encode("utf-8")


def configure_network_plugin(runtime: Runtime, runner: CommandRunner, network_plugin: str,
                             cni_conf_dir: str = CNI_CONF_DIR) -> None:
    """Point cri-dockerd at a network plugin and restart it

    An empty plugin keeps the engine's default networking and changes nothing.

    Args:
        runtime: Runtime whose service manager restarts cri-docker
        runner: Command runner for the host
        network_plugin: Plugin name ('' or 'cni')
        cni_conf_dir: CNI configuration directory
    """
    if network_plugin == "":
        return

    conf = render_service_conf(network_plugin, cni_conf_dir)

    logger.info(f"Configuring {CRI_DOCKER_SERVICE} for network plugin {network_plugin}")
    try:
        runner.run_cmd(["sudo", "mkdir", "-p", posixpath.dirname(CRI_DOCKER_SERVICE_CONF_FILE)])
    except CommandError as e:
        raise RuntimeAdapterError(f"failed to create directory: {e}") from e
    try:
        runner.copy(MemoryAsset.for_target(conf, CRI_DOCKER_SERVICE_CONF_FILE, "0644"))
    except Exception as e:
        raise RuntimeAdapterError(f"failed to copy template: {e}") from e

    runtime.init.restart(CRI_DOCKER_SERVICE)
