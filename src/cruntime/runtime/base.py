"""Abstract base class for container runtimes and the types they share"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional

import yaml

from cruntime.assets import MemoryAsset
from cruntime.errors import log_only
from cruntime.sysinit import ServiceManager
from cruntime.transport.base import CommandRunner

logger = logging.getLogger(__name__)

# Prefix of every container created by the kubelet through dockershim/cri-dockerd
KUBERNETES_CONTAINER_PREFIX = "k8s_"

CRICTL_CONFIG_PATH = "/etc/crictl.yaml"

# Services of competing runtimes that disable_others() turns off
COMPETING_SERVICES = ("containerd", "crio")


class ContainerState(Enum):
    ALL = "All"
    RUNNING = "Running"
    PAUSED = "Paused"


class ListContainersOptions:
    """Filter for list_containers()"""

    def __init__(self, state: ContainerState = ContainerState.ALL, name: str = "",
                 namespaces: Optional[List[str]] = None):
        """Initialize filter

        Args:
            state: Container state to match
            name: Container name substring
            namespaces: Kubernetes namespaces to match (any of)
        """
        self.state = state
        self.name = name
        self.namespaces = list(namespaces or [])


class ListImagesOptions:
    """Options for list_images(); currently carries nothing"""


class ListImage:
    """An image as reported by a runtime"""

    def __init__(self, id: str, repo_tags: List[str], repo_digests: Optional[List[str]] = None,
                 size: str = "0"):
        self.id = id
        self.repo_tags = list(repo_tags)
        self.repo_digests = list(repo_digests or [])
        self.size = size

    def __eq__(self, other) -> bool:
        if not isinstance(other, ListImage):
            return NotImplemented
        return (self.id, self.repo_tags, self.repo_digests, self.size) == \
            (other.id, other.repo_tags, other.repo_digests, other.size)

    def __repr__(self) -> str:
        return f"ListImage(id={self.id!r}, repo_tags={self.repo_tags!r}, size={self.size!r})"


class ClusterConfig:
    """The parts of a cluster definition the runtime layer reads"""

    def __init__(self, kubernetes_version: str, container_runtime: str = "docker",
                 driver: str = "ssh", image_repository: str = "", network_plugin: str = ""):
        self.kubernetes_version = kubernetes_version
        self.container_runtime = container_runtime
        self.driver = driver
        self.image_repository = image_repository
        self.network_plugin = network_plugin


class Runtime(ABC):
    """Capability contract every container runtime adapter implements"""

    runner: CommandRunner
    init: ServiceManager

    @abstractmethod
    def name(self) -> str:
        """Human readable runtime name"""

    @abstractmethod
    def style(self) -> str:
        """Console style key for this runtime"""

    @abstractmethod
    def version(self) -> str:
        """Version of the running engine; the daemon has to be up"""

    @abstractmethod
    def socket_path(self) -> str:
        """Configured CRI socket, or the runtime default"""

    @abstractmethod
    def available(self) -> None:
        """Check that the runtime can be used on the host

        Raises:
            HostUnavailableError: If a required executable is missing
        """

    @abstractmethod
    def active(self) -> bool:
        """Whether the runtime service is running"""

    @abstractmethod
    def enable(self, disable_others: bool, force_systemd: bool, in_user_namespace: bool) -> None:
        """Idempotently bring the runtime to a running, enabled state"""

    @abstractmethod
    def disable(self) -> None:
        """Idempotently stop and disable the runtime"""

    @abstractmethod
    def restart(self) -> None:
        pass

    @abstractmethod
    def image_exists(self, name: str, sha: str) -> bool:
        """Whether an image exists, optionally pinned to a digest

        Args:
            name: Image reference
            sha: Expected digest ('' to match any)
        """

    @abstractmethod
    def list_images(self, opts: ListImagesOptions) -> List[ListImage]:
        pass

    @abstractmethod
    def load_image(self, path: str) -> None:
        pass

    @abstractmethod
    def pull_image(self, name: str) -> None:
        pass

    @abstractmethod
    def save_image(self, name: str, path: str) -> None:
        pass

    @abstractmethod
    def remove_image(self, name: str) -> None:
        pass

    @abstractmethod
    def tag_image(self, source: str, target: str) -> None:
        pass

    @abstractmethod
    def build_image(self, src: str, file: str, tag: str, push: bool, env: List[str], opts: List[str]) -> None:
        """Build an image, optionally pushing the result

        Args:
            src: Build context
            file: Dockerfile path ('' for the default)
            tag: Tag for the result ('' for none)
            push: Push the tag after a successful build
            env: Extra KEY=VALUE environment entries for the build
            opts: Extra build flags, without the leading '--'
        """

    @abstractmethod
    def push_image(self, name: str) -> None:
        pass

    @abstractmethod
    def list_containers(self, opts: ListContainersOptions) -> List[str]:
        """IDs of the containers matching the filter"""

    @abstractmethod
    def kill_containers(self, ids: List[str]) -> None:
        pass

    @abstractmethod
    def stop_containers(self, ids: List[str]) -> None:
        pass

    @abstractmethod
    def pause_containers(self, ids: List[str]) -> None:
        pass

    @abstractmethod
    def unpause_containers(self, ids: List[str]) -> None:
        pass

    @abstractmethod
    def container_log_cmd(self, id: str, lines: int, follow: bool) -> str:
        """Shell command that prints a container's log"""

    @abstractmethod
    def system_log_cmd(self, lines: int) -> str:
        """Shell command that prints the runtime service log"""

    @abstractmethod
    def cgroup_driver(self) -> str:
        pass

    @abstractmethod
    def kubelet_options(self) -> Dict[str, str]:
        pass

    @abstractmethod
    def preload(self, cc: ClusterConfig) -> None:
        """Seed the runtime with the preloaded images for a cluster"""

    @abstractmethod
    def images_preloaded(self, images: List[str]) -> bool:
        pass


def populate_cri_config(runner: CommandRunner, socket: str) -> None:
    """Point crictl at the runtime's CRI socket

    Args:
        runner: Command runner for the host
        socket: CRI socket path
    """
    content = yaml.safe_dump({"runtime-endpoint": f"unix://{socket}"}, default_flow_style=False)
    logger.info(f"Configuring crictl for {socket}")
    runner.copy(MemoryAsset.for_target(content.encode("utf-8"), CRICTL_CONFIG_PATH))


def docker_bound_to_containerd(runner: CommandRunner) -> bool:
    """Whether docker.service declares BindsTo=containerd (assumes systemd)"""
    try:
        rr = runner.run_cmd(["sudo", "systemctl", "cat", "docker.service"])
    except Exception as e:
        logger.warning(f"unable to check if docker is bound to containerd: {e}")
        return False
    return "\nBindsTo=containerd" in rr.stdout


def disable_others(me: Runtime, runner: CommandRunner, init: ServiceManager) -> None:
    """Stop and disable every competing runtime service that is active

    Failures are logged; a competitor that refuses to stop does not
    prevent ``me`` from being enabled.
    """
    for svc in COMPETING_SERVICES:
        if svc == me.name().lower():
            continue
        if svc == "containerd" and docker_bound_to_containerd(runner):
            logger.info("skipping containerd shutdown because we are bound to it")
            continue
        if not init.active(svc):
            continue

        logger.info(f"Disabling competing runtime service: {svc}")
        with log_only(f"disable {svc}"):
            init.stop(svc)
            init.disable(svc)
        if init.active(svc):
            logger.warning(f"{svc} is still active after being disabled")
