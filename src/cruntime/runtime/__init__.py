"""Container runtime adapters"""

import logging
from typing import Optional

from packaging.version import Version

from cruntime.errors import RuntimeAdapterError
from cruntime.images import parse_kubernetes_version
from cruntime.preload import PreloadCache
from cruntime.runtime.base import Runtime
from cruntime.sysinit import ServiceManager, SystemdManager
from cruntime.transport.base import CommandRunner

logger = logging.getLogger(__name__)

# Kubernetes dropped dockershim in 1.24; from then on docker needs cri-dockerd
EXTERNAL_CRI_MIN_VERSION = Version("1.24.0a0")

CRI_DOCKER_SERVICE = "cri-docker.socket"


def new_runtime(runtime_type: str, runner: CommandRunner, kubernetes_version: str = "",
                socket: str = "", image_repository: str = "",
                init: Optional[ServiceManager] = None,
                preload_cache: Optional[PreloadCache] = None) -> Runtime:
    """Build the runtime adapter for a runtime type

    Args:
        runtime_type: Runtime name ('docker')
        runner: Command runner for the target host
        kubernetes_version: Kubernetes version (e.g. 'v1.28.3'); '' for unknown
        socket: CRI socket override
        image_repository: Registry mirror for Kubernetes images
        init: Service manager (default: systemd through ``runner``)
        preload_cache: Lookup for preload tarballs

    Returns:
        Runtime adapter

    Raises:
        RuntimeAdapterError: If the runtime type is not supported
    """
    version = parse_kubernetes_version(kubernetes_version) if kubernetes_version else Version("0")
    init = init or SystemdManager(runner)

    if runtime_type == "docker":
        from cruntime.runtime.docker import DockerRuntime, EXTERNAL_DOCKER_CRI_SOCKET

        use_cri = version >= EXTERNAL_CRI_MIN_VERSION
        cri_service = ""
        if use_cri:
            cri_service = CRI_DOCKER_SERVICE
            socket = socket or EXTERNAL_DOCKER_CRI_SOCKET
        logger.debug(f"docker runtime for Kubernetes {version}: use_cri={use_cri}")
        return DockerRuntime(
            runner,
            init,
            socket=socket,
            image_repository=image_repository,
            kubernetes_version=version,
            use_cri=use_cri,
            cri_service=cri_service,
            preload_cache=preload_cache,
        )

    raise RuntimeAdapterError(f"unsupported runtime type: {runtime_type}")


__all__ = ["new_runtime", "Runtime"]
