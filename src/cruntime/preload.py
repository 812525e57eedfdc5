"""Lookup of preloaded image tarballs in the local cache"""

import logging
import os
import platform
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Bumped whenever the layout of the preload tarballs changes
PRELOAD_VERSION = "v18"

SUPPORTED_RUNTIMES = ("docker", "containerd", "cri-o")

_ARCH_ALIASES = {"x86_64": "amd64", "aarch64": "arm64", "armv7l": "arm"}


def host_arch() -> str:
    machine = platform.machine().lower()
    return _ARCH_ALIASES.get(machine, machine)


class PreloadCache:
    """Finds preload tarballs previously downloaded into a cache directory

    Downloading is done elsewhere; this class only answers whether a
    tarball for a (version, runtime, driver) combination is on disk.
    """

    def __init__(self, cache_dir: Optional[str] = None, arch: Optional[str] = None):
        """Initialize preload cache

        Args:
            cache_dir: Directory holding tarballs (default: ~/.cruntime/cache/preloaded-tarball)
            arch: Target architecture (default: the local machine's)
        """
        if cache_dir is None:
            cache_dir = "~/.cruntime/cache/preloaded-tarball"
        self.cache_dir = Path(os.path.expanduser(cache_dir))
        self.arch = arch or host_arch()

    def tarball_name(self, kubernetes_version: str, container_runtime: str) -> str:
        """File name of the tarball for a Kubernetes version and runtime"""
        return (f"preloaded-images-k8s-{PRELOAD_VERSION}-{kubernetes_version}-"
                f"{container_runtime}-overlay2-{self.arch}.tar.lz4")

    def tarball_path(self, kubernetes_version: str, container_runtime: str) -> str:
        return str(self.cache_dir / self.tarball_name(kubernetes_version, container_runtime))

    def exists(self, kubernetes_version: str, container_runtime: str, driver: str) -> bool:
        """Whether a usable preload tarball is cached

        Args:
            kubernetes_version: Kubernetes version (e.g. 'v1.28.3')
            container_runtime: Runtime name (docker, containerd, cri-o)
            driver: Machine driver; 'none' runs on the host and never preloads

        Returns:
            True if the tarball is present
        """
        if container_runtime not in SUPPORTED_RUNTIMES:
            logger.debug(f"No preload for runtime {container_runtime}")
            return False
        if driver == "none":
            logger.debug("Preload is not used with the none driver")
            return False

        path = self.tarball_path(kubernetes_version, container_runtime)
        found = os.path.isfile(path)
        logger.info(f"Found local preload: {path}" if found else f"No local preload at {path}")
        return found

    def get_stats(self) -> Dict[str, Any]:
        """Summary of the cached tarballs"""
        entries = sorted(self.cache_dir.glob("preloaded-images-*.tar.lz4")) if self.cache_dir.exists() else []
        total = sum(p.stat().st_size for p in entries)
        return {
            "cache_dir": str(self.cache_dir),
            "num_entries": len(entries),
            "total_size_mb": round(total / (1024 * 1024), 2),
            "entries": [p.name for p in entries],
        }
