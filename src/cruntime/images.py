"""Image name helpers and the Kubernetes control-plane image list"""

import re
from decimal import Decimal
from typing import List

from packaging.version import Version

DEFAULT_REGISTRY = "docker.io"

# (pause, etcd, coredns) per Kubernetes minor; later minors use the newest row
_COMPONENT_VERSIONS = {
    20: ("3.2", "3.4.13-0", "1.7.0"),
    21: ("3.4.1", "3.4.13-0", "v1.8.0"),
    22: ("3.5", "3.5.0-0", "v1.8.4"),
    23: ("3.6", "3.5.1-0", "v1.8.6"),
    24: ("3.7", "3.5.3-0", "v1.8.6"),
    25: ("3.8", "3.5.4-0", "v1.9.3"),
    26: ("3.9", "3.5.6-0", "v1.9.3"),
    27: ("3.9", "3.5.7-0", "v1.10.1"),
    28: ("3.9", "3.5.9-0", "v1.10.1"),
    29: ("3.9", "3.5.10-0", "v1.11.1"),
    30: ("3.9", "3.5.12-0", "v1.11.1"),
}

STORAGE_PROVISIONER_IMAGE = "gcr.io/k8s-minikube/storage-provisioner:v5"

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kKmMgGtTpP]?)[bB]?\s*$")
_DECIMAL_UNITS = {"": 1, "k": 10 ** 3, "m": 10 ** 6, "g": 10 ** 9, "t": 10 ** 12, "p": 10 ** 15}


def add_docker_io(name: str) -> str:
    """Qualify an image name with the default registry

    A first path segment containing a dot is taken to be a registry host
    and left alone. Otherwise 'docker.io/' is prepended, together with
    'library/' when the name has no user segment.

    Examples:
        nginx -> docker.io/library/nginx
        myuser/app -> docker.io/myuser/app
        myregistry.io/app -> myregistry.io/app
    """
    parts = name.split("/", 1)
    if len(parts) > 1 and "." in parts[0]:
        return name

    if len(parts) > 1:
        user, img = parts
    else:
        user, img = "library", name
    return f"{DEFAULT_REGISTRY}/{user}/{img}"


def trim_docker_io(name: str) -> str:
    """Strip the implicit default-registry prefix from an image name

    The inverse view of add_docker_io(): names that differ only by an
    implicit 'docker.io/' or 'docker.io/library/' compare equal afterwards.
    """
    name = add_docker_io(name)
    for prefix in (f"{DEFAULT_REGISTRY}/library/", f"{DEFAULT_REGISTRY}/"):
        if name.startswith(prefix):
            return name[len(prefix):]
    return name


def from_human_size(size: str) -> int:
    """Convert a human-readable decimal size (e.g. '1.23GB', '742kB') to bytes

    Raises:
        ValueError: If the string is not a size
    """
    match = _SIZE_RE.match(size)
    if not match:
        raise ValueError(f"invalid size: {size!r}")
    number, unit = match.groups()
    return int(Decimal(number) * _DECIMAL_UNITS[unit.lower()])


def parse_kubernetes_version(version: str) -> Version:
    """Parse a Kubernetes version string such as 'v1.28.3'"""
    return Version(version.strip().lstrip("v"))


def kubeadm_images(mirror: str, kubernetes_version: str) -> List[str]:
    """Images kubeadm needs for a Kubernetes version

    Args:
        mirror: Registry mirror replacing the upstream registry ('' for none)
        kubernetes_version: Kubernetes version (e.g. 'v1.28.3')

    Returns:
        List of fully qualified image references
    """
    v = parse_kubernetes_version(kubernetes_version)
    minor = v.release[1] if len(v.release) > 1 else 0
    known = sorted(_COMPONENT_VERSIONS)
    row = _COMPONENT_VERSIONS[min(max(minor, known[0]), known[-1])]
    pause, etcd, coredns = row

    registry = mirror.rstrip("/") if mirror else ("registry.k8s.io" if v >= Version("1.25.0a0") else "k8s.gcr.io")
    # keep pre-release suffixes as written, e.g. v1.28.0-rc.1
    tag = "v" + kubernetes_version.strip().lstrip("v")

    images = [f"{registry}/{component}:{tag}" for component in
              ("kube-apiserver", "kube-controller-manager", "kube-scheduler", "kube-proxy")]
    images.append(f"{registry}/pause:{pause}")
    images.append(f"{registry}/etcd:{etcd}")
    if minor >= 21:
        images.append(f"{registry}/coredns/coredns:{coredns}")
    else:
        images.append(f"{registry}/coredns:{coredns}")
    images.append(STORAGE_PROVISIONER_IMAGE)
    return images
