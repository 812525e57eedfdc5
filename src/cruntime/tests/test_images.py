"""Tests for image name helpers"""

import pytest
from packaging.version import Version

from cruntime.images import (
    STORAGE_PROVISIONER_IMAGE,
    add_docker_io,
    from_human_size,
    kubeadm_images,
    parse_kubernetes_version,
    trim_docker_io,
)


class TestAddDockerIO:
    """Test default-registry qualification"""

    @pytest.mark.parametrize("name,expected", [
        ("nginx", "docker.io/library/nginx"),
        ("nginx:1.25", "docker.io/library/nginx:1.25"),
        ("myuser/app", "docker.io/myuser/app"),
        ("myregistry.io/app", "myregistry.io/app"),
        ("registry.k8s.io/pause:3.9", "registry.k8s.io/pause:3.9"),
    ])
    def test_examples(self, name, expected):
        assert add_docker_io(name) == expected

    def test_idempotent(self):
        for name in ("nginx", "myuser/app", "myregistry.io/app"):
            once = add_docker_io(name)
            assert add_docker_io(once) == once

    def test_port_without_dot_is_a_user(self):
        # only a dot marks a registry host
        assert add_docker_io("localhost:5000/app") == "docker.io/localhost:5000/app"


class TestTrimDockerIO:
    """Test default-registry stripping"""

    @pytest.mark.parametrize("name,expected", [
        ("docker.io/library/nginx", "nginx"),
        ("docker.io/myuser/app", "myuser/app"),
        ("nginx", "nginx"),
        ("myregistry.io/app", "myregistry.io/app"),
    ])
    def test_examples(self, name, expected):
        assert trim_docker_io(name) == expected

    def test_equivalent_names_compare_equal(self):
        assert trim_docker_io("nginx:latest") == trim_docker_io("docker.io/library/nginx:latest")
        assert trim_docker_io("myuser/app") == trim_docker_io("docker.io/myuser/app")


class TestFromHumanSize:
    """Test size parsing"""

    @pytest.mark.parametrize("size,expected", [
        ("187MB", 187000000),
        ("744kB", 744000),
        ("1.23GB", 1230000000),
        ("42B", 42),
        ("7", 7),
    ])
    def test_decimal_units(self, size, expected):
        assert from_human_size(size) == expected

    @pytest.mark.parametrize("size", ["", "MB", "12 parsecs", "-1MB"])
    def test_invalid(self, size):
        with pytest.raises(ValueError):
            from_human_size(size)


class TestKubeadmImages:
    """Test the control-plane image list"""

    def test_parse_version(self):
        assert parse_kubernetes_version("v1.28.3") == Version("1.28.3")
        assert parse_kubernetes_version("1.20.0") == Version("1.20.0")

    def test_recent_version(self):
        images = kubeadm_images("", "v1.28.3")
        assert "registry.k8s.io/kube-apiserver:v1.28.3" in images
        assert "registry.k8s.io/kube-proxy:v1.28.3" in images
        assert "registry.k8s.io/pause:3.9" in images
        assert "registry.k8s.io/etcd:3.5.9-0" in images
        assert "registry.k8s.io/coredns/coredns:v1.10.1" in images
        assert STORAGE_PROVISIONER_IMAGE in images

    def test_old_registry_and_coredns_path(self):
        images = kubeadm_images("", "v1.20.2")
        assert "k8s.gcr.io/kube-scheduler:v1.20.2" in images
        assert "k8s.gcr.io/coredns:1.7.0" in images

    def test_mirror_replaces_registry(self):
        images = kubeadm_images("mirror.example.com/k8s/", "v1.24.0")
        assert "mirror.example.com/k8s/kube-controller-manager:v1.24.0" in images
        assert "mirror.example.com/k8s/pause:3.7" in images

    def test_future_minor_uses_newest_components(self):
        images = kubeadm_images("", "v1.35.0")
        assert "registry.k8s.io/etcd:3.5.12-0" in images

    def test_prerelease_tag_kept(self):
        images = kubeadm_images("", "v1.28.0-rc.1")
        assert images[0] == "registry.k8s.io/kube-apiserver:v1.28.0-rc.1"
        assert "registry.k8s.io/kube-proxy:v1.28.0-rc.1" in images

    def test_prerelease_uses_new_registry(self):
        assert kubeadm_images("", "v1.25.0-alpha.1")[0] == "registry.k8s.io/kube-apiserver:v1.25.0-alpha.1"

    def test_invalid_version(self):
        with pytest.raises(ValueError):
            kubeadm_images("", "not-a-version")
