"""Tests for copyable assets"""

import os

import pytest

from cruntime.assets import BaseAsset, FileAsset, MemoryAsset


def test_base_asset_is_abstract():
    with pytest.raises(TypeError):
        BaseAsset("/etc", "crictl.yaml")


def test_memory_asset_for_target():
    asset = MemoryAsset.for_target(b"runtime-endpoint: x\n", "/etc/crictl.yaml", "0600")

    assert asset.target_dir == "/etc"
    assert asset.target_name == "crictl.yaml"
    assert asset.target_path == "/etc/crictl.yaml"
    assert asset.permissions == "0600"
    assert asset.size == 20
    with asset:
        assert asset.open().read() == b"runtime-endpoint: x\n"


def test_file_asset(temp_dir):
    path = os.path.join(temp_dir, "preloaded.tar.lz4")
    with open(path, "wb") as f:
        f.write(b"tarball")

    with FileAsset(path, "/", "preloaded.tar.lz4") as asset:
        assert asset.target_path == "/preloaded.tar.lz4"
        assert asset.size == 7
        assert asset.open().read() == b"tarball"


def test_file_asset_missing_source(temp_dir):
    with pytest.raises(FileNotFoundError):
        FileAsset(os.path.join(temp_dir, "missing.tar.lz4"), "/", "preloaded.tar.lz4")
