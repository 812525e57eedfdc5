"""Copyable assets: in-memory buffers or local files bound for a target path"""

import io
import os
import posixpath
from abc import ABC, abstractmethod
from typing import BinaryIO, Optional


class BaseAsset(ABC):
    """Content that a command runner materializes on a host"""

    def __init__(self, target_dir: str, target_name: str, permissions: str = "0644"):
        """Initialize asset

        Args:
            target_dir: Directory on the host
            target_name: File name on the host
            permissions: Octal permission string (e.g. '0644')
        """
        self.target_dir = target_dir
        self.target_name = target_name
        self.permissions = permissions
        self._reader: Optional[BinaryIO] = None

    @property
    def target_path(self) -> str:
        return posixpath.join(self.target_dir, self.target_name)

    @abstractmethod
    def open(self) -> BinaryIO:
        """Open the asset content for reading"""
        pass

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class MemoryAsset(BaseAsset):
    """Asset backed by an in-memory byte buffer"""

    def __init__(self, data: bytes, target_dir: str, target_name: str, permissions: str = "0644"):
        super().__init__(target_dir, target_name, permissions)
        self.data = data

    @classmethod
    def for_target(cls, data: bytes, target_path: str, permissions: str = "0644") -> "MemoryAsset":
        """Build an asset from a full target path"""
        return cls(data, posixpath.dirname(target_path), posixpath.basename(target_path), permissions)

    @property
    def size(self) -> int:
        return len(self.data)

    def open(self) -> BinaryIO:
        self.close()
        self._reader = io.BytesIO(self.data)
        return self._reader


class FileAsset(BaseAsset):
    """Asset backed by a local file"""

    def __init__(self, source_path: str, target_dir: str, target_name: str, permissions: str = "0644"):
        """Initialize file asset

        Raises:
            FileNotFoundError: If source_path does not exist
        """
        if not os.path.isfile(source_path):
            raise FileNotFoundError(f"Asset source not found: {source_path}")
        super().__init__(target_dir, target_name, permissions)
        self.source_path = source_path

    @property
    def size(self) -> int:
        return os.path.getsize(self.source_path)

    def open(self) -> BinaryIO:
        self.close()
        self._reader = open(self.source_path, "rb")
        return self._reader
