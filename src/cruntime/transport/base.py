"""Abstract base classes for transports and command runners"""

from abc import ABC, abstractmethod
from typing import BinaryIO, Dict, List, Optional, Tuple

from cruntime.assets import BaseAsset


class RemoteHost:
    """Represents a remote host configuration"""

    def __init__(self, host: str, user: str, port: int = 22, ssh_options: Optional[dict] = None,
                 transport_options: Optional[dict] = None):
        """Initialize remote host

        Args:
            host: Hostname or IP address (can be SSH config alias)
            user: Username for authentication
            port: SSH port (default: 22)
            ssh_options: Optional per-target SSH options (key_file, password, etc.)
            transport_options: Optional per-target transport options (overrides global config)
        """
        self.host = host
        self.user = user
        self.port = port
        self.ssh_options = ssh_options or {}
        self.transport_options = transport_options or {}

    def __repr__(self) -> str:
        return f"RemoteHost({self.user}@{self.host}:{self.port})"


class BaseTransport(ABC):
    """Abstract base for transport protocol implementations"""

    @abstractmethod
    def transfer_file(self, local_path: str, remote_host: RemoteHost, remote_path: str) -> bool:
        """Transfer a file to a remote host

        Args:
            local_path: Path to local file
            remote_host: Remote host configuration
            remote_path: Path on remote host

        Returns:
            True if successful, False otherwise
        """
        pass

    @abstractmethod
    def transfer_fileobj(self, fileobj: BinaryIO, remote_host: RemoteHost, remote_path: str) -> bool:
        """Write the contents of a file object to a path on the remote host"""
        pass

    @abstractmethod
    def execute_remote(self, remote_host: RemoteHost, command: str) -> Tuple[int, str, str]:
        """Execute a command on remote host

        Args:
            remote_host: Remote host configuration
            command: Command to execute

        Returns:
            Tuple of (return_code, stdout, stderr)
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close transport connections"""
        pass


class RunResult:
    """Captured output of a finished command"""

    def __init__(self, args: List[str], returncode: int = 0, stdout: str = "", stderr: str = ""):
        self.args = list(args)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    def output(self) -> str:
        return self.stdout + self.stderr

    def __repr__(self) -> str:
        return f"RunResult(args={self.args!r}, returncode={self.returncode})"


class CommandRunner(ABC):
    """Runs commands and places files on a single target host

    Implementations execute synchronously, one command per call.
    """

    @abstractmethod
    def run_cmd(self, args: List[str], env: Optional[Dict[str, str]] = None) -> RunResult:
        """Run a command on the host

        Args:
            args: Command and arguments
            env: Extra environment variables for the command

        Returns:
            RunResult with captured output

        Raises:
            CommandError: If the command exits non-zero or cannot start
        """
        pass

    @abstractmethod
    def copy(self, asset: BaseAsset) -> None:
        """Materialize an asset at its target path with its permissions"""
        pass

    @abstractmethod
    def remove(self, asset: BaseAsset) -> None:
        """Remove an asset's target path from the host"""
        pass
