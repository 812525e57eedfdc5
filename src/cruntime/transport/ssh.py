"""SSH/SFTP transport and the command runner built on it"""

import logging
import os
import posixpath
import shlex
import threading
import uuid
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

import paramiko
from paramiko import AutoAddPolicy, SSHClient, WarningPolicy

from cruntime.assets import BaseAsset, FileAsset
from cruntime.errors import CommandError
from cruntime.transport.base import BaseTransport, CommandRunner, RemoteHost, RunResult

logger = logging.getLogger(__name__)


class SSHTransport(BaseTransport):
    """SSH/SFTP transport protocol"""

    def __init__(self, key_file: Optional[str] = None, password: Optional[str] = None,
                 ssh_config: Optional[str] = None, skip_host_verification: bool = False,
                 allow_agent: bool = True, look_for_keys: bool = True, command_timeout: int = 600):
        """Initialize SSH transport

        Args:
            key_file: Path to SSH private key (defaults to ~/.ssh/id_rsa if it exists)
            password: SSH password (used if key_file not available)
            ssh_config: Path to SSH config file (auto-detected if None)
            skip_host_verification: Skip SSH host key verification (insecure, for testing only)
            allow_agent: Allow SSH agent for key discovery (default: True)
            look_for_keys: Look for discoverable keys in ~/.ssh/ (default: True)
            command_timeout: Timeout in seconds for remote commands (default: 600)
        """
        self.key_file = None
        candidate = os.path.expanduser(key_file or "~/.ssh/id_rsa")
        if os.path.exists(candidate):
            self.key_file = candidate
        elif key_file:
            logger.warning(f"SSH key file not found: {candidate}, will use password auth if available")

        self.password = password
        self.allow_agent = allow_agent
        self.look_for_keys = look_for_keys
        self.command_timeout = command_timeout
        self.clients: Dict[str, SSHClient] = {}
        self.clients_lock = threading.Lock()
        self.skip_host_verification = skip_host_verification
        if skip_host_verification:
            logger.warning("SSH host key verification is DISABLED - only use for testing!")
        self.ssh_config_parser = None
        self._load_ssh_config(ssh_config)

    def _load_ssh_config(self, ssh_config_path: Optional[str] = None) -> None:
        """Load SSH config file, auto-detecting ~/.ssh/config"""
        ssh_config_path = os.path.expanduser(ssh_config_path or "~/.ssh/config")
        if not os.path.exists(ssh_config_path):
            logger.debug(f"SSH config not found at {ssh_config_path}")
            return
        try:
            self.ssh_config_parser = paramiko.SSHConfig.from_path(ssh_config_path)
            logger.info(f"Loaded SSH config from {ssh_config_path}")
        except Exception as e:
            logger.warning(f"Failed to load SSH config from {ssh_config_path}: {e}")
            self.ssh_config_parser = None

    def _merge_ssh_config(self, remote_host: RemoteHost) -> Dict[str, Any]:
        """Merge SSH config with precedence: per-target > global > SSH config > defaults

        Args:
            remote_host: Remote host configuration

        Returns:
            Merged connection parameters for paramiko SSHClient.connect()
        """
        config: Dict[str, Any] = {
            "hostname": remote_host.host,
            "port": remote_host.port,
            "username": remote_host.user,
        }

        if self.ssh_config_parser:
            ssh_config = self.ssh_config_parser.lookup(remote_host.host)
            config["hostname"] = ssh_config.get("hostname", remote_host.host)
            config["port"] = int(ssh_config.get("port", remote_host.port))
            config["username"] = ssh_config.get("user", remote_host.user)
            if ssh_config.get("identityfile"):
                config["key_filename"] = ssh_config["identityfile"]
            if "proxyjump" in ssh_config:
                config["sock"] = paramiko.ProxyCommand(f"ssh -W %h:%p {ssh_config['proxyjump']}")
            elif "proxycommand" in ssh_config:
                config["sock"] = paramiko.ProxyCommand(ssh_config["proxycommand"])

        if self.key_file and not config.get("key_filename"):
            config["key_filename"] = self.key_file
        if self.password:
            config["password"] = self.password

        options = remote_host.ssh_options
        if "key_file" in options:
            expanded_key = os.path.expanduser(options["key_file"])
            if os.path.exists(expanded_key):
                config["key_filename"] = expanded_key
            else:
                logger.warning(f"Per-target SSH key file not found: {expanded_key}")
                config.pop("key_filename", None)
        if "password" in options:
            config["password"] = options["password"]
        if "port" in options:
            config["port"] = options["port"]
        if "user" in options:
            config["username"] = options["user"]

        config.setdefault("timeout", 10)
        config["allow_agent"] = self.allow_agent
        config["look_for_keys"] = self.look_for_keys
        return config

    def _get_client(self, remote_host: RemoteHost) -> SSHClient:
        """Get or create a cached SSH client for host"""
        connect_config = self._merge_ssh_config(remote_host)
        host_key = f"{connect_config['hostname']}:{connect_config['port']}"

        with self.clients_lock:
            if host_key not in self.clients:
                client = SSHClient()
                if self.skip_host_verification:
                    client.set_missing_host_key_policy(WarningPolicy())
                else:
                    client.set_missing_host_key_policy(AutoAddPolicy())

                logger.debug(f"Connecting to {remote_host.host} (resolved: {connect_config['hostname']})")
                try:
                    client.connect(**connect_config)
                except Exception as e:
                    logger.error(f"Failed to connect to {remote_host.host}: {e}")
                    raise
                self.clients[host_key] = client
                logger.info(f"Connected to {remote_host.host}")

            return self.clients[host_key]

    def file_exists_remote(self, remote_host: RemoteHost, remote_path: str) -> bool:
        """Check if a file exists on the remote host"""
        try:
            sftp = self._get_client(remote_host).open_sftp()
            try:
                sftp.stat(remote_path)
                return True
            except IOError:
                return False
            finally:
                sftp.close()
        except Exception as e:
            logger.debug(f"Error checking if remote file exists: {e}")
            return False

    def _ensure_remote_dir(self, sftp, remote_path: str) -> None:
        remote_dir = posixpath.dirname(remote_path)
        if not remote_dir:
            return
        try:
            sftp.stat(remote_dir)
        except IOError:
            logger.debug(f"Creating remote directory: {remote_dir}")
            sftp.mkdir(remote_dir)

    def transfer_file(self, local_path: str, remote_host: RemoteHost, remote_path: str,
                      progress_callback=None) -> bool:
        """Transfer a file to a remote host via SFTP

        Args:
            local_path: Path to local file
            remote_host: Remote host configuration
            remote_path: Path on remote host
            progress_callback: Optional callback called with (bytes_transferred, total)

        Returns:
            True if successful, False otherwise
        """
        try:
            sftp = self._get_client(remote_host).open_sftp()
            logger.info(f"Transferring {local_path} to {remote_host.host}:{remote_path}")
            try:
                self._ensure_remote_dir(sftp, remote_path)
                if progress_callback:
                    sftp.put(local_path, remote_path, callback=progress_callback)
                else:
                    sftp.put(local_path, remote_path)
            finally:
                sftp.close()
            return True
        except Exception as e:
            logger.error(f"Failed to transfer file: {e}")
            return False

    def transfer_fileobj(self, fileobj: BinaryIO, remote_host: RemoteHost, remote_path: str) -> bool:
        try:
            sftp = self._get_client(remote_host).open_sftp()
            try:
                self._ensure_remote_dir(sftp, remote_path)
                sftp.putfo(fileobj, remote_path)
            finally:
                sftp.close()
            return True
        except Exception as e:
            logger.error(f"Failed to write {remote_host.host}:{remote_path}: {e}")
            return False

    def execute_remote(self, remote_host: RemoteHost, command: str) -> Tuple[int, str, str]:
        """Execute a command on remote host

        Args:
            remote_host: Remote host configuration
            command: Command to execute

        Returns:
            Tuple of (return_code, stdout, stderr)
        """
        try:
            client = self._get_client(remote_host)
            logger.debug(f"Executing on {remote_host.host}: {command}")

            _, stdout, stderr = client.exec_command(command, timeout=self.command_timeout)
            return_code = stdout.channel.recv_exit_status()
            stdout_str = stdout.read().decode("utf-8", errors="replace")
            stderr_str = stderr.read().decode("utf-8", errors="replace")

            logger.debug(f"Command completed with return code: {return_code}")
            return return_code, stdout_str, stderr_str
        except Exception as e:
            logger.error(f"Failed to execute remote command: {e}")
            return 1, "", str(e)

    def close(self) -> None:
        """Close all SSH connections"""
        with self.clients_lock:
            for client in self.clients.values():
                try:
                    client.close()
                except Exception as e:
                    logger.warning(f"Error closing SSH connection: {e}")
            self.clients.clear()
        logger.info("Closed SSH connections")


class SSHRunner(CommandRunner):
    """Runs commands on one remote host through an SSH transport"""

    def __init__(self, transport: BaseTransport, remote_host: RemoteHost, staging_dir: str = "/tmp"):
        self.transport = transport
        self.remote_host = remote_host
        self.staging_dir = staging_dir

    def run_cmd(self, args: List[str], env: Optional[Dict[str, str]] = None) -> RunResult:
        command = " ".join(shlex.quote(a) for a in args)
        if env:
            assignments = " ".join(shlex.quote(f"{k}={v}") for k, v in env.items())
            command = f"env {assignments} {command}"

        return_code, stdout, stderr = self.transport.execute_remote(self.remote_host, command)
        if return_code != 0:
            raise CommandError(args, return_code, stdout, stderr)
        return RunResult(args, return_code, stdout, stderr)

    def copy(self, asset: BaseAsset) -> None:
        # SFTP runs as the login user, so stage first and move into place with sudo
        staged = posixpath.join(self.staging_dir, f"cruntime-{uuid.uuid4().hex[:12]}-{asset.target_name}")
        if isinstance(asset, FileAsset):
            ok = self.transport.transfer_file(asset.source_path, self.remote_host, staged)
        else:
            try:
                ok = self.transport.transfer_fileobj(asset.open(), self.remote_host, staged)
            finally:
                asset.close()
        if not ok:
            raise CommandError(["scp", staged], 1, "", f"failed to transfer {asset.target_name} to {self.remote_host.host}")

        self.run_cmd(["sudo", "mkdir", "-p", asset.target_dir])
        self.run_cmd(["sudo", "mv", staged, asset.target_path])
        self.run_cmd(["sudo", "chmod", asset.permissions, asset.target_path])

    def remove(self, asset: BaseAsset) -> None:
        self.run_cmd(["sudo", "rm", "-f", asset.target_path])
