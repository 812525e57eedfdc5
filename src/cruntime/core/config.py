"""Configuration management"""

import logging
from typing import Any, Dict, List, Optional

import yaml

from cruntime.core.env import EnvManager
from cruntime.images import parse_kubernetes_version
from cruntime.runtime.base import ClusterConfig
from cruntime.transport.base import RemoteHost

logger = logging.getLogger(__name__)

SUPPORTED_NETWORK_PLUGINS = ("", "cni")


class Config:
    """Configuration manager for cruntime"""

    def __init__(self, config_file: str, env_files: Optional[List[str]] = None):
        """Load configuration from YAML file

        Args:
            config_file: Path to configuration YAML file
            env_files: List of environment files to load
        """
        self.config_file = config_file
        self.data: Dict[str, Any] = {}
        self.env_manager = EnvManager()
        self.env_files = env_files or []

        if self.env_files:
            self.env_manager.env.update(self.env_manager.load_files(self.env_files))

        self.load()

    def load(self) -> None:
        """Load configuration from file and apply environment variable expansion"""
        try:
            with open(self.config_file, "r") as f:
                self.data = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {self.config_file}")
        except FileNotFoundError:
            logger.error(f"Configuration file not found: {self.config_file}")
            raise
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse configuration file: {e}")
            raise

        self._load_env_config()
        try:
            self.data = self.env_manager.expand_dict(self.data, self.env_manager.env)
        except ValueError as e:
            logger.error(f"Environment variable expansion failed: {e}")
            raise

    def _load_env_config(self) -> None:
        """Load environment variables from env_from and env properties in config"""
        env_from_paths = self.data.get("env_from", [])
        if isinstance(env_from_paths, str):
            env_from_paths = [env_from_paths]
        self.env_manager.env.update(self.env_manager.load_files(env_from_paths))

        env_direct = self.data.get("env", {})
        if isinstance(env_direct, list):
            env_direct = dict(item.split("=", 1) for item in env_direct if "=" in item)
        if env_direct:
            self.env_manager.env.update({k: str(v) for k, v in env_direct.items()})
            logger.info(f"Loaded {len(env_direct)} direct environment variables")

    @property
    def runtime_config(self) -> Dict[str, Any]:
        """Runtime section: type and optional socket override"""
        return self.data.get("runtime") or {"type": "docker"}

    @property
    def cluster(self) -> ClusterConfig:
        """Cluster definition the runtime is prepared for"""
        data = self.data.get("cluster") or {}
        return ClusterConfig(
            kubernetes_version=str(data.get("kubernetes_version", "")),
            container_runtime=data.get("container_runtime", self.runtime_config.get("type", "docker")),
            driver=data.get("driver", "ssh"),
            image_repository=data.get("image_repository", "") or "",
            network_plugin=data.get("network_plugin", "") or "",
        )

    @property
    def transport_config(self) -> Dict[str, Any]:
        """Transport section: 'ssh' (default) or 'local'"""
        return self.data.get("transport") or {"type": "ssh"}

    @property
    def preload_cache_dir(self) -> Optional[str]:
        return (self.data.get("preload") or {}).get("cache_dir")

    @property
    def targets(self) -> List[RemoteHost]:
        """Get list of remote targets

        Returns:
            List of RemoteHost instances
        """
        global_options = self.transport_config.get("options", {})
        targets = []

        for target in self.data.get("targets", []):
            if "host" not in target:
                logger.warning("Target missing 'host' field, skipping")
                continue

            # per-target transport options override global ones; explicit ssh_options win
            ssh_options = {k: global_options[k] for k in ("key_file", "password") if k in global_options}
            per_target = target.get("transport", {}).get("options", {})
            ssh_options.update({k: per_target[k] for k in ("key_file", "password") if k in per_target})
            ssh_options.update(target.get("ssh_options", {}))

            user = target.get("user") or ssh_options.get("user") or global_options.get("user", "root")

            targets.append(RemoteHost(
                host=target["host"],
                user=user,
                port=target.get("port", 22),
                ssh_options=ssh_options,
                transport_options=target.get("transport", {}),
            ))

        return targets

    def validate(self) -> bool:
        """Validate configuration

        Returns:
            True if configuration is valid
        """
        runtime_type = self.runtime_config.get("type", "docker")
        if runtime_type != "docker":
            logger.error(f"Unsupported runtime type: {runtime_type}")
            return False

        cluster = self.cluster
        if not cluster.kubernetes_version:
            logger.error("No cluster.kubernetes_version specified")
            return False
        try:
            parse_kubernetes_version(cluster.kubernetes_version)
        except ValueError as e:
            logger.error(f"Invalid Kubernetes version {cluster.kubernetes_version}: {e}")
            return False

        if cluster.network_plugin not in SUPPORTED_NETWORK_PLUGINS:
            logger.error(f"Unsupported network plugin: {cluster.network_plugin}")
            return False

        if self.transport_config.get("type", "ssh") == "ssh" and not self.targets:
            logger.error("No targets specified")
            return False

        return True
