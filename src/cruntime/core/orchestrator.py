"""Runs runtime actions against every configured target"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Tuple

from cruntime.core.config import Config
from cruntime.errors import ISOFeatureError, RuntimeAdapterError
from cruntime.preload import PreloadCache
from cruntime.runtime import new_runtime
from cruntime.runtime.base import ListImagesOptions, Runtime
from cruntime.runtime.network import configure_network_plugin
from cruntime.transport.base import BaseTransport, CommandRunner, RemoteHost
from cruntime.transport.local import LocalRunner
from cruntime.transport.ssh import SSHRunner, SSHTransport

logger = logging.getLogger(__name__)

ACTIONS = ("status", "enable", "disable", "preload", "images")

LOCALHOST = RemoteHost(host="localhost", user="root")


class Orchestrator:
    """Prepares the container runtime on each target host

    Targets are handled concurrently, but every target runs its action
    start to finish on a single worker so no two mutating calls race on
    the same host.
    """

    def __init__(self, config: Config, skip_host_verification: bool = False,
                 max_concurrent_targets: int = 3, disable_others: bool = False,
                 force_systemd: bool = False):
        """Initialize orchestrator

        Args:
            config: Configuration instance
            skip_host_verification: Skip SSH host key verification (insecure)
            max_concurrent_targets: Maximum number of targets handled at once (1-10)
            disable_others: Disable competing runtimes when enabling
            force_systemd: Force the systemd cgroup driver when enabling
        """
        self.config = config
        self.transport: Optional[BaseTransport] = None
        self.skip_host_verification = skip_host_verification
        self.max_concurrent_targets = max_concurrent_targets
        self.disable_others = disable_others
        self.force_systemd = force_systemd
        self.preload_cache = PreloadCache(config.preload_cache_dir)

    def _init_transport(self) -> bool:
        """Initialize transport protocol

        Returns:
            True if successful, False otherwise
        """
        transport_config = self.config.transport_config
        transport_type = transport_config.get("type", "ssh")

        if transport_type == "local":
            logger.info("Using local command execution")
            return True
        if transport_type != "ssh":
            logger.error(f"Unsupported transport type: {transport_type}")
            return False

        options = transport_config.get("options", {})
        try:
            self.transport = SSHTransport(
                key_file=options.get("key_file"),
                password=options.get("password"),
                ssh_config=options.get("ssh_config"),
                skip_host_verification=self.skip_host_verification,
            )
        except Exception as e:
            logger.error(f"Failed to initialize transport: {e}")
            return False
        logger.info("Initialized SSH transport")
        return True

    def _targets(self) -> List[RemoteHost]:
        if self.transport is None:
            return [LOCALHOST]
        return self.config.targets

    def _runner_for(self, target: RemoteHost) -> CommandRunner:
        if self.transport is None:
            return LocalRunner()
        return SSHRunner(self.transport, target)

    def _runtime_for(self, runner: CommandRunner) -> Runtime:
        runtime_config = self.config.runtime_config
        cluster = self.config.cluster
        return new_runtime(
            runtime_config.get("type", "docker"),
            runner,
            kubernetes_version=cluster.kubernetes_version,
            socket=runtime_config.get("socket", "") or "",
            image_repository=cluster.image_repository,
            preload_cache=self.preload_cache,
        )

    def _status(self, runtime: Runtime, runner: CommandRunner) -> None:
        runtime.available()
        logger.info(f"{runtime.name()} {runtime.version()} active={runtime.active()} "
                    f"cgroup-driver={runtime.cgroup_driver()}")

    def _enable(self, runtime: Runtime, runner: CommandRunner) -> None:
        runtime.available()
        runtime.enable(self.disable_others, self.force_systemd, False)
        if getattr(runtime, "use_cri", False):
            configure_network_plugin(runtime, runner, self.config.cluster.network_plugin)
        logger.info(f"kubelet options: {runtime.kubelet_options()}")

    def _disable(self, runtime: Runtime, runner: CommandRunner) -> None:
        runtime.disable()

    def _preload(self, runtime: Runtime, runner: CommandRunner) -> None:
        runtime.preload(self.config.cluster)

    def _images(self, runtime: Runtime, runner: CommandRunner) -> None:
        for image in runtime.list_images(ListImagesOptions()):
            logger.info(f"{', '.join(image.repo_tags)} {image.id[:12]} {image.size}")

    def _handler(self, action: str) -> Callable[[Runtime, CommandRunner], None]:
        return getattr(self, f"_{action}")

    def _run_target(self, target: RemoteHost, action: str) -> Tuple[str, bool]:
        """Run one action against one target, reporting success"""
        logger.info(f"Running {action} on {target.host}")
        try:
            runner = self._runner_for(target)
            runtime = self._runtime_for(runner)
            self._handler(action)(runtime, runner)
        except ISOFeatureError as e:
            logger.error(f"{target.host}: the machine image is missing {e.missing}; rebuild it and retry")
            return target.host, False
        except RuntimeAdapterError as e:
            logger.error(f"{action} failed on {target.host}: {e}")
            return target.host, False

        logger.info(f"{action} completed on {target.host}")
        return target.host, True

    def run(self, action: str) -> bool:
        """Execute an action on every target

        Args:
            action: One of ACTIONS

        Returns:
            True if the action succeeded everywhere
        """
        if action not in ACTIONS:
            logger.error(f"Unknown action: {action}")
            return False

        if not self.config.validate():
            logger.error("Configuration validation failed")
            return False

        if not self._init_transport():
            return False

        try:
            results = self._run_all(action)
        finally:
            if self.transport is not None:
                self.transport.close()

        failed = [host for host, ok in results.items() if not ok]
        if failed:
            logger.error(f"{action} failed on: {', '.join(sorted(failed))}")
            return False
        return True

    def _run_all(self, action: str) -> Dict[str, bool]:
        targets = self._targets()
        if len(targets) == 1:
            host, ok = self._run_target(targets[0], action)
            return {host: ok}

        logger.info(f"Running {action} on {len(targets)} target(s) with max {self.max_concurrent_targets} concurrent")
        results: Dict[str, bool] = {}
        with ThreadPoolExecutor(max_workers=self.max_concurrent_targets) as executor:
            future_to_target = {
                executor.submit(self._run_target, target, action): target
                for target in targets
            }
            for future in as_completed(future_to_target):
                target = future_to_target[future]
                try:
                    host, ok = future.result()
                except Exception as e:
                    logger.error(f"Unexpected error for {target.host}: {e}")
                    host, ok = target.host, False
                results[host] = ok
        return results
