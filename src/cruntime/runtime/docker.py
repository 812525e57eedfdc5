"""Docker container runtime implementation"""

import json
import logging
import time
from typing import Callable, Dict, List, Optional

from packaging.version import Version

from cruntime.assets import FileAsset, MemoryAsset
from cruntime.preload import PreloadCache
from cruntime.errors import (
    CommandError,
    HostUnavailableError,
    ISOFeatureError,
    ParseError,
    RuntimeAdapterError,
    log_only,
    must_succeed,
)
from cruntime.images import add_docker_io, from_human_size, kubeadm_images, trim_docker_io
from cruntime.runtime import cri
from cruntime.runtime.base import (
    KUBERNETES_CONTAINER_PREFIX,
    ClusterConfig,
    ContainerState,
    ListContainersOptions,
    ListImage,
    ListImagesOptions,
    Runtime,
    disable_others as disable_other_runtimes,
    populate_cri_config,
)
from cruntime.runtime.refstore import ReferenceStore
from cruntime.sysinit import ServiceManager
from cruntime.transport.base import CommandRunner, RunResult

logger = logging.getLogger(__name__)

INTERNAL_DOCKER_CRI_SOCKET = "/var/run/dockershim.sock"
EXTERNAL_DOCKER_CRI_SOCKET = "/var/run/cri-dockerd.sock"

DAEMON_CONFIG_DIR = "/etc/docker"

FORCE_SYSTEMD_DAEMON_CONFIG = """{
"exec-opts": ["native.cgroupdriver=systemd"],
"log-driver": "json-file",
"log-opts": {
\t"max-size": "100m"
},
"storage-driver": "overlay2"
}
"""

PRELOAD_TARGET_DIR = "/"
PRELOAD_TARGET_NAME = "preloaded.tar.lz4"
PRELOAD_EXTRACT_DIR = "/var"


class DockerRuntime(Runtime):
    """Docker container runtime, optionally fronted by cri-dockerd

    With ``use_cri`` set, image and container operations that have a CRI
    equivalent go through crictl against cri-dockerd. Build, tag, push,
    save and load always use the docker CLI.
    """

    def __init__(self, runner: CommandRunner, init: ServiceManager, socket: str = "",
                 image_repository: str = "", kubernetes_version: Optional[Version] = None,
                 use_cri: bool = False, cri_service: str = "",
                 preload_cache: Optional[PreloadCache] = None,
                 image_lister: Callable[[str, str], List[str]] = kubeadm_images):
        """Initialize Docker runtime

        Args:
            runner: Command runner for the target host
            init: Service manager for the target host
            socket: CRI socket override ('' for the default)
            image_repository: Registry mirror for Kubernetes images
            kubernetes_version: Kubernetes version the runtime serves
            use_cri: Route container/image operations through cri-dockerd
            cri_service: Name of the CRI shim service (required with use_cri)
            preload_cache: Lookup for preload tarballs
            image_lister: Resolver of the images a Kubernetes version needs
        """
        if use_cri and not cri_service:
            raise RuntimeAdapterError("use_cri requires a CRI service name")
        self.socket = socket
        self.runner = runner
        self.init = init
        self.image_repository = image_repository
        self.kubernetes_version = kubernetes_version or Version("0")
        self.use_cri = use_cri
        self.cri_service = cri_service
        self.preload_cache = preload_cache or PreloadCache()
        self.image_lister = image_lister

    def _docker(self, args: List[str], label: str, env: Optional[Dict[str, str]] = None) -> RunResult:
        try:
            return self.runner.run_cmd(["docker"] + args, env=env)
        except CommandError as e:
            raise RuntimeAdapterError(f"{label}: {e}") from e

    def name(self) -> str:
        return "Docker"

    def style(self) -> str:
        return "docker"

    def version(self) -> str:
        # the server daemon has to be running for this to succeed
        rr = self._docker(["version", "--format", "{{.Server.Version}}"], "docker version")
        return rr.stdout.split("\n")[0]

    def socket_path(self) -> str:
        if self.socket:
            return self.socket
        return INTERNAL_DOCKER_CRI_SOCKET

    def _require(self, executable: str) -> None:
        try:
            self.runner.run_cmd(["which", executable])
        except CommandError as e:
            raise HostUnavailableError(f"{executable} not found in PATH") from e

    def available(self) -> None:
        if self.use_cri:
            self._require("cri-dockerd")
            self._require("dockerd")
        self._require("docker")

    def active(self) -> bool:
        return self.init.active("docker")

    def enable(self, disable_others: bool, force_systemd: bool, in_user_namespace: bool) -> None:
        if in_user_namespace:
            raise RuntimeAdapterError("in_user_namespace must not be true for docker")

        if disable_others:
            with log_only("disable others"):
                disable_other_runtimes(self, self.runner, self.init)

        with must_succeed("configure crictl"):
            populate_cri_config(self.runner, self.socket_path())
        with must_succeed("unmask docker.service"):
            self.init.unmask("docker.service")
        with log_only("enable docker.socket"):
            self.init.enable("docker.socket")
        if force_systemd:
            with must_succeed("force systemd cgroup driver"):
                self._force_systemd()
        with must_succeed("restart docker"):
            self.init.restart("docker")

        if self.cri_service:
            with must_succeed(f"enable {self.cri_service}"):
                self.init.enable(self.cri_service)
            with must_succeed(f"start {self.cri_service}"):
                self.init.start(self.cri_service)

    def restart(self) -> None:
        self.init.restart("docker")

    def disable(self) -> None:
        if self.cri_service:
            with must_succeed(f"stop {self.cri_service}"):
                self.init.stop(self.cri_service)
            with must_succeed(f"disable {self.cri_service}"):
                self.init.disable(self.cri_service)

        logger.info("disabling docker service ...")
        # the socket can re-activate the service, so stop it first
        with log_only("stop docker.socket"):
            self.init.force_stop("docker.socket")
        with must_succeed("stop docker.service"):
            self.init.force_stop("docker.service")
        with log_only("disable docker.socket"):
            self.init.disable("docker.socket")
        with must_succeed("mask docker.service"):
            self.init.mask("docker.service")

    def image_exists(self, name: str, sha: str) -> bool:
        # output looks like sha256:<digest>
        try:
            rr = self.runner.run_cmd(["docker", "image", "inspect", "--format", "{{.Id}}", name])
        except CommandError:
            return False
        return not sha or sha in rr.output()

    def list_images(self, opts: ListImagesOptions) -> List[ListImage]:
        rr = self._docker(["images", "--no-trunc", "--format", "{{json .}}"], "docker images")

        result = []
        for line in rr.stdout.split("\n"):
            if not line.strip():
                continue
            try:
                row = json.loads(line)
                repo_tag = f"{row['Repository']}:{row['Tag']}"
                image_id = row["ID"]
                size_str = row["Size"]
            except (ValueError, KeyError, TypeError) as e:
                raise ParseError(f"Image convert problem: {e}") from e
            try:
                size = from_human_size(size_str)
            except ValueError as e:
                raise ParseError(f"Image size convert problem: {e}") from e

            result.append(ListImage(
                id=image_id[len("sha256:"):] if image_id.startswith("sha256:") else image_id,
                repo_tags=[add_docker_io(repo_tag)],
                repo_digests=[],
                size=str(size),
            ))
        return result

    def load_image(self, path: str) -> None:
        logger.info(f"Loading image: {path}")
        try:
            self.runner.run_cmd(["/bin/bash", "-c", f"sudo cat {path} | docker load"])
        except CommandError as e:
            raise RuntimeAdapterError(f"loadimage docker: {e}") from e

    def pull_image(self, name: str) -> None:
        logger.info(f"Pulling image: {name}")
        if self.use_cri:
            cri.pull_cri_image(self.runner, name)
            return
        self._docker(["pull", name], "pull image docker")

    def save_image(self, name: str, path: str) -> None:
        logger.info(f"Saving image {name}: {path}")
        try:
            self.runner.run_cmd(["/bin/bash", "-c", f"docker save '{name}' | sudo tee {path} >/dev/null"])
        except CommandError as e:
            raise RuntimeAdapterError(f"saveimage docker: {e}") from e

    def remove_image(self, name: str) -> None:
        logger.info(f"Removing image: {name}")
        if self.use_cri:
            cri.remove_cri_image(self.runner, name)
            return
        self._docker(["rmi", name], "remove image docker")

    def tag_image(self, source: str, target: str) -> None:
        logger.info(f"Tagging image {source}: {target}")
        self._docker(["tag", source, target], "tag image docker")

    def build_image(self, src: str, file: str, tag: str, push: bool, env: List[str], opts: List[str]) -> None:
        logger.info(f"Building image: {src}")
        args = ["build"]
        if file:
            args += ["-f", file]
        if tag:
            args += ["-t", tag]
        args.append(src)
        args += [f"--{opt}" for opt in opts]

        build_env = dict(item.split("=", 1) for item in env if "=" in item)
        self._docker(args, "buildimage docker", env=build_env or None)
        if tag and push:
            self._docker(["push", tag], "pushimage docker")

    def push_image(self, name: str) -> None:
        logger.info(f"Pushing image: {name}")
        self._docker(["push", name], "push image docker")

    def cgroup_driver(self) -> str:
        rr = self._docker(["info", "--format", "{{.CgroupDriver}}"], "docker info")
        return rr.stdout.split("\n")[0]

    def kubelet_options(self) -> Dict[str, str]:
        if self.use_cri:
            return {
                "container-runtime": "remote",
                "container-runtime-endpoint": self.socket_path(),
                "image-service-endpoint": self.socket_path(),
                "runtime-request-timeout": "15m",
            }
        return {"container-runtime": "docker"}

    def list_containers(self, opts: ListContainersOptions) -> List[str]:
        if self.use_cri:
            return cri.list_cri_containers(self.runner, "", opts)

        args = ["ps"]
        if opts.state == ContainerState.ALL:
            args.append("-a")
        elif opts.state == ContainerState.RUNNING:
            args += ["--filter", "status=running"]
        elif opts.state == ContainerState.PAUSED:
            args += ["--filter", "status=paused"]

        name_filter = KUBERNETES_CONTAINER_PREFIX + opts.name
        if opts.namespaces:
            # e.g. k8s_.*_(kube-system|kubernetes-dashboard)_
            name_filter = f"{name_filter}.*_({'|'.join(opts.namespaces)})_"
        args += [f"--filter=name={name_filter}", "--format={{.ID}}"]

        rr = self._docker(args, "docker")
        return [line for line in rr.stdout.split("\n") if line]

    def _bulk(self, verb: List[str], ids: List[str], label: str) -> None:
        if not ids:
            return
        logger.info(f"{label}: {ids}")
        self._docker(verb + list(ids), label)

    def kill_containers(self, ids: List[str]) -> None:
        if self.use_cri:
            cri.kill_cri_containers(self.runner, ids)
            return
        self._bulk(["rm", "-f"], ids, "killing containers docker")

    def stop_containers(self, ids: List[str]) -> None:
        if self.use_cri:
            cri.stop_cri_containers(self.runner, ids)
            return
        self._bulk(["stop"], ids, "stopping containers docker")

    def pause_containers(self, ids: List[str]) -> None:
        if self.use_cri:
            cri.pause_cri_containers(self.runner, "", ids)
            return
        self._bulk(["pause"], ids, "pausing containers docker")

    def unpause_containers(self, ids: List[str]) -> None:
        if self.use_cri:
            cri.unpause_cri_containers(self.runner, "", ids)
            return
        self._bulk(["unpause"], ids, "unpausing containers docker")

    def container_log_cmd(self, id: str, lines: int, follow: bool) -> str:
        if self.use_cri:
            return cri.cri_container_log_cmd(self.runner, id, lines, follow)
        cmd = "docker logs "
        if lines > 0:
            cmd += f"--tail {lines} "
        if follow:
            cmd += "--follow "
        return cmd + id

    def system_log_cmd(self, lines: int) -> str:
        return f"sudo journalctl -u docker -n {lines}"

    def _force_systemd(self) -> None:
        """Make docker use systemd as its cgroup manager"""
        logger.info("Forcing docker to use systemd as cgroup manager...")
        asset = MemoryAsset(FORCE_SYSTEMD_DAEMON_CONFIG.encode("utf-8"), DAEMON_CONFIG_DIR, "daemon.json", "0644")
        self.runner.copy(asset)

    def images_preloaded(self, images: List[str]) -> bool:
        """Whether every image in ``images`` is already known to docker"""
        try:
            rr = self.runner.run_cmd(["docker", "images", "--format", "{{.Repository}}:{{.Tag}}"])
        except CommandError as e:
            logger.debug(f"docker images failed: {e}")
            return False

        present = {trim_docker_io(i) for i in rr.stdout.split("\n") if i}
        logger.info(f"Got preloaded images: {rr.output()}")

        for image in images:
            if trim_docker_io(image) not in present:
                logger.info(f"{image} wasn't preloaded")
                return False
        return True

    def preload(self, cc: ClusterConfig) -> None:
        """Preload docker with Kubernetes images

        Copies the preload tarball onto the host, extracts it over docker's
        storage directory, removes the tarball and restarts docker.
        """
        version = cc.kubernetes_version
        runtime = cc.container_runtime
        if not self.preload_cache.exists(version, runtime, cc.driver):
            return

        with must_succeed("getting images"):
            images = self.image_lister(cc.image_repository, version)
        if self.images_preloaded(images):
            logger.info("Images already preloaded, skipping extraction")
            return

        ref_store = ReferenceStore(self.runner)
        with log_only("saving reference store"):
            ref_store.save()

        try:
            self.runner.run_cmd(["which", "lz4"])
        except CommandError as e:
            raise ISOFeatureError("lz4") from e

        with must_succeed("getting file asset"):
            asset = FileAsset(self.preload_cache.tarball_path(version, runtime),
                              PRELOAD_TARGET_DIR, PRELOAD_TARGET_NAME, "0644")
        with asset:
            start = time.monotonic()
            with must_succeed("copying file"):
                self.runner.copy(asset)
            logger.info(f"Took {time.monotonic() - start:f} seconds to copy over tarball")

            try:
                self.runner.run_cmd(["sudo", "tar", "--xattrs", "--xattrs-include", "security.capability",
                                     "-I", "lz4", "-C", PRELOAD_EXTRACT_DIR, "-xf", asset.target_path])
            except CommandError as e:
                raise RuntimeAdapterError(f"extracting tarball: {e.output()}") from e

            with log_only("removing tarball"):
                self.runner.remove(asset)

        with log_only("saving reference store"):
            ref_store.save()
        with log_only("updating reference store"):
            ref_store.update()

        with must_succeed("restart docker"):
            self.restart()
