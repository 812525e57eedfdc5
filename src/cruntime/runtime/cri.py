"""Container and image operations issued through crictl and runc

Used directly by CRI-native runtimes and by the Docker runtime when it
sits behind cri-dockerd.
"""

import json
import logging
from typing import List

from cruntime.errors import CommandError, ParseError, RuntimeAdapterError
from cruntime.runtime.base import ContainerState, ListContainersOptions
from cruntime.transport.base import CommandRunner

logger = logging.getLogger(__name__)

NAMESPACE_LABEL = "io.kubernetes.pod.namespace"


def _runc(root: str) -> List[str]:
    args = ["sudo", "runc"]
    if root:
        args += ["--root", root]
    return args


def crictl_path(runner: CommandRunner) -> str:
    """Resolved path of crictl on the host, or plain 'crictl'"""
    try:
        rr = runner.run_cmd(["which", "crictl"])
    except CommandError:
        return "crictl"
    path = rr.stdout.strip().split("\n")[0]
    return path or "crictl"


def _paused_ids(runner: CommandRunner, root: str) -> List[str]:
    rr = runner.run_cmd(_runc(root) + ["list", "-f", "json"])
    try:
        containers = json.loads(rr.stdout or "null") or []
        return [c["id"] for c in containers if c.get("status") == "paused"]
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise ParseError(f"runc list: {e}") from e


def list_cri_containers(runner: CommandRunner, root: str, opts: ListContainersOptions) -> List[str]:
    """List container IDs through crictl

    Args:
        runner: Command runner for the host
        root: runc root directory ('' for the default)
        opts: Container filter

    Returns:
        Matching container IDs in listing order
    """
    logger.info(f"listing CRI containers in root {root or '(default)'}: {opts.state.value} {opts.name} {opts.namespaces}")
    base = ["sudo", crictl_path(runner), "ps", "-a", "--quiet"]
    if opts.state == ContainerState.RUNNING:
        base.append("--state=Running")
    if opts.name:
        base.append(f"--name={opts.name}")

    selectors = [["--label", f"{NAMESPACE_LABEL}={ns}"] for ns in opts.namespaces] or [[]]
    ids: List[str] = []
    seen = set()
    for selector in selectors:
        try:
            rr = runner.run_cmd(base + selector)
        except CommandError as e:
            raise RuntimeAdapterError(f"crictl list: {e}") from e
        for line in rr.stdout.split("\n"):
            line = line.strip()
            if line and line not in seen:
                seen.add(line)
                ids.append(line)

    if opts.state != ContainerState.PAUSED:
        return ids

    # crictl has no notion of paused; ask runc which of them are frozen
    try:
        paused = set(_paused_ids(runner, root))
    except CommandError as e:
        raise RuntimeAdapterError(f"runc list: {e}") from e
    return [i for i in ids if i in paused]


def _bulk(runner: CommandRunner, args: List[str], ids: List[str], label: str) -> None:
    if not ids:
        return
    logger.info(f"{label}: {ids}")
    try:
        runner.run_cmd(args + list(ids))
    except CommandError as e:
        raise RuntimeAdapterError(f"{label}: {e}") from e


def kill_cri_containers(runner: CommandRunner, ids: List[str]) -> None:
    if not ids:
        return
    _bulk(runner, ["sudo", crictl_path(runner), "rm", "--force"], ids, "crictl rm")


def stop_cri_containers(runner: CommandRunner, ids: List[str]) -> None:
    if not ids:
        return
    _bulk(runner, ["sudo", crictl_path(runner), "stop", "--timeout=10"], ids, "crictl stop")


def _runc_each(runner: CommandRunner, root: str, verb: str, ids: List[str]) -> None:
    # runc pause/resume take a single container ID
    for id in ids:
        logger.info(f"runc {verb}: {id}")
        try:
            runner.run_cmd(_runc(root) + [verb, id])
        except CommandError as e:
            raise RuntimeAdapterError(f"runc {verb}: {e}") from e


def pause_cri_containers(runner: CommandRunner, root: str, ids: List[str]) -> None:
    _runc_each(runner, root, "pause", ids)


def unpause_cri_containers(runner: CommandRunner, root: str, ids: List[str]) -> None:
    _runc_each(runner, root, "resume", ids)


def pull_cri_image(runner: CommandRunner, name: str) -> None:
    logger.info(f"Pulling image {name} with crictl")
    try:
        runner.run_cmd(["sudo", crictl_path(runner), "pull", name])
    except CommandError as e:
        raise RuntimeAdapterError(f"crictl pull: {e}") from e


def remove_cri_image(runner: CommandRunner, name: str) -> None:
    logger.info(f"Removing image {name} with crictl")
    try:
        runner.run_cmd(["sudo", crictl_path(runner), "rmi", name])
    except CommandError as e:
        raise RuntimeAdapterError(f"crictl rmi: {e}") from e


def cri_container_log_cmd(runner: CommandRunner, id: str, lines: int, follow: bool) -> str:
    """Shell command that prints a container's log through crictl"""
    cmd = [f"sudo {crictl_path(runner)} logs"]
    if lines > 0:
        cmd.append(f"--tail {lines}")
    if follow:
        cmd.append("--follow")
    cmd.append(id)
    return " ".join(cmd)
