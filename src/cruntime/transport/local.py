"""Local command runner built on subprocess"""

import logging
import os
import subprocess
import tempfile
from typing import Dict, List, Optional

from cruntime.assets import BaseAsset, FileAsset
from cruntime.errors import CommandError
from cruntime.transport.base import CommandRunner, RunResult

logger = logging.getLogger(__name__)


class LocalRunner(CommandRunner):
    """Runs commands on the local machine"""

    def __init__(self, timeout: int = 600):
        """Initialize local runner

        Args:
            timeout: Per-command timeout in seconds (default: 600)
        """
        self.timeout = timeout

    def run_cmd(self, args: List[str], env: Optional[Dict[str, str]] = None) -> RunResult:
        cmd_env = None
        if env:
            cmd_env = dict(os.environ)
            cmd_env.update(env)

        logger.debug(f"Run: {' '.join(args)}")
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
                env=cmd_env,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandError(args, -1, "", f"timed out after {self.timeout}s") from e
        except OSError as e:
            raise CommandError(args, -1, "", str(e)) from e

        if result.returncode != 0:
            raise CommandError(args, result.returncode, result.stdout, result.stderr)
        return RunResult(args, result.returncode, result.stdout, result.stderr)

    def copy(self, asset: BaseAsset) -> None:
        self.run_cmd(["sudo", "mkdir", "-p", asset.target_dir])

        if isinstance(asset, FileAsset):
            self.run_cmd(["sudo", "install", "-m", asset.permissions, asset.source_path, asset.target_path])
            return

        # Stage in-memory content so it can be installed with sudo
        fd, staged = tempfile.mkstemp(prefix="cruntime-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(asset.open().read())
            asset.close()
            self.run_cmd(["sudo", "install", "-m", asset.permissions, staged, asset.target_path])
        finally:
            os.remove(staged)

    def remove(self, asset: BaseAsset) -> None:
        self.run_cmd(["sudo", "rm", "-f", asset.target_path])
