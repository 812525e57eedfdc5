"""Docker image reference store bookkeeping

Extracting a preload tarball over /var/lib/docker replaces the
repositories.json that maps image names to digests. The store snapshots
the references before extraction and merges them back afterwards so
images docker already knew about are not forgotten.
"""

import json
import logging
from typing import Dict

from cruntime.assets import MemoryAsset
from cruntime.errors import ParseError
from cruntime.transport.base import CommandRunner

logger = logging.getLogger(__name__)

REFERENCE_STORE = "/var/lib/docker/image/overlay2/repositories.json"


class ReferenceStore:
    """Snapshot and repair of docker's repositories.json"""

    def __init__(self, runner: CommandRunner, path: str = REFERENCE_STORE):
        self.runner = runner
        self.path = path
        self.refs: Dict[str, Dict[str, str]] = {}

    def _read(self) -> Dict[str, Dict[str, str]]:
        rr = self.runner.run_cmd(["sudo", "cat", self.path])
        try:
            data = json.loads(rr.stdout)
            repositories = data.get("Repositories") or {}
            if not isinstance(repositories, dict):
                raise ValueError("Repositories is not an object")
            return repositories
        except (ValueError, AttributeError) as e:
            raise ParseError(f"reading {self.path}: {e}") from e

    def save(self) -> None:
        """Merge the current references on the host into the snapshot"""
        for repo, refs in self._read().items():
            self.refs.setdefault(repo, {}).update(refs)
        logger.debug(f"Saved {len(self.refs)} repositories from the reference store")

    def update(self) -> None:
        """Write back snapshot references the host copy is missing"""
        current = self._read()
        added = 0
        for repo, refs in self.refs.items():
            merged = current.setdefault(repo, {})
            for ref, digest in refs.items():
                if ref not in merged:
                    merged[ref] = digest
                    added += 1

        data = json.dumps({"Repositories": current}).encode("utf-8")
        self.runner.copy(MemoryAsset.for_target(data, self.path, "0644"))
        logger.info(f"Updated reference store with {added} reference(s)")
