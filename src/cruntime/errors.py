"""Error types and step helpers shared by the runtime adapters"""

import logging
from contextlib import contextmanager
from typing import Iterator, List

logger = logging.getLogger(__name__)


class RuntimeAdapterError(Exception):
    """Base error raised by runtime adapters"""


class HostUnavailableError(RuntimeAdapterError):
    """A required executable or service is not present on the host"""


class CommandError(RuntimeAdapterError):
    """An external command exited non-zero or could not be started"""

    def __init__(self, args: List[str], returncode: int, stdout: str = "", stderr: str = ""):
        self.cmd = list(args)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"{' '.join(self.cmd)}: exit status {returncode}: {stderr.strip()}")

    def output(self) -> str:
        """Combined stdout and stderr of the failed command"""
        return self.stdout + self.stderr


class ParseError(RuntimeAdapterError):
    """Structured command output could not be parsed"""


class TemplateRenderError(RuntimeAdapterError):
    """A configuration template could not be rendered"""


class ISOFeatureError(RuntimeAdapterError):
    """The base machine image is missing a required feature

    Usually means the machine image has to be rebuilt.
    """

    def __init__(self, missing: str):
        self.missing = missing
        super().__init__(missing)


# Errors that already describe the host problem and are matched by type
_PASSTHROUGH = (HostUnavailableError, ISOFeatureError, TemplateRenderError)


@contextmanager
def must_succeed(label: str) -> Iterator[None]:
    """Run a step whose failure aborts the whole operation

    The failure is re-raised as a RuntimeAdapterError carrying ``label``,
    with the original exception chained as its cause.
    """
    try:
        yield
    except _PASSTHROUGH:
        raise
    except Exception as e:
        logger.error(f"{label}: {e}")
        raise RuntimeAdapterError(f"{label}: {e}") from e


@contextmanager
def log_only(label: str) -> Iterator[None]:
    """Run a best-effort step: failures are logged and swallowed"""
    try:
        yield
    except Exception as e:
        logger.warning(f"{label}: {e}")
