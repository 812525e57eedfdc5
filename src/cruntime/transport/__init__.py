"""Command execution transports"""

from .base import CommandRunner, RemoteHost, RunResult
from .local import LocalRunner

__all__ = ["CommandRunner", "RemoteHost", "RunResult", "LocalRunner"]
