"""Service lifecycle management for the host's init system"""

import logging
from abc import ABC, abstractmethod

from cruntime.errors import CommandError
from cruntime.transport.base import CommandRunner

logger = logging.getLogger(__name__)


class ServiceManager(ABC):
    """Idempotent service actions against named system services"""

    @abstractmethod
    def enable(self, svc: str) -> None:
        pass

    @abstractmethod
    def disable(self, svc: str) -> None:
        pass

    @abstractmethod
    def start(self, svc: str) -> None:
        pass

    @abstractmethod
    def stop(self, svc: str) -> None:
        pass

    @abstractmethod
    def force_stop(self, svc: str) -> None:
        pass

    @abstractmethod
    def restart(self, svc: str) -> None:
        pass

    @abstractmethod
    def mask(self, svc: str) -> None:
        pass

    @abstractmethod
    def unmask(self, svc: str) -> None:
        pass

    @abstractmethod
    def active(self, svc: str) -> bool:
        """Whether the service is running; never raises"""
        pass


class SystemdManager(ServiceManager):
    """systemd-backed service manager driven through a command runner"""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def _systemctl(self, *args: str) -> None:
        self.runner.run_cmd(["sudo", "systemctl"] + list(args))

    def daemon_reload(self) -> None:
        self._systemctl("daemon-reload")

    def enable(self, svc: str) -> None:
        self._systemctl("enable", svc)

    def disable(self, svc: str) -> None:
        self._systemctl("disable", svc)

    def start(self, svc: str) -> None:
        self._systemctl("start", svc)

    def stop(self, svc: str) -> None:
        self._systemctl("stop", svc)

    def force_stop(self, svc: str) -> None:
        self._systemctl("stop", "-f", svc)

    def restart(self, svc: str) -> None:
        # unit files may have been rewritten since the last start
        self.daemon_reload()
        self._systemctl("restart", svc)

    def mask(self, svc: str) -> None:
        self._systemctl("mask", svc)

    def unmask(self, svc: str) -> None:
        self._systemctl("unmask", svc)

    def active(self, svc: str) -> bool:
        try:
            self._systemctl("is-active", "--quiet", "service", svc)
            return True
        except CommandError as e:
            logger.debug(f"{svc} is not active: {e}")
            return False
