"""Supervision service boundary: process roster and restarts."""

import http.client
import logging
import xmlrpc.client
from collections.abc import Mapping
from typing import Any, Protocol
from xml.parsers.expat import ExpatError

import psutil
from supervisor.states import ProcessStates
from supervisor.xmlrpc import Faults, SupervisorTransport

from memwatch.errors import ConfigurationError, ServiceError
from memwatch.models import ProcessSnapshot

logger = logging.getLogger(__name__)


class SupervisorService(Protocol):
    """Operations the watchdog needs from the supervision service."""

    def list_all_processes(self) -> list[ProcessSnapshot]:
        """Return a fresh snapshot of every supervised process."""
        ...

    def restart_process(self, identifier: str) -> bool:
        """Restart ``group:name``; raise ServiceError if the service fails."""
        ...


def memory_usage(pid: int, cumulative: bool = False) -> int:
    """
    Get the resident set size of a process in bytes.

    With ``cumulative`` the RSS of all descendant processes is included.
    Processes that vanished or cannot be inspected read as 0.
    """
    if pid <= 0:
        return 0

    try:
        proc = psutil.Process(pid)
        with proc.oneshot():
            total = proc.memory_info().rss
            if cumulative:
                for child in proc.children(recursive=True):
                    try:
                        total += child.memory_info().rss
                    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                        # Child exited while we were walking the tree
                        continue
        return total
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return 0


class SupervisorRPC:
    """
    SupervisorService backed by supervisord's XML-RPC interface.

    Uses the transport shipped with supervisor so both ``unix://`` and
    ``http://`` server URLs work. Memory figures come from psutil, since
    supervisord only reports pids.
    """

    def __init__(
        self,
        server_url: str,
        username: str | None = None,
        password: str | None = None,
        cumulative: bool = False,
    ) -> None:
        """
        Initialize the SupervisorRPC client.

        Args:
            server_url: supervisord URL, e.g. ``unix:///var/run/supervisor.sock``.
            username: Optional HTTP basic auth user.
            password: Optional HTTP basic auth password.
            cumulative: Include child processes in memory usage.
        """
        self._server_url = server_url
        self._cumulative = cumulative
        try:
            transport = SupervisorTransport(username or "", password or "", server_url)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        # The host part is ignored by SupervisorTransport
        self._proxy = xmlrpc.client.ServerProxy("http://127.0.0.1", transport=transport)

    @classmethod
    def from_environ(cls, environ: Mapping[str, str], cumulative: bool = False) -> "SupervisorRPC":
        """Create a client from the variables supervisord passes to event listeners."""
        server_url = environ.get("SUPERVISOR_SERVER_URL")
        if not server_url:
            raise ConfigurationError("SUPERVISOR_SERVER_URL is not set; use --server-url")
        return cls(
            server_url,
            username=environ.get("SUPERVISOR_USERNAME"),
            password=environ.get("SUPERVISOR_PASSWORD"),
            cumulative=cumulative,
        )

    @property
    def server_url(self) -> str:
        """Get the supervisord server URL."""
        return self._server_url

    def list_all_processes(self) -> list[ProcessSnapshot]:
        """Fetch the process roster in one getAllProcessInfo round-trip."""
        infos = self._call("getAllProcessInfo")
        return [self._to_snapshot(info) for info in infos]

    def restart_process(self, identifier: str) -> bool:
        """Stop then start a process, waiting for each step to complete."""
        try:
            self._call("stopProcess", identifier, True)
        except ServiceError as e:
            # Already stopped (e.g. crashed between roster fetch and restart)
            if not _is_fault(e, Faults.NOT_RUNNING):
                raise
            logger.debug("%s was not running before restart", identifier)
        return bool(self._call("startProcess", identifier, True))

    def _call(self, method: str, *args: Any) -> Any:
        """Invoke ``supervisor.<method>`` and wrap transport errors."""
        try:
            return getattr(self._proxy.supervisor, method)(*args)
        except xmlrpc.client.Fault as e:
            raise ServiceError(f"supervisor.{method} failed: {e.faultString}") from e
        except (OSError, http.client.HTTPException, xmlrpc.client.ProtocolError) as e:
            raise ServiceError(f"cannot reach supervisord at {self._server_url}: {e}") from e
        except ExpatError as e:
            raise ServiceError(f"unreadable reply from {self._server_url}: {e}") from e

    def _to_snapshot(self, info: dict[str, Any]) -> ProcessSnapshot:
        """Convert a getProcessInfo struct into a ProcessSnapshot."""
        running = info.get("state") == ProcessStates.RUNNING
        pid = info.get("pid") or 0
        return ProcessSnapshot(
            name=info.get("name", ""),
            group=info.get("group", ""),
            running=running,
            start=info.get("start") or 0,
            now=info.get("now") or 0,
            memory_usage=memory_usage(pid, self._cumulative) if running else 0,
            pid=pid,
        )


def _is_fault(error: ServiceError, code: int) -> bool:
    """Check if a ServiceError wraps an XML-RPC fault with the given code."""
    cause = error.__cause__
    return isinstance(cause, xmlrpc.client.Fault) and cause.faultCode == code
