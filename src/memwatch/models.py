"""Data models for memwatch."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from memwatch.errors import ConfigurationError


@dataclass(slots=True, frozen=True)
class ProcessSnapshot:
    """Immutable snapshot of one supervised process."""

    name: str
    group: str
    running: bool
    start: int  # Epoch seconds
    now: int  # Epoch seconds, as reported by the supervisor
    memory_usage: int  # Bytes
    pid: int = 0

    @property
    def identifier(self) -> str:
        """Qualified ``group:name`` identifier used by supervisord."""
        return f"{self.group}:{self.name}"

    @property
    def uptime(self) -> int:
        """Seconds elapsed since the process was started."""
        return self.now - self.start


@dataclass(slots=True, frozen=True)
class ThresholdConfig:
    """
    Memory thresholds and restart guard for the watchdog.

    ``program`` keys are either a bare program name or ``group:name``.
    All thresholds are in bytes; an ``any`` of 0 disables the fallback limit.
    """

    program: Mapping[str, int] = field(default_factory=dict)
    group: Mapping[str, int] = field(default_factory=dict)
    any: int = 0
    uptime: int = 60
    name: str | None = None
    cumulative: bool = False

    def __post_init__(self) -> None:
        if self.uptime < 0:
            raise ConfigurationError(f"uptime must be >= 0, got {self.uptime}")
        # Frozen dataclass: bypass __setattr__ to store read-only copies
        object.__setattr__(self, "program", MappingProxyType(dict(self.program)))
        object.__setattr__(self, "group", MappingProxyType(dict(self.group)))


@dataclass(slots=True, frozen=True)
class RestartOutcome:
    """Result of a single restart attempt, handed to the reporter."""

    process_identifier: str
    succeeded: bool
    memory_at_restart: int
    subject: str
    message: str
    severity: str = "info"
    error: str | None = None


@dataclass(slots=True, frozen=True)
class TickEvent:
    """An event delivered by the supervision service."""

    headers: Mapping[str, str] = field(default_factory=dict)
    payload: str = ""

    @property
    def name(self) -> str:
        """Event name from the ``eventname`` header."""
        return self.headers.get("eventname", "")

    @property
    def is_tick(self) -> bool:
        """Check if this is one of the periodic TICK_* events."""
        return "TICK" in self.name


@dataclass(slots=True, frozen=True)
class Assessment:
    """Watchdog verdict for one process in one tick."""

    snapshot: ProcessSnapshot
    eligible: bool
    threshold: int

    @property
    def exceeded(self) -> bool:
        """Check if the process should be restarted."""
        return self.eligible and self.threshold > 0 and self.snapshot.memory_usage > self.threshold


@dataclass(slots=True)
class TickReport:
    """Everything the watchdog saw and did during one tick."""

    event: TickEvent
    assessments: list[Assessment]
    outcomes: list[RestartOutcome]
