"""Memory watchdog control loop."""

import logging
from collections.abc import Callable

from memwatch.models import (
    Assessment,
    ProcessSnapshot,
    RestartOutcome,
    ThresholdConfig,
    TickEvent,
    TickReport,
)
from memwatch.policy import is_eligible, resolve_threshold
from memwatch.service import SupervisorService

logger = logging.getLogger(__name__)

Reporter = Callable[[RestartOutcome], None]


def log_outcome(outcome: RestartOutcome) -> None:
    """Default reporter: write the outcome to the memwatch logger."""
    logger.info(
        outcome.message,
        extra={"subject": outcome.subject, "identifier": outcome.process_identifier},
    )


class MemoryWatchdog:
    """
    Restarts supervised processes that outgrow their memory threshold.

    The watchdog holds no state between ticks apart from its configuration.
    Every tick fetches a fresh roster from the service and evaluates each
    process in order; one process failing to restart never affects the others.
    """

    def __init__(
        self,
        service: SupervisorService,
        config: ThresholdConfig,
        reporter: Reporter | None = None,
    ) -> None:
        """
        Initialize the MemoryWatchdog.

        Args:
            service: Supervision service used to list and restart processes.
            config: Thresholds, minimum uptime and instance name.
            reporter: Receives one RestartOutcome per restart attempt.
        """
        self._service = service
        self._config = config
        self._reporter = reporter or log_outcome

    @property
    def config(self) -> ThresholdConfig:
        """Get the watchdog configuration."""
        return self._config

    def on_tick(self, event: TickEvent) -> int:
        """
        Handle an event from the supervision service.

        Always returns 0: restart failures are only visible through the
        reported outcomes.
        """
        self.handle(event)
        return 0

    def handle(self, event: TickEvent) -> TickReport | None:
        """Process a tick and return its report, or None if nothing ran."""
        if not event.is_tick:
            logger.debug("Ignoring event %r", event.name)
            return None

        try:
            roster = self._service.list_all_processes()
        except Exception as e:
            # Transport failures of any kind skip the tick
            logger.warning("Skipping %s: cannot fetch process list: %s", event.name, e)
            return None

        assessments, outcomes = self.sweep(roster)
        return TickReport(event=event, assessments=assessments, outcomes=outcomes)

    def sweep(
        self, roster: list[ProcessSnapshot]
    ) -> tuple[list[Assessment], list[RestartOutcome]]:
        """Assess every process in roster order and restart the offenders."""
        assessments: list[Assessment] = []
        outcomes: list[RestartOutcome] = []

        for snapshot in roster:
            assessment = self.assess(snapshot)
            assessments.append(assessment)
            if assessment.exceeded:
                outcomes.append(self.restart(snapshot))

        return assessments, outcomes

    def assess(self, snapshot: ProcessSnapshot) -> Assessment:
        """Apply the eligibility filter and threshold policy to one process."""
        eligible = is_eligible(snapshot, self._config.uptime)
        threshold = resolve_threshold(snapshot.name, snapshot.group, self._config)
        return Assessment(snapshot=snapshot, eligible=eligible, threshold=threshold)

    def restart(self, snapshot: ProcessSnapshot) -> RestartOutcome:
        """
        Restart a process and report the result.

        Any exception from the service is converted into a failed outcome.
        """
        error = None
        try:
            succeeded = bool(self._service.restart_process(snapshot.identifier))
        except Exception as e:
            logger.warning("Restart of %s raised: %s", snapshot.identifier, e)
            succeeded = False
            error = str(e) or e.__class__.__name__

        outcome = self._build_outcome(snapshot, succeeded, error)
        try:
            self._reporter(outcome)
        except Exception:
            logger.exception("Reporter failed for %s", snapshot.identifier)
        return outcome

    def _build_outcome(
        self, snapshot: ProcessSnapshot, succeeded: bool, error: str | None
    ) -> RestartOutcome:
        """Compose the subject line and message for a restart attempt."""
        tag = "[Success]" if succeeded else "[Failure]"
        prefix = f"{self._config.name}/" if self._config.name else ""
        subject = f"{tag}({prefix}{snapshot.identifier})"
        message = f"{subject} Process restart at {snapshot.memory_usage} bytes"
        return RestartOutcome(
            process_identifier=snapshot.identifier,
            succeeded=succeeded,
            memory_at_restart=snapshot.memory_usage,
            subject=subject,
            message=message,
            error=error,
        )
