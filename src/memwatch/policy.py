"""Restart eligibility and memory threshold resolution."""

from memwatch.models import ProcessSnapshot, ThresholdConfig


def is_eligible(snapshot: ProcessSnapshot, min_uptime: int) -> bool:
    """
    Decide whether a process may be restarted at all.

    Stopped processes have no meaningful memory figure, and processes that
    started less than ``min_uptime`` seconds ago are still warming up.
    """
    if not snapshot.running:
        return False
    if snapshot.now - snapshot.start < min_uptime:
        return False
    return True


def resolve_threshold(name: str, group: str, config: ThresholdConfig) -> int:
    """
    Resolve the memory limit in bytes for a process.

    Every configured source is a candidate: the bare program name, the
    ``group:name`` key, the group and the ``any`` fallback. Unconfigured
    sources count as 0 and the largest candidate wins, so an explicit program
    limit below its group or fallback limit has no effect. A result of 0 means
    the process is not monitored.
    """
    candidates = (
        config.program.get(name, 0),
        config.program.get(f"{group}:{name}", 0),
        config.group.get(group, 0),
        config.any,
    )
    return abs(max(candidates))
