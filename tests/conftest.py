"""Shared fixtures for memwatch tests."""

import pytest

from memwatch.errors import ServiceError
from memwatch.models import ProcessSnapshot


def make_snapshot(
    name: str = "web",
    group: str = "app",
    running: bool = True,
    start: int = 0,
    now: int = 120,
    memory_usage: int = 600,
    pid: int = 4242,
) -> ProcessSnapshot:
    """Build a ProcessSnapshot with sensible defaults."""
    return ProcessSnapshot(
        name=name,
        group=group,
        running=running,
        start=start,
        now=now,
        memory_usage=memory_usage,
        pid=pid,
    )


class FakeService:
    """In-memory SupervisorService recording every call."""

    def __init__(self, roster=None, fail_list=False, restart_results=None):
        self.roster = list(roster or [])
        self.fail_list = fail_list
        # identifier -> bool result or exception instance to raise
        self.restart_results = dict(restart_results or {})
        self.list_calls = 0
        self.restarted: list[str] = []

    def list_all_processes(self):
        self.list_calls += 1
        if self.fail_list:
            raise ServiceError("connection refused")
        return list(self.roster)

    def restart_process(self, identifier):
        self.restarted.append(identifier)
        result = self.restart_results.get(identifier, True)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def fake_service():
    """An empty FakeService."""
    return FakeService()
