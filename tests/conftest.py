"""Shared fixtures for access-governance tests."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from access_governance.audit.logger import AuditLogger

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock for deterministic timestamps."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_event(**overrides: object) -> dict[str, object]:
    event: dict[str, object] = {
        "user_id": "u1",
        "enterprise_id": "e1",
        "action": "read_dataset",
        "resource_type": "dataset",
        "resource_id": "ds-1",
        "result": "success",
        "ip_address": "10.0.0.1",
        "user_agent": "pytest",
    }
    event.update(overrides)
    return event


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def audit(clock: FakeClock) -> AuditLogger:
    return AuditLogger(clock=clock)


@pytest.fixture()
def event_factory():  # type: ignore[no-untyped-def]
    return make_event
