"""Shared fixtures: a manual-clock scheduler and small row sets."""

from collections.abc import Callable
from typing import Any

import pytest

from reflex_query_table.models import filter_field


class FakeTimer:
    def __init__(self, due_ms: int, callback: Callable[[], Any]) -> None:
        self.due_ms = due_ms
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Scheduler with an integer millisecond clock advanced by hand."""

    def __init__(self) -> None:
        self.now_ms = 0
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[[], Any]) -> FakeTimer:
        timer = FakeTimer(self.now_ms + round(delay * 1000), callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, ms: int) -> None:
        self.now_ms += ms
        due = sorted(
            (t for t in self.active if t.due_ms <= self.now_ms),
            key=lambda t: t.due_ms,
        )
        for timer in due:
            self.timers.remove(timer)
            if not timer.cancelled:
                timer.callback()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def fields():
    return [
        filter_field("name", "Name"),
        filter_field(
            "status",
            "Status",
            options=[
                {"label": "Active", "value": "active"},
                {"label": "Inactive", "value": "inactive"},
            ],
        ),
    ]


@pytest.fixture
def page_rows() -> dict[int, list[dict[str, Any]]]:
    return {
        0: [{"id": "1", "name": "Ann"}, {"id": "2", "name": "Bo"}],
        1: [{"id": "3", "name": "Cy"}, {"id": "4", "name": "Di"}],
    }
