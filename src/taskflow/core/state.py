# src/taskflow/core/state.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from ..tasks.task_controller import TaskController
from ..tasks.task_view import TaskFilter
from .ports import Advisor, TaskRepo


@dataclass
class AppState:
    # Settings object (real Settings or a test namespace with the same attributes).
    settings: Any

    store: TaskRepo
    controller: TaskController
    advisor: Advisor

    # Session-owned filter/sort state; reset only by an explicit command.
    task_filter: TaskFilter = field(default_factory=TaskFilter)
    insight: str = ""

    # Background mutations (optimistic status changes) still in flight.
    pending: set[asyncio.Task[Any]] = field(default_factory=set)

    def track(self, job: asyncio.Task[Any]) -> None:
        self.pending.add(job)
        job.add_done_callback(self.pending.discard)
