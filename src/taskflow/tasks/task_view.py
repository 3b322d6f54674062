# src/taskflow/tasks/task_view.py

"""
Derived view over the task collection.

apply_view() is a pure function: (tasks, TaskFilter) -> ordered display list.
Filtering is conjunctive (status, priority, title search); sorting dispatches on
an explicit SortKey -> key function table and is stable in both directions.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Literal

from .task_models import Task, TaskPriority, TaskStatus

ALL: Literal["all"] = "all"

StatusFilter = TaskStatus | Literal["all"]
PriorityFilter = TaskPriority | Literal["all"]


class SortKey(StrEnum):
    CREATED_AT = "created_at"
    DUE_DATE = "due_date"
    PRIORITY = "priority"

    @classmethod
    def parse(cls, raw: str) -> SortKey:
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            choices = ", ".join(k.value for k in cls)
            raise ValueError(f"Unknown sort key: {raw!r} (expected one of: {choices})") from None


class SortDir(StrEnum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, raw: str) -> SortDir:
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            raise ValueError(f"Unknown sort direction: {raw!r} (expected asc or desc)") from None

    def toggled(self) -> SortDir:
        return SortDir.DESC if self is SortDir.ASC else SortDir.ASC


def parse_status_filter(raw: str) -> StatusFilter:
    s = (raw or "").strip().lower()
    if s == ALL:
        return ALL
    try:
        return TaskStatus(s)
    except ValueError:
        raise ValueError(f"Unknown status: {raw!r}") from None


def parse_priority_filter(raw: str) -> PriorityFilter:
    s = (raw or "").strip().lower()
    if s == ALL:
        return ALL
    try:
        return TaskPriority(s)
    except ValueError:
        raise ValueError(f"Unknown priority: {raw!r}") from None


@dataclass(frozen=True, slots=True)
class TaskFilter:
    """Session filter/sort state. TaskFilter() is the reset state."""

    status: StatusFilter = ALL
    priority: PriorityFilter = ALL
    search: str = ""
    sort_by: SortKey = SortKey.CREATED_AT
    sort_dir: SortDir = SortDir.DESC

    def with_status(self, status: StatusFilter) -> TaskFilter:
        return replace(self, status=status)

    def with_priority(self, priority: PriorityFilter) -> TaskFilter:
        return replace(self, priority=priority)

    def with_search(self, search: str) -> TaskFilter:
        return replace(self, search=search or "")

    def with_sort(self, sort_by: SortKey, sort_dir: SortDir | None = None) -> TaskFilter:
        return replace(self, sort_by=sort_by, sort_dir=sort_dir or self.sort_dir)

    def toggled_direction(self) -> TaskFilter:
        return replace(self, sort_dir=self.sort_dir.toggled())

    def describe(self) -> str:
        parts = [f"status={self.status}", f"priority={self.priority}"]
        if self.search:
            parts.append(f"search={self.search!r}")
        parts.append(f"sort={self.sort_by}:{self.sort_dir}")
        return " ".join(parts)


# ---- sort keys ----

PRIORITY_RANK: dict[TaskPriority, int] = {
    TaskPriority.HIGH: 3,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 1,
}


def priority_key(task: Task) -> float:
    return float(PRIORITY_RANK[task.priority])


def due_date_key(task: Task) -> float:
    # Undated tasks sort as the lowest possible value.
    if task.due_date is None:
        return float("-inf")
    return task.due_date.timestamp()


def created_at_key(task: Task) -> float:
    return task.created_at.timestamp()


SORT_KEYS: dict[SortKey, Callable[[Task], float]] = {
    SortKey.CREATED_AT: created_at_key,
    SortKey.DUE_DATE: due_date_key,
    SortKey.PRIORITY: priority_key,
}


# ---- pipeline ----


def matches(task: Task, flt: TaskFilter) -> bool:
    if flt.status != ALL and task.status != flt.status:
        return False
    if flt.priority != ALL and task.priority != flt.priority:
        return False
    if flt.search and flt.search.casefold() not in task.title.casefold():
        return False
    return True


def apply_view(tasks: Iterable[Task], flt: TaskFilter) -> list[Task]:
    key = SORT_KEYS.get(flt.sort_by)
    if key is None:
        raise ValueError(f"Unknown sort key: {flt.sort_by!r}")
    visible = [t for t in tasks if matches(t, flt)]
    return sorted(visible, key=key, reverse=flt.sort_dir == SortDir.DESC)


@dataclass(frozen=True, slots=True)
class TaskStats:
    total: int
    todo: int
    in_progress: int
    done: int


def task_stats(tasks: Sequence[Task]) -> TaskStats:
    return TaskStats(
        total=len(tasks),
        todo=sum(1 for t in tasks if t.status == TaskStatus.TODO),
        in_progress=sum(1 for t in tasks if t.status == TaskStatus.IN_PROGRESS),
        done=sum(1 for t in tasks if t.status == TaskStatus.DONE),
    )
