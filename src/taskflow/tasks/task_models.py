# src/taskflow/tasks/task_models.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, fields
from datetime import UTC, date, datetime, time
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.TODO
        try:
            return cls(raw)
        except ValueError:
            return cls.TODO

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskPriority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except ValueError:
            return cls.MEDIUM


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(ts: datetime | None) -> str | None:
    if ts is None:
        return None
    return ts.astimezone(UTC).isoformat()


def from_iso(raw: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not raw:
        return None
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_due_date(raw: str | None) -> datetime | None:
    """
    Parse user input for a due date.

    Accepts "YYYY-MM-DD" (taken as midnight UTC) or a full ISO timestamp.
    Empty input and "none" mean "no due date".
    """
    s = (raw or "").strip()
    if not s or s.lower() == "none":
        return None
    if len(s) == 10:
        return datetime.combine(date.fromisoformat(s), time.min, tzinfo=UTC)
    return from_iso(s)


# ---- tags ----


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """Strip, drop empties and dedupe (case-sensitive), keeping first occurrence order."""
    out: list[str] = []
    for raw in tags or ():
        tag = str(raw).strip()
        if tag and tag not in out:
            out.append(tag)
    return out


def merge_tags(existing: Iterable[str], extra: Iterable[str]) -> list[str]:
    return normalize_tags([*existing, *extra])


def parse_tags(raw: str | None) -> list[str]:
    """Split free-text tag entry on commas and newlines."""
    if not raw:
        return []
    return normalize_tags(raw.replace("\n", ",").split(","))


def add_tag(tags: list[str], tag: str) -> list[str]:
    return merge_tags(tags, [tag])


def remove_tag(tags: list[str], tag: str) -> list[str]:
    return [t for t in tags if t != tag]


# ---- records ----


@dataclass(slots=True)
class Task:
    id: str
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    due_date: datetime | None
    tags: list[str]
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "due_date": to_iso(self.due_date),
            "tags": list(self.tags),
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        created_at = from_iso(data.get("created_at")) or utc_now()
        updated_at = from_iso(data.get("updated_at")) or created_at
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            status=TaskStatus.from_db(data.get("status")),
            priority=TaskPriority.from_db(data.get("priority")),
            due_date=from_iso(data.get("due_date")),
            tags=normalize_tags(data.get("tags") or []),
            created_at=created_at,
            updated_at=max(updated_at, created_at),
        )


@dataclass(slots=True)
class TaskDraft:
    """User-supplied fields of a task, before the store assigns id and timestamps."""

    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    tags: list[str] = field(default_factory=list)

    def validated(self) -> TaskDraft:
        title = (self.title or "").strip()
        if not title:
            raise ValueError("title is required")
        return TaskDraft(
            title=title,
            description=(self.description or "").strip(),
            status=TaskStatus(self.status),
            priority=TaskPriority(self.priority),
            due_date=self.due_date,
            tags=normalize_tags(self.tags),
        )

    @classmethod
    def from_task(cls, task: Task) -> TaskDraft:
        return cls(
            title=task.title,
            description=task.description,
            status=task.status,
            priority=task.priority,
            due_date=task.due_date,
            tags=list(task.tags),
        )


class _Unset:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(slots=True)
class TaskPatch:
    """
    Partial update. Fields left as UNSET are not touched.

    due_date=None explicitly clears the due date.
    """

    title: Any = UNSET
    description: Any = UNSET
    status: Any = UNSET
    priority: Any = UNSET
    due_date: Any = UNSET
    tags: Any = UNSET

    def changes(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is UNSET:
                continue
            if f.name == "title":
                value = str(value).strip()
                if not value:
                    raise ValueError("title must not be empty")
            elif f.name == "description":
                value = str(value or "").strip()
            elif f.name == "status":
                value = TaskStatus(value)
            elif f.name == "priority":
                value = TaskPriority(value)
            elif f.name == "tags":
                value = normalize_tags(value)
            out[f.name] = value
        return out

    @classmethod
    def from_draft(cls, draft: TaskDraft) -> TaskPatch:
        """Full replacement of every user-editable field (the edit form path)."""
        return cls(
            title=draft.title,
            description=draft.description,
            status=draft.status,
            priority=draft.priority,
            due_date=draft.due_date,
            tags=list(draft.tags),
        )
