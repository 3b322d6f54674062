# src/taskflow/tasks/task_store.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sqlite3
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, TypeVar

from .task_models import (
    Task,
    TaskDraft,
    TaskPatch,
    TaskPriority,
    TaskStatus,
    from_iso,
    normalize_tags,
    to_iso,
    utc_now,
)

logger = logging.getLogger(__name__)

_SEEDED_KEY = "seeded"
_TICK = timedelta(microseconds=1)

T = TypeVar("T")


class TaskStoreError(RuntimeError):
    """The store could not complete an operation (unavailable, corrupt, ...)."""


class TaskNotFoundError(TaskStoreError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


def _seed_drafts(now: datetime) -> list[tuple[TaskDraft, datetime]]:
    """Example tasks written on first use, newest first."""
    return [
        (
            TaskDraft(
                title="Review Internship Assignment",
                description="Go through the requirements for the Junior Dev task management API.",
                status=TaskStatus.IN_PROGRESS,
                priority=TaskPriority.HIGH,
                due_date=now + timedelta(days=1),
                tags=["internship", "planning"],
            ),
            now,
        ),
        (
            TaskDraft(
                title="Setup Project Structure",
                description="Initialize the project layout and tooling.",
                status=TaskStatus.DONE,
                priority=TaskPriority.MEDIUM,
                tags=["dev", "setup"],
            ),
            now - timedelta(days=1),
        ),
    ]


class TaskStore:
    """
    SQLite task store standing in for a remote backend.

    Every public call is a coroutine that first sleeps for `latency_seconds`
    (simulated network latency), then runs a short synchronous SQLite transaction.

    - get_all() returns most-recent-first (creation order, newest on top)
    - two example tasks are seeded on first use only (tracked in the meta table)
    - timestamps issued by one store instance are strictly increasing

    Each call opens its own SQLite connection.
    """

    def __init__(
        self,
        db_path: str | Path = "tasks.sqlite3",
        *,
        latency_seconds: float = 0.4,
        seed_examples: bool = True,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._latency = max(0.0, float(latency_seconds))
        self._last_ts: datetime | None = None
        # Writes run on worker threads; one at a time keeps seq and timestamps in step.
        self._write_lock = threading.Lock()

        self._ensure_schema()
        self._last_ts = self._max_stored_ts()
        if seed_examples:
            self._seed_once()
        logger.info("TaskStore ready db=%s latency=%.3fs", self._db_path, self._latency)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'todo',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    due_date TEXT,
                    tags TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("description", "TEXT NOT NULL DEFAULT ''")
            add_col("due_date", "TEXT")
            add_col("tags", "TEXT NOT NULL DEFAULT '[]'")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)")
            conn.commit()
        finally:
            conn.close()

    def _seed_once(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT value FROM meta WHERE key = ?", (_SEEDED_KEY,))
            if cur.fetchone() is not None:
                return

            cur.execute("SELECT COUNT(*) FROM tasks")
            (n,) = cur.fetchone()
            if int(n) == 0:
                now = self._next_ts()
                seeds = _seed_drafts(now)
                # Insert oldest first so the newest ends up on top.
                for idx, (draft, created_at) in reversed(list(enumerate(seeds, start=1))):
                    self._insert(cur, str(idx), draft, created_at=created_at, updated_at=now)
                logger.info("TaskStore seeded %d example tasks", len(seeds))

            cur.execute(
                "INSERT INTO meta(key, value) VALUES (?, ?)",
                (_SEEDED_KEY, to_iso(utc_now())),
            )
            conn.commit()
        finally:
            conn.close()

    def _max_stored_ts(self) -> datetime | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT MAX(created_at), MAX(updated_at) FROM tasks")
            row = cur.fetchone()
            stamps = [from_iso(v) for v in row if v]
            return max(stamps) if stamps else None
        finally:
            conn.close()

    def _next_ts(self) -> datetime:
        now = utc_now()
        if self._last_ts is not None and now <= self._last_ts:
            now = self._last_ts + _TICK
        self._last_ts = now
        return now

    @staticmethod
    def _tags_to_str(tags: list[str]) -> str:
        return json.dumps(tags, ensure_ascii=False)

    @staticmethod
    def _str_to_tags(s: str | None) -> list[str]:
        if not s:
            return []
        try:
            val = json.loads(s)
        except ValueError:
            logger.warning("Corrupt tags column, ignoring: %r", s)
            return []
        return normalize_tags(val) if isinstance(val, list) else []

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        data = dict(row)
        data["tags"] = self._str_to_tags(row["tags"])
        return Task.from_dict(data)

    def _insert(
        self,
        cur: sqlite3.Cursor,
        task_id: str,
        draft: TaskDraft,
        *,
        created_at: datetime,
        updated_at: datetime,
    ) -> None:
        cur.execute(
            """
            INSERT INTO tasks(
                id, title, description, status, priority,
                due_date, tags, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task_id,
                draft.title,
                draft.description,
                draft.status.value,
                draft.priority.value,
                to_iso(draft.due_date),
                self._tags_to_str(draft.tags),
                to_iso(created_at),
                to_iso(updated_at),
            ),
        )

    @staticmethod
    def _fetch_row(cur: sqlite3.Cursor, task_id: str) -> sqlite3.Row | None:
        cur.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
        return cur.fetchone()

    async def _delay(self) -> None:
        # Always yield to the loop, even with zero latency, like a real network call would.
        await asyncio.sleep(self._latency)

    # ---- sync operations (run on a worker thread after the simulated latency) ----

    def _get_all_sync(self) -> list[Task]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM tasks ORDER BY seq DESC")
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def _create_sync(self, draft: TaskDraft) -> Task:
        now = self._next_ts()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            task_id = uuid.uuid4().hex[:12]
            self._insert(cur, task_id, draft, created_at=now, updated_at=now)
            conn.commit()
            row = self._fetch_row(cur, task_id)
            if row is None:
                raise TaskStoreError(f"Inserted task vanished: {task_id}")
            logger.debug(
                "Task created id=%s status=%s priority=%s", task_id, draft.status, draft.priority
            )
            return self._row_to_task(row)
        finally:
            conn.close()

    def _update_sync(self, task_id: str, changes: dict[str, Any]) -> Task:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            row = self._fetch_row(cur, task_id)
            if row is None:
                raise TaskNotFoundError(task_id)

            current = self._row_to_task(row)
            now = max(self._next_ts(), current.created_at)

            cols: list[str] = []
            params: list[Any] = []
            for name, value in changes.items():
                cols.append(f"{name} = ?")
                if name in ("status", "priority"):
                    params.append(value.value)
                elif name == "due_date":
                    params.append(to_iso(value))
                elif name == "tags":
                    params.append(self._tags_to_str(value))
                else:
                    params.append(value)
            cols.append("updated_at = ?")
            params.append(to_iso(now))
            params.append(task_id)

            cur.execute(f"UPDATE tasks SET {', '.join(cols)} WHERE id = ?", params)
            conn.commit()

            updated = self._fetch_row(cur, task_id)
            if updated is None:
                raise TaskNotFoundError(task_id)
            logger.debug("Task updated id=%s fields=%s", task_id, sorted(changes))
            return self._row_to_task(updated)
        finally:
            conn.close()

    def _delete_sync(self, task_id: str) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            conn.commit()
            if cur.rowcount == 0:
                logger.debug("Delete of unknown task id=%s ignored", task_id)
            else:
                logger.debug("Task deleted id=%s", task_id)
        finally:
            conn.close()

    def _count_sync(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM tasks")
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def _locked(self, fn: Callable[..., T], *args: Any) -> T:
        with self._write_lock:
            return fn(*args)

    async def _run(self, fn: Callable[..., T], *args: Any, write: bool = False) -> T:
        await self._delay()
        try:
            if write:
                return await asyncio.to_thread(self._locked, fn, *args)
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            raise TaskStoreError("Task store unavailable") from e

    # ---- public API ----

    async def get_all(self) -> list[Task]:
        return await self._run(self._get_all_sync)

    async def create(self, draft: TaskDraft) -> Task:
        draft = draft.validated()
        return await self._run(self._create_sync, draft, write=True)

    async def update(self, task_id: str, patch: TaskPatch) -> Task:
        changes = patch.changes()
        return await self._run(self._update_sync, str(task_id), changes, write=True)

    async def delete(self, task_id: str) -> None:
        await self._run(self._delete_sync, str(task_id), write=True)

    async def count(self) -> int:
        return await self._run(self._count_sync)
