# src/taskflow/tasks/task_controller.py

from __future__ import annotations

"""
Mutation flow over the task store.

TaskController is the single owner of the in-memory task collection. The
collection only changes through four entry points (prepend, replace-by-id,
remove-by-id, replace-all), each applied in one step of the event loop after
an awaited store call completes. There are no locks: two flows may be in flight
at once and the last completion wins.

Status changes are optimistic: the in-memory record changes before the store
confirms. If the store rejects the change, the whole collection is reloaded
from the store (resync), which also discards any other unconfirmed local edits.
"""

import dataclasses
import logging

from ..core.ports import TaskRepo
from .task_models import Task, TaskDraft, TaskPatch, TaskStatus
from .task_view import TaskFilter, TaskStats, apply_view, task_stats

logger = logging.getLogger(__name__)


class TaskController:
    def __init__(self, repo: TaskRepo) -> None:
        self._repo = repo
        self._tasks: list[Task] = []

    # ---- read side ----

    @property
    def tasks(self) -> tuple[Task, ...]:
        """Snapshot of the collection in source order (most recent first)."""
        return tuple(self._tasks)

    def get(self, task_id: str) -> Task | None:
        for t in self._tasks:
            if t.id == task_id:
                return t
        return None

    def view(self, flt: TaskFilter) -> list[Task]:
        return apply_view(self._tasks, flt)

    def stats(self) -> TaskStats:
        return task_stats(self._tasks)

    def titles(self) -> list[str]:
        return [t.title for t in self._tasks]

    # ---- mutation entry points ----

    def _prepend(self, task: Task) -> None:
        self._tasks.insert(0, task)

    def _replace_by_id(self, task: Task) -> bool:
        for idx, t in enumerate(self._tasks):
            if t.id == task.id:
                self._tasks[idx] = task
                return True
        return False

    def _remove_by_id(self, task_id: str) -> bool:
        before = len(self._tasks)
        self._tasks = [t for t in self._tasks if t.id != task_id]
        return len(self._tasks) != before

    def _replace_all(self, tasks: list[Task]) -> None:
        self._tasks = list(tasks)

    # ---- flows ----

    async def load(self) -> list[Task]:
        """Fetch the full collection from the store and replace local state (resync)."""
        try:
            tasks = await self._repo.get_all()
        except Exception:
            logger.exception("Failed to load tasks from store")
            raise
        self._replace_all(tasks)
        logger.info("Loaded %d tasks", len(tasks))
        return list(tasks)

    async def create(self, draft: TaskDraft) -> Task:
        draft = draft.validated()
        created = await self._repo.create(draft)
        self._prepend(created)
        logger.info("Created task id=%s title=%r", created.id, created.title)
        return created

    async def update(self, task_id: str, patch: TaskPatch) -> Task:
        updated = await self._repo.update(task_id, patch)
        if self._replace_by_id(updated):
            logger.info("Updated task id=%s", task_id)
        else:
            logger.debug("Updated task id=%s is not loaded locally", task_id)
        return updated

    async def delete(self, task_id: str) -> None:
        await self._repo.delete(task_id)
        if self._remove_by_id(task_id):
            logger.info("Deleted task id=%s", task_id)
        else:
            logger.info("Delete for unknown task id=%s (no local change)", task_id)

    async def change_status(self, task_id: str, status: TaskStatus) -> Task:
        status = TaskStatus(status)
        snapshot = self.get(task_id)
        optimistic = None
        if snapshot is not None:
            optimistic = dataclasses.replace(snapshot, status=status)
            self._replace_by_id(optimistic)

        try:
            confirmed = await self._repo.update(task_id, TaskPatch(status=status))
        except Exception as err:
            logger.warning(
                "Status change failed id=%s status=%s (%s); resyncing from store",
                task_id,
                status,
                err,
            )
            try:
                await self.load()
            except Exception:
                logger.error("Resync after failed status change also failed id=%s", task_id)
                # Only roll back our own optimistic record, never a newer confirmed one.
                if snapshot is not None and self.get(task_id) is optimistic:
                    self._replace_by_id(snapshot)
            raise

        self._replace_by_id(confirmed)
        logger.info("Status changed id=%s -> %s", task_id, confirmed.status)
        return confirmed
