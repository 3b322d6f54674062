# src/taskflow/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The controller and the advisor depend on Protocols instead of concrete
implementations, so the SQLite store and the OpenRouter client stay swappable
and tests can use in-memory fakes.
"""

from typing import TYPE_CHECKING, Iterable, Protocol

if TYPE_CHECKING:
    from ..llm.advisor import TaskSuggestion
    from ..tasks.task_models import Task, TaskDraft, TaskPatch

ChatMessage = dict[str, str]
# OpenAI-style chat messages: {"role": "...", "content": "..."}.


class LLMClient(Protocol):
    """Streaming chat completion client (OpenAI/OpenRouter-compatible)."""
    def stream_chat(self, messages: list[ChatMessage], system_prompt: str) -> Iterable[str]: ...


class TaskRepo(Protocol):
    """
    Asynchronous task store.

    update() raises TaskNotFoundError for unknown ids; delete() is idempotent.
    """

    async def get_all(self) -> list[Task]: ...
    async def create(self, draft: TaskDraft) -> Task: ...
    async def update(self, task_id: str, patch: TaskPatch) -> Task: ...
    async def delete(self, task_id: str) -> None: ...
    async def count(self) -> int: ...


class Advisor(Protocol):
    """AI helper: drafts task fields from a title and writes a one-line daily insight."""

    @property
    def enabled(self) -> bool: ...

    async def enhance(self, title: str) -> TaskSuggestion: ...
    async def daily_insight(self, titles: list[str]) -> str: ...
