# src/taskflow/llm/advisor.py

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from ..core.ports import ChatMessage, LLMClient
from ..tasks.task_models import TaskDraft, TaskPriority, merge_tags, normalize_tags
from .client import friendly_llm_error_message

logger = logging.getLogger(__name__)

MAX_SUGGESTED_TAGS = 3

INSIGHT_DISABLED = "AI not configured"
INSIGHT_NO_TASKS = "You have no tasks yet. Add one to get started!"
INSIGHT_EMPTY_REPLY = "Keep pushing forward!"
INSIGHT_ON_ERROR = "Focus on your highest priority task first."

ENHANCE_SYSTEM_PROMPT = """
You help fill in tasks for a personal task tracker.

Input: a short task title.

Reply with a single JSON object and nothing else:
{"description": "...", "priority": "low" | "medium" | "high", "tags": ["...", "..."]}

Rules:
- description: one or two concise, practical sentences.
- priority: pick from the urgency the title implies.
- tags: at most 3 short lowercase tags.
""".strip()

INSIGHT_SYSTEM_PROMPT = """
You are a productivity coach inside a task tracker.

Input: the user's current task titles as a JSON list.

Reply with exactly one short, motivating sentence about how to approach this
workload. Be witty but professional. No lists, no emojis.
""".strip()


class AdvisorError(RuntimeError):
    """The AI helper could not produce a usable suggestion."""


class AdvisorDisabledError(AdvisorError):
    def __init__(self) -> None:
        super().__init__("AI not configured. Set TASKFLOW_OPENROUTER_API_KEY to enable it.")


@dataclass(frozen=True, slots=True)
class TaskSuggestion:
    description: str | None = None
    priority: TaskPriority | None = None
    tags: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.description and self.priority is None and not self.tags


def _extract_json_object(text: str) -> Any:
    """Parse a JSON object from a model reply, tolerating ``` fences and chatter around it."""
    s = text.strip()
    start = s.find("{")
    end = s.rfind("}")
    if start == -1 or end < start:
        raise AdvisorError("AI reply did not contain a JSON object.")
    try:
        return json.loads(s[start : end + 1])
    except ValueError as e:
        raise AdvisorError("AI reply was not valid JSON.") from e


def parse_suggestion(text: str) -> TaskSuggestion:
    """Validate the shape of an enhance() reply."""
    if not text.strip():
        return TaskSuggestion()

    data = _extract_json_object(text)
    if not isinstance(data, dict):
        raise AdvisorError("AI reply must be a JSON object.")

    description = data.get("description")
    if description is not None and not isinstance(description, str):
        raise AdvisorError("AI reply field 'description' must be a string.")

    priority: TaskPriority | None = None
    raw_priority = data.get("priority")
    if raw_priority is not None:
        try:
            priority = TaskPriority(str(raw_priority).strip().lower())
        except ValueError:
            raise AdvisorError(f"AI reply has an unknown priority: {raw_priority!r}") from None

    raw_tags = data.get("tags")
    if raw_tags is None:
        raw_tags = []
    if not isinstance(raw_tags, list) or not all(isinstance(t, str) for t in raw_tags):
        raise AdvisorError("AI reply field 'tags' must be a list of strings.")

    return TaskSuggestion(
        description=(description or "").strip() or None,
        priority=priority,
        tags=normalize_tags(raw_tags)[:MAX_SUGGESTED_TAGS],
    )


def merge_suggestion(draft: TaskDraft, suggestion: TaskSuggestion) -> TaskDraft:
    """
    Apply a suggestion on top of what the user already typed.

    Tags are merged (existing first, duplicates dropped). Description and
    priority are replaced only when the suggestion actually carries a value.
    """
    return dataclasses.replace(
        draft,
        description=suggestion.description or draft.description,
        priority=suggestion.priority or draft.priority,
        tags=merge_tags(draft.tags, suggestion.tags),
    )


class TaskAdvisor:
    """
    Best-effort AI helper.

    - enhance(): raises AdvisorError (or AdvisorDisabledError) on failure; callers keep
      their form values and show the message.
    - daily_insight(): never raises; falls back to a static sentence.

    The LLM client is blocking, so calls run in a worker thread.
    """

    def __init__(self, llm: LLMClient | None) -> None:
        self._llm = llm

    @property
    def enabled(self) -> bool:
        return self._llm is not None

    def _collect(self, messages: list[ChatMessage], system_prompt: str) -> str:
        if self._llm is None:
            raise AdvisorDisabledError()
        return "".join(self._llm.stream_chat(messages, system_prompt))

    async def enhance(self, title: str) -> TaskSuggestion:
        if not self.enabled:
            raise AdvisorDisabledError()

        title = (title or "").strip()
        if not title:
            raise ValueError("title is required")

        messages: list[ChatMessage] = [{"role": "user", "content": f"Task title: {title}"}]
        try:
            text = await asyncio.to_thread(self._collect, messages, ENHANCE_SYSTEM_PROMPT)
        except Exception as e:
            logger.warning("AI enhance failed for title=%r: %s", title, e)
            raise AdvisorError(friendly_llm_error_message(e)) from e

        suggestion = parse_suggestion(text)
        logger.debug(
            "AI suggestion title=%r priority=%s tags=%s",
            title,
            suggestion.priority,
            suggestion.tags,
        )
        return suggestion

    async def daily_insight(self, titles: list[str]) -> str:
        if not self.enabled:
            return INSIGHT_DISABLED
        if not titles:
            return INSIGHT_NO_TASKS

        messages: list[ChatMessage] = [
            {"role": "user", "content": json.dumps(list(titles), ensure_ascii=False)}
        ]
        try:
            text = await asyncio.to_thread(self._collect, messages, INSIGHT_SYSTEM_PROMPT)
        except Exception as e:
            logger.info("AI daily insight unavailable (%s); using fallback", e)
            return INSIGHT_ON_ERROR

        return text.strip() or INSIGHT_EMPTY_REPLY
