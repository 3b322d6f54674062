# tests/test_advisor.py

from __future__ import annotations

import json

import pytest

from taskflow.llm.advisor import (
    INSIGHT_DISABLED,
    INSIGHT_EMPTY_REPLY,
    INSIGHT_NO_TASKS,
    INSIGHT_ON_ERROR,
    AdvisorDisabledError,
    AdvisorError,
    TaskAdvisor,
    TaskSuggestion,
    merge_suggestion,
    parse_suggestion,
)
from taskflow.tasks.task_models import TaskDraft, TaskPriority

from .fakes import FakeLLMClient


def test_merge_keeps_existing_fields_and_appends_new_tags() -> None:
    draft = TaskDraft(title="Write report", description="my notes", priority=TaskPriority.LOW, tags=["urgent"])

    merged = merge_suggestion(draft, TaskSuggestion(tags=["work"]))

    assert merged.tags == ["urgent", "work"]
    assert merged.description == "my notes"
    assert merged.priority == TaskPriority.LOW
    assert draft.tags == ["urgent"]


def test_merge_overwrites_returned_fields_and_drops_duplicate_tags() -> None:
    draft = TaskDraft(title="Write report", tags=["work", "urgent"])
    suggestion = TaskSuggestion(description="Draft the Q3 report.", priority=TaskPriority.HIGH, tags=["work", "docs"])

    merged = merge_suggestion(draft, suggestion)

    assert merged.description == "Draft the Q3 report."
    assert merged.priority == TaskPriority.HIGH
    assert merged.tags == ["work", "urgent", "docs"]


def test_parse_suggestion_tolerates_fences_and_caps_tags() -> None:
    reply = '```json\n{"description": " Do it. ", "priority": "High", "tags": ["a", "b", "a", "c", "d"]}\n```'
    s = parse_suggestion(reply)
    assert s.description == "Do it."
    assert s.priority == TaskPriority.HIGH
    assert s.tags == ["a", "b", "c"]


@pytest.mark.parametrize(
    "reply",
    [
        "no json here",
        '{"priority": "urgent"}',
        '{"tags": "work"}',
        '{"description": 42}',
        "[1, 2]",
        '{"description": "x",',
    ],
)
def test_parse_suggestion_rejects_bad_shapes(reply: str) -> None:
    with pytest.raises(AdvisorError):
        parse_suggestion(reply)


def test_parse_suggestion_partial_and_empty() -> None:
    assert parse_suggestion("").is_empty
    s = parse_suggestion('{"tags": ["work"]}')
    assert s == TaskSuggestion(tags=["work"])


@pytest.mark.asyncio
async def test_enhance_returns_validated_suggestion() -> None:
    llm = FakeLLMClient(json.dumps({"description": "Outline first.", "priority": "medium", "tags": ["work"]}))
    advisor = TaskAdvisor(llm)

    s = await advisor.enhance("  Write report ")

    assert s.priority == TaskPriority.MEDIUM
    assert s.tags == ["work"]
    messages, system_prompt = llm.calls[0]
    assert "Write report" in messages[-1]["content"]
    assert "JSON" in system_prompt


@pytest.mark.asyncio
async def test_enhance_disabled_fails_immediately() -> None:
    advisor = TaskAdvisor(None)
    assert advisor.enabled is False
    with pytest.raises(AdvisorDisabledError):
        await advisor.enhance("Write report")


@pytest.mark.asyncio
async def test_enhance_surfaces_llm_failure() -> None:
    advisor = TaskAdvisor(FakeLLMClient(error=RuntimeError("LLM is rate-limited. Try again later.")))
    with pytest.raises(AdvisorError, match="rate-limited"):
        await advisor.enhance("Write report")


@pytest.mark.asyncio
async def test_enhance_rejects_blank_title() -> None:
    llm = FakeLLMClient()
    with pytest.raises(ValueError):
        await TaskAdvisor(llm).enhance("   ")
    assert llm.calls == []


@pytest.mark.asyncio
async def test_daily_insight_fallbacks() -> None:
    assert await TaskAdvisor(None).daily_insight(["a"]) == INSIGHT_DISABLED

    llm = FakeLLMClient("unused")
    assert await TaskAdvisor(llm).daily_insight([]) == INSIGHT_NO_TASKS
    assert llm.calls == []

    failing = TaskAdvisor(FakeLLMClient(error=RuntimeError("All LLM models failed.")))
    assert await failing.daily_insight(["a"]) == INSIGHT_ON_ERROR

    assert await TaskAdvisor(FakeLLMClient("   ")).daily_insight(["a"]) == INSIGHT_EMPTY_REPLY


@pytest.mark.asyncio
async def test_daily_insight_sends_titles() -> None:
    llm = FakeLLMClient("  Start with the report, coast through the rest.  ")
    insight = await TaskAdvisor(llm).daily_insight(["Write report", "Call mom"])

    assert insight == "Start with the report, coast through the rest."
    messages, _ = llm.calls[0]
    assert json.loads(messages[0]["content"]) == ["Write report", "Call mom"]
