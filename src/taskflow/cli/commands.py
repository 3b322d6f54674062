# src/taskflow/cli/commands.py

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import shlex
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

from ..core.state import AppState
from ..llm.advisor import AdvisorError, TaskSuggestion, merge_suggestion
from ..tasks.task_models import (
    Task,
    TaskDraft,
    TaskPatch,
    TaskPriority,
    TaskStatus,
    add_tag,
    parse_due_date,
    parse_tags,
    remove_tag,
)
from ..tasks.task_store import TaskNotFoundError, TaskStoreError
from ..tasks.task_view import (
    SortDir,
    SortKey,
    TaskFilter,
    parse_priority_filter,
    parse_status_filter,
)

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[
    [AppState, list[str], CommandEmitter | None], "str | Awaitable[str]"
]

logger = logging.getLogger(__name__)


def split_command(text: str) -> list[str]:
    """
    Split a command line on whitespace.

    Double quotes group words ("two words"). Apostrophes and backslashes are
    literal, so free text like `Don't forget` needs no quoting. An unbalanced
    double quote falls back to a plain whitespace split.
    """
    lexer = shlex.shlex(text, posix=True)
    lexer.whitespace_split = True
    lexer.quotes = '"'
    lexer.escape = ""
    lexer.commenters = ""
    try:
        return list(lexer)
    except ValueError:
        return text.split()


class CommandRegistry:
    """Slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = split_command(line[1:])
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        result = handler(state, args, emit)
        if inspect.isawaitable(result):
            result = await result
        return result

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- argument helpers ----

_VALUE_OPTIONS = {"title", "desc", "priority", "status", "due", "tags"}
_FLAG_OPTIONS = {"ai"}


@dataclass(slots=True)
class ParsedArgs:
    positional: list[str] = field(default_factory=list)
    options: dict[str, str] = field(default_factory=dict)
    flags: set[str] = field(default_factory=set)


def parse_args(args: list[str]) -> ParsedArgs:
    """Split ["Fix", "bug", "--priority", "high", "--ai"] into positional words, options and flags."""
    out = ParsedArgs()
    it = iter(args)
    for arg in it:
        if not arg.startswith("--"):
            out.positional.append(arg)
            continue
        name = arg[2:].lower()
        if name in _FLAG_OPTIONS:
            out.flags.add(name)
        elif name in _VALUE_OPTIONS:
            value = next(it, None)
            if value is None:
                raise ValueError(f"Option --{name} needs a value.")
            out.options[name] = value
        else:
            raise ValueError(f"Unknown option: --{name}")
    return out


def _apply_options(draft: TaskDraft, opts: dict[str, str]) -> TaskDraft:
    if "title" in opts:
        draft.title = opts["title"]
    if "desc" in opts:
        draft.description = opts["desc"]
    if "priority" in opts:
        draft.priority = TaskPriority(opts["priority"].lower())
    if "status" in opts:
        draft.status = TaskStatus(opts["status"].lower())
    if "due" in opts:
        draft.due_date = parse_due_date(opts["due"])
    if "tags" in opts:
        draft.tags = parse_tags(opts["tags"])
    return draft


def _patch_from_options(opts: dict[str, str]) -> TaskPatch:
    patch = TaskPatch()
    if "title" in opts:
        patch.title = opts["title"]
    if "desc" in opts:
        patch.description = opts["desc"]
    if "priority" in opts:
        patch.priority = TaskPriority(opts["priority"].lower())
    if "status" in opts:
        patch.status = TaskStatus(opts["status"].lower())
    if "due" in opts:
        patch.due_date = parse_due_date(opts["due"])
    if "tags" in opts:
        patch.tags = parse_tags(opts["tags"])
    return patch


# ---- rendering ----


def format_task(task: Task) -> str:
    due = f"  due {task.due_date:%Y-%m-%d}" if task.due_date else ""
    shown = " ".join(f"#{t}" for t in task.tags[:2])
    more = f" +{len(task.tags) - 2}" if len(task.tags) > 2 else ""
    tags = f"  {shown}{more}" if shown else ""
    return f"[{task.id}] {task.status.label.upper():<11} {task.priority.value:<6} {task.title}{due}{tags}"


def format_task_details(task: Task) -> str:
    lines = [
        f"{task.title}  [{task.id}]",
        f"  status:   {task.status.label}",
        f"  priority: {task.priority.value}",
        f"  due:      {task.due_date:%Y-%m-%d}" if task.due_date else "  due:      -",
        f"  tags:     {', '.join(task.tags) or '-'}",
        f"  created:  {task.created_at:%Y-%m-%d %H:%M:%S} UTC",
        f"  updated:  {task.updated_at:%Y-%m-%d %H:%M:%S} UTC",
    ]
    if task.description:
        lines.append(f"  {task.description}")
    return "\n".join(lines)


def format_suggestion(s: TaskSuggestion) -> str:
    if s.is_empty:
        return "AI had no suggestions."
    lines = ["AI suggestion:"]
    if s.description:
        lines.append(f"  description: {s.description}")
    if s.priority:
        lines.append(f"  priority:    {s.priority.value}")
    if s.tags:
        lines.append(f"  tags:        {', '.join(s.tags)}")
    return "\n".join(lines)


def _store_failure(e: TaskStoreError) -> str:
    return f"Operation failed: {e}"


# ---- handlers ----


def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


def cmd_list(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    flt = state.task_filter
    rows = state.controller.view(flt)
    if not rows:
        return f"No tasks found ({flt.describe()}). Use /add to create one."
    lines = [f"{len(rows)} task(s) ({flt.describe()}):"]
    lines.extend(format_task(t) for t in rows)
    return "\n".join(lines)


def cmd_show(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /show <id>"
    task = state.controller.get(args[0])
    if task is None:
        return f"Unknown task: {args[0]}"
    return format_task_details(task)


async def _ai_fill(state: AppState, draft: TaskDraft) -> TaskDraft:
    """Merge AI suggestions into the draft. Advisor failures propagate."""
    suggestion = await state.advisor.enhance(draft.title)
    return merge_suggestion(draft, suggestion)


async def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /add <title> [--desc text] [--priority low|medium|high] [--status todo|in_progress|done]
                 [--due YYYY-MM-DD] [--tags a,b] [--ai]
    """
    try:
        parsed = parse_args(args)
        draft = _apply_options(TaskDraft(title=" ".join(parsed.positional)), parsed.options)
        if "ai" in parsed.flags:
            draft = await _ai_fill(state, draft)
        task = await state.controller.create(draft)
    except AdvisorError as e:
        return f"AI fill failed: {e}\nTask not created."
    except TaskStoreError as e:
        return _store_failure(e)
    except ValueError as e:
        return f"Invalid task: {e}"
    return f"Created:\n{format_task(task)}"


async def cmd_edit(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/edit <id> [--title ..] [--desc ..] [--priority ..] [--status ..] [--due YYYY-MM-DD|none] [--tags a,b] [--ai]"""
    if not args:
        return "Usage: /edit <id> [--title ..] [--desc ..] [--priority ..] [--due ..] [--tags ..] [--ai]"
    task_id = args[0]
    current = state.controller.get(task_id)

    try:
        parsed = parse_args(args[1:])
        if "ai" in parsed.flags:
            if current is None:
                return f"Unknown task: {task_id}"
            draft = _apply_options(TaskDraft.from_task(current), parsed.options)
            patch = TaskPatch.from_draft(await _ai_fill(state, draft))
        else:
            patch = _patch_from_options(parsed.options)
            if not patch.changes():
                return "Nothing to change."
        task = await state.controller.update(task_id, patch)
    except TaskNotFoundError:
        return f"Unknown task: {task_id}"
    except AdvisorError as e:
        return f"AI fill failed: {e}\nTask not changed."
    except TaskStoreError as e:
        return _store_failure(e)
    except ValueError as e:
        return f"Invalid change: {e}"
    return f"Updated:\n{format_task(task)}"


async def _finish_status_change(
    state: AppState, task_id: str, status: TaskStatus, emit: CommandEmitter | None
) -> None:
    try:
        task = await state.controller.change_status(task_id, status)
    except TaskStoreError as e:
        msg = f"Status change for {task_id} failed ({e}); reloaded tasks from the store."
    except Exception:
        logger.exception("Background status change crashed id=%s", task_id)
        msg = f"Status change for {task_id} failed; see the log for details."
    else:
        msg = f"Saved: [{task.id}] is now {task.status.label}."
    if emit:
        emit(msg)


async def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/status <id> <todo|in_progress|done>: applied locally at once, saved in the background."""
    if len(args) < 2:
        return "Usage: /status <id> <todo|in_progress|done>"
    task_id = args[0]
    try:
        status = TaskStatus(args[1].lower())
    except ValueError:
        return f"Unknown status: {args[1]}"

    before = state.controller.get(task_id)
    if before is None:
        return f"Unknown task: {task_id}"

    state.track(asyncio.create_task(_finish_status_change(state, task_id, status, emit)))
    # Let the flow apply its optimistic write before replying.
    await asyncio.sleep(0)
    return f"[{task_id}] {before.status.label} -> {status.label} (saving...)"


async def cmd_done(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /done <id>"
    return await cmd_status(state, [args[0], TaskStatus.DONE.value], emit)


async def cmd_delete(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /delete <id>"
    task_id = args[0]
    try:
        await state.controller.delete(task_id)
    except TaskStoreError as e:
        return _store_failure(e)
    return f"Deleted {task_id}."


async def cmd_tag(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/tag <id> +tag -tag ... (a bare word adds)"""
    if len(args) < 2:
        return "Usage: /tag <id> +tag|-tag ..."
    task_id = args[0]
    current = state.controller.get(task_id)
    if current is None:
        return f"Unknown task: {task_id}"

    tags = list(current.tags)
    for item in args[1:]:
        if item.startswith("-"):
            tags = remove_tag(tags, item[1:].strip())
        else:
            tags = add_tag(tags, item.removeprefix("+"))
    if tags == current.tags:
        return "Nothing to change."

    try:
        task = await state.controller.update(task_id, TaskPatch(tags=tags))
    except TaskNotFoundError:
        return f"Unknown task: {task_id}"
    except TaskStoreError as e:
        return _store_failure(e)
    return f"Tags: {', '.join(task.tags) or '-'}"


def cmd_export(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/export [path]: current view as JSON, printed or written to a file."""
    rows = state.controller.view(state.task_filter)
    payload = json.dumps([t.to_dict() for t in rows], ensure_ascii=False, indent=2)
    if not args:
        return payload
    path = Path(args[0]).expanduser()
    try:
        path.write_text(payload + "\n", encoding="utf-8")
    except OSError as e:
        logger.warning("Export to %s failed: %s", path, e)
        return f"Export failed: {e}"
    return f"Exported {len(rows)} task(s) to {path}."


def cmd_filter(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/filter status <value|all> | /filter priority <value|all>"""
    if len(args) < 2:
        return "Usage: /filter status <todo|in_progress|done|all> | /filter priority <low|medium|high|all>"
    field_name, value = args[0].lower(), args[1]
    try:
        if field_name == "status":
            state.task_filter = state.task_filter.with_status(parse_status_filter(value))
        elif field_name == "priority":
            state.task_filter = state.task_filter.with_priority(parse_priority_filter(value))
        else:
            return f"Unknown filter: {field_name}"
    except ValueError as e:
        return str(e)
    return f"Filter: {state.task_filter.describe()}"


def cmd_search(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    state.task_filter = state.task_filter.with_search(" ".join(args))
    return f"Filter: {state.task_filter.describe()}"


def cmd_sort(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /sort <created_at|due_date|priority> [asc|desc]"
    try:
        key = SortKey.parse(args[0])
        direction = SortDir.parse(args[1]) if len(args) > 1 else None
    except ValueError as e:
        return str(e)
    state.task_filter = state.task_filter.with_sort(key, direction)
    return f"Filter: {state.task_filter.describe()}"


def cmd_dir(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    state.task_filter = state.task_filter.toggled_direction()
    return f"Filter: {state.task_filter.describe()}"


def cmd_reset(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    state.task_filter = TaskFilter()
    return f"Filter: {state.task_filter.describe()}"


def cmd_stats(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    s = state.controller.stats()
    return f"Total: {s.total}  To do: {s.todo}  In progress: {s.in_progress}  Completed: {s.done}"


async def cmd_insight(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    state.insight = await state.advisor.daily_insight(state.controller.titles())
    return f"AI Assistant says: {state.insight}"


async def cmd_enhance(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    title = " ".join(args).strip()
    if not title:
        return "Usage: /enhance <title>"
    try:
        suggestion = await state.advisor.enhance(title)
    except AdvisorError as e:
        return f"Failed to fetch AI suggestions: {e}"
    return format_suggestion(suggestion)


async def cmd_reload(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    try:
        tasks = await state.controller.load()
    except TaskStoreError as e:
        return _store_failure(e)
    return f"Reloaded {len(tasks)} task(s)."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("list", cmd_list, help_text="Show tasks with the current filter and sort.", aliases=["ls"])
registry.register("show", cmd_show, help_text="Show one task: /show <id>.")
registry.register(
    "add",
    cmd_add,
    help_text="Create a task: /add <title> [--desc ..] [--priority ..] [--due YYYY-MM-DD] [--tags a,b] [--ai].",
)
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <id> [--title ..] [--due none] [--ai] ...")
registry.register("status", cmd_status, help_text="Change status: /status <id> <todo|in_progress|done>.")
registry.register("done", cmd_done, help_text="Mark a task done: /done <id>.")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <id>.", aliases=["rm"])
registry.register("tag", cmd_tag, help_text="Add or remove tags: /tag <id> +tag -tag.")
registry.register("export", cmd_export, help_text="Dump the current view as JSON: /export [path].")
registry.register("filter", cmd_filter, help_text="Filter: /filter status|priority <value|all>.")
registry.register("search", cmd_search, help_text="Search titles: /search [text] (empty clears).")
registry.register("sort", cmd_sort, help_text="Sort: /sort <created_at|due_date|priority> [asc|desc].")
registry.register("dir", cmd_dir, help_text="Toggle sort direction.")
registry.register("reset", cmd_reset, help_text="Reset filter and sort.")
registry.register("stats", cmd_stats, help_text="Show task counts by status.")
registry.register("insight", cmd_insight, help_text="Ask the AI for a one-line take on your tasks.")
registry.register("enhance", cmd_enhance, help_text="Preview AI suggestions for a title: /enhance <title>.")
registry.register("reload", cmd_reload, help_text="Reload all tasks from the store.")
