# src/taskflow/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (store/controller/advisor).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import LLMClient
from ..core.state import AppState
from ..llm.advisor import TaskAdvisor
from ..llm.client import OpenRouterLLMClient
from ..tasks.task_controller import TaskController
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def build_llm_client(settings) -> LLMClient | None:
    """Return a configured LLM client, or None when AI features are disabled."""
    try:
        return OpenRouterLLMClient(settings)
    except RuntimeError as e:
        logger.info("AI features disabled: %s", e)
        return None


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = TaskStore(
        settings.tasks_db_path,
        latency_seconds=settings.store_latency_seconds,
        seed_examples=settings.seed_examples,
    )
    return AppState(
        settings=settings,
        store=store,
        controller=TaskController(store),
        advisor=TaskAdvisor(build_llm_client(settings)),
    )
