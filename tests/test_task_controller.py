# tests/test_task_controller.py

from __future__ import annotations

import asyncio

import pytest

from taskflow.tasks.task_controller import TaskController
from taskflow.tasks.task_models import TaskDraft, TaskPatch, TaskStatus
from taskflow.tasks.task_store import TaskNotFoundError, TaskStoreError
from taskflow.tasks.task_view import SortKey, TaskFilter

from .fakes import FakeTaskRepo, make_task


async def _loaded(repo: FakeTaskRepo) -> TaskController:
    ctrl = TaskController(repo)
    await ctrl.load()
    return ctrl


@pytest.mark.asyncio
async def test_failed_status_change_resyncs_to_store_value() -> None:
    repo = FakeTaskRepo([make_task("1", status=TaskStatus.DONE)])
    ctrl = await _loaded(repo)

    gate = repo.update_gates["1"] = asyncio.Event()
    repo.fail_updates = TaskStoreError("store unavailable")
    job = asyncio.create_task(ctrl.change_status("1", TaskStatus.TODO))
    await asyncio.sleep(0)

    # Optimistic value is visible while the store call is in flight.
    assert ctrl.get("1").status == TaskStatus.TODO

    gate.set()
    with pytest.raises(TaskStoreError):
        await job

    assert ctrl.get("1").status == TaskStatus.DONE


@pytest.mark.asyncio
async def test_resync_discards_other_unconfirmed_edits() -> None:
    repo = FakeTaskRepo([make_task("1", status=TaskStatus.DONE), make_task("2")])
    ctrl = await _loaded(repo)

    gate = repo.update_gates["2"] = asyncio.Event()
    pending = asyncio.create_task(ctrl.change_status("2", TaskStatus.IN_PROGRESS))
    await asyncio.sleep(0)
    assert ctrl.get("2").status == TaskStatus.IN_PROGRESS

    repo.fail_updates = TaskStoreError("store unavailable")
    with pytest.raises(TaskStoreError):
        await ctrl.change_status("1", TaskStatus.TODO)

    # The resync overwrote the still-pending optimistic edit on task 2.
    assert ctrl.get("1").status == TaskStatus.DONE
    assert ctrl.get("2").status == TaskStatus.TODO

    # Last completion wins once task 2's save lands.
    repo.fail_updates = None
    gate.set()
    await pending
    assert ctrl.get("2").status == TaskStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_failed_resync_restores_previous_status() -> None:
    repo = FakeTaskRepo([make_task("1", status=TaskStatus.DONE)])
    ctrl = await _loaded(repo)

    repo.fail_updates = TaskStoreError("update failed")
    repo.fail_get_all = TaskStoreError("reload failed")
    with pytest.raises(TaskStoreError, match="update failed"):
        await ctrl.change_status("1", TaskStatus.TODO)

    assert ctrl.get("1").status == TaskStatus.DONE


@pytest.mark.asyncio
async def test_successful_status_change_takes_store_record() -> None:
    original = make_task("1")
    repo = FakeTaskRepo([original])
    ctrl = await _loaded(repo)

    confirmed = await ctrl.change_status("1", TaskStatus.DONE)

    assert confirmed.status == TaskStatus.DONE
    assert confirmed.updated_at > original.updated_at
    assert ctrl.get("1") == confirmed


@pytest.mark.asyncio
async def test_two_creates_get_distinct_ids_and_later_timestamps() -> None:
    existing = make_task("old", created_minutes=10)
    repo = FakeTaskRepo([existing])
    ctrl = await _loaded(repo)

    a = await ctrl.create(TaskDraft(title="A"))
    b = await ctrl.create(TaskDraft(title="B"))

    assert a.id != b.id
    assert [t.id for t in ctrl.tasks] == [b.id, a.id, "old"]
    assert a.created_at > existing.created_at
    assert b.created_at > existing.created_at


@pytest.mark.asyncio
async def test_concurrent_creates_both_land() -> None:
    ctrl = await _loaded(FakeTaskRepo())
    a, b = await asyncio.gather(ctrl.create(TaskDraft(title="A")), ctrl.create(TaskDraft(title="B")))
    assert {t.id for t in ctrl.tasks} == {a.id, b.id}


@pytest.mark.asyncio
async def test_failed_create_leaves_collection_unchanged() -> None:
    repo = FakeTaskRepo([make_task("1")])
    ctrl = await _loaded(repo)
    before = ctrl.tasks

    repo.fail_creates = TaskStoreError("store unavailable")
    with pytest.raises(TaskStoreError):
        await ctrl.create(TaskDraft(title="Nope"))
    with pytest.raises(ValueError):
        await ctrl.create(TaskDraft(title=" "))

    assert ctrl.tasks == before


@pytest.mark.asyncio
async def test_update_missing_id_reports_not_found_without_local_change() -> None:
    ctrl = await _loaded(FakeTaskRepo([make_task("1"), make_task("2")]))
    before = ctrl.tasks

    with pytest.raises(TaskNotFoundError):
        await ctrl.update("missing", TaskPatch(title="x"))

    assert ctrl.tasks == before


@pytest.mark.asyncio
async def test_update_replaces_matching_record() -> None:
    ctrl = await _loaded(FakeTaskRepo([make_task("1", "Old"), make_task("2")]))

    updated = await ctrl.update("1", TaskPatch(title="New", tags=["a", "a", "b"]))

    assert ctrl.get("1") == updated
    assert updated.title == "New"
    assert updated.tags == ["a", "b"]
    assert [t.id for t in ctrl.tasks] == ["1", "2"]


@pytest.mark.asyncio
async def test_delete_removes_locally_and_tolerates_unknown_ids() -> None:
    repo = FakeTaskRepo([make_task("1"), make_task("2")])
    ctrl = await _loaded(repo)

    await ctrl.delete("1")
    await ctrl.delete("ghost")

    assert [t.id for t in ctrl.tasks] == ["2"]
    assert [t.id for t in repo.tasks] == ["2"]


@pytest.mark.asyncio
async def test_view_and_stats_follow_collection() -> None:
    ctrl = await _loaded(FakeTaskRepo([make_task("1", "Fix Bug", created_minutes=1), make_task("2", "Docs")]))

    assert [t.id for t in ctrl.view(TaskFilter(search="bug"))] == ["1"]
    assert [t.id for t in ctrl.view(TaskFilter(sort_by=SortKey.CREATED_AT))] == ["1", "2"]
    assert ctrl.stats().todo == 2
    assert ctrl.titles() == ["Fix Bug", "Docs"]


@pytest.mark.asyncio
async def test_failed_load_keeps_previous_collection() -> None:
    repo = FakeTaskRepo([make_task("1")])
    ctrl = await _loaded(repo)

    repo.fail_get_all = TaskStoreError("offline")
    with pytest.raises(TaskStoreError):
        await ctrl.load()

    assert [t.id for t in ctrl.tasks] == ["1"]


@pytest.mark.asyncio
async def test_failed_resync_keeps_newer_confirmed_record() -> None:
    repo = FakeTaskRepo([make_task("1", status=TaskStatus.DONE)])
    ctrl = await _loaded(repo)

    gate = repo.update_gates["1"] = asyncio.Event()
    job = asyncio.create_task(ctrl.change_status("1", TaskStatus.TODO))
    await asyncio.sleep(0)

    # A second flow confirms an edit of the same task while the status save is in flight.
    renamed = await ctrl.update("1", TaskPatch(title="Renamed"))

    repo.fail_updates = TaskStoreError("update failed")
    repo.fail_get_all = TaskStoreError("reload failed")
    gate.set()
    with pytest.raises(TaskStoreError, match="update failed"):
        await job

    assert ctrl.get("1") == renamed
