"""Tests for turning accepted candidates into stored tasks."""
from unittest.mock import patch

from pkg.taskboard.errors import StorageError
from pkg.taskboard.reconcile import DEFAULT_SOURCE, Reconciler
from pkg.taskboard.schema import CandidateTask, TaskPriority, TaskStatus
from pkg.taskboard.store import TaskStore


def test_reconcile_tags_task_as_ai_generated(store, owner):
    candidate = CandidateTask(
        title="Call the plumber",
        due_date="2024-06-02",
        priority=TaskPriority.HIGH,
        category="Home",
    )
    task = Reconciler(store).reconcile(candidate, owner)

    assert task.status == TaskStatus.TODO
    assert task.is_ai_generated is True
    assert task.source == DEFAULT_SOURCE == "AI Assistant"
    assert task.priority == TaskPriority.HIGH
    assert task.due_date.isoformat() == "2024-06-02"
    assert store.get_task(owner, task.id).is_ai_generated is True


def test_custom_source_label(store, owner):
    task = Reconciler(store, source_label="Inbox Bot").reconcile(CandidateTask(title="A"), owner)
    assert task.source == "Inbox Bot"


def test_reconcile_all_isolates_failures(store, owner):
    candidates = [CandidateTask(title=f"Task {i}") for i in range(4)]
    original = TaskStore.create_task

    def flaky_create(self, owner_id, data):
        if data["title"] == "Task 2":
            raise StorageError("disk full")
        return original(self, owner_id, data)

    with patch.object(TaskStore, "create_task", flaky_create):
        results = Reconciler(store).reconcile_all(candidates, owner)

    assert [r.ok for r in results] == [True, True, False, True]
    assert results[2].error == "disk full"
    assert results[2].to_dict()["candidate"]["title"] == "Task 2"
    assert sorted(t.title for t in store.list_tasks(owner)) == ["Task 0", "Task 1", "Task 3"]


def test_reconcile_all_on_thread_pool_reports_per_input(store, owner):
    candidates = [CandidateTask(title=f"Task {i}") for i in range(8)]
    results = Reconciler(store, max_workers=4).reconcile_all(candidates, owner)

    assert all(r.ok for r in results)
    assert [r.task.title for r in results] == [c.title for c in candidates]
    assert len({r.task.id for r in results}) == 8
    assert len(store.list_tasks(owner)) == 8


def test_reconcile_all_empty_batch(store, owner):
    assert Reconciler(store).reconcile_all([], owner) == []
