"""Tests for the file-based task store."""

import json
from datetime import date

import pytest

from taskvision.adapters.file_store import FileTaskStore
from taskvision.core.recurrence import ExceptionAction, RepeatException
from taskvision.core.tasks import Task, TaskInstance
from taskvision.ports.task_store import StoreError, TaskNotFound


@pytest.fixture
def store(tmp_path):
    return FileTaskStore(tmp_path)


def write_doc(store, task_id, data):
    (store.tasks_dir / f"{task_id}.json").write_text(json.dumps(data))


class TestFileTaskStore:
    def test_creates_tasks_dir(self, tmp_path):
        store = FileTaskStore(tmp_path / "nested")
        assert store.tasks_dir.is_dir()

    def test_lists_enabled_recurring_for_user(self, store):
        write_doc(store, "a", {"userId": "u1", "title": "A", "repeatSettings": {"enabled": True, "type": "daily"}})
        write_doc(store, "b", {"userId": "u1", "title": "B", "repeatSettings": {"enabled": False, "type": "daily"}})
        write_doc(store, "c", {"userId": "u2", "title": "C", "repeatSettings": {"enabled": True, "type": "daily"}})
        write_doc(store, "d", {"userId": "u1", "title": "D"})

        tasks = store.list_enabled_recurring_tasks("u1")

        assert [t.id for t in tasks] == ["a"]

    def test_skips_invalid_rules_when_listing(self, store):
        write_doc(
            store,
            "bad",
            {"userId": "u1", "title": "Bad", "repeatSettings": {"enabled": True, "type": "daily", "frequency": -1}},
        )
        write_doc(store, "ok", {"userId": "u1", "title": "Ok", "repeatSettings": {"enabled": True, "type": "daily"}})

        assert [t.id for t in store.list_enabled_recurring_tasks("u1")] == ["ok"]

    def test_create_instance_writes_document(self, store):
        instance = TaskInstance(
            parent_task_id="p1",
            user_id="u1",
            title="Gym",
            date=date(2024, 1, 3),
            block_id="morning",
        )
        task_id = store.create_instance(instance)

        data = json.loads((store.tasks_dir / f"{task_id}.json").read_text())
        assert data["parentTaskId"] == "p1"
        assert data["date"] == "2024-01-03"
        assert data["status"] == "open"
        assert "createdAt" in data

    def test_find_instance(self, store):
        instance = TaskInstance(
            parent_task_id="p1", user_id="u1", title="Gym", date=date(2024, 1, 3), block_id=None
        )
        task_id = store.create_instance(instance)

        assert store.find_instance("p1", date(2024, 1, 3)) == task_id
        assert store.find_instance("p1", date(2024, 1, 4)) is None
        assert store.find_instance("p2", date(2024, 1, 3)) is None

    def test_find_task_by_id(self, store):
        write_doc(store, "a", {"userId": "u1", "title": "A"})
        assert store.find_task_by_id("a").title == "A"

    def test_find_task_by_id_missing(self, store):
        with pytest.raises(TaskNotFound):
            store.find_task_by_id("nope")

    def test_update_parent_exceptions(self, store):
        write_doc(
            store,
            "a",
            {"userId": "u1", "title": "A", "repeatSettings": {"enabled": True, "type": "weekly", "daysOfWeek": [1]}},
        )
        exceptions = (
            RepeatException(original_date=date(2024, 1, 8), action=ExceptionAction.SKIP),
        )

        store.update_parent_exceptions("a", exceptions)

        task = store.find_task_by_id("a")
        assert task.recurrence.exceptions == exceptions
        assert task.recurrence.days_of_week == frozenset({1})

    def test_update_parent_exceptions_missing_task(self, store):
        with pytest.raises(TaskNotFound):
            store.update_parent_exceptions("nope", ())

    def test_update_parent_exceptions_without_rule(self, store):
        write_doc(store, "a", {"userId": "u1", "title": "A"})
        with pytest.raises(StoreError):
            store.update_parent_exceptions("a", ())

    def test_corrupt_document_raises_store_error(self, store):
        (store.tasks_dir / "broken.json").write_text("{not json")
        with pytest.raises(StoreError):
            store.list_enabled_recurring_tasks("u1")

    def test_add_task_and_list_instances(self, store):
        parent_id = store.add_task(Task(id="", user_id="u1", title="Gym"))
        for day in (date(2024, 1, 5), date(2024, 1, 1)):
            store.create_instance(
                TaskInstance(parent_task_id=parent_id, user_id="u1", title="Gym", date=day, block_id=None)
            )

        instances = store.list_instances(parent_id)
        assert [t.date for t in instances] == [date(2024, 1, 1), date(2024, 1, 5)]
        assert all(t.parent_task_id == parent_id for t in instances)
