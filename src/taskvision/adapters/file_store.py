"""File-based task storage adapter."""

import json
import logging
import uuid
from datetime import date, datetime, timezone
from pathlib import Path

from taskvision.core.recurrence import InvalidRule, RepeatException
from taskvision.core.tasks import Task, TaskInstance
from taskvision.ports.task_store import StoreError, TaskNotFound

logger = logging.getLogger(__name__)


class FileTaskStore:
    """
    File-based task storage.

    Implements TaskStore protocol. Each task is one JSON document named
    after its id, holding the same camelCase fields as the hosted database.
    """

    def __init__(self, data_dir: Path | str):
        self.tasks_dir = Path(data_dir).expanduser() / "tasks"
        self.tasks_dir.mkdir(parents=True, exist_ok=True)

    def _path_for_id(self, task_id: str) -> Path:
        """Get the file path for a task id."""
        return self.tasks_dir / f"{task_id}.json"

    def _read(self, path: Path) -> dict:
        try:
            return json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to read {path.name}: {e}") from e

    def _write(self, path: Path, data: dict) -> None:
        try:
            path.write_text(json.dumps(data, indent=2, default=str))
        except OSError as e:
            raise StoreError(f"Failed to write {path.name}: {e}") from e

    def _documents(self):
        """Yield (task_id, document) for every stored task."""
        for path in sorted(self.tasks_dir.glob("*.json")):
            yield path.stem, self._read(path)

    def add_task(self, task: Task) -> str:
        """Store a task document, assigning an id if it has none."""
        task_id = task.id or uuid.uuid4().hex
        data = task.to_dict()
        data.setdefault("createdAt", datetime.now(timezone.utc).isoformat())
        self._write(self._path_for_id(task_id), data)
        return task_id

    def list_enabled_recurring_tasks(self, user_id: str) -> list[Task]:
        """Fetch the user's parent tasks whose recurrence is enabled."""
        tasks = []
        for task_id, data in self._documents():
            if data.get("userId") != user_id:
                continue
            if not (data.get("repeatSettings") or {}).get("enabled"):
                continue
            try:
                tasks.append(Task.from_dict(data, task_id))
            except InvalidRule as e:
                logger.warning(f"Ignoring task {task_id} with invalid repeat settings: {e}")
        return tasks

    def create_instance(self, instance: TaskInstance) -> str:
        """Persist a new instance. Returns its id."""
        task_id = uuid.uuid4().hex
        data = instance.to_dict()
        data["createdAt"] = datetime.now(timezone.utc).isoformat()
        self._write(self._path_for_id(task_id), data)
        return task_id

    def update_parent_exceptions(
        self, parent_task_id: str, exceptions: tuple[RepeatException, ...]
    ) -> None:
        """Replace the exception list of a parent task's recurrence rule."""
        path = self._path_for_id(parent_task_id)
        if not path.exists():
            raise TaskNotFound(f"Task {parent_task_id} not found")
        data = self._read(path)
        settings = data.get("repeatSettings")
        if not settings:
            raise StoreError(f"Task {parent_task_id} has no repeat settings")
        settings["exceptions"] = [e.to_dict() for e in exceptions]
        self._write(path, data)

    def find_task_by_id(self, task_id: str) -> Task:
        """Fetch one task. Raises TaskNotFound if it does not exist."""
        path = self._path_for_id(task_id)
        if not path.exists():
            raise TaskNotFound(f"Task {task_id} not found")
        return Task.from_dict(self._read(path), task_id)

    def find_instance(self, parent_task_id: str, on: date) -> str | None:
        """Id of an existing instance of a parent on a date, if any."""
        day = on.isoformat()
        for task_id, data in self._documents():
            if data.get("parentTaskId") == parent_task_id and data.get("date") == day:
                return task_id
        return None

    def list_instances(self, parent_task_id: str) -> list[Task]:
        """All instances materialized from a parent, ordered by date."""
        instances = [
            Task.from_dict(data, task_id)
            for task_id, data in self._documents()
            if data.get("parentTaskId") == parent_task_id
        ]
        return sorted(instances, key=lambda t: t.date or date.min)
