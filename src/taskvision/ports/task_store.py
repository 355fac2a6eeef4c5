"""Task store interface."""

from datetime import date
from typing import Protocol

from taskvision.core.recurrence import RepeatException
from taskvision.core.tasks import Task, TaskInstance


class StoreError(Exception):
    """Raised when the task store cannot be read or written."""

    pass


class TaskNotFound(LookupError):
    """Raised when a task id has no document in the store."""

    pass


class TaskStore(Protocol):
    """Interface for reading parent tasks and writing instances to any backend."""

    def list_enabled_recurring_tasks(self, user_id: str) -> list[Task]:
        """Fetch the user's parent tasks whose recurrence is enabled."""
        ...

    def create_instance(self, instance: TaskInstance) -> str:
        """Persist a new instance. Returns its id."""
        ...

    def update_parent_exceptions(
        self, parent_task_id: str, exceptions: tuple[RepeatException, ...]
    ) -> None:
        """Replace the exception list of a parent task's recurrence rule."""
        ...

    def find_task_by_id(self, task_id: str) -> Task:
        """Fetch one task. Raises TaskNotFound if it does not exist."""
        ...

    def find_instance(self, parent_task_id: str, on: date) -> str | None:
        """Id of an existing instance of a parent on a date, if any."""
        ...
