"""Pure task domain logic - no I/O dependencies."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterator

from .recurrence import (
    ExceptionAction,
    RecurrenceRule,
    iter_dates,
    resolve_exception,
    to_date,
)

logger = logging.getLogger(__name__)

# Document keys modelled explicitly; anything else lands in Task.extra
_KNOWN_KEYS = {
    "id",
    "userId",
    "title",
    "description",
    "blockId",
    "date",
    "status",
    "deadline",
    "priority",
    "tags",
    "reminderSettings",
    "repeatSettings",
    "parentTaskId",
}


@dataclass
class ReminderSettings:
    """Per-task reminder offsets, in minutes before the block/deadline."""

    enable_block_start_reminder: bool = False
    block_start_reminder_minutes: int = 15
    enable_block_end_reminder: bool = False
    block_end_reminder_minutes: int = 10
    enable_deadline_reminder: bool = False
    deadline_reminder_minutes: int = 30

    @classmethod
    def from_dict(cls, data: dict) -> "ReminderSettings":
        return cls(
            enable_block_start_reminder=bool(data.get("enableBlockStartReminder", False)),
            block_start_reminder_minutes=int(data.get("blockStartReminderMinutes", 15)),
            enable_block_end_reminder=bool(data.get("enableBlockEndReminder", False)),
            block_end_reminder_minutes=int(data.get("blockEndReminderMinutes", 10)),
            enable_deadline_reminder=bool(data.get("enableDeadlineReminder", False)),
            deadline_reminder_minutes=int(data.get("deadlineReminderMinutes", 30)),
        )

    def to_dict(self) -> dict:
        return {
            "enableBlockStartReminder": self.enable_block_start_reminder,
            "blockStartReminderMinutes": self.block_start_reminder_minutes,
            "enableBlockEndReminder": self.enable_block_end_reminder,
            "blockEndReminderMinutes": self.block_end_reminder_minutes,
            "enableDeadlineReminder": self.enable_deadline_reminder,
            "deadlineReminderMinutes": self.deadline_reminder_minutes,
        }


@dataclass
class Task:
    """A stored task. Parent tasks carry a recurrence rule."""

    id: str
    user_id: str
    title: str
    description: str = ""
    block_id: str | None = None
    date: date | None = None
    status: str = "open"
    deadline: str | None = None  # "YYYY-MM-DD HH:MM", passed through untouched
    priority: str = "medium"
    tags: list[str] = field(default_factory=list)
    reminder_settings: ReminderSettings | None = None
    recurrence: RecurrenceRule | None = None
    parent_task_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None and self.recurrence.enabled

    @classmethod
    def from_dict(cls, data: dict, task_id: str | None = None) -> "Task":
        """
        Create Task from a stored document.

        Raises InvalidRule if repeatSettings is malformed.
        """
        reminder = data.get("reminderSettings")
        repeat = data.get("repeatSettings")
        return cls(
            id=task_id or data["id"],
            user_id=data.get("userId", ""),
            title=data.get("title", ""),
            description=data.get("description") or "",
            block_id=data.get("blockId") or None,
            date=to_date(data["date"]) if data.get("date") else None,
            status=data.get("status") or "open",
            deadline=data.get("deadline") or None,
            priority=data.get("priority") or "medium",
            tags=list(data.get("tags") or []),
            reminder_settings=ReminderSettings.from_dict(reminder) if reminder else None,
            recurrence=RecurrenceRule.from_dict(repeat) if repeat else None,
            parent_task_id=data.get("parentTaskId") or None,
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update(
            {
                "userId": self.user_id,
                "title": self.title,
                "description": self.description,
                "blockId": self.block_id,
                "date": self.date.isoformat() if self.date else None,
                "status": self.status,
                "deadline": self.deadline,
                "priority": self.priority,
                "tags": list(self.tags),
                "reminderSettings": (
                    self.reminder_settings.to_dict() if self.reminder_settings else None
                ),
                "repeatSettings": self.recurrence.to_dict() if self.recurrence else None,
            }
        )
        if self.parent_task_id:
            data["parentTaskId"] = self.parent_task_id
        return data


@dataclass
class TaskInstance:
    """
    One concrete occurrence of a recurring task.

    Instances never carry a recurrence rule: recursion is single-level.
    """

    parent_task_id: str
    user_id: str
    title: str
    date: date
    block_id: str | None
    description: str = ""
    deadline: str | None = None
    reminder_settings: ReminderSettings | None = None
    status: str = "open"

    @classmethod
    def from_parent(
        cls,
        parent: Task,
        on: date,
        block_id: str | None = None,
    ) -> "TaskInstance":
        return cls(
            parent_task_id=parent.id,
            user_id=parent.user_id,
            title=parent.title,
            date=on,
            block_id=block_id if block_id is not None else parent.block_id,
            description=parent.description,
            deadline=parent.deadline,
            reminder_settings=parent.reminder_settings,
        )

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "title": self.title,
            "description": self.description,
            "blockId": self.block_id,
            "date": self.date.isoformat(),
            "status": self.status,
            "deadline": self.deadline,
            "reminderSettings": (
                self.reminder_settings.to_dict() if self.reminder_settings else None
            ),
            "parentTaskId": self.parent_task_id,
        }


def iter_instances(
    parent: Task,
    window_start: date,
    window_end: date,
    as_of: date | None = None,
) -> Iterator[TaskInstance]:
    """
    Lazily yield the instances a parent task should produce in a window.

    Skip exceptions suppress a date; reschedule exceptions move it to the
    new date (and block, if given). Exceptions are looked up by the
    pattern-generated date only, one date at a time, so a consumer that
    writes as it iterates never writes ahead of the lookup.

    Pure function - no I/O.
    """
    rule = parent.recurrence
    if rule is None or not rule.enabled:
        return

    for d in iter_dates(rule, window_start, window_end, as_of):
        exception = resolve_exception(d, rule.exceptions)
        if exception is None:
            yield TaskInstance.from_parent(parent, d)
        elif exception.action == ExceptionAction.SKIP:
            logger.debug(f"Skipping {parent.id} on {d}")
        else:
            logger.debug(f"Rescheduling {parent.id} from {d} to {exception.new_date}")
            yield TaskInstance.from_parent(parent, exception.new_date, exception.new_block_id)


def plan_instances(
    parent: Task,
    window_start: date,
    window_end: date,
    as_of: date | None = None,
) -> list[TaskInstance]:
    """All instances for the window as a list. See iter_instances."""
    return list(iter_instances(parent, window_start, window_end, as_of))
