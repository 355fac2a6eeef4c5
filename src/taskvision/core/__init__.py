"""Functional core - pure business logic with no I/O."""

from .recurrence import (
    EndType,
    ExceptionAction,
    InvalidRule,
    RecurrenceRule,
    RepeatException,
    RepeatType,
    enumerate_dates,
    iter_dates,
    matches,
    resolve_exception,
    upsert_exception,
)
from .tasks import ReminderSettings, Task, TaskInstance, iter_instances, plan_instances

__all__ = [
    # Recurrence
    "EndType",
    "ExceptionAction",
    "InvalidRule",
    "RecurrenceRule",
    "RepeatException",
    "RepeatType",
    "enumerate_dates",
    "iter_dates",
    "matches",
    "resolve_exception",
    "upsert_exception",
    # Tasks
    "ReminderSettings",
    "Task",
    "TaskInstance",
    "iter_instances",
    "plan_instances",
]
