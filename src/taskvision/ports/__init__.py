"""Ports - interfaces/protocols for external dependencies."""

from .task_store import StoreError, TaskNotFound, TaskStore

__all__ = [
    "StoreError",
    "TaskNotFound",
    "TaskStore",
]
