"""Shared workflow layer between the CLI and the scheduler.

Each function here pairs pure core logic with task store I/O.
rule_changed and refresh_after_rule_change are also meant for callers that
edit repeat settings in-process; the CLI reaches them through `refresh`.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .adapters.file_store import FileTaskStore
from .adapters.firestore import FirestoreTaskStore
from .config import DATA_DIR, Config
from .core.recurrence import ExceptionAction, InvalidRule, RecurrenceRule, upsert_exception
from .core.tasks import Task, iter_instances
from .ports.task_store import StoreError, TaskNotFound, TaskStore

logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD_DAYS = 14


def get_store(config: Config) -> TaskStore:
    """Resolve the task store backend from config."""
    if config.store_backend == "firestore":
        if not config.firestore_project_id:
            raise ValueError("FIRESTORE_PROJECT_ID not configured in taskvision.conf")
        return FirestoreTaskStore(config)
    if config.data_dir:
        return FileTaskStore(Path(config.data_dir).expanduser())
    return FileTaskStore(DATA_DIR)


def lookahead_window(days: int, today: date | None = None) -> tuple[date, date]:
    """Inclusive window [today, today + days]."""
    today = today or date.today()
    return today, today + timedelta(days=days)


def materialize(
    parent: Task,
    store: TaskStore,
    window_start: date,
    window_end: date,
    as_of: date | None = None,
    skip_existing: bool = False,
    cancel: threading.Event | None = None,
) -> list[str]:
    """
    Create stored instances of a parent task for every occurrence in a window.

    Each instance is written as soon as its date is resolved. A store
    failure propagates and leaves the dates already written in place.
    Without skip_existing, re-running over an overlapping window writes
    duplicates.

    Returns ids of the instances created.
    """
    created = []
    for instance in iter_instances(parent, window_start, window_end, as_of):
        if cancel is not None and cancel.is_set():
            logger.info(f"Cancelled {parent.id} after {len(created)} instance(s)")
            break
        if skip_existing:
            existing = store.find_instance(parent.id, instance.date)
            if existing:
                logger.debug(f"Instance of {parent.id} on {instance.date} exists ({existing})")
                continue
        created.append(store.create_instance(instance))

    logger.debug(f"Created {len(created)} instance(s) of {parent.id}")
    return created


def run_for_user(
    store: TaskStore,
    user_id: str,
    lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
    today: date | None = None,
    skip_existing: bool = False,
    cancel: threading.Event | None = None,
    max_workers: int = 1,
) -> None:
    """
    Materialize every enabled recurring task of a user over the lookahead window.

    Failures are logged per parent task and never stop the others.
    """
    today = today or date.today()
    window_start, window_end = lookahead_window(lookahead_days, today)

    try:
        parents = store.list_enabled_recurring_tasks(user_id)
    except StoreError as e:
        logger.error(f"Failed to list recurring tasks for {user_id}: {e}")
        return

    if not parents:
        logger.info(f"No recurring tasks for {user_id}")
        return

    def run_one(parent: Task) -> bool:
        if cancel is not None and cancel.is_set():
            return False
        try:
            materialize(
                parent,
                store,
                window_start,
                window_end,
                as_of=today,
                skip_existing=skip_existing,
                cancel=cancel,
            )
            return True
        except (StoreError, TaskNotFound, InvalidRule) as e:
            logger.error(f"Failed to generate instances for task {parent.id}: {e}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error generating instances for task {parent.id}: {e}")
            return False

    if max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(pool.map(run_one, parents))
    else:
        results = [run_one(parent) for parent in parents]

    if cancel is not None and cancel.is_set():
        logger.info(f"Run for {user_id} cancelled")

    logger.info(
        f"Processed {sum(results)}/{len(parents)} recurring task(s) for {user_id} "
        f"({window_start} to {window_end})"
    )


def add_exception(
    store: TaskStore,
    task_id: str,
    original_date: date | str,
    action: ExceptionAction | str,
    new_date: date | str | None = None,
    new_block_id: str | None = None,
) -> RecurrenceRule:
    """
    Skip or reschedule one occurrence of a stored recurring task.

    Raises:
        TaskNotFound: no task with that id.
        InvalidRule: the task does not recur, or the exception is malformed.
        StoreError: the update could not be written.
    """
    task = store.find_task_by_id(task_id)
    if task.recurrence is None:
        raise InvalidRule(f"Task {task_id} has no repeat settings")

    rule = upsert_exception(task.recurrence, original_date, action, new_date, new_block_id)
    store.update_parent_exceptions(task_id, rule.exceptions)
    return rule


def rule_changed(previous: RecurrenceRule | None, current: RecurrenceRule | None) -> bool:
    """True when a task's recurrence was just enabled or its settings edited."""
    if current is None or not current.enabled:
        return False
    return previous is None or not previous.enabled or previous != current


def refresh_after_rule_change(
    store: TaskStore,
    task: Task,
    previous: RecurrenceRule | None,
    lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
    today: date | None = None,
    skip_existing: bool = False,
) -> list[str]:
    """Generate the lookahead window right after a task's recurrence was edited."""
    if not rule_changed(previous, task.recurrence):
        return []
    today = today or date.today()
    window_start, window_end = lookahead_window(lookahead_days, today)
    return materialize(
        task, store, window_start, window_end, as_of=today, skip_existing=skip_existing
    )


def local_today(timezone: str) -> date:
    """Today's date in the configured timezone, or the host's if it is unknown."""
    if not timezone:
        return date.today()
    try:
        return datetime.now(ZoneInfo(timezone)).date()
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {timezone!r}, using local date")
        return date.today()


def refresh_task(
    config: Config,
    task_id: str,
    previous: RecurrenceRule | None = None,
) -> list[str]:
    """Regenerate the lookahead window for one stored task after its rule was edited."""
    store = get_store(config)
    task = store.find_task_by_id(task_id)
    if task.recurrence is None:
        raise InvalidRule(f"Task {task_id} has no repeat settings")
    return refresh_after_rule_change(
        store,
        task,
        previous,
        lookahead_days=config.lookahead_days,
        today=local_today(config.timezone),
        skip_existing=config.dedupe_instances,
    )


def generate_for_config(config: Config, cancel: threading.Event | None = None) -> None:
    """Run the batch for the configured user. Used by the CLI and the scheduler."""
    if not config.user_id:
        raise ValueError("USER_ID not configured in taskvision.conf")
    run_for_user(
        get_store(config),
        config.user_id,
        lookahead_days=config.lookahead_days,
        today=local_today(config.timezone),
        skip_existing=config.dedupe_instances,
        cancel=cancel,
        max_workers=config.max_workers,
    )
