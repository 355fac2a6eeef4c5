"""Daily trigger for recurring task generation."""

import logging
import threading

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import Config, load_config
from .ports.task_store import StoreError
from .workflows import generate_for_config

logger = logging.getLogger(__name__)


def run_scheduled_generation(config: Config, cancel: threading.Event) -> None:
    """Scheduled job body. Never raises, so the scheduler keeps running."""
    logger.info("Running scheduled recurring task generation")
    try:
        generate_for_config(config, cancel=cancel)
    except (StoreError, ValueError) as e:
        logger.error(f"Scheduled generation failed: {e}")


def setup_scheduler(
    config: Config | None = None,
    cancel: threading.Event | None = None,
) -> BlockingScheduler:
    """Set up the daily generation job."""
    if config is None:
        config = load_config()
    if cancel is None:
        cancel = threading.Event()

    scheduler = BlockingScheduler(timezone=config.timezone or "Asia/Tokyo")

    try:
        hour, minute = map(int, config.run_time.split(":"))
    except ValueError:
        logger.warning(f"Invalid run time format: {config.run_time}, using 01:00")
        hour, minute = 1, 0

    scheduler.add_job(
        run_scheduled_generation,
        CronTrigger(hour=hour, minute=minute, timezone=scheduler.timezone),
        args=[config, cancel],
        id="recurring_generation",
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Scheduled recurring task generation at {hour:02d}:{minute:02d}")

    return scheduler


def run_scheduler(config: Config | None = None) -> None:
    """Generate once now, then daily at RUN_TIME until interrupted."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )

    if config is None:
        config = load_config()
    if not config.user_id:
        raise ValueError("USER_ID not configured in taskvision.conf")

    cancel = threading.Event()
    scheduler = setup_scheduler(config, cancel)

    run_scheduled_generation(config, cancel)

    logger.info("Starting TaskVision scheduler...")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        cancel.set()
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
