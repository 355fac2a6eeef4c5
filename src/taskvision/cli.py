"""TaskVision CLI - recurring task generation."""

import json
import logging
import sys
from datetime import date, timedelta

import click

from .adapters.firestore import AuthenticationError, authorize
from .config import load_config
from .core.recurrence import ExceptionAction, InvalidRule
from .core.tasks import plan_instances
from .ports.task_store import StoreError, TaskNotFound
from .workflows import add_exception, generate_for_config, get_store, local_today, refresh_task


def _fail(e: Exception) -> None:
    click.echo(f"Error: {e}", err=True)
    sys.exit(1)


def _parse_date(ctx, param, value: str | None) -> date | None:
    """click callback: YYYY-MM-DD string to date."""
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"{value!r} is not a YYYY-MM-DD date")


@click.group()
@click.version_option(package_name="taskvision")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool):
    """TaskVision - recurring task generator."""
    if debug:
        logging.basicConfig(
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            level=logging.DEBUG,
        )


@main.command()
def auth():
    """Sign in to Firebase and save tokens."""
    email = click.prompt("Email")
    password = click.prompt("Password", hide_input=True)
    try:
        _, user_id = authorize(email, password)
    except AuthenticationError as e:
        _fail(e)

    click.echo("Authentication successful!")
    if user_id:
        click.echo(f"Set USER_ID={user_id} in taskvision.conf")


@main.command()
@click.option("--user", "user_id", default=None, help="User id (defaults to USER_ID)")
@click.option("--days", type=int, default=None, help="Lookahead days (defaults to LOOKAHEAD_DAYS)")
@click.option("--dedupe", is_flag=True, help="Skip dates that already have an instance")
def generate(user_id: str | None, days: int | None, dedupe: bool):
    """Generate instances of all recurring tasks now."""
    config = load_config()
    if user_id:
        config.user_id = user_id
    if days is not None:
        config.lookahead_days = days
    if dedupe:
        config.dedupe_instances = True

    try:
        generate_for_config(config)
    except (StoreError, ValueError) as e:
        _fail(e)

    click.echo(f"Generated recurring tasks for the next {config.lookahead_days} days.")


@main.command()
@click.argument("task_id")
@click.option("--start", callback=_parse_date, default=None, help="First day (YYYY-MM-DD), defaults to today")
@click.option("--days", type=int, default=14, show_default=True, help="Window length in days")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def preview(task_id: str, start: date | None, days: int, as_json: bool):
    """Show the instances a recurring task would produce, without writing."""
    config = load_config()
    today = local_today(config.timezone)
    start = start or today
    end = start + timedelta(days=days)

    try:
        task = get_store(config).find_task_by_id(task_id)
        instances = plan_instances(task, start, end, as_of=today)
    except (StoreError, TaskNotFound, InvalidRule, ValueError) as e:
        _fail(e)

    if as_json:
        click.echo(json.dumps([i.to_dict() for i in instances], indent=2))
        return

    if not instances:
        click.echo(f"No occurrences of '{task.title}' between {start} and {end}.")
        return

    for instance in instances:
        block = f" [{instance.block_id}]" if instance.block_id else ""
        click.echo(f"{instance.date.strftime('%a %Y-%m-%d')}  {instance.title}{block}")


@main.command()
@click.argument("task_id")
@click.argument("original_date", callback=_parse_date)
def skip(task_id: str, original_date: date):
    """Skip one occurrence of a recurring task."""
    try:
        add_exception(get_store(load_config()), task_id, original_date, ExceptionAction.SKIP)
    except (StoreError, TaskNotFound, InvalidRule, ValueError) as e:
        _fail(e)

    click.echo(f"Skipping {original_date}.")


@main.command()
@click.argument("task_id")
@click.argument("original_date", callback=_parse_date)
@click.argument("new_date", callback=_parse_date)
@click.option("--block", "block_id", default=None, help="Move to this time block")
def reschedule(task_id: str, original_date: date, new_date: date, block_id: str | None):
    """Move one occurrence of a recurring task to another date."""
    try:
        add_exception(
            get_store(load_config()),
            task_id,
            original_date,
            ExceptionAction.RESCHEDULE,
            new_date=new_date,
            new_block_id=block_id,
        )
    except (StoreError, TaskNotFound, InvalidRule, ValueError) as e:
        _fail(e)

    block = f" (block {block_id})" if block_id else ""
    click.echo(f"Rescheduled {original_date} to {new_date}{block}.")


@main.command()
@click.argument("task_id")
@click.option("--dedupe", is_flag=True, help="Skip dates that already have an instance")
def refresh(task_id: str, dedupe: bool):
    """Generate the lookahead window for a task whose repeat settings just changed."""
    config = load_config()
    if dedupe:
        config.dedupe_instances = True

    try:
        created = refresh_task(config, task_id)
    except (StoreError, TaskNotFound, InvalidRule, ValueError) as e:
        _fail(e)

    click.echo(f"Created {len(created)} instance(s) of {task_id}.")


@main.command()
def serve():
    """Run generation daily at RUN_TIME."""
    from .scheduler import run_scheduler

    click.echo("Starting TaskVision scheduler...")
    click.echo("Press Ctrl+C to stop")
    try:
        run_scheduler()
    except ValueError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
