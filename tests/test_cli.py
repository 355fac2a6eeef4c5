"""Tests for the CLI."""

import json
from datetime import date
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from taskvision.adapters.file_store import FileTaskStore
from taskvision.cli import main
from taskvision.config import Config
from taskvision.core.recurrence import ExceptionAction, RecurrenceRule, RepeatType
from taskvision.core.tasks import Task
from taskvision.ports.task_store import StoreError


@pytest.fixture
def config(tmp_path):
    return Config(data_dir=str(tmp_path), user_id="u1")


@pytest.fixture
def store(config):
    return FileTaskStore(config.data_dir)


@pytest.fixture
def parent_id(store):
    return store.add_task(
        Task(
            id="gym",
            user_id="u1",
            title="Gym",
            block_id="morning",
            recurrence=RecurrenceRule(
                enabled=True, type=RepeatType.WEEKLY, days_of_week=frozenset({1, 3, 5})
            ),
        )
    )


@pytest.fixture
def run(config):
    runner = CliRunner()

    def invoke(*args):
        with patch("taskvision.cli.load_config", return_value=config):
            return runner.invoke(main, list(args))

    return invoke


class TestPreview:
    def test_lists_dates(self, run, parent_id):
        result = run("preview", parent_id, "--start", "2024-01-01", "--days", "13")
        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert len(lines) == 6
        assert lines[0].startswith("Mon 2024-01-01")
        assert "[morning]" in lines[0]

    def test_json(self, run, parent_id):
        result = run("preview", parent_id, "--start", "2024-01-01", "--days", "6", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [d["date"] for d in data] == ["2024-01-01", "2024-01-03", "2024-01-05"]

    def test_does_not_write(self, run, store, parent_id):
        run("preview", parent_id, "--start", "2024-01-01")
        assert store.list_instances(parent_id) == []

    def test_missing_task(self, run):
        result = run("preview", "nope")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_bad_date(self, run, parent_id):
        result = run("preview", parent_id, "--start", "01/01/2024")
        assert result.exit_code == 2


class TestExceptions:
    def test_skip(self, run, store, parent_id):
        result = run("skip", parent_id, "2024-01-03")
        assert result.exit_code == 0
        exceptions = store.find_task_by_id(parent_id).recurrence.exceptions
        assert exceptions[0].action == ExceptionAction.SKIP

    def test_reschedule(self, run, store, parent_id):
        result = run("reschedule", parent_id, "2024-01-08", "2024-01-09", "--block", "evening")
        assert result.exit_code == 0
        assert "evening" in result.output

        preview = run("preview", parent_id, "--start", "2024-01-01", "--days", "13", "--json")
        dates = {d["date"]: d["blockId"] for d in json.loads(preview.output)}
        assert "2024-01-08" not in dates
        assert dates["2024-01-09"] == "evening"

    def test_skip_non_recurring(self, run, store):
        task_id = store.add_task(Task(id="once", user_id="u1", title="Once"))
        result = run("skip", task_id, "2024-01-03")
        assert result.exit_code == 1
        assert "no repeat settings" in result.output


class TestGenerate:
    def test_generates(self, run, store, parent_id):
        result = run("generate", "--days", "7")
        assert result.exit_code == 0
        assert len(store.list_instances(parent_id)) >= 3

    def test_dedupe_flag(self, run, store, parent_id):
        run("generate", "--dedupe")
        run("generate", "--dedupe")
        dates = [t.date for t in store.list_instances(parent_id)]
        assert len(dates) == len(set(dates))

    def test_requires_user(self, run, config):
        config.user_id = ""
        result = run("generate")
        assert result.exit_code == 1
        assert "USER_ID" in result.output

    @patch("taskvision.cli.generate_for_config", side_effect=StoreError("offline"))
    def test_store_error(self, mock_generate, run):
        result = run("generate")
        assert result.exit_code == 1
        assert "offline" in result.output


class TestRefresh:
    @patch("taskvision.workflows.local_today", return_value=date(2024, 1, 1))
    def test_generates_window(self, mock_today, run, store, parent_id):
        result = run("refresh", parent_id)
        assert result.exit_code == 0
        assert "Created 7 instance(s)" in result.output
        assert len(store.list_instances(parent_id)) == 7

    def test_missing_task(self, run):
        result = run("refresh", "nope")
        assert result.exit_code == 1
        assert "not found" in result.output
