"""Tests for the daily generation trigger."""

import threading
from unittest.mock import patch

import pytest

from taskvision.config import Config
from taskvision.ports.task_store import StoreError
from taskvision.scheduler import run_scheduled_generation, run_scheduler, setup_scheduler


def job_fields(scheduler):
    job = scheduler.get_job("recurring_generation")
    return {f.name: str(f) for f in job.trigger.fields}


class TestSetupScheduler:
    def test_uses_run_time(self):
        scheduler = setup_scheduler(Config(run_time="06:30", timezone="UTC"))
        fields = job_fields(scheduler)
        assert fields["hour"] == "6"
        assert fields["minute"] == "30"

    def test_default_run_time(self):
        fields = job_fields(setup_scheduler(Config(timezone="UTC")))
        assert fields["hour"] == "1"
        assert fields["minute"] == "0"

    def test_invalid_run_time_falls_back(self):
        fields = job_fields(setup_scheduler(Config(run_time="1am", timezone="UTC")))
        assert fields["hour"] == "1"


class TestRunScheduledGeneration:
    @patch("taskvision.scheduler.generate_for_config")
    def test_runs_generation(self, mock_generate):
        config = Config(user_id="u1")
        cancel = threading.Event()

        run_scheduled_generation(config, cancel)

        mock_generate.assert_called_once_with(config, cancel=cancel)

    @patch("taskvision.scheduler.generate_for_config", side_effect=StoreError("offline"))
    def test_errors_are_logged_not_raised(self, mock_generate, caplog):
        run_scheduled_generation(Config(user_id="u1"), threading.Event())
        assert "offline" in caplog.text


class TestRunScheduler:
    def test_requires_user(self):
        with pytest.raises(ValueError):
            run_scheduler(Config())

    @patch("taskvision.scheduler.setup_scheduler")
    @patch("taskvision.scheduler.run_scheduled_generation")
    def test_runs_once_then_starts(self, mock_run, mock_setup):
        config = Config(user_id="u1")

        run_scheduler(config)

        mock_run.assert_called_once()
        mock_setup.return_value.start.assert_called_once()

    @patch("taskvision.scheduler.setup_scheduler")
    @patch("taskvision.scheduler.run_scheduled_generation")
    def test_interrupt_cancels(self, mock_run, mock_setup):
        mock_setup.return_value.start.side_effect = KeyboardInterrupt

        run_scheduler(Config(user_id="u1"))

        cancel = mock_setup.call_args.args[1]
        assert cancel.is_set()
        mock_setup.return_value.shutdown.assert_called_once_with(wait=False)
