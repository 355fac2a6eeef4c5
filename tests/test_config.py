"""Tests for configuration loading."""

import pytest

from taskvision.config import Config, load_config


@pytest.fixture
def conf(tmp_path):
    path = tmp_path / "taskvision.conf"

    def write(text: str):
        path.write_text(text)
        return path

    return write


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.conf")
        assert config == Config()
        assert config.lookahead_days == 14
        assert config.run_time == "01:00"

    def test_parses_keys(self, conf):
        path = conf(
            "# TaskVision\n"
            "STORE_BACKEND=firestore\n"
            'FIRESTORE_PROJECT_ID="task-vision"  # project\n'
            "FIREBASE_API_KEY='abc123'\n"
            "USER_ID=u1\n"
            "LOOKAHEAD_DAYS=21\n"
            "RUN_TIME=02:30 # nightly\n"
            "TIMEZONE=Europe/London\n"
            "DEDUPE_INSTANCES=true\n"
            "MAX_WORKERS=4\n"
        )

        config = load_config(path)

        assert config.store_backend == "firestore"
        assert config.firestore_project_id == "task-vision"
        assert config.firebase_api_key == "abc123"
        assert config.user_id == "u1"
        assert config.lookahead_days == 21
        assert config.run_time == "02:30"
        assert config.timezone == "Europe/London"
        assert config.dedupe_instances is True
        assert config.max_workers == 4

    def test_invalid_numbers_keep_defaults(self, conf, caplog):
        config = load_config(conf("LOOKAHEAD_DAYS=soon\nMAX_WORKERS=0\n"))
        assert config.lookahead_days == 14
        assert config.max_workers == 1
        assert "LOOKAHEAD_DAYS" in caplog.text

    def test_invalid_bool_keeps_default(self, conf):
        assert load_config(conf("DEDUPE_INSTANCES=maybe\n")).dedupe_instances is False

    def test_unknown_backend(self, conf):
        assert load_config(conf("STORE_BACKEND=mongo\n")).store_backend == "file"

    def test_ignores_junk_lines(self, conf):
        config = load_config(conf("\nnot a setting\nUNKNOWN_KEY=1\nDATA_DIR=~/tv\n"))
        assert config.data_dir == "~/tv"
