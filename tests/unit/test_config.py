"""
Unit tests for scheduler configuration.
"""

import pytest

from stepflow.config import SchedulerConfig, discover_actions, get_storage, load_config
from stepflow.storage.file import FileStorageBackend
from stepflow.storage.memory import InMemoryStorageBackend
from stepflow.storage.schemas import ScheduleStatus


class TestSchedulerConfig:
    """Test settings validation."""

    def test_defaults(self):
        config = SchedulerConfig()

        assert config.poll_interval == 60.0
        assert config.max_concurrency == 1
        assert config.step_timeout is None
        assert config.exhausted_retries_status is None
        assert config.max_history == 100
        assert config.owner_id

    def test_durations_and_status_strings(self):
        config = SchedulerConfig(
            poll_interval="5m", step_timeout="30s", exhausted_retries_status="paused"
        )

        assert config.poll_interval == 300.0
        assert config.step_timeout == 30.0
        assert config.exhausted_retries_status == ScheduleStatus.PAUSED

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"poll_interval": 0},
            {"max_concurrency": 0},
            {"lease_ttl": 0},
            {"max_history": 0},
            {"storage": "postgres"},
        ],
    )
    def test_invalid_settings(self, kwargs):
        with pytest.raises(ValueError):
            SchedulerConfig(**kwargs)


class TestLoadConfig:
    """Test reading settings from the environment."""

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("STEPFLOW_POLL_INTERVAL", "10s")
        monkeypatch.setenv("STEPFLOW_MAX_CONCURRENCY", "4")
        monkeypatch.setenv("STEPFLOW_OWNER_ID", "worker-1")
        monkeypatch.setenv("STEPFLOW_EXHAUSTED_RETRIES_STATUS", "error")
        monkeypatch.setenv("STEPFLOW_STORAGE", "memory")

        config = load_config()

        assert config.poll_interval == 10.0
        assert config.max_concurrency == 4
        assert config.owner_id == "worker-1"
        assert config.exhausted_retries_status == ScheduleStatus.ERROR
        assert config.storage == "memory"

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("STEPFLOW_POLL_INTERVAL", "10s")

        assert load_config(poll_interval=2).poll_interval == 2.0


class TestGetStorage:
    """Test backend selection."""

    def test_memory_backend(self):
        storage = get_storage(SchedulerConfig(storage="memory"))

        assert isinstance(storage, InMemoryStorageBackend)

    def test_file_backend(self, tmp_path):
        storage = get_storage(SchedulerConfig(storage="file", storage_path=str(tmp_path)))

        assert isinstance(storage, FileStorageBackend)
        assert (tmp_path / "schedules").is_dir()


class TestDiscoverActions:
    """Test importing action modules."""

    def test_imports_modules_and_skips_missing(self):
        imported = discover_actions(["json", "stepflow_missing_module"])

        assert imported == ["json"]

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("STEPFLOW_DISCOVER", "json, ")

        assert discover_actions() == ["json"]

    def test_nothing_configured(self, monkeypatch):
        monkeypatch.delenv("STEPFLOW_DISCOVER", raising=False)

        assert discover_actions() == []
