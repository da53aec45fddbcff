"""
Unit tests for logging configuration.
"""

import sys

import pytest
from loguru import logger

from stepflow.observability.logging import (
    bind_run_context,
    bind_schedule_context,
    configure_logging,
)


@pytest.fixture(autouse=True)
def restore_default_sink():
    yield
    logger.remove()
    logger.add(sys.stderr)


class TestConfigureLogging:
    """Test the sinks installed by configure_logging."""

    def test_console_shows_bound_context(self, capsys):
        """Test that schedule ids prefix the message."""
        configure_logging(level="INFO")

        bind_schedule_context("sched_1", "wf_1").info("Schedule claimed")

        err = capsys.readouterr().err
        assert "schedule_id=sched_1 workflow_id=wf_1" in err
        assert "Schedule claimed" in err

    def test_console_without_context(self, capsys):
        configure_logging(level="INFO", show_context=False)

        bind_run_context("wf_1", "s1", "Fetch").info("Step executing")

        err = capsys.readouterr().err
        assert "Step executing" in err
        assert "step_id=s1" not in err

    def test_level_filters_messages(self, capsys):
        configure_logging(level="WARNING")

        logger.info("quiet")
        logger.warning("loud")

        err = capsys.readouterr().err
        assert "quiet" not in err
        assert "loud" in err

    def test_file_sink(self, tmp_path):
        """Test that logs also go to the configured file."""
        log_file = tmp_path / "logs" / "scheduler.log"
        configure_logging(level="DEBUG", log_file=str(log_file))

        bind_schedule_context("sched_1", "wf_1").warning("Run failed", error="boom")
        logger.remove()

        content = log_file.read_text()
        assert "Run failed" in content
        assert "'error': 'boom'" in content
