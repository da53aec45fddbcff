"""
Loguru setup for StepFlow.

Modules log through ``loguru.logger`` with keyword extras. The scheduler and
the run engine bind ``schedule_id``, ``workflow_id`` and ``step_id`` so every
line of a run can be traced back to its schedule.
"""

import sys
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

# Bound extras rendered in front of the message, in this order
CONTEXT_KEYS = ("schedule_id", "workflow_id", "step_id")

_TIME_LEVEL = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
_SOURCE = "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan>"


def _format_with_context(record: Dict[str, Any]) -> str:
    context = " ".join(
        f"{key}={{extra[{key}]}}" for key in CONTEXT_KEYS if key in record["extra"]
    )
    if context:
        return f"{_TIME_LEVEL}{_SOURCE} | <magenta>{context}</magenta> | <level>{{message}}</level>\n{{exception}}"
    return f"{_TIME_LEVEL}{_SOURCE} | <level>{{message}}</level>\n{{exception}}"


def configure_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_logs: bool = False,
    show_context: bool = True,
) -> None:
    """
    Route StepFlow logs to stderr and, optionally, a rotating file.

    Nothing is configured on import; the host application calls this once
    at startup if it wants StepFlow's format.

    Args:
        level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Also write logs to this file, rotated at 100 MB
        json_logs: Emit one JSON object per line instead of text
        show_context: Prefix messages with the bound schedule/workflow/step ids

    Examples:
        configure_logging()

        # Scheduler running as a service
        configure_logging(level="INFO", log_file="logs/scheduler.log", json_logs=True)
    """
    logger.remove()

    console_format = _format_with_context if show_context else (
        f"{_TIME_LEVEL}{_SOURCE} - <level>{{message}}</level>"
    )
    logger.add(
        sys.stderr,
        format=console_format,
        level=level,
        colorize=not json_logs,
        serialize=json_logs,
    )

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {message} | {extra}",
            level=level,
            rotation="100 MB",
            retention="30 days",
            compression="gz",
            serialize=json_logs,
        )

    logger.debug("Logging configured", level=level, log_file=log_file, json_logs=json_logs)


def get_logger(name: Optional[str] = None):
    """Logger bound to a module name, or the shared logger."""
    if name:
        return logger.bind(module=name)
    return logger


def bind_schedule_context(schedule_id: str, workflow_id: str):
    """
    Logger carrying the ids of a schedule and its workflow.

    Example:
        log = bind_schedule_context("sched_123", "wf_456")
        log.info("Schedule claimed")
    """
    return logger.bind(schedule_id=schedule_id, workflow_id=workflow_id)


def bind_run_context(workflow_id: str, step_id: str, step_name: str):
    """Logger carrying the ids of the step a run is executing."""
    return logger.bind(workflow_id=workflow_id, step_id=step_id, step_name=step_name)
