"""
Scheduler configuration.

Settings come from keyword arguments or ``STEPFLOW_*`` environment variables:

    STEPFLOW_POLL_INTERVAL            Delay between passes ("60s", "5m", 60)
    STEPFLOW_MAX_CONCURRENCY          Schedules run at once within a pass
    STEPFLOW_LEASE_TTL                Lifetime of a schedule claim
    STEPFLOW_OWNER_ID                 Lease owner name of this process
    STEPFLOW_STEP_TIMEOUT             Default timeout of one step executor call
    STEPFLOW_EXHAUSTED_RETRIES_STATUS Schedule status once retries run out
    STEPFLOW_MAX_HISTORY              Messages kept in a run's history
    STEPFLOW_STORAGE                  "memory" or "file"
    STEPFLOW_STORAGE_PATH             Base directory of the file backend
    STEPFLOW_DISCOVER                 Comma-separated modules defining actions
"""

import os
import socket
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

from stepflow.core.state import DEFAULT_MAX_HISTORY
from stepflow.storage.base import StorageBackend
from stepflow.storage.schemas import ScheduleStatus
from stepflow.utils.duration import parse_duration, parse_optional_duration


def _default_owner_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:6]}"


@dataclass
class SchedulerConfig:
    """
    Settings of one WorkflowScheduler.

    ``exhausted_retries_status`` is off by default: a schedule keeps running
    no matter how many consecutive runs failed. Set it (usually to
    ``ScheduleStatus.ERROR``) to stop schedules whose error count went past
    their ``config.max_retries``.
    """

    poll_interval: float = 60.0
    max_concurrency: int = 1
    lease_ttl: float = 3600.0
    owner_id: str = field(default_factory=_default_owner_id)
    step_timeout: Optional[float] = None
    exhausted_retries_status: Optional[ScheduleStatus] = None
    max_history: int = DEFAULT_MAX_HISTORY
    storage: str = "file"
    storage_path: str = "./stepflow_data"

    def __post_init__(self) -> None:
        self.poll_interval = parse_duration(self.poll_interval)
        self.lease_ttl = parse_duration(self.lease_ttl)
        self.step_timeout = parse_optional_duration(self.step_timeout)

        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if self.lease_ttl <= 0:
            raise ValueError("lease_ttl must be positive")
        if self.max_history < 1:
            raise ValueError("max_history must be >= 1")
        if isinstance(self.exhausted_retries_status, str):
            self.exhausted_retries_status = ScheduleStatus(self.exhausted_retries_status)
        if self.storage not in ("memory", "file"):
            raise ValueError(f"Unknown storage backend: {self.storage}")


def load_config(**overrides) -> SchedulerConfig:
    """
    Build a SchedulerConfig from the environment.

    Keyword arguments take precedence over environment variables.

    Examples:
        # Everything from STEPFLOW_* variables
        config = load_config()

        # Poll every 10 seconds, whatever the environment says
        config = load_config(poll_interval="10s")
    """
    values = {
        "poll_interval": os.getenv("STEPFLOW_POLL_INTERVAL"),
        "max_concurrency": os.getenv("STEPFLOW_MAX_CONCURRENCY"),
        "lease_ttl": os.getenv("STEPFLOW_LEASE_TTL"),
        "owner_id": os.getenv("STEPFLOW_OWNER_ID"),
        "step_timeout": os.getenv("STEPFLOW_STEP_TIMEOUT"),
        "exhausted_retries_status": os.getenv("STEPFLOW_EXHAUSTED_RETRIES_STATUS"),
        "max_history": os.getenv("STEPFLOW_MAX_HISTORY"),
        "storage": os.getenv("STEPFLOW_STORAGE"),
        "storage_path": os.getenv("STEPFLOW_STORAGE_PATH"),
    }

    for key in ("max_concurrency", "max_history"):
        if values[key] is not None:
            values[key] = int(values[key])

    kwargs = {key: value for key, value in values.items() if value not in (None, "")}
    kwargs.update(overrides)
    return SchedulerConfig(**kwargs)


def get_storage(config: Optional[SchedulerConfig] = None) -> StorageBackend:
    """Create the storage backend named by ``config.storage``."""
    config = config or load_config()

    if config.storage == "memory":
        from stepflow.storage.memory import InMemoryStorageBackend

        return InMemoryStorageBackend()

    from stepflow.storage.file import FileStorageBackend

    return FileStorageBackend(base_path=config.storage_path)


def discover_actions(modules: Optional[List[str]] = None) -> List[str]:
    """
    Import modules so their ``@action`` handlers get registered.

    Args:
        modules: Module paths to import. If None, reads the comma-separated
            STEPFLOW_DISCOVER environment variable

    Returns:
        The modules that were imported successfully

    Examples:
        discover_actions(["myapp.actions", "myapp.mail"])
    """
    if modules is None:
        discover_env = os.getenv("STEPFLOW_DISCOVER", "")
        if not discover_env:
            return []
        modules = [m.strip() for m in discover_env.split(",") if m.strip()]

    imported = []
    for module_path in modules:
        try:
            __import__(module_path)
        except ImportError as e:
            logger.error(f"Failed to import action module: {module_path}", error=str(e))
            continue
        logger.info(f"Discovered actions from: {module_path}")
        imported.append(module_path)

    return imported
