"""
vmsflow Configuration System.

Supports loading from environment variables, YAML files, and programmatic configuration.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from vmsflow.utils.errors import ConfigurationError
from vmsflow.utils.logging import setup_logging


@dataclass
class PoolConfig:
    """Configuration for the worker pool."""

    max_workers: int | None = None  # None = number of processors
    thread_name_prefix: str = "vmsflow-worker"


@dataclass
class RunnerConfig:
    """Configuration for the local job runner."""

    poll_interval: float = 1.0


@dataclass
class PollerConfig:
    """Configuration for the remote task poller."""

    poll_interval: float = 0.5
    max_attempts: int = 5
    retry_delay: float = 1.0  # Flat delay between reconnect attempts
    cleanup: bool = False
    skip_invalid: bool = False


@dataclass
class FanOutConfig:
    """Configuration for fan-out orchestration."""

    max_in_flight: int | None = None  # None = pool capacity


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    json_format: bool = False
    log_file: str | None = None


@dataclass
class VmsFlowConfig:
    """
    Master configuration for vmsflow.

    Can be created from:
    - Environment variables (load with from_env())
    - YAML file (load with from_file())
    - Programmatically (direct instantiation)

    Example:
        # From environment
        config = VmsFlowConfig.from_env()

        # From file
        config = VmsFlowConfig.from_file("vmsflow.yaml")

        # Programmatic
        config = VmsFlowConfig(pool=PoolConfig(max_workers=8))
    """

    pool: PoolConfig = field(default_factory=PoolConfig)
    runner: RunnerConfig = field(default_factory=RunnerConfig)
    poller: PollerConfig = field(default_factory=PollerConfig)
    fanout: FanOutConfig = field(default_factory=FanOutConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> VmsFlowConfig:
        """
        Load configuration from environment variables.

        Args:
            dotenv_path: Optional path to .env file

        Returns:
            VmsFlowConfig instance
        """
        if dotenv_path:
            load_dotenv(dotenv_path)
        else:
            load_dotenv()

        def get_env(key: str, default: Any = None) -> Any:
            return os.getenv(key, default)

        def get_env_int(key: str, default: int | None) -> int | None:
            val = os.getenv(key)
            if not val:
                return default
            try:
                return int(val)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer, got {val!r}", key) from e

        def get_env_float(key: str, default: float) -> float:
            val = os.getenv(key)
            if not val:
                return default
            try:
                return float(val)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number, got {val!r}", key) from e

        def get_env_bool(key: str, default: bool) -> bool:
            val = os.getenv(key, "").lower()
            if val in ("true", "1", "yes"):
                return True
            if val in ("false", "0", "no"):
                return False
            return default

        config = cls(
            pool=PoolConfig(
                max_workers=get_env_int("VMSFLOW_MAX_WORKERS", None),
            ),
            runner=RunnerConfig(
                poll_interval=get_env_float("VMSFLOW_RUNNER_POLL_INTERVAL", 1.0),
            ),
            poller=PollerConfig(
                poll_interval=get_env_float("VMSFLOW_POLL_INTERVAL", 0.5),
                max_attempts=get_env_int("VMSFLOW_POLL_MAX_ATTEMPTS", 5),
                retry_delay=get_env_float("VMSFLOW_POLL_RETRY_DELAY", 1.0),
                cleanup=get_env_bool("VMSFLOW_POLL_CLEANUP", False),
            ),
            fanout=FanOutConfig(
                max_in_flight=get_env_int("VMSFLOW_MAX_IN_FLIGHT", None),
            ),
            logging=LoggingConfig(
                level=get_env("LOG_LEVEL", "INFO"),
                json_format=get_env_bool("LOG_JSON", False),
                log_file=get_env("LOG_FILE"),
            ),
        )
        config.validate()
        return config

    @classmethod
    def from_file(cls, path: str | Path) -> VmsFlowConfig:
        """
        Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            VmsFlowConfig instance
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {path}")

        config = cls._from_dict(data)
        config.validate()
        return config

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> VmsFlowConfig:
        """Create config from dictionary."""
        sections = {
            "pool": PoolConfig,
            "runner": RunnerConfig,
            "poller": PollerConfig,
            "fanout": FanOutConfig,
            "logging": LoggingConfig,
        }
        unknown = set(data) - set(sections)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration section(s): {', '.join(sorted(unknown))}"
            )

        parsed: dict[str, Any] = {}
        for name, section_cls in sections.items():
            section_data = data.get(name) or {}
            try:
                parsed[name] = section_cls(**section_data)
            except TypeError as e:
                raise ConfigurationError(f"Invalid '{name}' section: {e}", name) from e
        return cls(**parsed)

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigurationError: On the first invalid value
        """
        if self.pool.max_workers is not None and self.pool.max_workers < 1:
            raise ConfigurationError("pool.max_workers must be >= 1", "pool.max_workers")
        if self.runner.poll_interval <= 0:
            raise ConfigurationError("runner.poll_interval must be > 0", "runner.poll_interval")
        if self.poller.poll_interval < 0:
            raise ConfigurationError("poller.poll_interval must be >= 0", "poller.poll_interval")
        if self.poller.max_attempts < 1:
            raise ConfigurationError("poller.max_attempts must be >= 1", "poller.max_attempts")
        if self.poller.retry_delay < 0:
            raise ConfigurationError("poller.retry_delay must be >= 0", "poller.retry_delay")
        if self.fanout.max_in_flight is not None and self.fanout.max_in_flight < 1:
            raise ConfigurationError("fanout.max_in_flight must be >= 1", "fanout.max_in_flight")

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def apply_logging(self) -> None:
        """Reconfigure structured logging from the logging section."""
        setup_logging(
            level=self.logging.level,
            json_format=self.logging.json_format,
            log_file=self.logging.log_file,
        )


# Global config instance (can be overridden)
_global_config: VmsFlowConfig | None = None


def get_config() -> VmsFlowConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = VmsFlowConfig.from_env()
    return _global_config


def set_config(config: VmsFlowConfig | None) -> None:
    """Set (or with None, reset) the global configuration instance."""
    global _global_config
    _global_config = config
