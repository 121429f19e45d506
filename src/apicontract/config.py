"""Configuration management for contract runs.

All configuration is read from environment variables (NO .env files).
Command-line flags override whatever is set here.
"""
import os
from dataclasses import dataclass
from typing import Optional

from .models import RunOptions

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {name}: {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid integer for {name}: {raw!r}") from None


@dataclass
class RunnerConfig:
    """Configuration for contract runs (reads from environment)."""

    base_url: Optional[str] = None
    timeout_ms: int = 5000
    concurrency: int = 1
    strict: bool = False
    stop_on_first_failure: bool = False
    fixtures_path: Optional[str] = None

    @classmethod
    def from_environment(cls) -> "RunnerConfig":
        """Load configuration from environment variables (NO .env files).

        Returns:
            RunnerConfig: Loaded configuration object

        Raises:
            ValueError: If a variable holds an invalid value
        """
        config = cls(
            base_url=os.getenv("CONTRACT_BASE_URL") or None,
            timeout_ms=_env_int("CONTRACT_TIMEOUT_MS", 5000),
            concurrency=_env_int("CONTRACT_CONCURRENCY", 1),
            strict=_env_bool("CONTRACT_STRICT"),
            stop_on_first_failure=_env_bool("CONTRACT_STOP_ON_FIRST_FAILURE"),
            fixtures_path=os.getenv("CONTRACT_FIXTURES") or None,
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any value is out of range
        """
        if self.base_url and not self.base_url.startswith(("http://", "https://")):
            raise ValueError(f"Invalid base_url: {self.base_url}. Must be an HTTP/HTTPS URL")
        if self.timeout_ms <= 0:
            raise ValueError(f"Invalid timeout_ms: {self.timeout_ms}. Must be > 0")
        if self.concurrency < 1:
            raise ValueError(f"Invalid concurrency: {self.concurrency}. Must be >= 1")

    def to_run_options(self, independent: bool = False) -> RunOptions:
        """Convert to RunOptions for ContractRunner."""
        return RunOptions(
            timeout_ms=self.timeout_ms,
            stop_on_first_failure=self.stop_on_first_failure,
            independent=independent,
            concurrency=self.concurrency,
            strict_properties=self.strict,
        )
