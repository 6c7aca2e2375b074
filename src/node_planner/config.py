"""Configuration loading: defaults, then YAML, then ``PLANNER_*`` environment variables."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml

from .models.errors import is_transient
from .models.retry import RetryPolicy

__all__ = [
    "ConfigError",
    "LLMConfig",
    "LoggingConfig",
    "PlannerConfig",
    "PlanningConfig",
    "RetryConfig",
    "load_config",
    "parse_duration",
]

LOGGER = logging.getLogger(__name__)

PROVIDERS = ("openai", "anthropic", "offline")
LOG_LEVELS = ("debug", "info", "warn", "warning", "error")
LOG_FORMATS = ("json", "console")
PROVIDER_KEY_ENV = {"openai": "OPENAI_API_KEY", "anthropic": "ANTHROPIC_API_KEY"}

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


class ConfigError(ValueError):
    """Raised when configuration cannot be read or fails validation."""


def parse_duration(value: Any) -> float:
    """Return seconds for ``value`` given as a number or a string like ``500ms``."""
    if isinstance(value, bool):
        raise ConfigError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _DURATION_RE.match(value)
        if match:
            return float(match.group(1)) * _DURATION_UNITS[match.group(2) or "s"]
    raise ConfigError(f"invalid duration: {value!r}")


@dataclass(slots=True)
class RetryConfig:
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0
    retry_all_errors: bool = True

    def build_policy(self) -> RetryPolicy:
        """Create the retry policy used beneath every model call."""
        retry_if = None if self.retry_all_errors else is_transient
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            multiplier=self.multiplier,
            retry_if=retry_if,
        )


@dataclass(slots=True)
class LLMConfig:
    provider: str = "anthropic"
    api_key: str = ""
    model: str = "claude-3-5-sonnet-20241022"
    base_url: str = ""
    max_tokens: int = 4096
    temperature: float = 0.0
    timeout: float = 60.0
    retry: RetryConfig = field(default_factory=RetryConfig)


@dataclass(slots=True)
class PlanningConfig:
    max_iterations: int = 3
    max_nodes: int = 50
    prompt_path: str = "./prompts"
    enable_analysis: bool = True
    continue_without_analysis: bool = True


@dataclass(slots=True)
class LoggingConfig:
    level: str = "info"
    format: str = "json"
    trace_dir: Optional[str] = None


@dataclass(slots=True)
class PlannerConfig:
    llm: LLMConfig = field(default_factory=LLMConfig)
    planning: PlanningConfig = field(default_factory=PlanningConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self, *, mask_secrets: bool = True) -> Dict[str, Any]:
        data = asdict(self)
        if mask_secrets and data["llm"].get("api_key"):
            data["llm"]["api_key"] = "****"
        return data

    def validate(self) -> None:
        """Raise ``ConfigError`` describing the first invalid setting."""
        llm = self.llm
        if llm.provider not in PROVIDERS:
            raise ConfigError(f"unsupported LLM provider: {llm.provider!r} (expected one of {', '.join(PROVIDERS)})")
        if llm.provider != "offline" and not llm.api_key:
            raise ConfigError("LLM API key is required")
        if not llm.model:
            raise ConfigError("LLM model is required")
        if llm.max_tokens <= 0:
            raise ConfigError("llm.max_tokens must be positive")
        if llm.timeout <= 0:
            raise ConfigError("llm.timeout must be positive")

        retry = llm.retry
        if retry.max_attempts < 1:
            raise ConfigError("llm.retry.max_attempts must be at least 1")
        if retry.multiplier <= 1.0:
            raise ConfigError("llm.retry.multiplier must be greater than 1.0")
        if retry.initial_delay < 0 or retry.max_delay < 0:
            raise ConfigError("llm.retry delays must not be negative")

        if self.planning.max_iterations <= 0:
            raise ConfigError("max iterations must be positive")
        if self.planning.max_nodes <= 0:
            raise ConfigError("max nodes must be positive")

        if self.logging.level.lower() not in LOG_LEVELS:
            raise ConfigError(f"invalid log level: {self.logging.level}")
        if self.logging.format.lower() not in LOG_FORMATS:
            raise ConfigError(f"invalid log format: {self.logging.format}")


def _apply_section(target: Any, values: Any, section: str) -> None:
    """Copy known keys from a YAML mapping onto a config dataclass."""
    if values is None:
        return
    if not isinstance(values, Mapping):
        raise ConfigError(f"section '{section}' must be a mapping")
    known = {item.name: item for item in fields(target)}
    for key, value in values.items():
        if key not in known:
            LOGGER.warning("ignoring unknown configuration key %s.%s", section, key)
            continue
        current = getattr(target, key)
        if isinstance(current, RetryConfig):
            _apply_section(current, value, f"{section}.{key}")
            continue
        setattr(target, key, _coerce(key, current, value, f"{section}.{key}"))


_DURATION_KEYS = {"timeout", "initial_delay", "max_delay"}


def _coerce(key: str, current: Any, value: Any, label: str) -> Any:
    if key in _DURATION_KEYS:
        return parse_duration(value)
    converter: Callable[[Any], Any]
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        converter = _parse_bool
    elif isinstance(current, int):
        converter = int
    elif isinstance(current, float):
        converter = float
    elif current is None:
        return None if value is None else str(value)
    else:
        converter = str
    try:
        return converter(value)
    except (TypeError, ValueError) as error:
        raise ConfigError(f"invalid value for {label}: {value!r}") from error


def _parse_bool(value: Any) -> bool:
    lowered = str(value).strip().lower()
    if lowered in {"true", "1", "yes", "on"}:
        return True
    if lowered in {"false", "0", "no", "off"}:
        return False
    raise ValueError(value)


_ENV_OVERRIDES: tuple[tuple[str, str, str], ...] = (
    ("PLANNER_LLM_PROVIDER", "llm", "provider"),
    ("PLANNER_LLM_API_KEY", "llm", "api_key"),
    ("PLANNER_LLM_MODEL", "llm", "model"),
    ("PLANNER_LLM_BASE_URL", "llm", "base_url"),
    ("PLANNER_LLM_MAX_TOKENS", "llm", "max_tokens"),
    ("PLANNER_LLM_TEMPERATURE", "llm", "temperature"),
    ("PLANNER_MAX_ITERATIONS", "planning", "max_iterations"),
    ("PLANNER_MAX_NODES", "planning", "max_nodes"),
    ("PLANNER_PROMPT_PATH", "planning", "prompt_path"),
    ("PLANNER_LOG_LEVEL", "logging", "level"),
    ("PLANNER_LOG_FORMAT", "logging", "format"),
)


def _apply_env(config: PlannerConfig, environ: Mapping[str, str]) -> None:
    for variable, section, key in _ENV_OVERRIDES:
        value = environ.get(variable)
        if not value:
            continue
        target = getattr(config, section)
        setattr(target, key, _coerce(key, getattr(target, key), value, variable))

    if not config.llm.api_key:
        fallback_var = PROVIDER_KEY_ENV.get(config.llm.provider)
        if fallback_var and environ.get(fallback_var):
            config.llm.api_key = environ[fallback_var]


def load_config(
    config_path: Path | str | None = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> PlannerConfig:
    """Load configuration; environment variables override YAML values."""
    config = PlannerConfig()

    if config_path is not None:
        path = Path(config_path)
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except OSError as error:
            raise ConfigError(f"failed to read config file: {error}") from error
        except yaml.YAMLError as error:
            raise ConfigError(f"failed to parse config file: {error}") from error
        if not isinstance(data, dict):
            raise ConfigError("configuration must be a mapping at the top level")
        for section in ("llm", "planning", "logging"):
            _apply_section(getattr(config, section), data.get(section), section)

    _apply_env(config, os.environ if environ is None else environ)
    config.validate()
    return config
