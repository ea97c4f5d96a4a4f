"""
Configuration — Meter and session settings.

Settings are immutable pydantic-settings models read from OPMETER_*
environment variables. The process keeps one active instance of each;
tests and applications swap them at runtime with the set_/reset_
helpers.

Environment:
    OPMETER_METER_PROGRESS_PERIOD_MS   duration, e.g. 500, 2s, 1min
    OPMETER_METER_PRINT_CATEGORY       bool (also _STATUS, _POSITION, _LOAD, _MEMORY)
    OPMETER_METER_MESSAGE_PREFIX       str (also _MESSAGE_SUFFIX, _DATA_PREFIX, _DATA_SUFFIX)
    OPMETER_SESSION_UUID_SIZE          int, 1..32
"""

import logging
import re
from threading import Lock
from typing import Any, TypeVar

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger("opmeter.config")

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*(ms|s|min|m|h)?\s*$", re.IGNORECASE)
_DURATION_FACTORS = {
    None: 1,
    "ms": 1,
    "s": 1000,
    "m": 60 * 1000,
    "min": 60 * 1000,
    "h": 60 * 60 * 1000,
}


def parse_milliseconds(text: str) -> int:
    """
    Parse a duration such as '500', '500ms', '2s', '1min' or '1h'.

    Bare numbers are milliseconds.

    Raises:
        ValueError: If the text is not a duration
    """
    match = _DURATION_PATTERN.match(text)
    if match is None:
        raise ValueError(f"Invalid duration: {text!r}")
    unit = match.group(2).lower() if match.group(2) else None
    return int(match.group(1)) * _DURATION_FACTORS[unit]


class MeterConfig(BaseSettings):
    """
    Settings that shape meter events (``OPMETER_METER_*``).

    Prefixes and suffixes decorate the category to name the message and
    data loggers; the print_* flags toggle parts of the readable message.
    """

    model_config = SettingsConfigDict(env_prefix="OPMETER_METER_", frozen=True, extra="forbid")

    progress_period_ms: int = Field(
        default=2000,
        ge=0,
        description="Minimum interval between progress events; 0 never suppresses"
    )

    print_category: bool = Field(
        default=False,
        description="Include the category in readable messages"
    )

    print_status: bool = Field(
        default=True,
        description="Prefix readable messages with the lifecycle status"
    )

    print_position: bool = Field(
        default=False,
        description="Include the position in readable messages"
    )

    print_load: bool = Field(
        default=False,
        description="Include system load in readable messages"
    )

    print_memory: bool = Field(
        default=False,
        description="Include used memory in readable messages"
    )

    message_prefix: str = ""
    message_suffix: str = ""
    data_prefix: str = ""
    data_suffix: str = ""

    @field_validator("progress_period_ms", mode="before")
    @classmethod
    def parse_period(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_milliseconds(v)
        return v

    @property
    def progress_period_ns(self) -> int:
        return self.progress_period_ms * 1000 * 1000

    def message_logger_name(self, category: str) -> str:
        return f"{self.message_prefix}{category}{self.message_suffix}"

    def data_logger_name(self, category: str) -> str:
        return f"{self.data_prefix}{category}{self.data_suffix}"


class SessionConfig(BaseSettings):
    """Settings for the session identifier (``OPMETER_SESSION_*``)."""

    model_config = SettingsConfigDict(env_prefix="OPMETER_SESSION_", frozen=True, extra="forbid")

    uuid_size: int = Field(
        default=5,
        ge=1,
        le=32,
        description="Number of trailing session UUID characters printed"
    )


Settings = TypeVar("Settings", bound=BaseSettings)


def load_settings(model: type[Settings]) -> Settings:
    """
    Read settings from the environment.

    Variables that fail validation are reported and their fields fall
    back to the defaults, so a bad variable never breaks the
    instrumented application.
    """
    try:
        return model()
    except ValidationError as e:
        bad = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        prefix = model.model_config.get("env_prefix", "")
        for name in bad:
            logger.warning(f"Ignoring {prefix}{name.upper()}: invalid value, using default")
        defaults = {
            name: model.model_fields[name].default
            for name in bad if name in model.model_fields
        }
        return model(**defaults)


# =============================================================================
# PROCESS-WIDE HOLDERS
# =============================================================================

_lock = Lock()
_meter_config = load_settings(MeterConfig)
_session_config = load_settings(SessionConfig)


def get_meter_config() -> MeterConfig:
    """Get the active meter settings."""
    return _meter_config


def set_meter_config(config: MeterConfig) -> None:
    """Replace the active meter settings."""
    global _meter_config
    with _lock:
        _meter_config = config


def reset_meter_config() -> MeterConfig:
    """Reload meter settings from the environment (for testing)."""
    config = load_settings(MeterConfig)
    set_meter_config(config)
    return config


def get_session_config() -> SessionConfig:
    """Get the active session settings."""
    return _session_config


def set_session_config(config: SessionConfig) -> None:
    """Replace the active session settings."""
    global _session_config
    with _lock:
        _session_config = config


def reset_session_config() -> SessionConfig:
    """Reload session settings from the environment (for testing)."""
    config = load_settings(SessionConfig)
    set_session_config(config)
    return config
