"""Shared fixtures for opmeter tests."""

import logging

import pytest

from opmeter.config import MeterConfig, SessionConfig, set_meter_config, set_session_config
from opmeter.meter import context as current_operation
from opmeter.meter.position import reset_positions
from opmeter.observability import TRACE, set_system_sampler
from opmeter.vocabulary import Marker


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def clean_meter_state():
    """Default settings, fresh positions and no current meter per test."""
    set_meter_config(MeterConfig())
    set_session_config(SessionConfig())
    set_system_sampler(None)
    reset_positions()
    current_operation.restore(None)
    yield
    current_operation.restore(None)
    set_meter_config(MeterConfig())
    set_session_config(SessionConfig())
    set_system_sampler(None)


@pytest.fixture
def meter_log(caplog):
    """caplog capturing every meter event, data records included."""
    caplog.set_level(TRACE)
    return caplog


@pytest.fixture
def eager_progress():
    """Meter settings that never throttle progress events."""
    config = MeterConfig(progress_period_ms=0)
    set_meter_config(config)
    return config


class FakeClock:
    """Manually advanced nanosecond clock."""

    def __init__(self, start: int = 1_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance_ms(self, ms: int) -> None:
        self.now += ms * 1_000_000


@pytest.fixture
def clock():
    return FakeClock()


# =============================================================================
# HELPERS
# =============================================================================

def with_marker(caplog, marker: Marker) -> list[logging.LogRecord]:
    """Captured records tagged with marker."""
    return [r for r in caplog.records if getattr(r, "marker", None) == marker]


def markers(caplog) -> list[Marker]:
    """Markers of all captured meter records, in order."""
    return [r.marker for r in caplog.records if isinstance(getattr(r, "marker", None), Marker)]
