"""
Current Operation — Execution-scoped slot for the active meter.

Holds the most recently started, not yet finished meter of the running
thread (or asyncio task). Sub-operations and "current meter" lookups
read it instead of passing meters around.
"""

from contextvars import ContextVar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from opmeter.meter.meter import Meter


# Category of the placeholder meter returned when nothing is active
UNKNOWN_CATEGORY = "???"

_current_meter: ContextVar["Meter | None"] = ContextVar("current_meter", default=None)


def peek() -> "Meter | None":
    """Active meter of this thread, or None."""
    return _current_meter.get()


def get_current() -> "Meter":
    """
    Active meter of this thread.

    Falls back to a fresh placeholder meter under the '???' category
    when no meter is active.
    """
    current = _current_meter.get()
    if current is None:
        from opmeter.meter.meter import Meter
        return Meter(UNKNOWN_CATEGORY)
    return current


def set_current(meter: "Meter | None") -> "Meter | None":
    """Make meter the active one; returns the meter it replaced."""
    previous = _current_meter.get()
    _current_meter.set(meter)
    return previous


def restore(previous: "Meter | None") -> None:
    """Put back a meter returned by set_current."""
    _current_meter.set(previous)


def is_current(meter: "Meter") -> bool:
    return _current_meter.get() is meter
