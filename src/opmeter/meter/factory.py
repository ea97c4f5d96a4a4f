"""
Meter Factory — Convenience constructors for meters.

Resolves loggers, category names and classes to a category, and derives
sub-meters from the meter active on the running thread.
"""

import functools
import logging
from typing import Any, Callable

from opmeter.meter import context as current_operation
from opmeter.meter.meter import Meter, qualified_name


Source = str | logging.Logger | type


def resolve_category(source: Source) -> str:
    """Category name for a logger, a class or a plain string."""
    if isinstance(source, logging.Logger):
        return source.name
    if isinstance(source, type):
        return qualified_name(source)
    return str(source)


def get_meter(source: Source, operation: str | None = None) -> Meter:
    """Create a meter for source, optionally naming the operation."""
    return Meter(resolve_category(source), operation)


def get_current_meter() -> Meter:
    """Meter active on this thread, or a '???' placeholder."""
    return current_operation.get_current()


def get_current_sub_meter(name: str) -> Meter:
    """
    Sub-meter of the active meter.

    Without an active meter the result falls under the '???' category
    with name as its operation.
    """
    current = current_operation.peek()
    if current is None:
        return Meter(current_operation.UNKNOWN_CATEGORY, name)
    return current.sub(name)


def metered(category: Source | None = None, operation: str | None = None) -> Callable:
    """
    Decorator running each call of a function under a fresh meter.

    Defaults to the function's module as category and its qualified
    name as operation.

    Usage:
        @metered("app.Orders")
        def checkout(order):
            ...
    """
    def decorator(func: Callable) -> Callable:
        meter_category = resolve_category(category) if category is not None else func.__module__
        meter_operation = operation or func.__qualname__

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            meter = Meter(meter_category, meter_operation)
            return meter.call(lambda: func(*args, **kwargs))

        return wrapper

    return decorator
