"""
Meter — Lifecycle tracker for one operation instance.

A meter is created, started, and finished exactly once with ok, reject
or fail. Each transition emits a pair of events: a readable message on
the message logger and a compact data record at TRACE on the data
logger.

Misuse by the caller is reported through MeterValidator and the call is
refused. Exceptions raised by the meter itself are reported as BUG
events and never reach the instrumented code.

Usage:
    meter = Meter("app.Orders", "checkout").m("Checkout order %s", order_id)
    meter.start()
    try:
        ...
        meter.ok()
    except PaymentDeclined as e:
        meter.reject(e)

    # or
    total = Meter("app.Orders", "total").call(compute_total)
"""

import functools
import logging
import time
from enum import Enum
from typing import Any, Callable, TypeVar

from opmeter.config import MeterConfig, get_meter_config
from opmeter.meter import context as current_operation
from opmeter.meter.data import MeterData
from opmeter.meter.formatting import data_message, readable_message
from opmeter.meter.position import PositionRegistry, get_position_registry, position_key
from opmeter.meter.validator import MeterValidator
from opmeter.observability.logging import TRACE
from opmeter.observability.system import SystemSampler, get_system_sampler
from opmeter.session import short_session_uuid
from opmeter.vocabulary import Marker


T = TypeVar("T")

# Fail path recorded when a running meter is closed without an outcome
CLOSE_FAIL_PATH = "with-block"


def qualified_name(cls: type) -> str:
    """Fully-qualified class name, as module.qualname (builtins.ValueError)."""
    return f"{cls.__module__}.{cls.__qualname__}"


def to_path(value: Any, qualified: bool = False) -> str:
    """
    Convert an outcome argument to a path string.

    Strings are kept, enum members become their name, exceptions become
    their class name (fully-qualified when qualified), anything else
    goes through str().
    """
    if isinstance(value, str):
        return value
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, BaseException):
        return qualified_name(type(value)) if qualified else type(value).__name__
    return str(value)


def _guarded(signature: str):
    """Report exceptions escaping a meter method as a BUG and return the meter."""
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs):
            try:
                return method(self, *args, **kwargs)
            except Exception as e:
                MeterValidator.log_bug(self, signature, e)
                return self
        return wrapper
    return decorator


class Meter(MeterData):
    """
    Tracks the lifecycle of one operation.

    Not thread-safe: a meter belongs to the thread that drives it.
    """

    # Identity semantics; the dataclass field comparison does not apply
    __eq__ = object.__eq__
    __hash__ = object.__hash__

    def __init__(
        self,
        category: str | logging.Logger,
        operation: str | None = None,
        parent: str | None = None,
        *,
        config: MeterConfig | None = None,
        registry: PositionRegistry | None = None,
        time_source: Callable[[], int] | None = None,
        sampler: SystemSampler | None = None,
    ):
        if isinstance(category, logging.Logger):
            category = category.name
        super().__init__(category=category, operation=operation, parent=parent)

        self._config = config or get_meter_config()
        self._registry = registry or get_position_registry()
        self._time_source = time_source or time.monotonic_ns
        self._sampler = sampler
        self._previous: "Meter | None" = None
        self._last_progress_time = 0
        self._last_progress_iteration = 0

        self.message_logger = logging.getLogger(self._config.message_logger_name(category))
        self.data_logger = logging.getLogger(self._config.data_logger_name(category))

        self.session_uuid = short_session_uuid()
        self.position = self._registry.next_position(position_key(category, operation))
        self.create_time = self.collect_current_time()

    def __repr__(self) -> str:
        return f"Meter({self.full_id}, {self.state.value})"

    @property
    def config(self) -> MeterConfig:
        return self._config

    @staticmethod
    def get_current_instance() -> "Meter":
        """Active meter of this thread, or a placeholder."""
        return current_operation.get_current()

    def collect_current_time(self) -> int:
        self.last_current_time = self._time_source()
        return self.last_current_time

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @_guarded("m(message, *args)")
    def m(self, message: str, *args: Any) -> "Meter":
        """Set the description, with optional %-style arguments."""
        if not MeterValidator.validate_configuration_precondition(self, "m(message)"):
            return self
        description = MeterValidator.validate_m_arguments(self, message, args)
        if description is not None:
            self.description = description
        return self

    @_guarded("limit_milliseconds(time_limit)")
    def limit_milliseconds(self, time_limit: int) -> "Meter":
        """Mark the operation slow when it runs longer than time_limit ms."""
        if not MeterValidator.validate_configuration_precondition(self, "limit_milliseconds(time_limit)"):
            return self
        if not MeterValidator.validate_limit_milliseconds_arguments(self, time_limit):
            return self
        self.time_limit = time_limit * 1_000_000
        return self

    @_guarded("iterations(expected_iterations)")
    def iterations(self, expected_iterations: int) -> "Meter":
        if not MeterValidator.validate_configuration_precondition(self, "iterations(expected_iterations)"):
            return self
        if not MeterValidator.validate_iterations_arguments(self, expected_iterations):
            return self
        self.expected_iterations = expected_iterations
        return self

    @_guarded("ctx(name, value)")
    def ctx(self, name: str, value: Any = None) -> "Meter":
        """Attach a context entry; a None value records the name alone."""
        if MeterValidator.validate_context_name(self, "ctx(name, value)", name):
            self.put_context(name, value)
        return self

    @_guarded("unctx(name)")
    def unctx(self, name: str) -> "Meter":
        if MeterValidator.validate_context_name(self, "unctx(name)", name):
            self.remove_context(name)
        return self

    def sub(self, name: str) -> "Meter":
        """
        Child meter for a step of this operation.

        The child shares the category, extends the operation name with
        '/name', links back to this meter's id and copies its context.
        """
        if not MeterValidator.validate_sub_arguments(self, name):
            name = current_operation.UNKNOWN_CATEGORY
        operation = name if self.operation is None else f"{self.operation}/{name}"
        child = Meter(
            self.category,
            operation,
            self.full_id,
            config=self._config,
            registry=self._registry,
            time_source=self._time_source,
            sampler=self._sampler,
        )
        child.context.update(self.context)
        return child

    # -------------------------------------------------------------------------
    # Iterations
    # -------------------------------------------------------------------------

    @_guarded("inc()")
    def inc(self) -> "Meter":
        if MeterValidator.validate_inc_precondition(self):
            self.current_iteration += 1
        return self

    @_guarded("inc_by(increment)")
    def inc_by(self, increment: int) -> "Meter":
        if not MeterValidator.validate_inc_precondition(self):
            return self
        if MeterValidator.validate_inc_by_arguments(self, increment):
            self.current_iteration += increment
        return self

    @_guarded("inc_to(iteration)")
    def inc_to(self, iteration: int) -> "Meter":
        if not MeterValidator.validate_inc_precondition(self):
            return self
        if MeterValidator.validate_inc_to_arguments(self, iteration):
            self.current_iteration = iteration
        return self

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    @_guarded("start()")
    def start(self) -> "Meter":
        if not MeterValidator.validate_start_precondition(self):
            return self

        self.start_time = self.collect_current_time()
        self._last_progress_time = self.start_time
        self._last_progress_iteration = self.current_iteration
        self._previous = current_operation.set_current(self)

        self._emit(logging.DEBUG, Marker.MSG_START, Marker.DATA_START)
        return self

    @_guarded("progress()")
    def progress(self, iteration: int | None = None) -> "Meter":
        """
        Report progress, at most once per configured period.

        With an iteration the counter is first moved forward to it. A
        report is only emitted when iterations advanced since the last
        one and the period has elapsed; a zero period emits every call.
        """
        if not MeterValidator.validate_progress_precondition(self):
            return self
        if iteration is not None:
            if not MeterValidator.validate_inc_to_arguments(self, iteration):
                return self
            self.current_iteration = iteration

        now = self.collect_current_time()
        period = self._config.progress_period_ns
        if period != 0:
            if self.current_iteration <= self._last_progress_iteration:
                return self
            if now - self._last_progress_time <= period:
                return self

        self._last_progress_time = now
        self._last_progress_iteration = self.current_iteration
        data_marker = Marker.DATA_SLOW_PROGRESS if self.is_slow else Marker.DATA_PROGRESS
        self._emit(logging.INFO, Marker.MSG_PROGRESS, data_marker)
        return self

    @_guarded("path(path)")
    def path(self, path: Any) -> "Meter":
        """Record the ok path ahead of ok()."""
        if not MeterValidator.validate_path_argument(self, "path(path)", path):
            return self
        if MeterValidator.validate_path_precondition(self):
            self.ok_path = to_path(path)
        return self

    @_guarded("ok(...)")
    def ok(self, path: Any = None) -> "Meter":
        """Finish successfully, optionally naming the ok path."""
        if not MeterValidator.validate_stop_precondition(self, Marker.INCONSISTENT_OK):
            return self

        self._stop()
        if path is not None:
            self.ok_path = to_path(path)
        self.reject_path = None
        self.fail_path = None
        self.fail_message = None
        self._restore_current()

        if self.is_slow:
            self._emit(logging.WARNING, Marker.MSG_SLOW_OK, Marker.DATA_SLOW_OK)
        else:
            self._emit(logging.INFO, Marker.MSG_OK, Marker.DATA_OK)
        return self

    success = ok

    @_guarded("reject(cause)")
    def reject(self, cause: Any) -> "Meter":
        """Finish with an expected negative outcome."""
        if not MeterValidator.validate_path_argument(self, "reject(cause)", cause):
            return self
        if not MeterValidator.validate_stop_precondition(self, Marker.INCONSISTENT_REJECT):
            return self

        self._stop()
        self.ok_path = None
        self.reject_path = to_path(cause)
        self.fail_path = None
        self.fail_message = None
        self._restore_current()

        self._emit(logging.INFO, Marker.MSG_REJECT, Marker.DATA_REJECT)
        return self

    @_guarded("fail(cause)")
    def fail(self, cause: Any) -> "Meter":
        """Finish with an error; exceptions also record their message."""
        if not MeterValidator.validate_path_argument(self, "fail(cause)", cause):
            return self
        if not MeterValidator.validate_stop_precondition(self, Marker.INCONSISTENT_FAIL):
            return self

        self._stop()
        self.ok_path = None
        self.reject_path = None
        self.fail_path = to_path(cause, qualified=True)
        self.fail_message = _exception_message(cause)
        self._restore_current()

        self._emit(logging.ERROR, Marker.MSG_FAIL, Marker.DATA_FAIL)
        return self

    @_guarded("close()")
    def close(self) -> "Meter":
        """
        Safety net for meters left running.

        A finished meter only has its bookkeeping tidied. A running meter
        fails with CLOSE_FAIL_PATH.
        """
        if self.stop_time != 0:
            self._restore_current()
            return self
        if not MeterValidator.validate_stop_precondition(self, Marker.INCONSISTENT_CLOSE):
            return self

        self._stop()
        self.ok_path = None
        self.reject_path = None
        self.fail_path = CLOSE_FAIL_PATH
        self.fail_message = None
        self._restore_current()

        self._emit(logging.ERROR, Marker.MSG_FAIL, Marker.DATA_FAIL)
        return self

    def __enter__(self) -> "Meter":
        if not self.is_started:
            self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is not None and not self.is_stopped:
            self.fail(exc)
        self.close()
        return False

    # -------------------------------------------------------------------------
    # Wrappers
    # -------------------------------------------------------------------------

    def call(self, operation: Callable[[], T]) -> T:
        """
        Run operation under this meter and return its result.

        The meter is started if needed and is current while operation
        runs. Unless operation finished the meter itself, a normal return
        completes it with ok() and records a non-None result as the
        'result' context entry; an exception completes it with fail()
        and is re-raised unchanged. KeyboardInterrupt and SystemExit
        count as failures too.
        """
        return self._invoke(operation, (), record_result=True)

    def run(self, operation: Callable[[], Any]) -> None:
        """Like call(), discarding the result."""
        self._invoke(operation, (), record_result=False)

    def call_or_reject(self, operation: Callable[[], T], *reject_exceptions: type[BaseException]) -> T:
        """Like call(), but listed exception types complete with reject()."""
        return self._invoke(operation, reject_exceptions, record_result=True)

    def run_or_reject(self, operation: Callable[[], Any], *reject_exceptions: type[BaseException]) -> None:
        self._invoke(operation, reject_exceptions, record_result=False)

    def _invoke(self, operation, reject_exceptions: tuple, record_result: bool):
        if not self.is_started:
            self.start()
        previous = current_operation.set_current(self)
        if previous is self:
            previous = self._previous
        try:
            result = operation()
        except BaseException as e:
            if not self.is_stopped:
                if reject_exceptions and isinstance(e, reject_exceptions):
                    self.reject(e)
                else:
                    self.fail(e)
            raise
        else:
            if not self.is_stopped:
                if record_result and result is not None:
                    self.ctx("result", result)
                self.ok()
            return result if record_result else None
        finally:
            current_operation.restore(previous)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _stop(self) -> None:
        self.stop_time = self.collect_current_time()
        if self.start_time == 0:
            self.start_time = self.stop_time

    def _restore_current(self) -> None:
        if current_operation.is_current(self):
            current_operation.restore(self._previous)
        self._previous = None

    def _emit(self, level: int, message_marker: Marker, data_marker: Marker) -> None:
        """Sample resources, log the message and data pair, clear context."""
        try:
            sampler = self._sampler or get_system_sampler()
            sampler.sample(self)
            if self.message_logger.isEnabledFor(level):
                self.message_logger.log(
                    level, "%s", readable_message(self, self._config),
                    extra={"marker": message_marker, "extra_data": self.to_record()},
                )
            if self.data_logger.isEnabledFor(TRACE):
                self.data_logger.log(
                    TRACE, "%s", data_message(self),
                    extra={"marker": data_marker, "extra_data": self.to_record()},
                )
        finally:
            self.clear_context()


def _exception_message(cause: Any) -> str | None:
    if isinstance(cause, BaseException):
        return str(cause) or None
    return None
