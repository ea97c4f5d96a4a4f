"""Tests for meter transitions and their events."""

import json
import logging
from enum import Enum

import pytest

from conftest import markers, with_marker
from opmeter.config import MeterConfig, set_meter_config
from opmeter.meter import CLOSE_FAIL_PATH, Meter, qualified_name
from opmeter.meter import context as current_operation
from opmeter.meter.formatting import parse_data_message
from opmeter.observability import TRACE
from opmeter.vocabulary import Marker, MeterState


class Outcome(Enum):
    CACHED = 1
    COMPUTED = 2


class PaymentDeclined(Exception):
    pass


# =============================================================================
# START
# =============================================================================

class TestStart:
    """Tests for start()."""

    def test_emits_message_then_data(self, meter_log):
        """Start logs DEBUG message then TRACE data record."""
        meter = Meter("app.Orders", "checkout").start()
        assert markers(meter_log) == [Marker.MSG_START, Marker.DATA_START]
        message, data = meter_log.records
        assert message.levelno == logging.DEBUG
        assert message.name == "app.Orders"
        assert message.getMessage().startswith("STARTED: checkout")
        assert data.levelno == TRACE
        assert data.getMessage().startswith("{_:")
        assert data.extra_data["state"] == "STARTED"
        assert meter.state == MeterState.STARTED

    def test_sets_start_time_and_current(self, clock):
        meter = Meter("c", time_source=clock)
        clock.advance_ms(5)
        meter.start()
        assert meter.start_time == clock.now
        assert current_operation.peek() is meter

    def test_returns_self(self):
        meter = Meter("c")
        assert meter.start() is meter

    def test_second_start_refused(self, meter_log):
        """Starting twice is reported and changes nothing."""
        meter = Meter("c").start()
        start_time = meter.start_time
        meter_log.clear()
        meter.start()
        assert markers(meter_log) == [Marker.INCONSISTENT_START]
        assert meter.start_time == start_time

    def test_logger_names_follow_config(self, meter_log):
        set_meter_config(MeterConfig(message_prefix="msg.", data_suffix=".data"))
        Meter("app.Orders").start()
        assert [r.name for r in meter_log.records] == ["msg.app.Orders", "app.Orders.data"]

    def test_logger_as_category(self):
        meter = Meter(logging.getLogger("app.Billing"))
        assert meter.category == "app.Billing"


# =============================================================================
# OUTCOMES
# =============================================================================

class TestOk:
    """Tests for ok()."""

    def test_plain_ok(self, meter_log):
        meter = Meter("c", "op").start()
        meter_log.clear()
        assert meter.ok() is meter
        assert markers(meter_log) == [Marker.MSG_OK, Marker.DATA_OK]
        assert meter_log.records[0].levelno == logging.INFO
        assert meter.state == MeterState.OK
        assert meter.stop_time >= meter.start_time

    def test_ok_path(self):
        """ok('x') sets only the ok path."""
        meter = Meter("c").start().ok("x")
        assert meter.ok_path == "x"
        assert meter.reject_path is None
        assert meter.fail_path is None

    def test_enum_path(self):
        meter = Meter("c").start().ok(Outcome.CACHED)
        assert meter.ok_path == "CACHED"

    def test_success_alias(self):
        meter = Meter("c").start().success("done")
        assert meter.is_ok
        assert meter.ok_path == "done"

    def test_path_before_ok(self):
        """path() records the ok path kept by a bare ok()."""
        meter = Meter("c").start().path("warm")
        assert meter.ok_path == "warm"
        meter.ok()
        assert meter.ok_path == "warm"

    def test_path_requires_running_meter(self, meter_log):
        meter = Meter("c").path("warm")
        assert meter.ok_path is None
        assert len(with_marker(meter_log, Marker.ILLEGAL)) == 1

    def test_slow_ok(self, meter_log, clock):
        """Past the time limit ok() warns."""
        meter = Meter("c", time_source=clock).limit_milliseconds(10).start()
        clock.advance_ms(20)
        meter_log.clear()
        meter.ok()
        assert markers(meter_log) == [Marker.MSG_SLOW_OK, Marker.DATA_SLOW_OK]
        assert meter_log.records[0].levelno == logging.WARNING
        assert meter_log.records[0].getMessage().startswith("OK (Slow): ")

    def test_within_limit_not_slow(self, meter_log, clock):
        meter = Meter("c", time_source=clock).limit_milliseconds(10).start()
        clock.advance_ms(5)
        meter.ok()
        assert Marker.MSG_OK in markers(meter_log)

    def test_second_ok_refused(self, meter_log):
        """Only the first terminal transition emits."""
        meter = Meter("c").start().ok("first")
        meter_log.clear()
        meter.ok("second")
        assert markers(meter_log) == [Marker.INCONSISTENT_OK]
        assert meter.ok_path == "first"

    def test_ok_without_start(self, meter_log):
        """Stopping before start is reported, then completes."""
        meter = Meter("c").ok()
        assert markers(meter_log) == [Marker.INCONSISTENT_OK, Marker.MSG_OK, Marker.DATA_OK]
        assert meter.start_time == meter.stop_time
        assert meter.is_ok


class TestReject:
    """Tests for reject()."""

    def test_reject_path(self, meter_log):
        meter = Meter("c").start()
        meter_log.clear()
        meter.reject("sold-out")
        assert markers(meter_log) == [Marker.MSG_REJECT, Marker.DATA_REJECT]
        assert meter_log.records[0].levelno == logging.INFO
        assert meter.reject_path == "sold-out"
        assert meter.ok_path is None
        assert meter.fail_path is None
        assert meter.state == MeterState.REJECTED

    def test_reject_exception_uses_class_name(self):
        meter = Meter("c").start().reject(PaymentDeclined("card expired"))
        assert meter.reject_path == "PaymentDeclined"
        assert meter.fail_message is None

    def test_reject_none_refused(self, meter_log):
        """A missing cause is illegal and leaves the meter running."""
        meter = Meter("c").start()
        meter_log.clear()
        meter.reject(None)
        assert markers(meter_log) == [Marker.ILLEGAL]
        assert meter.state == MeterState.STARTED

    def test_reject_after_ok_refused(self, meter_log):
        meter = Meter("c").start().ok()
        meter.reject("late")
        assert len(with_marker(meter_log, Marker.INCONSISTENT_REJECT)) == 1
        assert meter.reject_path is None


class TestFail:
    """Tests for fail()."""

    def test_fail_path(self, meter_log):
        meter = Meter("c").start()
        meter_log.clear()
        meter.fail("timeout")
        assert markers(meter_log) == [Marker.MSG_FAIL, Marker.DATA_FAIL]
        assert meter_log.records[0].levelno == logging.ERROR
        assert meter.fail_path == "timeout"
        assert meter.ok_path is None
        assert meter.reject_path is None
        assert meter.state == MeterState.FAILED

    def test_builtin_exception(self):
        """Builtin exceptions are qualified with the builtins module."""
        meter = Meter("c").start().fail(ValueError("bad input"))
        assert meter.fail_path == "builtins.ValueError"
        assert meter.fail_message == "bad input"

    def test_custom_exception_qualified(self):
        meter = Meter("c").start().fail(PaymentDeclined("card expired"))
        assert meter.fail_path == f"{PaymentDeclined.__module__}.PaymentDeclined"
        assert meter.fail_message == "card expired"

    def test_qualified_names(self):
        """Fail paths name the module of every exception class."""
        class Nested(Exception):
            pass

        assert qualified_name(KeyError) == "builtins.KeyError"
        assert qualified_name(json.JSONDecodeError) == "json.decoder.JSONDecodeError"
        assert qualified_name(Nested) == (
            f"{__name__}.TestFail.test_qualified_names.<locals>.Nested"
        )
        meter = Meter("c").start().fail(json.JSONDecodeError("bad", "{", 0))
        assert meter.fail_path == "json.decoder.JSONDecodeError"

    def test_message_shows_path_and_cause(self, meter_log):
        Meter("c", "op").start().fail(ValueError("bad input"))
        message = with_marker(meter_log, Marker.MSG_FAIL)[0].getMessage()
        assert message.startswith("FAIL: op[builtins.ValueError; bad input] ")

    def test_fail_none_refused(self, meter_log):
        meter = Meter("c").start().fail(None)
        assert len(with_marker(meter_log, Marker.ILLEGAL)) == 1
        assert meter.state == MeterState.STARTED


# =============================================================================
# PROGRESS AND ITERATIONS
# =============================================================================

class TestProgress:
    """Tests for progress() throttling."""

    def test_throttled_by_period(self, meter_log, clock):
        """Progress needs both new iterations and an elapsed period."""
        set_meter_config(MeterConfig(progress_period_ms=100))
        meter = Meter("c", time_source=clock).start()
        meter_log.clear()

        meter.inc()
        clock.advance_ms(50)
        meter.progress()
        assert markers(meter_log) == []

        clock.advance_ms(100)
        meter.progress()
        assert markers(meter_log) == [Marker.MSG_PROGRESS, Marker.DATA_PROGRESS]

        clock.advance_ms(200)
        meter.progress()
        assert len(with_marker(meter_log, Marker.MSG_PROGRESS)) == 1

        meter.inc()
        meter.progress()
        assert len(with_marker(meter_log, Marker.MSG_PROGRESS)) == 2

    def test_zero_period_never_suppresses(self, meter_log, eager_progress):
        meter = Meter("c").start()
        meter_log.clear()
        meter.progress()
        meter.progress()
        assert len(with_marker(meter_log, Marker.MSG_PROGRESS)) == 2
        assert meter_log.records[0].levelno == logging.INFO

    def test_progress_with_iteration(self, meter_log, eager_progress):
        meter = Meter("c", "batch").iterations(10).start()
        meter.progress(4)
        assert meter.current_iteration == 4
        message = with_marker(meter_log, Marker.MSG_PROGRESS)[0].getMessage()
        assert message.startswith("PROGRESS: batch 4/10")

    def test_slow_progress(self, meter_log, clock, eager_progress):
        meter = Meter("c", time_source=clock).limit_milliseconds(1).start()
        clock.advance_ms(5)
        meter.inc().progress()
        assert with_marker(meter_log, Marker.DATA_SLOW_PROGRESS)

    def test_progress_before_start(self, meter_log):
        Meter("c").progress()
        assert markers(meter_log) == [Marker.INCONSISTENT_PROGRESS]

    def test_progress_after_stop(self, meter_log, eager_progress):
        meter = Meter("c").start().ok()
        meter_log.clear()
        meter.progress()
        assert markers(meter_log) == [Marker.INCONSISTENT_PROGRESS]


class TestIterations:
    """Tests for iteration counters."""

    def test_inc_family(self):
        meter = Meter("c").start()
        meter.inc().inc_by(4).inc_to(10)
        assert meter.current_iteration == 10

    def test_inc_before_start(self, meter_log):
        meter = Meter("c").inc()
        assert meter.current_iteration == 0
        assert markers(meter_log) == [Marker.INCONSISTENT_INCREMENT]

    def test_backward_inc_to(self, meter_log):
        meter = Meter("c").start().inc_to(5)
        meter.inc_to(3)
        assert meter.current_iteration == 5
        assert len(with_marker(meter_log, Marker.ILLEGAL)) == 1

    def test_non_positive_inc_by(self, meter_log):
        meter = Meter("c").start().inc_by(0)
        assert meter.current_iteration == 0
        assert len(with_marker(meter_log, Marker.ILLEGAL)) == 1


# =============================================================================
# CONFIGURATION
# =============================================================================

class TestConfiguration:
    """Tests for fluent configuration."""

    def test_description(self):
        meter = Meter("c").m("Order %s for %d", "A7", 3)
        assert meter.description == "Order A7 for 3"

    def test_bad_format_keeps_description(self, meter_log):
        meter = Meter("c").m("first").m("%d", "x")
        assert meter.description == "first"
        assert len(with_marker(meter_log, Marker.ILLEGAL)) == 1

    def test_limits(self):
        meter = Meter("c").limit_milliseconds(250).iterations(40)
        assert meter.time_limit == 250_000_000
        assert meter.expected_iterations == 40

    def test_configuration_after_stop_refused(self, meter_log):
        meter = Meter("c").start().ok()
        meter.m("late").limit_milliseconds(5)
        assert meter.description is None
        assert meter.time_limit == 0
        assert len(with_marker(meter_log, Marker.ILLEGAL)) == 2

    def test_context_in_events_then_cleared(self, meter_log):
        """Context shows in the next event pair and is then cleared."""
        meter = Meter("c", "op").ctx("user", "ann").ctx("retry").start()
        message, data = meter_log.records
        assert "user=ann; retry" in message.getMessage()
        assert "ctx:{user:ann,retry}" in data.getMessage()
        assert meter.context == {}

    def test_context_with_delimiters_reads_back(self, meter_log):
        """Awkward context values reach the data record intact."""
        Meter("c", "op").ctx("reason", "out of stock, can't ship").ctx("result", {"k": 1}).start()
        data = with_marker(meter_log, Marker.DATA_START)[0]
        record = parse_data_message(data.getMessage())
        assert record["context"] == {"reason": "out of stock, can't ship", "result": "{'k': 1}"}

    def test_unctx(self):
        meter = Meter("c").ctx("a", 1).ctx("b", 2).unctx("a")
        assert meter.context == {"b": "2"}

    def test_ctx_none_name(self, meter_log):
        Meter("c").ctx(None, 1)
        assert len(with_marker(meter_log, Marker.ILLEGAL)) == 1


# =============================================================================
# SUB-METERS AND CURRENT OPERATION
# =============================================================================

class TestSub:
    """Tests for sub()."""

    def test_extends_operation(self):
        parent = Meter("app.Orders", "checkout").ctx("user", "ann")
        child = parent.sub("payment")
        assert child.category == "app.Orders"
        assert child.operation == "checkout/payment"
        assert child.parent == parent.full_id
        assert child.context == {"user": "ann"}
        assert child.position == 1

    def test_without_operation(self):
        assert Meter("c").sub("s").operation == "s"

    def test_none_name(self, meter_log):
        child = Meter("c", "op").sub(None)
        assert child.operation == "op/???"
        assert len(with_marker(meter_log, Marker.ILLEGAL)) == 1


class TestCurrentMeter:
    """Tests for the current meter across transitions."""

    def test_nested_meters_restore(self):
        outer = Meter("outer").start()
        inner = Meter("inner").start()
        assert Meter.get_current_instance() is inner
        inner.ok()
        assert Meter.get_current_instance() is outer
        outer.ok()
        assert current_operation.peek() is None

    def test_out_of_order_reported(self, meter_log):
        outer = Meter("outer").start()
        Meter("inner").start()
        outer.ok()
        assert with_marker(meter_log, Marker.INCONSISTENT_OK)
        assert outer.is_ok


# =============================================================================
# CLOSE AND WITH-BLOCKS
# =============================================================================

class TestClose:
    """Tests for close() and the context-manager protocol."""

    def test_close_after_outcome_is_silent(self, meter_log):
        meter = Meter("c").start().ok()
        meter_log.clear()
        meter.close()
        meter.close()
        assert meter_log.records == []

    def test_close_running_meter_fails(self, meter_log):
        """A running meter closed without outcome fails."""
        meter = Meter("c").start()
        meter_log.clear()
        meter.close()
        assert markers(meter_log) == [Marker.MSG_FAIL, Marker.DATA_FAIL]
        assert meter.fail_path == CLOSE_FAIL_PATH
        assert current_operation.peek() is None

    def test_with_block_ok(self, meter_log):
        with Meter("c", "op") as meter:
            assert meter.is_started
            assert current_operation.peek() is meter
            meter.ok("done")
        assert markers(meter_log) == [
            Marker.MSG_START, Marker.DATA_START, Marker.MSG_OK, Marker.DATA_OK,
        ]
        assert current_operation.peek() is None

    def test_with_block_exception(self):
        """An escaping exception fails the meter and propagates."""
        with pytest.raises(KeyError):
            with Meter("c") as meter:
                raise KeyError("missing")
        assert meter.fail_path == "builtins.KeyError"
        assert meter.fail_message == "'missing'"

    def test_with_block_without_outcome(self):
        with Meter("c") as meter:
            pass
        assert meter.fail_path == CLOSE_FAIL_PATH

    def test_with_prestarted_meter(self, meter_log):
        meter = Meter("c").start()
        with meter:
            meter.ok()
        assert not with_marker(meter_log, Marker.INCONSISTENT_START)


class TestIdentity:
    """Tests for meter identity semantics."""

    def test_equality_is_identity(self):
        a = Meter("c")
        b = Meter("c")
        assert a != b
        assert a == a
        assert len({a, b}) == 2

    def test_repr(self):
        assert repr(Meter("c", "op")) == "Meter(c/op#1, CREATED)"
