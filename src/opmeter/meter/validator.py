"""
Meter Validator — Preconditions for meter transitions.

Stateless checks called by Meter before it changes state. A failed
check is caller misuse: it is reported once on the meter's message
logger with an INCONSISTENT_* or ILLEGAL marker and the caller stack,
and the check returns False so the meter can refuse the call.

log_bug is the single place where defects inside the instrumentation
itself are reported.
"""

import logging
from typing import TYPE_CHECKING, Any

from opmeter.meter import context
from opmeter.observability.logging import get_logger
from opmeter.vocabulary import Marker

if TYPE_CHECKING:
    from opmeter.meter.meter import Meter


_fallback_logger = get_logger("meter")


def _meter_id(meter: "Meter") -> str:
    try:
        return meter.full_id
    except Exception:
        return "<unknown>"


def _meter_logger(meter: "Meter") -> logging.Logger:
    logger = getattr(meter, "message_logger", None)
    if isinstance(logger, logging.Logger):
        return logger
    return _fallback_logger


class MeterValidator:
    """
    Precondition checks, one per transition family.

    All methods are static so tests can patch them on the class.
    """

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    @staticmethod
    def log_illegal_call(meter: "Meter", method: str, message: str) -> None:
        _meter_logger(meter).error(
            "Illegal call to Meter.%s: %s; id=%s",
            method, message, _meter_id(meter),
            extra={"marker": Marker.ILLEGAL},
            stack_info=True,
        )

    @staticmethod
    def log_illegal_precondition(meter: "Meter", marker: Marker, message: str) -> None:
        _meter_logger(meter).error(
            "%s; id=%s",
            message, _meter_id(meter),
            extra={"marker": marker},
            stack_info=True,
        )

    @staticmethod
    def log_bug(meter: "Meter", method: str, exc: BaseException) -> None:
        """
        Report an exception raised inside the meter machinery.

        Never raises, whatever state the meter is in.
        """
        try:
            _meter_logger(meter).error(
                "Meter.%s method threw exception; id=%s",
                method, _meter_id(meter),
                exc_info=exc,
                extra={"marker": Marker.BUG},
            )
        except Exception:
            _fallback_logger.error(
                "Meter.%s method threw exception", method,
                exc_info=exc,
                extra={"marker": Marker.BUG},
            )

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    @staticmethod
    def validate_start_precondition(meter: "Meter") -> bool:
        if meter.start_time != 0:
            MeterValidator.log_illegal_precondition(meter, Marker.INCONSISTENT_START, "Meter already started")
            return False
        return True

    @staticmethod
    def validate_progress_precondition(meter: "Meter") -> bool:
        if meter.start_time == 0:
            MeterValidator.log_illegal_precondition(
                meter, Marker.INCONSISTENT_PROGRESS, "Meter progress but not started"
            )
            return False
        if meter.stop_time != 0:
            MeterValidator.log_illegal_precondition(
                meter, Marker.INCONSISTENT_PROGRESS, "Meter progress but already stopped"
            )
            return False
        return True

    @staticmethod
    def validate_stop_precondition(meter: "Meter", marker: Marker) -> bool:
        """
        Check a terminal transition.

        Returns False only when the meter is already stopped. Stopping a
        meter that never started, or one that is not the current meter,
        is reported but allowed.
        """
        if meter.stop_time != 0:
            MeterValidator.log_illegal_precondition(meter, marker, "Meter already stopped")
            return False
        if meter.start_time == 0:
            MeterValidator.log_illegal_precondition(meter, marker, "Meter stopped but not started")
        elif not context.is_current(meter):
            MeterValidator.log_illegal_precondition(meter, marker, "Meter out of order")
        return True

    @staticmethod
    def validate_path_argument(meter: "Meter", method: str, path: Any) -> bool:
        if path is None:
            MeterValidator.log_illegal_call(meter, method, "Null argument")
            return False
        return True

    @staticmethod
    def validate_path_precondition(meter: "Meter") -> bool:
        if meter.start_time == 0:
            MeterValidator.log_illegal_precondition(meter, Marker.ILLEGAL, "Meter path but not started")
            return False
        if meter.stop_time != 0:
            MeterValidator.log_illegal_precondition(meter, Marker.ILLEGAL, "Meter path but already stopped")
            return False
        return True

    # -------------------------------------------------------------------------
    # Iterations
    # -------------------------------------------------------------------------

    @staticmethod
    def validate_inc_precondition(meter: "Meter") -> bool:
        if meter.start_time == 0:
            MeterValidator.log_illegal_precondition(meter, Marker.INCONSISTENT_INCREMENT, "Meter not started")
            return False
        if meter.stop_time != 0:
            MeterValidator.log_illegal_precondition(meter, Marker.INCONSISTENT_INCREMENT, "Meter already stopped")
            return False
        return True

    @staticmethod
    def validate_inc_by_arguments(meter: "Meter", increment: int) -> bool:
        if increment <= 0:
            MeterValidator.log_illegal_call(meter, "inc_by(increment)", "Non-positive increment")
            return False
        return True

    @staticmethod
    def validate_inc_to_arguments(meter: "Meter", iteration: int) -> bool:
        if iteration <= 0:
            MeterValidator.log_illegal_call(meter, "inc_to(iteration)", "Non-positive argument")
            return False
        if iteration <= meter.current_iteration:
            MeterValidator.log_illegal_call(meter, "inc_to(iteration)", "Non-forward increment")
            return False
        return True

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @staticmethod
    def validate_configuration_precondition(meter: "Meter", method: str) -> bool:
        if meter.stop_time != 0:
            MeterValidator.log_illegal_call(meter, method, "Meter already stopped")
            return False
        return True

    @staticmethod
    def validate_m_arguments(meter: "Meter", message: Any, args: tuple) -> str | None:
        """Formatted description, or None when the arguments are unusable."""
        if message is None:
            MeterValidator.log_illegal_call(meter, "m(message)", "Null argument")
            return None
        if not args:
            return str(message)
        try:
            return str(message) % args
        except (TypeError, ValueError, KeyError):
            MeterValidator.log_illegal_call(meter, "m(message, *args)", "Illegal string format")
            return None

    @staticmethod
    def validate_limit_milliseconds_arguments(meter: "Meter", time_limit: int) -> bool:
        if time_limit <= 0:
            MeterValidator.log_illegal_call(meter, "limit_milliseconds(time_limit)", "Non-positive argument")
            return False
        return True

    @staticmethod
    def validate_iterations_arguments(meter: "Meter", expected_iterations: int) -> bool:
        if expected_iterations <= 0:
            MeterValidator.log_illegal_call(meter, "iterations(expected_iterations)", "Non-positive argument")
            return False
        return True

    @staticmethod
    def validate_context_name(meter: "Meter", method: str, name: Any) -> bool:
        if name is None:
            MeterValidator.log_illegal_call(meter, method, "Null argument")
            return False
        return True

    @staticmethod
    def validate_sub_arguments(meter: "Meter", name: Any) -> bool:
        if name is None:
            MeterValidator.log_illegal_call(meter, "sub(name)", "Null argument")
            return False
        return True
