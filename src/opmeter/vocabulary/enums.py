"""
Vocabulary enums — the shared language of the meter lifecycle.

All enumerated types referenced by meters, validators and formatters.
"""

from enum import Enum


# =============================================================================
# LIFECYCLE
# =============================================================================

class MeterState(str, Enum):
    """
    Lifecycle state of an operation.

    CREATED -> STARTED -> {OK | REJECTED | FAILED}
    """
    CREATED = "CREATED"
    STARTED = "STARTED"
    OK = "OK"
    REJECTED = "REJECTED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (MeterState.OK, MeterState.REJECTED, MeterState.FAILED)


# =============================================================================
# MARKERS
# =============================================================================

class Marker(str, Enum):
    """
    Classification attached to every event a meter emits.

    MSG_* markers go to the message logger, DATA_* markers to the data
    logger. INCONSISTENT_* and ILLEGAL flag caller misuse, BUG flags a
    defect inside the instrumentation itself.
    """
    # Data records (TRACE)
    DATA_START = "METER_DATA_START"
    DATA_PROGRESS = "METER_DATA_PROGRESS"
    DATA_SLOW_PROGRESS = "METER_DATA_SLOW_PROGRESS"
    DATA_OK = "METER_DATA_OK"
    DATA_SLOW_OK = "METER_DATA_SLOW_OK"
    DATA_REJECT = "METER_DATA_REJECT"
    DATA_FAIL = "METER_DATA_FAIL"

    # Readable messages
    MSG_START = "METER_MSG_START"
    MSG_PROGRESS = "METER_MSG_PROGRESS"
    MSG_OK = "METER_MSG_OK"
    MSG_SLOW_OK = "METER_MSG_SLOW_OK"
    MSG_REJECT = "METER_MSG_REJECT"
    MSG_FAIL = "METER_MSG_FAIL"

    # Caller misuse
    INCONSISTENT_START = "METER_INCONSISTENT_START"
    INCONSISTENT_INCREMENT = "METER_INCONSISTENT_INCREMENT"
    INCONSISTENT_PROGRESS = "METER_INCONSISTENT_PROGRESS"
    INCONSISTENT_OK = "METER_INCONSISTENT_OK"
    INCONSISTENT_REJECT = "METER_INCONSISTENT_REJECT"
    INCONSISTENT_FAIL = "METER_INCONSISTENT_FAIL"
    INCONSISTENT_CLOSE = "METER_INCONSISTENT_CLOSE"
    ILLEGAL = "METER_ILLEGAL"

    # Instrumentation defect
    BUG = "METER_BUG"
