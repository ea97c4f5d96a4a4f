"""
Meter — Operation lifecycle tracking.

Provides:
- Meter state machine with call/run wrappers
- Precondition validation and BUG reporting
- Per-key positions and the current-operation slot
- Readable and data message formatting
"""

from opmeter.meter.data import MeterData, SystemData
from opmeter.meter.position import (
    MAX_POSITION,
    PositionRegistry,
    get_position_registry,
    position_key,
    reset_positions,
)
from opmeter.meter.context import UNKNOWN_CATEGORY
from opmeter.meter.validator import MeterValidator
from opmeter.meter.formatting import (
    DataRecordError,
    METER_DATA_SCHEMA,
    data_message,
    parse_data_message,
    read_data_message,
    readable_message,
    validate_record,
)
from opmeter.meter.meter import CLOSE_FAIL_PATH, Meter, qualified_name, to_path
from opmeter.meter.factory import (
    get_current_meter,
    get_current_sub_meter,
    get_meter,
    metered,
    resolve_category,
)

__all__ = [
    # Data
    "MeterData",
    "SystemData",
    # Positions
    "MAX_POSITION",
    "PositionRegistry",
    "get_position_registry",
    "position_key",
    "reset_positions",
    # Current operation
    "UNKNOWN_CATEGORY",
    # Validation
    "MeterValidator",
    # Formatting
    "DataRecordError",
    "METER_DATA_SCHEMA",
    "data_message",
    "parse_data_message",
    "read_data_message",
    "readable_message",
    "validate_record",
    # Meter
    "CLOSE_FAIL_PATH",
    "Meter",
    "qualified_name",
    "to_path",
    # Factory
    "get_current_meter",
    "get_current_sub_meter",
    "get_meter",
    "metered",
    "resolve_category",
]
