"""
opmeter — Operation instrumentation over standard logging.

Wraps units of work with a lifecycle tracker that records timing and
outcome, and reports each transition as a readable message plus a
structured data record.
"""

__version__ = "0.1.0"

from opmeter.config import (
    MeterConfig,
    SessionConfig,
    get_meter_config,
    set_meter_config,
    reset_meter_config,
    get_session_config,
    set_session_config,
    reset_session_config,
    load_settings,
)
from opmeter.meter import (
    Meter,
    MeterValidator,
    get_current_meter,
    get_current_sub_meter,
    get_meter,
    metered,
)
from opmeter.vocabulary import Marker, MeterState

__all__ = [
    "__version__",
    "MeterConfig",
    "SessionConfig",
    "get_meter_config",
    "set_meter_config",
    "reset_meter_config",
    "get_session_config",
    "set_session_config",
    "reset_session_config",
    "load_settings",
    "Meter",
    "MeterValidator",
    "get_current_meter",
    "get_current_sub_meter",
    "get_meter",
    "metered",
    "Marker",
    "MeterState",
]
