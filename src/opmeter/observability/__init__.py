"""
Observability — Logging sink setup and resource sampling for meters.

Provides:
- TRACE level and marker-aware formatters
- Resource samplers feeding the meter snapshot fields
"""

from opmeter.observability.logging import (
    TRACE,
    MarkerFilter,
    JSONFormatter,
    ReadableFormatter,
    configure_logging,
    get_logger,
)
from opmeter.observability.system import (
    SystemSampler,
    NullSampler,
    ProcessSampler,
    get_system_sampler,
    set_system_sampler,
)

__all__ = [
    # Logging
    "TRACE",
    "MarkerFilter",
    "JSONFormatter",
    "ReadableFormatter",
    "configure_logging",
    "get_logger",
    # Sampling
    "SystemSampler",
    "NullSampler",
    "ProcessSampler",
    "get_system_sampler",
    "set_system_sampler",
]
