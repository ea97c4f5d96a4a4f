"""
System — Resource snapshot collection for meter events.

The meter only stores the numbers; how they are obtained is up to the
sampler installed here. The default sampler leaves every gauge at zero.
"""

import gc
import sys
from threading import Lock
from typing import Any, Protocol, runtime_checkable

import psutil


@runtime_checkable
class SystemSampler(Protocol):
    """
    Protocol for resource samplers.

    A sampler writes gauges onto the meter data it receives.
    """

    def sample(self, data: Any) -> None:
        """Populate resource fields on data."""
        ...


class NullSampler:
    """Sampler that collects nothing."""

    def sample(self, data: Any) -> None:
        return None


class ProcessSampler:
    """
    Sampler backed by psutil and the garbage collector.

    Fills resident and virtual memory of this process, total physical
    memory, the garbage collector counters, and the one-minute load
    average normalized by CPU count.
    """

    def __init__(self, process: psutil.Process | None = None):
        self._process = process or psutil.Process()

    def sample(self, data: Any) -> None:
        stats = gc.get_stats()
        data.gc_count = sum(s.get("collections", 0) for s in stats)
        data.class_loading_loaded = len(sys.modules)

        memory = self._process.memory_info()
        data.runtime_used_memory = memory.rss
        data.runtime_total_memory = memory.vms
        data.runtime_max_memory = psutil.virtual_memory().total

        try:
            load = psutil.getloadavg()[0]
        except OSError:
            load = 0.0
        data.system_load = load / (psutil.cpu_count() or 1)


# Global sampler
_sampler_lock = Lock()
_sampler: SystemSampler = NullSampler()


def get_system_sampler() -> SystemSampler:
    """Get the sampler used by meters that were not given one."""
    return _sampler


def set_system_sampler(sampler: SystemSampler | None) -> None:
    """Install a sampler; None restores the default."""
    global _sampler
    with _sampler_lock:
        _sampler = sampler or NullSampler()
