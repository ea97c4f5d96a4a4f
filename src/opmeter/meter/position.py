"""
Position Registry — Per-key sequence numbers for meters.

Every meter takes the next position for its (category, operation) key
when it is created, so repeated invocations of the same operation can
be told apart in the logs.
"""

from threading import Lock


MAX_POSITION = 2**63 - 1


def position_key(category: str, operation: str | None) -> str:
    """Key under which a meter's position is counted."""
    if operation is None:
        return category
    return f"{category}/{operation}"


class PositionRegistry:
    """
    Monotonic counters keyed by category or category/operation.

    Counters are created lazily at zero and never removed. After the
    largest signed 64-bit value the sequence restarts at 1.
    """

    def __init__(self):
        self._counters: dict[str, int] = {}
        self._lock = Lock()

    def next_position(self, key: str) -> int:
        """Advance and return the counter for key."""
        with self._lock:
            current = self._counters.get(key, 0)
            position = 1 if current >= MAX_POSITION else current + 1
            self._counters[key] = position
            return position

    def seed(self, key: str, value: int) -> None:
        """Set the counter so the next position is value + 1 (for testing)."""
        if not 0 <= value <= MAX_POSITION:
            raise ValueError(f"Position out of range: {value}")
        with self._lock:
            self._counters[key] = value

    def reset(self) -> None:
        """Forget all counters (for testing)."""
        with self._lock:
            self._counters.clear()


# Global registry
_registry = PositionRegistry()


def get_position_registry() -> PositionRegistry:
    """Get the process-wide position registry."""
    return _registry


def reset_positions() -> None:
    """Reset all positions (for testing)."""
    _registry.reset()
