"""
Meter Data — Fields recorded for one operation instance.

Identity, timing, progress, outcome, context and the resource snapshot,
plus the properties derived from them (state, elapsed time, slowness).
"""

from dataclasses import dataclass, field
from typing import Any

from opmeter.vocabulary import MeterState


@dataclass
class SystemData:
    """
    Resource snapshot taken before each event.

    All gauges stay at zero until a sampler fills them.
    """
    heap_committed: int = 0
    heap_used: int = 0
    heap_max: int = 0
    non_heap_committed: int = 0
    non_heap_used: int = 0
    non_heap_max: int = 0
    gc_count: int = 0
    gc_time: int = 0
    class_loading_loaded: int = 0
    class_loading_total: int = 0
    class_loading_unloaded: int = 0
    compilation_time: int = 0
    runtime_used_memory: int = 0
    runtime_max_memory: int = 0
    runtime_total_memory: int = 0
    system_load: float = 0.0


@dataclass
class MeterData(SystemData):
    """
    Recorded state of an operation.

    Times are monotonic nanosecond ticks; zero means "not yet set".
    Outcome paths are None while the operation runs, and at most one of
    ok_path, reject_path, fail_path is set afterwards.
    """
    # Identity
    category: str = ""
    operation: str | None = None
    parent: str | None = None
    session_uuid: str | None = None
    position: int = 0

    # Timing
    create_time: int = 0
    start_time: int = 0
    stop_time: int = 0
    last_current_time: int = 0

    # Progress
    current_iteration: int = 0
    expected_iterations: int = 0
    time_limit: int = 0

    description: str | None = None

    # Outcome
    ok_path: str | None = None
    reject_path: str | None = None
    fail_path: str | None = None
    fail_message: str | None = None

    context: dict[str, str | None] = field(default_factory=dict)

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    @property
    def full_id(self) -> str:
        if self.operation is None:
            return f"{self.category}#{self.position}"
        return f"{self.category}/{self.operation}#{self.position}"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def is_started(self) -> bool:
        return self.start_time != 0

    @property
    def is_stopped(self) -> bool:
        return self.stop_time != 0

    @property
    def is_ok(self) -> bool:
        return self.is_stopped and self.fail_path is None and self.reject_path is None

    @property
    def is_reject(self) -> bool:
        return self.is_stopped and self.reject_path is not None

    @property
    def is_fail(self) -> bool:
        return self.is_stopped and self.fail_path is not None

    @property
    def state(self) -> MeterState:
        if self.is_fail:
            return MeterState.FAILED
        if self.is_reject:
            return MeterState.REJECTED
        if self.is_stopped:
            return MeterState.OK
        if self.is_started:
            return MeterState.STARTED
        return MeterState.CREATED

    @property
    def outcome_path(self) -> str | None:
        """Outcome path, preferring fail over reject over ok."""
        if self.fail_path is not None:
            return self.fail_path
        if self.reject_path is not None:
            return self.reject_path
        return self.ok_path

    # -------------------------------------------------------------------------
    # Timing analysis
    # -------------------------------------------------------------------------

    @property
    def execution_time(self) -> int:
        if self.start_time == 0:
            return 0
        if self.stop_time == 0:
            return self.last_current_time - self.start_time
        return self.stop_time - self.start_time

    @property
    def waiting_time(self) -> int:
        if self.start_time == 0:
            return self.last_current_time - self.create_time
        return self.start_time - self.create_time

    @property
    def iterations_per_second(self) -> float:
        elapsed = self.execution_time
        if self.current_iteration == 0 or elapsed <= 0:
            return 0.0
        return self.current_iteration / elapsed * 1_000_000_000

    @property
    def is_slow(self) -> bool:
        return self.time_limit != 0 and self.is_started and self.execution_time > self.time_limit

    # -------------------------------------------------------------------------
    # Context
    # -------------------------------------------------------------------------

    def put_context(self, name: str, value: Any = None) -> None:
        self.context[name] = None if value is None else str(value)

    def remove_context(self, name: str) -> None:
        self.context.pop(name, None)

    def clear_context(self) -> None:
        self.context.clear()

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def to_record(self) -> dict[str, Any]:
        """Structured fields for the data channel."""
        record: dict[str, Any] = {
            "session": self.session_uuid,
            "position": self.position,
            "time": self.last_current_time,
            "category": self.category,
            "state": self.state.value,
        }
        optional = {
            "operation": self.operation,
            "parent": self.parent,
            "description": self.description,
            "ok_path": self.ok_path,
            "reject_path": self.reject_path,
            "fail_path": self.fail_path,
            "fail_message": self.fail_message,
        }
        record.update({k: v for k, v in optional.items() if v is not None})
        counters = {
            "create_time": self.create_time,
            "start_time": self.start_time,
            "stop_time": self.stop_time,
            "current_iteration": self.current_iteration,
            "expected_iterations": self.expected_iterations,
            "time_limit": self.time_limit,
        }
        record.update({k: v for k, v in counters.items() if v != 0})
        if self.context:
            record["context"] = dict(self.context)
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "MeterData":
        """Rebuild meter data from a record produced by to_record or parsing."""
        data = cls(
            category=record.get("category", ""),
            session_uuid=record.get("session"),
            position=record.get("position", 0),
            last_current_time=record.get("time", 0),
        )
        for name in (
            "operation", "parent", "description",
            "ok_path", "reject_path", "fail_path", "fail_message",
            "create_time", "start_time", "stop_time",
            "current_iteration", "expected_iterations", "time_limit",
        ):
            if name in record:
                setattr(data, name, record[name])
        data.context = dict(record.get("context", {}))
        return data
