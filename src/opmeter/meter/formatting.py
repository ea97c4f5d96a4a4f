"""
Formatting — Text renditions of meter data.

Two renditions per event:
- readable message: a one-line summary for humans (message logger)
- data message: a compact JSON5-like record for machines (data logger)

Data messages can be parsed back and are checked against
METER_DATA_SCHEMA.
"""

import re
from typing import Any, Callable

from jsonschema import Draft202012Validator

from opmeter.config import MeterConfig
from opmeter.meter.data import MeterData


# =============================================================================
# UNITS
# =============================================================================

_TIME_UNITS = ("ns", "us", "ms", "s", "m", "h")
_TIME_FACTORS = (1000, 1000, 1000, 60, 60)
_MEMORY_UNITS = ("B", "kB", "MB", "GB")
_MEMORY_FACTORS = (1000, 1000, 1000)
_RATE_UNITS = ("/s", "k/s", "M/s")
_RATE_FACTORS = (1000, 1000)
_ITERATION_UNITS = ("", "k", "M", "G")
_ITERATION_FACTORS = (1000, 1000, 1000)

_EPSILON = 0.001


def _int_unit(value: int, units: tuple[str, ...], factors: tuple[int, ...]) -> str:
    # A unit is only promoted once the value exceeds it by 10%
    if value < factors[0] + factors[0] // 10:
        return f"{value}{units[0]}"
    index = 0
    scaled = float(value)
    while index < len(factors) and value >= factors[index] + factors[index] // 10:
        scaled = value / factors[index]
        value //= factors[index]
        index += 1
    return f"{scaled:.1f}{units[index]}"


def _float_unit(value: float, units: tuple[str, ...], factors: tuple[int, ...]) -> str:
    if value == 0.0:
        return f"0{units[0]}"
    index = 0
    while index < len(factors) and value + _EPSILON >= factors[index] + factors[index] / 10.0:
        value /= factors[index]
        index += 1
    return f"{value:.1f}{units[index]}"


def format_nanoseconds(value: int | float) -> str:
    if isinstance(value, float):
        return _float_unit(value, _TIME_UNITS, _TIME_FACTORS)
    return _int_unit(value, _TIME_UNITS, _TIME_FACTORS)


def format_bytes(value: int) -> str:
    return _int_unit(value, _MEMORY_UNITS, _MEMORY_FACTORS)


def format_iterations(value: int) -> str:
    return _int_unit(value, _ITERATION_UNITS, _ITERATION_FACTORS)


def format_iterations_per_second(value: float) -> str:
    return _float_unit(value, _RATE_UNITS, _RATE_FACTORS)


# =============================================================================
# READABLE MESSAGE
# =============================================================================

def status_label(data: MeterData) -> str:
    """Lifecycle status shown at the head of readable messages."""
    if data.is_stopped:
        if data.is_reject:
            return "REJECT"
        if data.is_fail:
            return "FAIL"
        return "OK (Slow)" if data.is_slow else "OK"
    if data.is_started:
        if data.current_iteration == 0:
            return "STARTED"
        return "PROGRESS (Slow)" if data.is_slow else "PROGRESS"
    return "SCHEDULED"


def readable_message(data: MeterData, config: MeterConfig) -> str:
    """
    One-line summary of the meter.

    Layout: STATUS: [category/]operation[#position][path; fail message]
    followed by '; '-separated iterations, timing, description, context,
    memory, load and session.
    """
    head = f"{status_label(data)}: " if config.print_status else ""

    ident = ""
    if config.print_category:
        ident += data.category.rsplit(".", 1)[-1]
    if data.operation is not None:
        if config.print_category:
            ident += "/"
        ident += data.operation
    if config.print_position:
        ident += f"#{data.position}"
    path = data.outcome_path
    if path is not None:
        if data.is_fail and data.fail_message is not None:
            ident += f"[{path}; {data.fail_message}]"
        else:
            ident += f"[{path}]"
    if ident:
        ident += " "

    parts: list[str] = []
    execution_time = data.execution_time
    progress_info = execution_time > config.progress_period_ns

    if data.is_started and data.current_iteration > 0:
        iterations = format_iterations(data.current_iteration)
        if data.expected_iterations > 0:
            iterations += "/" + format_iterations(data.expected_iterations)
        parts.append(iterations)

    if not data.is_started:
        parts.append(format_nanoseconds(data.waiting_time))
    elif data.is_stopped or progress_info:
        parts.append(format_nanoseconds(execution_time))
        rate = data.iterations_per_second
        if data.current_iteration > 0 and rate > 0:
            per_iteration = 1.0 / rate * 1_000_000_000
            parts.append(
                f"{format_iterations_per_second(rate)} {format_nanoseconds(per_iteration)}"
            )

    if data.description is not None:
        parts.append(f"'{data.description}'")

    for name, value in data.context.items():
        parts.append(name if value is None else f"{name}={value}")

    if config.print_memory and data.runtime_used_memory > 0:
        parts.append(format_bytes(data.runtime_used_memory))
    if config.print_load and data.system_load > 0:
        parts.append(f"{round(data.system_load * 100)}%")
    if data.session_uuid is not None:
        parts.append(data.session_uuid)

    return head + ident + "; ".join(parts)


# =============================================================================
# DATA MESSAGE
# =============================================================================

# Short keys of the JSON5-like data message
_TEXT_KEYS: dict[str, str] = {
    "_": "session",
    "c": "category",
    "n": "operation",
    "ep": "parent",
    "d": "description",
    "p": "ok_path",
    "r": "reject_path",
    "f": "fail_path",
    "fm": "fail_message",
}
_INT_KEYS: dict[str, str] = {
    "$": "position",
    "t": "time",
    "t0": "create_time",
    "t1": "start_time",
    "t2": "stop_time",
    "i": "current_iteration",
    "ei": "expected_iterations",
    "tl": "time_limit",
}

# Text safe to write without quotes
_BARE_TEXT = re.compile(r"[^\s,:{}\[\]'\\]+")
_DELIMITERS = ",:}]"


def _quote(text: str) -> str:
    """Single-quoted text with backslash and quote escaped."""
    return "'" + text.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _text(value: Any) -> str:
    """Value as a bare word when possible, quoted otherwise."""
    text = str(value)
    if _BARE_TEXT.fullmatch(text):
        return text
    return _quote(text)


def data_message(data: MeterData) -> str:
    """
    Compact record of the meter for the data logger.

    Zero counters and None fields are omitted. Free text (description,
    failure message) is always quoted; other text is quoted only when
    it holds whitespace or a delimiter, so parse_data_message reads
    every value back unchanged.
    """
    items = [f"_:{_text(data.session_uuid)}", f"$:{data.position}", f"t:{data.last_current_time}"]
    if data.description is not None:
        items.append(f"d:{_quote(data.description)}")
    if data.reject_path is not None:
        items.append(f"r:{_text(data.reject_path)}")
    if data.ok_path is not None:
        items.append(f"p:{_text(data.ok_path)}")
    if data.fail_path is not None:
        items.append(f"f:{_text(data.fail_path)}")
    if data.fail_message is not None:
        items.append(f"fm:{_quote(data.fail_message)}")
    if data.category:
        items.append(f"c:{_text(data.category)}")
    if data.operation is not None:
        items.append(f"n:{_text(data.operation)}")
    if data.parent is not None:
        items.append(f"ep:{_text(data.parent)}")
    for key, name in _INT_KEYS.items():
        if key in ("$", "t"):
            continue
        value = getattr(data, name)
        if value != 0:
            items.append(f"{key}:{value}")
    if data.context:
        entries = ",".join(
            _text(name) if value is None else f"{_text(name)}:{_text(value)}"
            for name, value in data.context.items()
        )
        items.append(f"ctx:{{{entries}}}")
    if data.runtime_used_memory or data.runtime_total_memory or data.runtime_max_memory:
        items.append(
            f"m:[{data.runtime_used_memory},{data.runtime_total_memory},{data.runtime_max_memory}]"
        )
    if data.gc_count or data.gc_time:
        items.append(f"gc:[{data.gc_count},{data.gc_time}]")
    if data.system_load > 0:
        items.append(f"sl:{data.system_load:.2f}")
    return "{" + ",".join(items) + "}"


METER_DATA_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Meter data record",
    "type": "object",
    "required": ["session", "position", "time", "category"],
    "properties": {
        "session": {"type": "string"},
        "position": {"type": "integer", "minimum": 0},
        "time": {"type": "integer"},
        "category": {"type": "string", "minLength": 1},
        "operation": {"type": "string"},
        "parent": {"type": "string"},
        "description": {"type": "string"},
        "ok_path": {"type": "string"},
        "reject_path": {"type": "string"},
        "fail_path": {"type": "string"},
        "fail_message": {"type": "string"},
        "create_time": {"type": "integer"},
        "start_time": {"type": "integer"},
        "stop_time": {"type": "integer"},
        "current_iteration": {"type": "integer", "minimum": 0},
        "expected_iterations": {"type": "integer", "minimum": 0},
        "time_limit": {"type": "integer", "minimum": 0},
        "context": {
            "type": "object",
            "additionalProperties": {"type": ["string", "null"]},
        },
        "state": {"enum": ["CREATED", "STARTED", "OK", "REJECTED", "FAILED"]},
        "runtime_used_memory": {"type": "integer", "minimum": 0},
        "runtime_total_memory": {"type": "integer", "minimum": 0},
        "runtime_max_memory": {"type": "integer", "minimum": 0},
        "gc_count": {"type": "integer", "minimum": 0},
        "gc_time": {"type": "integer", "minimum": 0},
        "system_load": {"type": "number", "minimum": 0},
    },
    "not": {
        "anyOf": [
            {"required": ["ok_path", "reject_path"]},
            {"required": ["ok_path", "fail_path"]},
            {"required": ["reject_path", "fail_path"]},
        ]
    },
}

_schema_validator = Draft202012Validator(METER_DATA_SCHEMA)


class DataRecordError(ValueError):
    """Raised when a data message does not describe a valid meter record."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


def validate_record(record: dict[str, Any]) -> list[str]:
    """Schema violations of a record, empty when valid."""
    return [
        f"{'/'.join(str(p) for p in error.absolute_path) or '<root>'}: {error.message}"
        for error in sorted(_schema_validator.iter_errors(record), key=lambda e: list(e.absolute_path))
    ]


class _Scanner:
    """
    Reader for the data message grammar.

    value := bare word | 'quoted text' | [value, ...] | {key[:value], ...}
    Inside quotes a backslash escapes the next character.
    """

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def error(self, message: str) -> DataRecordError:
        return DataRecordError(f"Malformed data message at {self.pos}: {message}")

    def peek(self) -> str:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def expect(self, char: str) -> None:
        if self.peek() != char:
            raise self.error(f"expected {char!r}")
        self.pos += 1

    def read_message(self) -> dict[str, Any]:
        entries = self.read_object()
        if self.peek():
            raise self.error("trailing text")
        return entries

    def read_object(self) -> dict[str, Any]:
        self.expect("{")
        entries: dict[str, Any] = {}
        if self.peek() == "}":
            self.pos += 1
            return entries
        while True:
            key = self.read_text()
            if self.peek() == ":":
                self.pos += 1
                entries[key] = self.read_value()
            else:
                entries[key] = None
            if self.peek() == ",":
                self.pos += 1
                continue
            self.expect("}")
            return entries

    def read_list(self) -> list[Any]:
        self.expect("[")
        items: list[Any] = []
        if self.peek() == "]":
            self.pos += 1
            return items
        while True:
            items.append(self.read_value())
            if self.peek() == ",":
                self.pos += 1
                continue
            self.expect("]")
            return items

    def read_value(self) -> Any:
        char = self.peek()
        if char == "{":
            return self.read_object()
        if char == "[":
            return self.read_list()
        return self.read_text()

    def read_text(self) -> str:
        if self.peek() == "'":
            return self.read_quoted()
        start = self.pos
        while (self.pos < len(self.text)
               and self.text[self.pos] not in _DELIMITERS
               and not self.text[self.pos].isspace()):
            self.pos += 1
        if self.pos == start:
            raise self.error("expected a value")
        return self.text[start:self.pos]

    def read_quoted(self) -> str:
        self.pos += 1
        chars: list[str] = []
        while self.pos < len(self.text):
            char = self.text[self.pos]
            self.pos += 1
            if char == "'":
                return "".join(chars)
            if char == "\\":
                if self.pos >= len(self.text):
                    break
                char = self.text[self.pos]
                self.pos += 1
            chars.append(char)
        raise self.error("unterminated quote")


def _number(value: Any, convert: Callable[[str], Any]) -> Any:
    # Left as text for the schema to reject
    if not isinstance(value, str):
        return value
    try:
        return convert(value)
    except ValueError:
        return value


def parse_data_message(text: str, validate: bool = True) -> dict[str, Any]:
    """
    Read a data message back into a record dict.

    Unknown keys are ignored.

    Raises:
        DataRecordError: If the text is not a data message, or validate
            is set and the record breaks the schema
    """
    entries = _Scanner(text).read_message()
    record: dict[str, Any] = {}
    for key, name in _TEXT_KEYS.items():
        if key in entries:
            record[name] = entries[key]
    for key, name in _INT_KEYS.items():
        if key in entries:
            record[name] = _number(entries[key], int)

    if "ctx" in entries:
        record["context"] = entries["ctx"]
    memory = entries.get("m")
    if isinstance(memory, list) and len(memory) == 3:
        record["runtime_used_memory"] = _number(memory[0], int)
        record["runtime_total_memory"] = _number(memory[1], int)
        record["runtime_max_memory"] = _number(memory[2], int)
    gc_stats = entries.get("gc")
    if isinstance(gc_stats, list) and len(gc_stats) == 2:
        record["gc_count"] = _number(gc_stats[0], int)
        record["gc_time"] = _number(gc_stats[1], int)
    if "sl" in entries:
        record["system_load"] = _number(entries["sl"], float)

    if validate:
        errors = validate_record(record)
        if errors:
            raise DataRecordError(f"Invalid meter data record: {errors[0]}", errors)
    return record


def read_data_message(text: str) -> MeterData:
    """Parse and validate a data message into MeterData."""
    record = parse_data_message(text)
    data = MeterData.from_record(record)
    for name in ("runtime_used_memory", "runtime_total_memory", "runtime_max_memory",
                 "gc_count", "gc_time", "system_load"):
        if name in record:
            setattr(data, name, record[name])
    return data
