#!/usr/bin/env python3
"""
Event types and decoding for the libtest JSON stream (`cargo test -- --format json`).
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class ConversionError(Exception):
    """Base class for errors that abort a conversion run."""


class EventDecodeError(ConversionError):
    def __init__(self, line: str, reason: str):
        super().__init__(f"Error parsing '{line}': {reason}")
        self.line = line
        self.reason = reason


class ProtocolError(ConversionError):
    """The event sequence breaks the suite/test nesting rules."""


@dataclass(frozen=True)
class SuiteStarted:
    test_count: int


@dataclass(frozen=True)
class SuiteOk:
    passed: int
    failed: int


@dataclass(frozen=True)
class SuiteFailed:
    passed: int
    failed: int


@dataclass(frozen=True)
class TestEvent:
    __test__ = False

    name: str
    duration: Optional[float] = None
    exec_time: Union[float, str, None] = None


class TestStarted(TestEvent):
    pass


class TestOk(TestEvent):
    pass


@dataclass(frozen=True)
class TestFailed(TestEvent):
    stdout: Optional[str] = None
    stderr: Optional[str] = None


class TestIgnored(TestEvent):
    pass


class TestTimeout(TestEvent):
    pass


SUITE_EVENTS = {
    "started": SuiteStarted,
    "ok": SuiteOk,
    "failed": SuiteFailed,
}

TEST_EVENTS = {
    "started": TestStarted,
    "ok": TestOk,
    "failed": TestFailed,
    "ignored": TestIgnored,
    "timeout": TestTimeout,
}


class DurationPrecision(Enum):
    MILLISECONDS = "milliseconds"
    LITERAL_SECONDS = "seconds"

    def trunc(self, duration_ns: int) -> int:
        """Drop precision below microseconds or whole seconds, rounding toward zero."""
        unit = 1_000 if self is DurationPrecision.MILLISECONDS else 1_000_000_000
        kept = abs(duration_ns) // unit * unit
        return kept if duration_ns >= 0 else -kept


def is_event_line(line: str) -> bool:
    """True when the first non-whitespace character opens a JSON object."""
    stripped = line.lstrip()
    return stripped.startswith("{")


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require(obj: dict, key: str, check, what: str):
    if key not in obj:
        raise ValueError(f"missing field `{key}`")
    value = obj[key]
    if not check(value):
        raise ValueError(f"invalid type for `{key}`: expected {what}")
    return value


def _optional(obj: dict, key: str, check, what: str):
    value = obj.get(key)
    if value is not None and not check(value):
        raise ValueError(f"invalid type for `{key}`: expected {what}")
    return value


def _is_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _build_event(obj):
    if not isinstance(obj, dict):
        raise ValueError("expected a JSON object")
    kind = obj.get("type")
    tag = obj.get("event")

    if kind == "suite":
        cls = SUITE_EVENTS.get(tag) if isinstance(tag, str) else None
        if cls is None:
            raise ValueError(f"unknown suite event {tag!r}")
        if cls is SuiteStarted:
            return SuiteStarted(test_count=_require(obj, "test_count", _is_count, "unsigned integer"))
        return cls(
            passed=_require(obj, "passed", _is_count, "unsigned integer"),
            failed=_require(obj, "failed", _is_count, "unsigned integer"),
        )

    if kind == "test":
        cls = TEST_EVENTS.get(tag) if isinstance(tag, str) else None
        if cls is None:
            raise ValueError(f"unknown test event {tag!r}")
        fields = {
            "name": _require(obj, "name", lambda v: isinstance(v, str), "string"),
            "duration": _optional(obj, "duration", _is_number, "number"),
            "exec_time": _optional(
                obj, "exec_time", lambda v: _is_number(v) or isinstance(v, str), "number or string"
            ),
        }
        if cls is TestFailed:
            fields["stdout"] = _optional(obj, "stdout", lambda v: isinstance(v, str), "string")
            fields["stderr"] = _optional(obj, "stderr", lambda v: isinstance(v, str), "string")
        return cls(**fields)

    raise ValueError(f"unknown event type {kind!r}")


def _decode(line: str):
    # JSONDecodeError is a ValueError too
    return _build_event(json.loads(line))


def decode_event(line: str):
    """Decode one filtered line into an event.

    libtest writes backslashes inside strings without escaping them, so a
    failed decode is retried once with every backslash doubled. The error
    reported is the one from the first attempt.
    """
    try:
        return _decode(line)
    except (ValueError, RecursionError) as orig_err:
        try:
            return _decode(line.replace("\\", "\\\\"))
        except (ValueError, RecursionError):
            raise EventDecodeError(line, str(orig_err)) from orig_err


def resolve_duration_ns(event: TestEvent) -> Optional[int]:
    """Nanoseconds from `exec_time` (preferred) or `duration`, or None if neither is set."""
    exec_time = event.exec_time
    try:
        if isinstance(exec_time, str):
            if not exec_time.endswith("s"):
                raise ProtocolError(f"exec_time {exec_time!r} of test '{event.name}' lacks the 's' suffix")
            return int(float(exec_time[:-1]) * 1_000_000_000)
        if exec_time is not None:
            return int(exec_time * 1_000_000_000)
        if event.duration is not None:
            return int(event.duration * 1_000_000)
    except (ValueError, OverflowError) as e:
        raise ProtocolError(f"unusable duration for test '{event.name}': {e}") from e
    return None
