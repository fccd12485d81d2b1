#!/usr/bin/env python3
"""
Fold a libtest JSON event stream into a JUnit report model.

The stream is read line by line. Lines that do not open a JSON object
(compiler output, cargo progress) are skipped, everything else must decode
to an event and fit the suite/test nesting:

  suite started -> test started/ok/failed/ignored/timeout ... -> suite ok/failed

Any decode error or nesting violation aborts the whole run.
"""

import re
import time
from datetime import datetime
from typing import Optional

from junit_model import Report, TestCase, TestSuite
from libtest_events import (
    DurationPrecision, ProtocolError,
    SuiteStarted, SuiteOk, SuiteFailed,
    TestEvent, TestStarted, TestOk, TestFailed, TestIgnored, TestTimeout,
    decode_event, is_event_line, resolve_duration_ns,
)

SYSTEM_OUT_MAX_LEN = 65536
TRUNCATED_MARKER = "[...TRUNCATED...]"
FAILURE_TYPE = "cargo test"
NAME_SEPARATOR = "::"

ERROR_LINE_RE = re.compile(r"^((?i:error): .+)$", re.MULTILINE)


def split_name(full_name: str) -> tuple[str, str]:
    """Split 'a::b::test' into ('test', 'a::b')."""
    parts = full_name.split(NAME_SEPARATOR)
    name = parts.pop()
    return name, NAME_SEPARATOR.join(parts)


def detect_error(stdout: Optional[str], stderr: Optional[str]) -> Optional[str]:
    """Best guess at a failure message.

    Non-blank stderr wins as is; otherwise the last 'Error: ...' line of stdout.
    """
    if stderr is not None and stderr.strip():
        return stderr

    if stdout is not None:
        matches = ERROR_LINE_RE.findall(stdout)
        if matches:
            return matches[-1].strip()

    return None


def truncate(text: str, max_len: int) -> str:
    """Keep the head and tail of text so the UTF-8 size stays near max_len."""
    data = text.encode("utf-8")
    if len(data) <= max_len:
        return text
    # the newlines around the marker are not budgeted: result <= max_len + 2
    half = max(max_len - len(TRUNCATED_MARKER), 0) // 2
    head = data[:half].decode("utf-8", errors="ignore")
    tail = data[len(data) - half:].decode("utf-8", errors="ignore") if half else ""
    return f"{head}\n{TRUNCATED_MARKER}\n{tail}"


class ReportBuilder:
    """Applies events one at a time to an in-progress report.

    Holds the only mutable state of a run: the suite counter, the active
    suite and the start instants of pending tests.
    """

    def __init__(self, suite_name_prefix: str, timestamp: datetime,
                 max_out_len: int = SYSTEM_OUT_MAX_LEN,
                 precision: DurationPrecision = DurationPrecision.MILLISECONDS,
                 clock=time.time_ns):
        self.suite_name_prefix = suite_name_prefix
        self.timestamp = timestamp
        self.max_out_len = max_out_len
        self.precision = precision
        self.clock = clock

        self.report = Report()
        self.suite_index = 0
        self.current_suite: Optional[TestSuite] = None
        self.pending: dict[str, int] = {}

    def feed(self, event):
        if isinstance(event, SuiteStarted):
            self._suite_started()
        elif isinstance(event, (SuiteOk, SuiteFailed)):
            self._suite_finished()
        elif isinstance(event, TestEvent):
            self._test_event(event)
        else:
            raise TypeError(f"not an event: {event!r}")

    def finish(self) -> Report:
        return self.report

    def _suite_started(self):
        if self.current_suite is not None:
            raise ProtocolError(f"suite started while '{self.current_suite.name}' is still running")
        self.current_suite = TestSuite(
            name=f"{self.suite_name_prefix} #{self.suite_index}",
            timestamp=self.timestamp,
        )
        self.suite_index += 1

    def _suite_finished(self):
        if self.current_suite is None:
            raise ProtocolError("Suite complete event found outside of suite!")
        if self.pending:
            names = ", ".join(sorted(self.pending))
            raise ProtocolError(f"suite '{self.current_suite.name}' completed with pending tests: {names}")
        self.report.add_testsuite(self.current_suite)
        self.current_suite = None

    def _test_event(self, event: TestEvent):
        suite = self.current_suite
        if suite is None:
            raise ProtocolError(f"Test event found outside of suite! (test '{event.name}')")

        if isinstance(event, TestTimeout):
            # libtest reports tests running over 60s; the test keeps running
            # and reports its result later.
            return

        if isinstance(event, TestStarted):
            if event.name in self.pending:
                raise ProtocolError(f"test '{event.name}' started twice")
            self.pending[event.name] = self.clock()
            return

        if event.name not in self.pending:
            raise ProtocolError(f"result for test '{event.name}' that never started")
        start = self.pending.pop(event.name)

        if isinstance(event, TestIgnored):
            suite.add_testcase(TestCase.skipped(event.name))
            return

        now = self.clock()
        duration = resolve_duration_ns(event)
        name, module_path = split_name(event.name)

        if isinstance(event, TestOk):
            if duration is None:
                duration = now - start
            suite.add_testcase(TestCase.success(name, duration, classname=module_path))
        elif isinstance(event, TestFailed):
            if duration is None:
                duration = now - start
            suite.add_testcase(self._failure(event, name, module_path, self.precision.trunc(duration)))
        else:
            raise TypeError(f"unhandled test event: {event!r}")

    def _failure(self, event: TestFailed, name: str, module_path: str, duration: int) -> TestCase:
        system_out = None
        system_err = None
        message = detect_error(event.stdout, event.stderr)
        if message is not None:
            system_out = truncate(message, self.max_out_len)
        else:
            if event.stdout is not None:
                system_out = truncate(event.stdout, self.max_out_len)
            if event.stderr is not None:
                system_err = truncate(event.stderr, self.max_out_len)

        return TestCase.failure(
            name,
            duration,
            FAILURE_TYPE,
            f"failed {module_path}::{name}",
            classname=module_path,
            system_out=system_out,
            system_err=system_err,
        )


def iter_events(stream):
    """Yield decoded events from a binary line stream, skipping non-JSON lines."""
    for raw in stream:
        line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r\n")
        if not is_event_line(line):
            continue
        yield decode_event(line)


def parse(stream, suite_name_prefix: str, timestamp: datetime,
          max_out_len: int = SYSTEM_OUT_MAX_LEN,
          precision: DurationPrecision = DurationPrecision.MILLISECONDS,
          clock=time.time_ns) -> Report:
    """Convert a whole event stream into a report.

    Raises EventDecodeError or ProtocolError; no partial report is returned.
    """
    builder = ReportBuilder(suite_name_prefix, timestamp, max_out_len, precision, clock)
    for event in iter_events(stream):
        builder.feed(event)
    return builder.finish()
