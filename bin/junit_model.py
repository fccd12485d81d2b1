#!/usr/bin/env python3
"""
Report model for converted test runs and its JUnit XML rendering.
"""

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

SUCCESS = "success"
FAILURE = "failure"
SKIPPED = "skipped"


@dataclass(frozen=True)
class TestCase:
    __test__ = False

    name: str
    classname: str = ""
    status: str = SUCCESS
    duration_ns: int = 0
    failure_type: str = ""
    failure_message: str = ""
    system_out: Optional[str] = None
    system_err: Optional[str] = None

    @classmethod
    def success(cls, name: str, duration_ns: int, classname: str = "") -> "TestCase":
        return cls(name=name, classname=classname, status=SUCCESS, duration_ns=duration_ns)

    @classmethod
    def failure(cls, name: str, duration_ns: int, failure_type: str, message: str,
                classname: str = "", system_out: Optional[str] = None,
                system_err: Optional[str] = None) -> "TestCase":
        return cls(
            name=name,
            classname=classname,
            status=FAILURE,
            duration_ns=duration_ns,
            failure_type=failure_type,
            failure_message=message,
            system_out=system_out,
            system_err=system_err,
        )

    @classmethod
    def skipped(cls, name: str) -> "TestCase":
        return cls(name=name, status=SKIPPED)

    @property
    def time_seconds(self) -> float:
        return self.duration_ns / 1_000_000_000


@dataclass
class TestSuite:
    __test__ = False

    name: str
    timestamp: datetime
    testcases: list = field(default_factory=list)

    def add_testcase(self, testcase: TestCase):
        self.testcases.append(testcase)

    @property
    def tests(self) -> int:
        return len(self.testcases)

    @property
    def failures(self) -> int:
        return sum(1 for tc in self.testcases if tc.status == FAILURE)

    @property
    def skipped(self) -> int:
        return sum(1 for tc in self.testcases if tc.status == SKIPPED)

    @property
    def time_seconds(self) -> float:
        return sum(tc.duration_ns for tc in self.testcases) / 1_000_000_000


@dataclass
class Report:
    testsuites: list = field(default_factory=list)

    def add_testsuite(self, suite: TestSuite):
        self.testsuites.append(suite)


def xml_safe(text):
    """Remove control chars that are invalid in XML 1.0."""
    return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f]", "", text)


def build_junit(report: Report):
    """Build the JUnit XML element tree for a report."""
    testsuites = ET.Element("testsuites")

    for suite_id, suite in enumerate(report.testsuites):
        testsuite = ET.SubElement(testsuites, "testsuite")
        testsuite.set("id", str(suite_id))
        testsuite.set("name", xml_safe(suite.name))
        testsuite.set("package", xml_safe(f"testsuite/{suite.name}"))
        testsuite.set("tests", str(suite.tests))
        testsuite.set("errors", "0")
        testsuite.set("failures", str(suite.failures))
        testsuite.set("skipped", str(suite.skipped))
        testsuite.set("hostname", "localhost")
        testsuite.set("timestamp", suite.timestamp.isoformat())
        testsuite.set("time", f"{suite.time_seconds:.6f}")

        for case in suite.testcases:
            tc = ET.SubElement(testsuite, "testcase")
            tc.set("name", xml_safe(case.name))
            if case.classname:
                tc.set("classname", xml_safe(case.classname))
            tc.set("time", f"{case.time_seconds:.6f}")

            if case.status == SKIPPED:
                ET.SubElement(tc, "skipped")
            elif case.status == FAILURE:
                fail = ET.SubElement(tc, "failure")
                fail.set("type", xml_safe(case.failure_type))
                fail.set("message", xml_safe(case.failure_message))

            if case.system_out is not None:
                sysout = ET.SubElement(tc, "system-out")
                sysout.text = xml_safe(case.system_out)
            if case.system_err is not None:
                syserr = ET.SubElement(tc, "system-err")
                syserr.text = xml_safe(case.system_err)

    return testsuites


def write_junit(report: Report, out):
    """Write the report as JUnit XML to a binary file object."""
    tree = ET.ElementTree(build_junit(report))
    ET.indent(tree, space="  ")
    tree.write(out, encoding="utf-8", xml_declaration=True)
    out.write(b"\n")
