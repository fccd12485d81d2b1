import io
import xml.etree.ElementTree as ET

from junit_model import Report, TestCase, TestSuite, build_junit, write_junit, xml_safe


def sample_report(run_timestamp):
    suite = TestSuite(name="cargo test #0", timestamp=run_timestamp)
    suite.add_testcase(TestCase.success("adds", 250_000_000, classname="tests"))
    suite.add_testcase(TestCase.failure(
        "loads", 1_500_000_000, "cargo test", "failed tests::loads",
        classname="tests", system_out="Error: missing\x01 file",
    ))
    suite.add_testcase(TestCase.failure(
        "raw", 0, "cargo test", "failed tests::raw",
        classname="tests", system_out="stdout text", system_err="stderr text",
    ))
    suite.add_testcase(TestCase.skipped("tests::slow"))
    report = Report()
    report.add_testsuite(suite)
    report.add_testsuite(TestSuite(name="cargo test #1", timestamp=run_timestamp))
    return report


def test_suite_aggregates(run_timestamp):
    suite = sample_report(run_timestamp).testsuites[0]

    assert suite.tests == 4
    assert suite.failures == 2
    assert suite.skipped == 1
    assert suite.time_seconds == 1.75


def test_build_junit_suite_attributes(run_timestamp):
    root = build_junit(sample_report(run_timestamp))

    assert root.tag == "testsuites"
    first, second = root.findall("testsuite")
    assert first.get("id") == "0"
    assert first.get("name") == "cargo test #0"
    assert first.get("tests") == "4"
    assert first.get("failures") == "2"
    assert first.get("errors") == "0"
    assert first.get("skipped") == "1"
    assert first.get("time") == "1.750000"
    assert first.get("timestamp") == "2024-05-01T12:30:00+00:00"
    assert second.get("id") == "1"
    assert second.get("tests") == "0"


def test_build_junit_cases(run_timestamp):
    suite = build_junit(sample_report(run_timestamp)).find("testsuite")
    adds, loads, raw, slow = suite.findall("testcase")

    assert adds.attrib == {"name": "adds", "classname": "tests", "time": "0.250000"}
    assert list(adds) == []

    failure = loads.find("failure")
    assert failure.get("type") == "cargo test"
    assert failure.get("message") == "failed tests::loads"
    assert loads.find("system-out").text == "Error: missing file"
    assert loads.find("system-err") is None

    assert raw.find("system-out").text == "stdout text"
    assert raw.find("system-err").text == "stderr text"

    assert slow.get("name") == "tests::slow"
    assert "classname" not in slow.attrib
    assert slow.find("skipped") is not None
    assert slow.find("failure") is None


def test_write_junit_emits_parseable_utf8(run_timestamp):
    report = sample_report(run_timestamp)
    report.testsuites[0].add_testcase(TestCase.success("café", 0))
    out = io.BytesIO()

    write_junit(report, out)

    data = out.getvalue()
    assert data.startswith(b"<?xml")
    root = ET.fromstring(data)
    names = [tc.get("name") for tc in root.iter("testcase")]
    assert names[-1] == "café"


def test_write_junit_cleans_control_characters_in_attributes(run_timestamp):
    suite = TestSuite(name="cargo\x07 test #0", timestamp=run_timestamp)
    suite.add_testcase(TestCase.success("adds\x01", 0, classname="tests\x1b::unit"))
    suite.add_testcase(TestCase.failure("loads\x00", 0, "cargo\x02 test", "failed\x03", classname="tests"))
    report = Report()
    report.add_testsuite(suite)
    out = io.BytesIO()

    write_junit(report, out)

    root = ET.fromstring(out.getvalue())
    testsuite = root.find("testsuite")
    assert testsuite.get("name") == "cargo test #0"
    assert testsuite.get("package") == "testsuite/cargo test #0"
    adds, loads = testsuite.findall("testcase")
    assert adds.get("name") == "adds"
    assert adds.get("classname") == "tests::unit"
    assert loads.get("name") == "loads"
    assert loads.find("failure").get("type") == "cargo test"
    assert loads.find("failure").get("message") == "failed"


def test_xml_safe_strips_control_characters():
    assert xml_safe("a\x00b\x08c\x0bd\x1fe") == "abcde"
    assert xml_safe("keep\ttabs\nand\rnewlines") == "keep\ttabs\nand\rnewlines"
