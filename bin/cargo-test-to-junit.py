#!/usr/bin/env python3
"""Convert the libtest JSON stream of `cargo test` into JUnit XML.

Usage:
  cargo test -- -Z unstable-options --format json --report-time \\
      | cargo-test-to-junit.py > junit.xml

Options:
  --suite-prefix TEXT     Suite names become "<prefix> #<n>" (default: cargo test)
  --max-len N             Max bytes of captured stdout/stderr per failure
  --precision {milliseconds,seconds}
                          Precision of failure durations (default: milliseconds)

Environment:
  TEST_STDOUT_STDERR_MAX_LEN  Default for --max-len (65536). Some CI systems
                              (GitLab) reject JUnit files with huge outputs.

Lines that are not JSON objects (compiler output, cargo progress) are ignored.
A malformed event or an event out of order aborts with exit code 1 and no XML.
"""

import argparse
import os
import sys
from datetime import datetime, timezone

from junit_model import write_junit
from libtest_events import ConversionError, DurationPrecision
from libtest_junit import SYSTEM_OUT_MAX_LEN, parse

MAX_LEN_ENV = "TEST_STDOUT_STDERR_MAX_LEN"


def parse_natural(value):
    """Plain ASCII digits only; int() alone would take ' 12 ', '+5' and '1_000'."""
    if value.isascii() and value.isdigit():
        return int(value)
    return None


def max_len_from_env(parser, environ):
    value = environ.get(MAX_LEN_ENV)
    if value is None:
        return SYSTEM_OUT_MAX_LEN
    max_len = parse_natural(value)
    if max_len is None:
        parser.error(f"Failed to parse {MAX_LEN_ENV} as a natural number: {value!r}")
    return max_len


def natural(value):
    n = parse_natural(value)
    if n is None:
        raise argparse.ArgumentTypeError(f"{value} is not a natural number")
    return n


def main(argv=None):
    timestamp = datetime.now(timezone.utc)

    parser = argparse.ArgumentParser(
        description="Convert cargo test JSON output (stdin) to JUnit XML (stdout)",
    )
    parser.add_argument("--suite-prefix", default="cargo test",
                        help="Prefix of suite names (default: cargo test)")
    parser.add_argument("--max-len", type=natural, default=None,
                        help=f"Max captured output bytes per failure (default: ${MAX_LEN_ENV} or {SYSTEM_OUT_MAX_LEN})")
    parser.add_argument("--precision", choices=[p.value for p in DurationPrecision],
                        default=DurationPrecision.MILLISECONDS.value,
                        help="Precision of failure durations (default: milliseconds)")
    args = parser.parse_args(argv)

    max_len = args.max_len
    if max_len is None:
        max_len = max_len_from_env(parser, os.environ)

    try:
        report = parse(
            sys.stdin.buffer,
            args.suite_prefix,
            timestamp,
            max_len,
            DurationPrecision(args.precision),
        )
    except ConversionError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    write_junit(report, sys.stdout.buffer)
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
