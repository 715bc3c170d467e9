"""Parsing of JUnit XML reports and of raw engine console output."""

import logging
from collections.abc import Sequence
from pathlib import Path
from xml.etree.ElementTree import Element

import defusedxml.ElementTree as ET
from defusedxml import DefusedXmlException

from specmatic_orchestrator.errors import ReportParseError
from specmatic_orchestrator.models.report import CaseStatus, TestCase, TestSuiteReport

log = logging.getLogger(__name__)

PASSED_TOKEN = "PASSED"
FAILED_TOKEN = "FAILED"
CONSOLE_SUITE_NAME = "Console Output"


def parse_junit_file(path: Path) -> TestSuiteReport:
    """Parse a JUnit XML report file.

    Raises:
        ReportParseError: If the file cannot be read, is not well-formed XML,
            or contains no test suite

    """
    try:
        root = ET.parse(path).getroot()
    except (ET.ParseError, DefusedXmlException, OSError) as exc:
        raise ReportParseError(f"Cannot parse report {path}: {exc}") from exc
    return parse_junit_element(root)


def parse_junit_xml(xml: str) -> TestSuiteReport:
    """Parse JUnit XML held in a string.

    Raises:
        ReportParseError: If the XML is malformed or contains no test suite

    """
    try:
        root = ET.fromstring(xml)
    except (ET.ParseError, DefusedXmlException) as exc:
        raise ReportParseError(f"Cannot parse report: {exc}") from exc
    return parse_junit_element(root)


def parse_junit_element(root: Element) -> TestSuiteReport:
    """Build a suite report from a ``testsuite`` or ``testsuites`` root.

    When several suites are present only the first is used. Totals come from
    the suite's declared attributes, not from counting its cases.
    """
    suite = _find_suite(root)
    if suite is None:
        raise ReportParseError(f"No testsuite element found under <{root.tag}>")

    return TestSuiteReport(
        name=suite.get("name") or "Test Suite",
        tests=_int(suite.get("tests")),
        failures=_int(suite.get("failures")),
        errors=_int(suite.get("errors")),
        skipped=_int(suite.get("skipped")),
        time=_float(suite.get("time")),
        cases=tuple(_parse_case(element) for element in suite.findall("testcase")),
    )


def parse_console_output(stdout: str) -> TestSuiteReport | None:
    """Recover test outcomes from console output, best effort.

    Every line mentioning PASSED or FAILED counts as one case named by the
    trimmed line. Returns None when no line matches.
    """
    cases: list[TestCase] = []
    for line in stdout.splitlines():
        if PASSED_TOKEN in line:
            status: CaseStatus = "passed"
        elif FAILED_TOKEN in line:
            status = "failed"
        else:
            continue

        scenario = line.strip()
        cases.append(
            TestCase(
                name=scenario,
                classname="",
                status=status,
                message=scenario if status == "failed" else None,
            )
        )

    if not cases:
        return None

    return TestSuiteReport(
        name=CONSOLE_SUITE_NAME,
        tests=len(cases),
        failures=sum(1 for case in cases if case.status == "failed"),
        errors=0,
        cases=tuple(cases),
    )


def parse_newest_report(
    report_dir: Path, report_files: Sequence[str]
) -> tuple[Path, TestSuiteReport] | None:
    """Parse the most recent report file of a run.

    Returns None when the run produced no report or the report could not be
    parsed; the parse failure is logged.
    """
    if not report_files:
        return None
    if len(report_files) > 1:
        log.info(
            "Run produced %d reports, using the newest: %s",
            len(report_files),
            report_files[0],
        )

    path = report_dir / report_files[0]
    try:
        return path, parse_junit_file(path)
    except ReportParseError as exc:
        log.warning("Falling back to console output: %s", exc)
        return None


def _find_suite(root: Element) -> Element | None:
    if root.tag == "testsuite":
        return root
    if root.tag == "testsuites":
        return root.find("testsuite")
    return None


def _parse_case(element: Element) -> TestCase:
    name = element.get("name") or "Unknown Test"
    classname = element.get("classname") or "Unknown Class"
    time = _float(element.get("time"))

    for tag, default_message in (("failure", "Test failed"), ("error", "Test error")):
        if (marker := element.find(tag)) is not None:
            return TestCase(
                name=name,
                classname=classname,
                status="failed",
                time=time,
                message=_marker_message(marker, default_message),
                failure_type=marker.get("type"),
            )

    status: CaseStatus = "skipped" if element.find("skipped") is not None else "passed"
    return TestCase(name=name, classname=classname, status=status, time=time)


def _marker_message(marker: Element, default: str) -> str:
    if message := marker.get("message"):
        return message
    if text := (marker.text or "").strip():
        return text
    return default


def _int(value: str | None) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except ValueError:
        try:
            return int(float(value))
        except ValueError:
            return 0


def _float(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
