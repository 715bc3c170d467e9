"""Fixtures for integration tests.

The engine is replaced by a small Python script that mimics the Specmatic
command line: ``test`` writes a JUnit report, ``stub`` serves until
terminated and ``backward-compatibility-check`` prints findings. The
scenario is selected by an ``x-scenario`` line in the spec content.
"""

import sys
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Protocol

import pytest

from specmatic_orchestrator.config import EngineConfig
from specmatic_orchestrator.orchestrator import SpecmaticOrchestrator

FAKE_ENGINE = '''
import os
import pathlib
import sys
import time


def option(name):
    for arg in sys.argv[2:]:
        if arg.startswith(f"--{name}="):
            return arg.split("=", 1)[1]
    if f"--{name}" in sys.argv:
        return sys.argv[sys.argv.index(f"--{name}") + 1]
    return None


def scenario(spec_path):
    for line in pathlib.Path(spec_path).read_text().splitlines():
        if line.startswith("x-scenario:"):
            return line.split(":", 1)[1].strip()
    return "pass"


def write_report(report_dir, cases):
    failures = sum(1 for _, failure in cases if failure)
    body = "".join(
        f'<testcase name="{name}" classname="PetsApi">'
        + (f'<failure message="{failure}"/>' if failure else "")
        + "</testcase>"
        for name, failure in cases
    )
    report = (
        f'<testsuite name="Contract Tests" tests="{len(cases)}" '
        f'failures="{failures}" errors="0">{body}</testsuite>'
    )
    path = pathlib.Path(report_dir, f"TEST-{os.getpid()}.xml")
    path.write_text(report)


def run_tests():
    mode = scenario(sys.argv[2])
    report_dir = option("junitReportDir")
    print(f"Testing {option('testBaseURL')} pid={os.getpid()}", flush=True)

    if mode == "hang":
        time.sleep(600)
    if mode == "crash":
        print("Error: unable to load specification", file=sys.stderr)
        return 1

    cases = [("GET /pets -> 200", None)]
    if mode == "missing_field":
        cases = [
            (
                "GET /pets -> 200",
                "Key named id in the contract was not found in the response",
            )
        ]
    if os.environ.get("SPECMATIC_GENERATIVE_TESTS") == "true":
        cases += [
            ("POST /pets -> 400 (name missing)", None),
            ("POST /pets -> 400 (age not a number)", None),
        ]
    write_report(report_dir, cases)
    for name, failure in cases:
        print(f"Scenario: {name} {'FAILED' if failure else 'PASSED'}")
    return 1 if any(failure for _, failure in cases) else 0


def run_stub():
    print(
        "(node:1) [DEP0040] DeprecationWarning: punycode is deprecated",
        file=sys.stderr,
        flush=True,
    )
    if scenario(sys.argv[2]) == "bad_spec":
        print("Error: spec is not valid OpenAPI", file=sys.stderr)
        return 1
    print(f"Stub server running on port {option('port')}", flush=True)
    time.sleep(600)
    return 0


def run_compatibility_check():
    target = option("target-path") or "all specs"
    print(f"Checking backward compatibility of {target}")
    if "breaking" in target:
        print("[BREAKING] Response property id was removed from GET /pets")
        print("[WARNING] Request header X-Trace is now required")
        return 1
    print("[INFO] Description updated for GET /pets")
    return 0


COMMANDS = {
    "test": run_tests,
    "stub": run_stub,
    "backward-compatibility-check": run_compatibility_check,
}
sys.exit(COMMANDS[sys.argv[1]]())
'''


class SpecFn(Protocol):
    """Protocol for spec content builder."""

    def __call__(self, scenario: str = "pass") -> str:
        """Return spec content selecting a fake engine scenario."""


@pytest.fixture
def fake_engine(tmp_path: Path) -> Path:
    """Write the fake engine script."""
    path = tmp_path / "fake_specmatic.py"
    path.write_text(FAKE_ENGINE, encoding="utf-8")
    return path


@pytest.fixture
def engine_config(fake_engine: Path, tmp_path: Path) -> EngineConfig:
    """Configuration running the fake engine with short timeouts."""
    return EngineConfig(
        engine_command=(sys.executable, str(fake_engine)),
        reports_dir=tmp_path / "reports",
        test_timeout=30.0,
        kill_grace=2.0,
        mock_startup_grace=1.5,
    )


@pytest.fixture
async def orchestrator(
    engine_config: EngineConfig,
) -> AsyncIterator[SpecmaticOrchestrator]:
    """Create orchestrator that stops its mock servers after the test."""
    async with SpecmaticOrchestrator.from_config(engine_config) as orchestrator:
        yield orchestrator


@pytest.fixture
def spec() -> SpecFn:
    """Return a function building spec content for a scenario."""

    def _spec(scenario: str = "pass") -> str:
        return (
            "openapi: 3.0.0\n"
            f"x-scenario: {scenario}\n"
            "info:\n"
            "  title: Pets\n"
            "  version: 1.0.0\n"
            "paths: {}\n"
        )

    return _spec
