"""Contract and resiliency test runs against a live API."""

import logging
from dataclasses import dataclass

from specmatic_orchestrator.config import EngineConfig
from specmatic_orchestrator.discovery import ReportWorkspace
from specmatic_orchestrator.executor import EngineExecutor
from specmatic_orchestrator.junit import parse_console_output, parse_newest_report
from specmatic_orchestrator.models.report import TestSuiteReport
from specmatic_orchestrator.models.request import TestRunRequest
from specmatic_orchestrator.models.result import (
    ContractTestResult,
    ExecutionOutcome,
    TestMode,
)
from specmatic_orchestrator.staging import staged_spec

log = logging.getLogger(__name__)

STAGING_PREFIXES: dict[TestMode, str] = {
    "contract": "specmatic-test-",
    "resiliency": "specmatic-resiliency-test-",
}


@dataclass(frozen=True, kw_only=True)
class ContractTestRunner:
    """Stages a spec, runs the engine's test mode and normalizes the result."""

    executor: EngineExecutor
    workspace: ReportWorkspace

    @property
    def config(self) -> EngineConfig:
        return self.executor.config

    async def run(self, request: TestRunRequest) -> ContractTestResult:
        """Run the engine against ``request.base_url``.

        A run with failing assertions is a normal ``failure`` result. Launch
        failures and timeouts are raised.

        Raises:
            SpawnError: If the engine could not be launched
            EngineTimeoutError: If the run exceeded the configured timeout

        """
        mode: TestMode = "resiliency" if request.boundary_mode else "contract"
        env: dict[str, str] = {}
        if request.boundary_mode:
            env[self.config.boundary_testing_env] = "true"

        log.info("Running %s tests against %s", mode, request.base_url)
        with staged_spec(
            request.spec_content, request.spec_format, prefix=STAGING_PREFIXES[mode]
        ) as artifact:
            async with self.workspace.reserve() as report_dir:
                outcome = await self.executor.run(
                    [
                        "test",
                        str(artifact.path),
                        f"--testBaseURL={request.base_url}",
                        f"--junitReportDir={report_dir}",
                    ],
                    env=env,
                    report_dir=report_dir,
                )

        return build_test_result(mode, outcome, self.config)


def build_test_result(
    mode: TestMode, outcome: ExecutionOutcome, config: EngineConfig
) -> ContractTestResult:
    """Normalize an execution outcome into a test result.

    The newest report file wins; without a parsable report the console output
    is scanned instead.
    """
    report_path = None
    suite: TestSuiteReport | None = None
    source = "report"

    if outcome.report_dir is not None and outcome.report_files:
        report_path = outcome.report_dir / outcome.report_files[0]
        parsed = parse_newest_report(outcome.report_dir, outcome.report_files)
        if parsed is not None:
            suite = parsed[1]

    if suite is None:
        source = "console output"
        suite = parse_console_output(outcome.stdout)

    return ContractTestResult(
        mode=mode,
        status="success" if outcome.success else "failure",
        summary=summarize(outcome.exit_code, suite, source),
        exit_code=outcome.exit_code,
        output=outcome.stdout,
        errors=outcome.stderr,
        suite=suite,
        report_path=report_path,
        host_report_path=config.host_path(report_path) if report_path else None,
        report_files=outcome.report_files,
    )


def summarize(exit_code: int, suite: TestSuiteReport | None, source: str) -> str:
    """One-line description of a finished run."""
    if suite is None:
        return (
            f"Engine exited with code {exit_code} without a test report "
            "or recognizable results in its output"
        )
    return (
        f"{suite.tests} test(s): {suite.passed} passed, {suite.failed} failed, "
        f"{suite.skipped} skipped (from {source}, exit code {exit_code})"
    )
