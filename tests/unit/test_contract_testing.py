"""Tests for contract and resiliency test runs."""

from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from specmatic_orchestrator.config import EngineConfig
from specmatic_orchestrator.contract_testing import (
    ContractTestRunner,
    build_test_result,
    summarize,
)
from specmatic_orchestrator.discovery import ReportWorkspace
from specmatic_orchestrator.executor import EngineExecutor
from specmatic_orchestrator.testing.factories import (
    ExecutionOutcomeFactory,
    TestRunRequestFactory,
    TestSuiteReportFactory,
)

PASSING_REPORT = (
    '<testsuite name="Contract Tests" tests="1" failures="0" errors="0">'
    '<testcase name="GET /pets -> 200" classname="PetsApi"/>'
    "</testsuite>"
)


@pytest.fixture
def executor_mock() -> Mock:
    """Create mock executor with default config."""
    executor = Mock(spec=EngineExecutor)
    executor.config = EngineConfig()
    executor.run = AsyncMock(return_value=ExecutionOutcomeFactory.build())
    return executor


@pytest.fixture
def runner(executor_mock: Mock, tmp_path: Path) -> ContractTestRunner:
    """Create runner writing reports under a temporary directory."""
    return ContractTestRunner(
        executor=executor_mock, workspace=ReportWorkspace(reports_dir=tmp_path)
    )


class TestContractTestRunner:
    """Tests for ContractTestRunner.run."""

    async def test_invokes_engine_test_mode(
        self, runner: ContractTestRunner, executor_mock: Mock, tmp_path: Path
    ) -> None:
        """Runs the test subcommand with base URL and report directory."""
        request = TestRunRequestFactory.build(base_url="http://api:8080")

        await runner.run(request)

        args = executor_mock.run.call_args.args[0]
        kwargs = executor_mock.run.call_args.kwargs
        assert args[0] == "test"
        assert args[1].endswith("spec.yaml")
        assert args[2] == "--testBaseURL=http://api:8080"
        assert args[3] == f"--junitReportDir={kwargs['report_dir']}"
        assert kwargs["report_dir"].parent == tmp_path
        assert kwargs["env"] == {}

    async def test_resiliency_sets_boundary_variable(
        self, runner: ContractTestRunner, executor_mock: Mock
    ) -> None:
        """Boundary mode enables generative tests through the environment."""
        request = TestRunRequestFactory.build(boundary_mode=True)

        result = await runner.run(request)

        assert executor_mock.run.call_args.kwargs["env"] == {
            "SPECMATIC_GENERATIVE_TESTS": "true"
        }
        assert result.mode == "resiliency"

    async def test_staged_spec_is_removed(
        self, runner: ContractTestRunner, executor_mock: Mock
    ) -> None:
        """The staged spec exists during the run and is gone afterwards."""
        seen: list[Path] = []

        async def record(args: list[str], **kwargs: object) -> object:
            spec = Path(args[1])
            assert spec.read_text(encoding="utf-8") == "openapi: 3.0.0\n"
            seen.append(spec)
            return ExecutionOutcomeFactory.build()

        executor_mock.run.side_effect = record

        await runner.run(TestRunRequestFactory.build())

        assert not seen[0].exists()

    async def test_staged_spec_is_removed_on_error(
        self, runner: ContractTestRunner, executor_mock: Mock
    ) -> None:
        """The staged spec is cleaned up when the engine run raises."""
        executor_mock.run.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await runner.run(TestRunRequestFactory.build())

        spec = Path(executor_mock.run.call_args.args[0][1])
        assert not spec.parent.exists()

    async def test_json_spec_uses_json_extension(
        self, runner: ContractTestRunner, executor_mock: Mock
    ) -> None:
        """JSON specs are staged with a .json extension."""
        await runner.run(
            TestRunRequestFactory.build(spec_content="{}", spec_format="json")
        )

        assert executor_mock.run.call_args.args[0][1].endswith("spec.json")


class TestBuildTestResult:
    """Tests for build_test_result function."""

    def test_uses_newest_report(self, tmp_path: Path) -> None:
        """Parses the newest report file and records its path."""
        (tmp_path / "TEST-new.xml").write_text(PASSING_REPORT, encoding="utf-8")
        outcome = ExecutionOutcomeFactory.build(
            report_dir=tmp_path, report_files=("TEST-new.xml",)
        )

        result = build_test_result("contract", outcome, EngineConfig())

        assert result.success
        assert result.suite is not None
        assert result.suite.tests == 1
        assert result.suite.failed == 0
        assert result.report_path == tmp_path / "TEST-new.xml"
        assert result.host_report_path == tmp_path / "TEST-new.xml"
        assert "from report" in result.summary

    def test_maps_report_path_to_host(self, tmp_path: Path) -> None:
        """The host-visible path is derived from the configured mapping."""
        reports_dir = tmp_path / "reports"
        run_dir = reports_dir / "run-1"
        run_dir.mkdir(parents=True)
        (run_dir / "TEST.xml").write_text(PASSING_REPORT, encoding="utf-8")
        config = EngineConfig(reports_dir=reports_dir, host_reports_dir=Path("/host"))
        outcome = ExecutionOutcomeFactory.build(
            report_dir=run_dir, report_files=("TEST.xml",)
        )

        result = build_test_result("contract", outcome, config)

        assert result.host_report_path == Path("/host/run-1/TEST.xml")

    def test_falls_back_to_console_output(self) -> None:
        """Without reports the console output is scanned."""
        outcome = ExecutionOutcomeFactory.build(
            stdout="GET /pets PASSED\nPOST /pets FAILED\n", exit_code=1
        )

        result = build_test_result("contract", outcome, EngineConfig())

        assert result.status == "failure"
        assert result.suite is not None
        assert result.suite.tests == 2
        assert result.suite.failed == 1
        assert result.report_path is None
        assert "from console output" in result.summary

    def test_unparsable_report_falls_back_but_keeps_path(
        self, tmp_path: Path
    ) -> None:
        """A broken report still points at its file while console data is used."""
        (tmp_path / "broken.xml").write_text("<testsuite", encoding="utf-8")
        outcome = ExecutionOutcomeFactory.build(
            stdout="GET /pets PASSED\n",
            report_dir=tmp_path,
            report_files=("broken.xml",),
        )

        result = build_test_result("contract", outcome, EngineConfig())

        assert result.report_path == tmp_path / "broken.xml"
        assert result.suite is not None
        assert result.suite.name == "Console Output"

    def test_crash_without_output_has_summary(self) -> None:
        """A crash with no report and no test lines still explains itself."""
        outcome = ExecutionOutcomeFactory.build(
            stdout="", stderr="Error: spec not found", exit_code=1
        )

        result = build_test_result("contract", outcome, EngineConfig())

        assert not result.success
        assert result.suite is None
        assert result.summary
        assert result.errors == "Error: spec not found"

    def test_status_follows_exit_code_not_counts(self, tmp_path: Path) -> None:
        """A passing report with a non-zero exit code is a failure."""
        (tmp_path / "TEST.xml").write_text(PASSING_REPORT, encoding="utf-8")
        outcome = ExecutionOutcomeFactory.build(
            exit_code=1, report_dir=tmp_path, report_files=("TEST.xml",)
        )

        result = build_test_result("contract", outcome, EngineConfig())

        assert result.status == "failure"
        assert not result.success


def test_summarize_counts() -> None:
    """Summarizes totals, source and exit code."""
    suite = TestSuiteReportFactory.build(tests=5, failures=1, errors=1, skipped=1)

    assert summarize(1, suite, "report") == (
        "5 test(s): 2 passed, 2 failed, 1 skipped (from report, exit code 1)"
    )


def test_summarize_without_suite() -> None:
    """Mentions the exit code when nothing could be parsed."""
    assert "exited with code 2" in summarize(2, None, "console output")
