"""Entry point tying staging, execution, parsing and the mock registry together."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from specmatic_orchestrator.compatibility import CompatibilityChecker
from specmatic_orchestrator.config import EngineConfig
from specmatic_orchestrator.contract_testing import ContractTestRunner
from specmatic_orchestrator.discovery import ReportWorkspace
from specmatic_orchestrator.errors import (
    EngineError,
    EngineTimeoutError,
    InvalidInputError,
    MockStartError,
    SpawnError,
)
from specmatic_orchestrator.executor import EngineExecutor
from specmatic_orchestrator.mock_registry import MockServerRegistry
from specmatic_orchestrator.models.request import (
    DEFAULT_MOCK_PORT,
    CompatibilityRequest,
    MockServerRequest,
    SpecFormat,
    TestRunRequest,
)
from specmatic_orchestrator.models.result import (
    CompatibilityReport,
    ContractTestResult,
    MockServerResult,
    TestMode,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class SpecmaticOrchestrator:
    """Runs engine operations and always answers with a result object.

    Errors raised by the components are logged and turned into results with
    an ``error_kind``; they never propagate to the caller.
    """

    test_runner: ContractTestRunner
    mock_registry: MockServerRegistry
    compatibility_checker: CompatibilityChecker

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: EngineConfig
    ) -> AsyncGenerator["SpecmaticOrchestrator", None]:
        """Create an orchestrator whose mock servers are stopped on exit."""
        executor = EngineExecutor(config=config)
        workspace = ReportWorkspace(
            reports_dir=config.reports_dir, per_run=config.per_run_report_dirs
        )
        async with MockServerRegistry(executor=executor) as registry:
            yield cls(
                test_runner=ContractTestRunner(executor=executor, workspace=workspace),
                mock_registry=registry,
                compatibility_checker=CompatibilityChecker(executor=executor),
            )

    @property
    def compatibility_available(self) -> bool:
        """Whether check_compatibility is offered in this deployment."""
        return self.compatibility_checker.available

    async def run_test(
        self,
        spec_content: str,
        base_url: str,
        *,
        spec_format: SpecFormat = "yaml",
        boundary_mode: bool = False,
    ) -> ContractTestResult:
        """Run contract tests, or resiliency tests when ``boundary_mode`` is set."""
        mode: TestMode = "resiliency" if boundary_mode else "contract"
        try:
            request = TestRunRequest(
                spec_content=spec_content,
                base_url=base_url,
                spec_format=spec_format,
                boundary_mode=boundary_mode,
            )
            result = await self.test_runner.run(request)
        except ValidationError as exc:
            return _failed_test(mode, _invalid_input(exc))
        except EngineTimeoutError as exc:
            log.error("%s test run timed out: %s", mode.capitalize(), exc)
            return self._timed_out_test(mode, exc)
        except EngineError as exc:
            log.error("%s test run failed: %s", mode.capitalize(), exc)
            return _failed_test(mode, exc)
        except Exception as exc:
            log.error("%s test run crashed: %s", mode.capitalize(), exc, exc_info=exc)
            return ContractTestResult(mode=mode, status="error", summary=str(exc))

        log.info("%s test run finished: %s", mode.capitalize(), result.summary)
        return result

    async def run_contract_test(
        self, spec_content: str, base_url: str, *, spec_format: SpecFormat = "yaml"
    ) -> ContractTestResult:
        return await self.run_test(spec_content, base_url, spec_format=spec_format)

    async def run_resiliency_test(
        self, spec_content: str, base_url: str, *, spec_format: SpecFormat = "yaml"
    ) -> ContractTestResult:
        return await self.run_test(
            spec_content, base_url, spec_format=spec_format, boundary_mode=True
        )

    async def manage_mock(
        self,
        command: str,
        *,
        spec_content: str | None = None,
        spec_format: SpecFormat = "yaml",
        port: int = DEFAULT_MOCK_PORT,
    ) -> MockServerResult:
        """Start, stop or list mock servers."""
        try:
            request = MockServerRequest(
                command=command,
                spec_content=spec_content,
                spec_format=spec_format,
                port=port,
            )
        except ValidationError as exc:
            error = _invalid_input(exc)
            return MockServerResult(
                command=command,
                success=False,
                message=str(error),
                port=port,
                error_kind=error.kind,
            )

        try:
            match request.command:
                case "start":
                    return await self._start_mock(request)
                case "stop":
                    return await self._stop_mock(request.port)
                case "list":
                    return await self._list_mocks()
        except Exception as exc:
            log.error("Mock %s crashed: %s", request.command, exc, exc_info=exc)
            return MockServerResult(
                command=request.command,
                success=False,
                message=f"Failed to {request.command} mock server",
                port=request.port,
                errors=str(exc),
            )

    async def check_compatibility(
        self,
        *,
        target_path: str | None = None,
        base_branch: str | None = None,
        repo_dir: Path | str | None = None,
    ) -> CompatibilityReport:
        """Check specifications for backward-incompatible changes."""
        try:
            request = CompatibilityRequest(
                target_path=target_path, base_branch=base_branch, repo_dir=repo_dir
            )
            report = await self.compatibility_checker.check(request)
        except ValidationError as exc:
            return _failed_compatibility(target_path, _invalid_input(exc))
        except EngineTimeoutError as exc:
            log.error("Compatibility check timed out: %s", exc)
            return CompatibilityReport(
                target_path=target_path,
                compatible=False,
                status="timeout",
                output=exc.stdout,
                errors="\n".join(filter(None, (str(exc), exc.stderr))),
                error_kind=exc.kind,
            )
        except EngineError as exc:
            log.error("Compatibility check failed: %s", exc)
            return _failed_compatibility(target_path, exc)
        except Exception as exc:
            log.error("Compatibility check crashed: %s", exc, exc_info=exc)
            return CompatibilityReport(
                target_path=target_path,
                compatible=False,
                status="error",
                errors=str(exc),
            )

        log.info(
            "Compatibility check finished: compatible=%s, %d breaking change(s)",
            report.compatible,
            report.breaking_changes,
        )
        return report

    def _timed_out_test(
        self, mode: TestMode, exc: EngineTimeoutError
    ) -> ContractTestResult:
        report_path = None
        if exc.report_dir is not None and exc.report_files:
            report_path = exc.report_dir / exc.report_files[0]
        config = self.test_runner.config
        return ContractTestResult(
            mode=mode,
            status="timeout",
            summary=str(exc),
            output=exc.stdout,
            errors=exc.stderr,
            report_path=report_path,
            host_report_path=config.host_path(report_path) if report_path else None,
            report_files=exc.report_files,
            error_kind=exc.kind,
        )

    async def _start_mock(self, request: MockServerRequest) -> MockServerResult:
        try:
            if request.spec_content is None:
                raise InvalidInputError(
                    "Invalid input: spec_content is required for the 'start' command"
                )
            server = await self.mock_registry.start(
                request.port, request.spec_content, request.spec_format
            )
        except (MockStartError, SpawnError) as exc:
            log.error("Failed to start mock server on port %d: %s", request.port, exc)
            return MockServerResult(
                command="start",
                success=False,
                message="Failed to start mock server",
                port=request.port,
                errors=exc.stderr if isinstance(exc, MockStartError) else str(exc),
                error_kind=exc.kind,
            )
        except EngineError as exc:
            return MockServerResult(
                command="start",
                success=False,
                message=str(exc),
                port=request.port,
                error_kind=exc.kind,
            )

        return MockServerResult(
            command="start",
            success=True,
            message=f"Mock server started successfully on port {server.port}",
            port=server.port,
            url=server.url,
            pid=server.pid,
        )

    async def _stop_mock(self, port: int) -> MockServerResult:
        try:
            server = await self.mock_registry.stop(port)
        except EngineError as exc:
            return MockServerResult(
                command="stop",
                success=False,
                message=str(exc),
                port=port,
                error_kind=exc.kind,
            )

        return MockServerResult(
            command="stop",
            success=True,
            message=f"Mock server on port {port} stopped successfully",
            port=port,
            url=server.url,
            pid=server.pid,
        )

    async def _list_mocks(self) -> MockServerResult:
        servers = await self.mock_registry.list_servers()
        plural = "" if len(servers) == 1 else "s"
        return MockServerResult(
            command="list",
            success=True,
            message=f"Found {len(servers)} running mock server{plural}",
            servers=servers,
        )


def _invalid_input(exc: ValidationError) -> InvalidInputError:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        problems.append(f"{location}: {error['msg']}" if location else error["msg"])
    return InvalidInputError("Invalid input: " + "; ".join(problems))


def _failed_test(mode: TestMode, exc: EngineError) -> ContractTestResult:
    return ContractTestResult(
        mode=mode,
        status="error",
        summary=str(exc),
        errors=str(exc),
        error_kind=exc.kind,
    )


def _failed_compatibility(
    target_path: str | None, exc: EngineError
) -> CompatibilityReport:
    return CompatibilityReport(
        target_path=target_path,
        compatible=False,
        status="error",
        errors=str(exc),
        error_kind=exc.kind,
    )
