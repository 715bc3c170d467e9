"""CLI entry point for running Specmatic operations."""

import argparse
import asyncio
import json
import logging
import signal
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from specmatic_orchestrator.config import EngineConfig
from specmatic_orchestrator.formatters import (
    format_compatibility_report,
    format_mock_result,
    format_test_result,
)
from specmatic_orchestrator.models.request import DEFAULT_MOCK_PORT, SpecFormat
from specmatic_orchestrator.models.result import (
    CompatibilityReport,
    ContractTestResult,
    MockServerResult,
)
from specmatic_orchestrator.orchestrator import SpecmaticOrchestrator

STATUS_SYMBOLS = {
    "success": "✅",
    "failure": "❌",
    "error": "❗",
    "timeout": "⏱️",
}


def log_test_summary(log: logging.Logger, result: ContractTestResult) -> None:
    """Log a formatted summary of a test run, listing failed cases."""
    log.info("=" * 80)
    log.info("%s Test Results:", result.mode.capitalize())
    log.info("=" * 80)
    symbol = STATUS_SYMBOLS.get(result.status, "?")
    log.info("%s %s: %s", symbol, result.status, result.summary)

    if result.suite is not None:
        for case in result.suite.failed_cases:
            log.info("  %s %s", STATUS_SYMBOLS["failure"], case.scenario)
            if case.message and case.message != case.scenario:
                log.info("    Message: %s", case.message)
    if result.host_report_path:
        log.info("  Report: %s", result.host_report_path)


def format_test_output(result: ContractTestResult) -> dict[str, Any]:
    """Format a test result for JSON output."""
    suite = result.suite
    return {
        "mode": result.mode,
        "status": result.status,
        "success": result.success,
        "exit_code": result.exit_code,
        "summary": result.summary,
        "total": suite.tests if suite else 0,
        "passed": suite.passed if suite else 0,
        "failed": suite.failed if suite else 0,
        "skipped": suite.skipped if suite else 0,
        "report_path": str(result.host_report_path or result.report_path or "")
        or None,
        "error_kind": result.error_kind,
        "results": [
            {
                "scenario": case.scenario,
                "status": case.status,
                "message": case.message,
            }
            for case in (suite.cases if suite else ())
        ],
    }


def format_mock_output(result: MockServerResult) -> dict[str, Any]:
    """Format a mock server result for JSON output."""
    return asdict(result)


def format_compatibility_output(report: CompatibilityReport) -> dict[str, Any]:
    """Format a compatibility report for JSON output."""
    return {
        "target_path": report.target_path,
        "compatible": report.compatible,
        "status": report.status,
        "exit_code": report.exit_code,
        "total_checks": report.total_checks,
        "breaking_changes": report.breaking_changes,
        "warnings": report.warnings,
        "error_kind": report.error_kind,
        "errors": report.errors or None,
        "changes": [asdict(change) for change in report.changes],
    }


def spec_format_for(path: Path) -> SpecFormat:
    """Guess the spec format from the file extension."""
    return "json" if path.suffix.lower() == ".json" else "yaml"


def readable_spec(value: str) -> Path:
    """Argument type accepting a readable UTF-8 spec file."""
    path = Path(value)
    try:
        path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise argparse.ArgumentTypeError(
            f"cannot read spec file '{value}': {exc}"
        ) from exc
    return path


def emit(payload: dict[str, Any] | str) -> None:
    """Write a result to stdout as JSON or pre-rendered text."""
    if isinstance(payload, str):
        print(payload)
    else:
        print(json.dumps(payload, indent=2, default=str))


async def run_tests(
    orchestrator: SpecmaticOrchestrator,
    spec_path: Path,
    base_url: str,
    *,
    boundary_mode: bool,
    markdown: bool = False,
) -> int:
    """Run contract or resiliency tests and return exit code."""
    log = logging.getLogger("specmatic_orchestrator")

    result = await orchestrator.run_test(
        spec_path.read_text(encoding="utf-8"),
        base_url,
        spec_format=spec_format_for(spec_path),
        boundary_mode=boundary_mode,
    )
    log_test_summary(log, result)
    emit(format_test_result(result) if markdown else format_test_output(result))
    return 0 if result.success else 1


async def serve_mock(
    orchestrator: SpecmaticOrchestrator,
    spec_path: Path,
    port: int,
    *,
    markdown: bool = False,
) -> int:
    """Start a mock server and keep it running until interrupted."""
    log = logging.getLogger("specmatic_orchestrator")

    result = await orchestrator.manage_mock(
        "start",
        spec_content=spec_path.read_text(encoding="utf-8"),
        spec_format=spec_format_for(spec_path),
        port=port,
    )
    emit(format_mock_result(result) if markdown else format_mock_output(result))
    if not result.success:
        return 1

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_requested.set)

    log.info("Mock server running at %s, press Ctrl+C to stop", result.url)
    await stop_requested.wait()

    result = await orchestrator.manage_mock("stop", port=port)
    log.info("%s", result.message)
    return 0 if result.success else 1


async def check_compatibility(
    orchestrator: SpecmaticOrchestrator,
    target_path: str | None,
    base_branch: str | None,
    repo_dir: Path | None,
    *,
    markdown: bool = False,
) -> int:
    """Run a backward compatibility check and return exit code."""
    log = logging.getLogger("specmatic_orchestrator")

    report = await orchestrator.check_compatibility(
        target_path=target_path, base_branch=base_branch, repo_dir=repo_dir
    )
    log.info(
        "%s compatible=%s breaking=%d warnings=%d",
        STATUS_SYMBOLS.get(report.status, "?"),
        report.compatible,
        report.breaking_changes,
        report.warnings,
    )
    emit(
        format_compatibility_report(report)
        if markdown
        else format_compatibility_output(report)
    )
    return 0 if report.compatible else 1


async def run(args: argparse.Namespace, config: EngineConfig) -> int:
    """Dispatch the parsed command and return exit code."""
    async with SpecmaticOrchestrator.from_config(config) as orchestrator:
        match args.command:
            case "test" | "resiliency":
                return await run_tests(
                    orchestrator,
                    args.spec,
                    args.base_url,
                    boundary_mode=args.command == "resiliency",
                    markdown=args.markdown,
                )
            case "mock":
                return await serve_mock(
                    orchestrator, args.spec, args.port, markdown=args.markdown
                )
            case "compat":
                return await check_compatibility(
                    orchestrator,
                    args.target_path,
                    args.base_branch,
                    args.repo_dir,
                    markdown=args.markdown,
                )
    raise ValueError(f"Unknown command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Run Specmatic contract tests, mocks and compatibility checks"
    )
    parser.add_argument(
        "--config",
        default="{}",
        help="JSON configuration for the engine (command, reports_dir, timeouts)",
    )
    parser.add_argument(
        "--markdown",
        action="store_true",
        help="Print a Markdown report instead of JSON",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    for name, description in (
        ("test", "Run contract tests against an API"),
        ("resiliency", "Run contract tests with boundary-condition requests"),
    ):
        command = commands.add_parser(name, help=description)
        command.add_argument(
            "--spec", type=readable_spec, required=True, help="OpenAPI spec file"
        )
        command.add_argument(
            "--base-url", required=True, help="Base URL of the API under test"
        )

    mock = commands.add_parser("mock", help="Serve a mock API until interrupted")
    mock.add_argument(
        "--spec", type=readable_spec, required=True, help="OpenAPI spec file"
    )
    mock.add_argument(
        "--port", type=int, default=DEFAULT_MOCK_PORT, help="Port to listen on"
    )

    compat = commands.add_parser(
        "compat", help="Check specs for backward-incompatible changes"
    )
    compat.add_argument("--target-path", help="Spec file or folder to analyze")
    compat.add_argument("--base-branch", help="Git branch to compare against")
    compat.add_argument("--repo-dir", type=Path, help="Repository directory")

    return parser


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        config = EngineConfig(**json.loads(args.config))
    except (json.JSONDecodeError, TypeError, ValidationError) as exc:
        parser.error(f"invalid --config: {exc}")

    exit_code = asyncio.run(run(args, config))
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
