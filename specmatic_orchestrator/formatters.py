"""Markdown rendering of orchestrator results for agents and terminals."""

from collections.abc import Sequence

from specmatic_orchestrator.models.result import (
    ChangeEntry,
    CompatibilityReport,
    ContractTestResult,
    MockServerResult,
)

MAX_CONSOLE_OUTPUT = 2000

SEVERITY_SECTIONS = (
    ("breaking", "🚨 Breaking Changes", "❌"),
    ("warning", "⚠️ Warnings", "⚠️"),
    ("info", "ℹ️ Information", "ℹ️"),
)


def format_test_result(result: ContractTestResult) -> str:
    """Render a contract or resiliency test result."""
    title = "Resiliency" if result.mode == "resiliency" else "Contract"
    lines = [f"# Specmatic {title} Test Results", ""]

    if result.mode == "resiliency":
        lines += [
            "**Boundary Condition Testing Enabled** - tests include "
            "contract-invalid requests to verify error handling",
            "",
        ]

    status = {
        "success": "## ✅ Test Status: PASSED",
        "failure": "## ❌ Test Status: FAILED",
        "timeout": "## ⏱️ Test Status: TIMED OUT",
        "error": "## ❗ Test Status: ERROR",
    }[result.status]
    lines += [status, "", result.summary, ""]

    if (suite := result.suite) is not None:
        lines += [
            "## Summary",
            f"- Total Tests: {suite.tests}",
            f"- Passed: {suite.passed}",
            f"- Failed: {suite.failed}",
            f"- Skipped: {suite.skipped}",
            "",
        ]
        if result.host_report_path is not None:
            report = result.host_report_path
            lines += [f"📄 **Detailed JUnit Report:** `{report}`", ""]

        if failed := suite.failed_cases:
            lines += ["## ❌ Failed Tests", ""]
            for case in failed:
                lines.append(f"❌ {case.scenario}")
                if case.message and case.message != case.scenario:
                    lines.append(f"   {case.message}")
            lines.append("")
        elif suite.tests > 0 and suite.failed == 0:
            lines += ["## ✅ All Tests Passed", ""]

    if result.output and result.host_report_path is None:
        lines += _console_section(result.output)

    if result.errors:
        lines += ["## Errors", "```", result.errors.rstrip(), "```", ""]

    return "\n".join(lines)


def format_mock_result(result: MockServerResult) -> str:
    """Render the outcome of a mock server command."""
    lines = ["# Specmatic Mock Server Management", ""]

    if not result.success:
        lines += [
            f"## ❌ Failed to {result.command} mock server",
            "",
            f"**Error:** {result.message}",
        ]
        if result.errors:
            lines += ["", "## Error Details", "```", result.errors.rstrip(), "```"]
        return "\n".join(lines) + "\n"

    if result.command == "start":
        lines += [
            "## ✅ Mock Server Started Successfully",
            "",
            f"**Server URL:** {result.url}",
            f"**Port:** {result.port}",
            f"**Process ID:** {result.pid}",
            "",
            "Use the 'stop' command to terminate this server when done.",
        ]
    elif result.command == "stop":
        lines += [
            "## ✅ Mock Server Stopped Successfully",
            "",
            f"**Port:** {result.port}",
            f"**Status:** {result.message}",
        ]
    else:
        lines += [
            "## 📋 Running Mock Servers",
            "",
            f"**Status:** {result.message}",
            "",
        ]
        if result.servers:
            lines += ["| Port | URL | Process ID |", "|------|-----|------------|"]
            lines += [
                f"| {server.port} | {server.url} | {server.pid} |"
                for server in result.servers
            ]
        else:
            lines.append("No mock servers are currently running.")

    return "\n".join(lines) + "\n"


def format_compatibility_report(report: CompatibilityReport) -> str:
    """Render a backward compatibility report."""
    lines = ["# Specmatic Backward Compatibility Check", ""]
    if report.target_path:
        lines += [f"**File:** `{report.target_path}`", ""]

    if report.compatible:
        lines += ["## ✅ Compatibility Status: BACKWARD COMPATIBLE", ""]
    elif report.status == "failure":
        lines += ["## ⚠️ Compatibility Status: BREAKING CHANGES DETECTED", ""]
    else:
        lines += ["## ❌ Compatibility Check: FAILED", ""]

    if report.status in {"success", "failure"}:
        lines += [
            "## Summary",
            f"- Total Checks: {report.total_checks}",
            f"- Breaking Changes: {report.breaking_changes}",
            f"- Warnings: {report.warnings}",
            f"- Backward Compatible: {'Yes' if report.compatible else 'No'}",
            "",
        ]
        lines += _change_sections(report.changes)

    if report.output:
        lines += ["## Detailed Analysis", "```", report.output.rstrip(), "```", ""]
    if report.errors:
        lines += ["## Errors", "```", report.errors.rstrip(), "```", ""]

    return "\n".join(lines)


def _change_sections(changes: Sequence[ChangeEntry]) -> list[str]:
    lines: list[str] = []
    for severity, heading, symbol in SEVERITY_SECTIONS:
        entries = [change for change in changes if change.severity == severity]
        if not entries:
            continue
        lines += [f"## {heading}", ""]
        lines += [
            f"{symbol} **{change.type}**: {change.description}" for change in entries
        ]
        lines.append("")
    return lines


def _console_section(output: str) -> list[str]:
    if len(output) <= MAX_CONSOLE_OUTPUT:
        return ["## Console Output", "```", output.rstrip(), "```", ""]
    truncated = len(output) - MAX_CONSOLE_OUTPUT
    return [
        "## Output Summary (Truncated)",
        "```",
        output[:MAX_CONSOLE_OUTPUT],
        f"... [Truncated {truncated} characters]",
        "```",
        "",
    ]
