"""Backward compatibility checks of specifications against git history."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from specmatic_orchestrator.errors import CompatibilityUnavailableError
from specmatic_orchestrator.executor import EngineExecutor
from specmatic_orchestrator.models.request import CompatibilityRequest
from specmatic_orchestrator.models.result import (
    ChangeEntry,
    CompatibilityReport,
    ExecutionOutcome,
    Severity,
)

log = logging.getLogger(__name__)

SEVERITY_MARKERS: Sequence[tuple[Severity, str, Sequence[str]]] = (
    ("breaking", "breaking_change", ("BREAKING", "breaking change")),
    ("warning", "warning", ("WARNING", "warning")),
    ("info", "info", ("INFO", "info")),
)
CHECK_MARKERS = ("check", "compare", "validate")


@dataclass(frozen=True, kw_only=True)
class CompatibilityChecker:
    """Runs the engine's backward-compatibility-check subcommand."""

    executor: EngineExecutor

    @property
    def available(self) -> bool:
        return self.executor.config.compatibility_check_enabled

    async def check(self, request: CompatibilityRequest) -> CompatibilityReport:
        """Compare the current spec state with the committed one.

        Raises:
            CompatibilityUnavailableError: If the deployment has no git
                working tree to compare against
            SpawnError: If the engine could not be launched
            EngineTimeoutError: If the check exceeded the configured timeout

        """
        if not self.available:
            raise CompatibilityUnavailableError(
                "Backward compatibility checks need a git working tree and are "
                "disabled in this deployment"
            )

        args = ["backward-compatibility-check"]
        if request.target_path:
            args += ["--target-path", request.target_path]
        if request.base_branch:
            args += ["--base-branch", request.base_branch]
        if request.repo_dir:
            args += ["--repo-dir", str(request.repo_dir)]

        log.info(
            "Checking backward compatibility (target=%s, base_branch=%s)",
            request.target_path or "all specs",
            request.base_branch or "HEAD",
        )
        outcome = await self.executor.run(args, cwd=request.repo_dir)
        return build_compatibility_report(outcome, request.target_path)


def build_compatibility_report(
    outcome: ExecutionOutcome, target_path: str | None
) -> CompatibilityReport:
    """Classify engine output into a compatibility report.

    Compatibility is decided by the exit code alone; the change list is a
    best-effort reading of the console output.
    """
    changes, total_checks = classify_output(outcome.stdout)
    return CompatibilityReport(
        target_path=target_path,
        compatible=outcome.success,
        status="success" if outcome.success else "failure",
        exit_code=outcome.exit_code,
        output=outcome.stdout,
        errors=outcome.stderr,
        changes=changes,
        total_checks=total_checks,
    )


def classify_output(output: str) -> tuple[Sequence[ChangeEntry], int]:
    """Extract change entries and the number of checks from console output.

    Each line yields at most one entry, using the most severe marker it
    contains. The check count is never lower than the number of entries.
    """
    changes: list[ChangeEntry] = []
    total_checks = 0

    for line in output.splitlines():
        text = line.strip()
        if not text:
            continue

        for severity, change_type, markers in SEVERITY_MARKERS:
            if any(marker in text for marker in markers):
                changes.append(
                    ChangeEntry(type=change_type, description=text, severity=severity)
                )
                break

        if any(marker in text for marker in CHECK_MARKERS):
            total_checks += 1

    return changes, max(total_checks, len(changes))
