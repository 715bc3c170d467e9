"""Models for engine execution outcomes and the results returned to callers."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from specmatic_orchestrator.errors import ErrorKind
from specmatic_orchestrator.models.report import TestSuiteReport

type RunStatus = Literal["success", "failure", "timeout", "error"]
type TestMode = Literal["contract", "resiliency"]
type Severity = Literal["breaking", "warning", "info"]


@dataclass(frozen=True, kw_only=True)
class ExecutionOutcome:
    """Raw result of an engine process that ran to completion.

    ``report_files`` holds only names that appeared in ``report_dir`` while
    the process ran, newest first.
    """

    stdout: str
    stderr: str
    exit_code: int
    pid: int
    report_dir: Path | None = None
    report_files: Sequence[str] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True, kw_only=True)
class ContractTestResult:
    """Normalized result of a contract or resiliency test run."""

    __test__ = False

    mode: TestMode
    status: RunStatus
    summary: str
    exit_code: int | None = None
    output: str = ""
    errors: str = ""
    suite: TestSuiteReport | None = None
    report_path: Path | None = None
    host_report_path: Path | None = None
    report_files: Sequence[str] = field(default_factory=tuple)
    error_kind: ErrorKind | None = None

    @property
    def success(self) -> bool:
        return self.status == "success"


@dataclass(frozen=True, kw_only=True)
class ChangeEntry:
    """A single change reported by the compatibility check."""

    type: str
    description: str
    severity: Severity


@dataclass(frozen=True, kw_only=True)
class CompatibilityReport:
    """Result of comparing a specification against its committed version."""

    target_path: str | None
    compatible: bool
    status: RunStatus
    exit_code: int | None = None
    output: str = ""
    errors: str = ""
    changes: Sequence[ChangeEntry] = field(default_factory=tuple)
    total_checks: int = 0
    error_kind: ErrorKind | None = None

    @property
    def breaking_changes(self) -> int:
        return sum(1 for change in self.changes if change.severity == "breaking")

    @property
    def warnings(self) -> int:
        return sum(1 for change in self.changes if change.severity == "warning")

    @property
    def infos(self) -> int:
        return sum(1 for change in self.changes if change.severity == "info")


@dataclass(frozen=True, kw_only=True)
class MockServerInfo:
    """Snapshot of a registered mock server."""

    port: int
    url: str
    pid: int


@dataclass(frozen=True, kw_only=True)
class MockServerResult:
    """Outcome of a mock server management command."""

    command: str
    success: bool
    message: str
    port: int | None = None
    url: str | None = None
    pid: int | None = None
    errors: str | None = None
    error_kind: ErrorKind | None = None
    servers: Sequence[MockServerInfo] = field(default_factory=tuple)
