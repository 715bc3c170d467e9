"""Error kinds raised by the engine orchestration components."""

from collections.abc import Sequence
from pathlib import Path
from typing import ClassVar, Literal

type ErrorKind = Literal[
    "spawn_failed",
    "timeout",
    "port_conflict",
    "not_running",
    "invalid_input",
    "start_failed",
    "unavailable",
]


class EngineError(Exception):
    """Base class for errors surfaced to callers as explicit error results."""

    kind: ClassVar[ErrorKind]


class SpawnError(EngineError):
    """Raised when the engine binary cannot be launched at all."""

    kind = "spawn_failed"


class EngineTimeoutError(EngineError):
    """Raised when an engine run exceeds its allotted duration.

    The process has been terminated and reaped by the time this is raised.
    Output and report files written before the deadline are kept for
    diagnostics.
    """

    kind = "timeout"

    def __init__(
        self,
        message: str,
        *,
        pid: int,
        stdout: str = "",
        stderr: str = "",
        report_dir: Path | None = None,
        report_files: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.pid = pid
        self.stdout = stdout
        self.stderr = stderr
        self.report_dir = report_dir
        self.report_files = report_files


class PortConflictError(EngineError):
    """Raised when a mock server is started on a port that is already taken."""

    kind = "port_conflict"


class NotRunningError(EngineError):
    """Raised when no mock server is registered for the requested port."""

    kind = "not_running"


class InvalidInputError(EngineError):
    """Raised when caller arguments are rejected before anything is spawned."""

    kind = "invalid_input"


class MockStartError(EngineError):
    """Raised when a mock server process exits during its startup window."""

    kind = "start_failed"

    def __init__(
        self, message: str, *, stderr: str = "", exit_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.stderr = stderr
        self.exit_code = exit_code


class CompatibilityUnavailableError(EngineError):
    """Raised when backward compatibility checks are disabled for this deployment."""

    kind = "unavailable"


class ReportParseError(Exception):
    """Raised when a report file is malformed or has an unexpected structure.

    Never surfaced to callers; parsing falls back to console output instead.
    """
