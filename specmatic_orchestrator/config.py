"""Deployment configuration for the engine orchestrator."""

from collections.abc import Mapping, Sequence
from pathlib import Path

from pydantic import BaseModel, Field, PositiveFloat


class EngineConfig(BaseModel):
    """Configuration describing how to invoke the engine and where it writes.

    Everything that depends on the deployment context (container or local
    checkout) is injected here rather than detected at runtime.
    """

    engine_command: Sequence[str] = Field(
        default=("npx", "specmatic@latest"),
        min_length=1,
        description="Command prefix used to launch the engine",
    )
    reports_dir: Path = Field(
        default=Path("build/reports/specmatic"),
        description="Directory the engine writes JUnit reports into",
    )
    # Where reports_dir is visible from the caller's side, e.g. a volume mount
    host_reports_dir: Path | None = None
    per_run_report_dirs: bool = Field(
        default=True,
        description="Give every test run its own report subdirectory",
    )
    test_timeout: PositiveFloat = Field(
        default=300.0, description="Ceiling for test and compatibility runs (s)"
    )
    kill_grace: PositiveFloat = Field(
        default=5.0, description="Wait after SIGTERM before SIGKILL (s)"
    )
    mock_startup_grace: PositiveFloat = Field(
        default=3.0, description="Window a mock server must survive to count as up"
    )
    mock_host: str = "localhost"
    boundary_testing_env: str = "SPECMATIC_GENERATIVE_TESTS"
    compatibility_check_enabled: bool = Field(
        default=True,
        description="Whether a version-controlled working tree is reachable",
    )
    extra_env: Mapping[str, str] = Field(default_factory=dict)

    def host_path(self, report_path: Path) -> Path:
        """Map a report path under reports_dir to the caller-visible location."""
        if self.host_reports_dir is None:
            return report_path
        try:
            relative = report_path.relative_to(self.reports_dir)
        except ValueError:
            return report_path
        return self.host_reports_dir / relative
