"""Canonical test-suite model shared by the report and console parsers."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

type CaseStatus = Literal["passed", "failed", "skipped"]


@dataclass(frozen=True, kw_only=True)
class TestCase:
    """Outcome of a single test case."""

    __test__ = False

    name: str
    classname: str
    status: CaseStatus
    time: float | None = None
    message: str | None = None
    failure_type: str | None = None

    @property
    def scenario(self) -> str:
        """Fully qualified case name as shown to callers."""
        if not self.classname:
            return self.name
        return f"{self.classname}.{self.name}"


@dataclass(frozen=True, kw_only=True)
class TestSuiteReport:
    """A suite of test cases with the totals the engine declared for it.

    Totals are not recomputed from ``cases``: a truncated report may list
    fewer cases than it counts.
    """

    __test__ = False

    name: str
    tests: int
    failures: int
    errors: int
    skipped: int = 0
    time: float | None = None
    cases: Sequence[TestCase] = field(default_factory=tuple)

    @property
    def failed(self) -> int:
        """Cases counted as failed, including errored ones."""
        return self.failures + self.errors

    @property
    def passed(self) -> int:
        """Cases that neither failed nor were skipped."""
        return self.tests - self.failed - self.skipped

    @property
    def failed_cases(self) -> Sequence[TestCase]:
        """Listed cases whose status is failed."""
        return [case for case in self.cases if case.status == "failed"]
