"""Discovery of report files written by an engine run."""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path

log = logging.getLogger(__name__)

REPORT_SUFFIX = ".xml"


def list_report_files(directory: Path, suffix: str = REPORT_SUFFIX) -> frozenset[str]:
    """Return names of report files in directory.

    A missing or unreadable directory has no reports.
    """
    try:
        return frozenset(
            entry.name
            for entry in directory.iterdir()
            if entry.name.endswith(suffix) and entry.is_file()
        )
    except OSError:
        return frozenset()


def find_new_reports(
    directory: Path, before: frozenset[str], suffix: str = REPORT_SUFFIX
) -> Sequence[str]:
    """Return report files that appeared since the ``before`` snapshot.

    Args:
        directory: Directory the engine writes reports into
        before: Snapshot taken with list_report_files before the run
        suffix: Report file extension

    Returns:
        New file names, most recently modified first

    """
    new_files = list_report_files(directory, suffix) - before
    return sorted(
        new_files,
        key=lambda name: (_mtime(directory / name), name),
        reverse=True,
    )


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0


@dataclass(frozen=True, kw_only=True)
class ReportWorkspace:
    """Hands out report directories to engine runs.

    With ``per_run`` each run writes into a fresh ``run-<id>`` subdirectory,
    so diffing before/after snapshots only ever sees that run's files. Without
    it, runs share ``reports_dir`` and are serialized for the whole
    spawn-and-discover window.
    """

    reports_dir: Path
    per_run: bool = True
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @asynccontextmanager
    async def reserve(self) -> AsyncIterator[Path]:
        """Yield the directory a single run should write its reports to."""
        if not self.per_run:
            self.reports_dir.mkdir(parents=True, exist_ok=True)
            async with self._lock:
                yield self.reports_dir
            return

        run_dir = self.reports_dir / f"run-{uuid.uuid4().hex}"
        run_dir.mkdir(parents=True)
        try:
            yield run_dir
        finally:
            # Keep directories that hold reports; drop the empty ones.
            try:
                run_dir.rmdir()
            except OSError:
                pass
            else:
                log.debug("Removed empty report directory %s", run_dir)
