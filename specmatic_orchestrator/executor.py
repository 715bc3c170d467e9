"""Execution of engine subprocesses under a hard timeout."""

import asyncio
import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from specmatic_orchestrator.config import EngineConfig
from specmatic_orchestrator.discovery import find_new_reports, list_report_files
from specmatic_orchestrator.errors import EngineTimeoutError
from specmatic_orchestrator.models.result import ExecutionOutcome
from specmatic_orchestrator.process import (
    AsyncioProcessHandle,
    spawn_process,
    terminate_process,
)

log = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024


@dataclass(frozen=True, kw_only=True)
class EngineExecutor:
    """Runs the engine with a given argument and environment profile."""

    config: EngineConfig

    def command(self, args: Sequence[str]) -> list[str]:
        """Full command line for an engine invocation."""
        return [*self.config.engine_command, *args]

    def environment(self, overrides: Mapping[str, str] | None = None) -> dict[str, str]:
        """Inherited environment overlaid with configured and per-run values."""
        return {**os.environ, **self.config.extra_env, **(overrides or {})}

    async def run(
        self,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        timeout: float | None = None,
        report_dir: Path | None = None,
    ) -> ExecutionOutcome:
        """Run the engine to completion and collect its output.

        Args:
            args: Engine arguments (subcommand first)
            env: Extra environment variables for this run
            cwd: Working directory (default: inherited)
            timeout: Ceiling in seconds (default: config.test_timeout)
            report_dir: Directory to watch for new report files

        Returns:
            Captured output, exit code and the report files the run created

        Raises:
            SpawnError: If the engine could not be launched
            EngineTimeoutError: If the engine ran past the timeout; the
                process has been terminated when this is raised

        """
        timeout = timeout if timeout is not None else self.config.test_timeout
        before = list_report_files(report_dir) if report_dir is not None else None

        handle = await spawn_process(
            self.command(args), env=self.environment(env), cwd=cwd
        )
        stdout = bytearray()
        stderr = bytearray()

        try:
            try:
                async with asyncio.timeout(timeout):
                    await asyncio.gather(
                        _drain(handle.stdout, stdout), _drain(handle.stderr, stderr)
                    )
                    exit_code = await handle.wait()
            except TimeoutError:
                log.warning(
                    "Engine run %d exceeded %.0fs, terminating", handle.pid, timeout
                )
                await terminate_process(handle, grace=self.config.kill_grace)
                raise EngineTimeoutError(
                    f"Engine run timed out after {timeout:g} seconds",
                    pid=handle.pid,
                    stdout=_decode(stdout),
                    stderr=_decode(stderr),
                    report_dir=report_dir,
                    report_files=_new_reports(report_dir, before),
                ) from None
        finally:
            if handle.is_alive():
                await _cleanup(handle, self.config.kill_grace)

        report_files = _new_reports(report_dir, before)

        log.info(
            "Engine run %d exited with code %d (%d new report file(s))",
            handle.pid,
            exit_code,
            len(report_files),
        )
        return ExecutionOutcome(
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            exit_code=exit_code,
            pid=handle.pid,
            report_dir=report_dir,
            report_files=report_files,
        )

    async def spawn_server(self, args: Sequence[str]) -> AsyncioProcessHandle:
        """Start a long-running engine process.

        Stdout is discarded; stderr stays piped so startup failures can be
        reported.
        """
        return await spawn_process(
            self.command(args),
            env=self.environment(),
            stdout=asyncio.subprocess.DEVNULL,
        )


def _new_reports(
    report_dir: Path | None, before: frozenset[str] | None
) -> Sequence[str]:
    if report_dir is None or before is None:
        return ()
    return find_new_reports(report_dir, before)


async def _drain(stream: asyncio.StreamReader | None, sink: bytearray) -> None:
    if stream is None:
        return
    while chunk := await stream.read(READ_CHUNK):
        sink.extend(chunk)


async def _cleanup(handle: AsyncioProcessHandle, grace: float) -> None:
    """Reap a process left behind by cancellation."""
    log.warning("Stopping engine run %d after interruption", handle.pid)
    await asyncio.shield(terminate_process(handle, grace=grace))


def _decode(data: bytes | bytearray) -> str:
    return bytes(data).decode("utf-8", errors="replace")
