"""Process handles for engine subprocesses."""

import asyncio
import logging
import os
import signal
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol

from specmatic_orchestrator.errors import SpawnError

log = logging.getLogger(__name__)

type SignalKind = Literal["terminate", "kill"]

SIGNALS: Mapping[SignalKind, signal.Signals] = {
    "terminate": signal.SIGTERM,
    "kill": getattr(signal, "SIGKILL", signal.SIGTERM),
}


class ProcessHandle(Protocol):
    """Portable view of a running child process."""

    @property
    def pid(self) -> int: ...

    def is_alive(self) -> bool: ...

    def signal(self, kind: SignalKind) -> None: ...

    async def wait(self) -> int: ...


@dataclass(frozen=True)
class AsyncioProcessHandle:
    """ProcessHandle backed by an asyncio subprocess.

    When ``process_group`` is set the child leads its own session and signals
    go to the whole group, so helpers the engine forks (``npx`` starts a JVM)
    are stopped with it.
    """

    process: asyncio.subprocess.Process
    process_group: bool = False

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdout(self) -> asyncio.StreamReader | None:
        return self.process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader | None:
        return self.process.stderr

    def is_alive(self) -> bool:
        return self.process.returncode is None

    def signal(self, kind: SignalKind) -> None:
        """Send SIGTERM or SIGKILL.

        Raises:
            ProcessLookupError: If the process has already gone away

        """
        if self.process_group:
            os.killpg(self.pid, SIGNALS[kind])
        elif kind == "kill":
            self.process.kill()
        else:
            self.process.terminate()

    async def wait(self) -> int:
        return await self.process.wait()


async def spawn_process(
    command: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
    stdout: int = asyncio.subprocess.PIPE,
    stderr: int = asyncio.subprocess.PIPE,
) -> AsyncioProcessHandle:
    """Launch a subprocess without a shell, in its own process group.

    Raises:
        SpawnError: If the executable is missing, not executable, or the
            working directory is unusable

    """
    process_group = hasattr(os, "killpg")
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=stdout,
            stderr=stderr,
            env=dict(env) if env is not None else None,
            cwd=cwd,
            start_new_session=process_group,
        )
    except OSError as exc:
        raise SpawnError(f"Failed to launch engine {command[0]!r}: {exc}") from exc

    log.info("Spawned %s (pid=%d)", " ".join(command), process.pid)
    return AsyncioProcessHandle(process, process_group=process_group)


async def terminate_process(handle: ProcessHandle, *, grace: float) -> int:
    """Stop a process with SIGTERM, escalating to SIGKILL after ``grace``.

    Returns once the process has been reaped, with its exit code.
    """
    try:
        handle.signal("terminate")
    except ProcessLookupError:
        pass

    try:
        async with asyncio.timeout(grace):
            return await handle.wait()
    except TimeoutError:
        log.warning("Process %d ignored SIGTERM for %.1fs, killing", handle.pid, grace)

    try:
        handle.signal("kill")
    except ProcessLookupError:
        pass
    return await handle.wait()
