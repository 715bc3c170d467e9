"""Registry of long-running mock servers keyed by port."""

import asyncio
import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from types import TracebackType
from typing import Self

from specmatic_orchestrator.config import EngineConfig
from specmatic_orchestrator.errors import (
    MockStartError,
    NotRunningError,
    PortConflictError,
)
from specmatic_orchestrator.executor import EngineExecutor
from specmatic_orchestrator.models.request import SpecFormat
from specmatic_orchestrator.models.result import MockServerInfo
from specmatic_orchestrator.process import ProcessHandle, terminate_process
from specmatic_orchestrator.staging import SpecArtifact

log = logging.getLogger(__name__)

STDERR_TAIL_LINES = 200

# Node prints these on stderr for every npx run; they are not startup errors.
IGNORED_STDERR_MARKERS = ("DeprecationWarning", "Use `node --trace-deprecation")


@dataclass(kw_only=True, eq=False)
class MockServerHandle:
    """A running mock server and the resources it owns."""

    port: int
    url: str
    process: ProcessHandle
    artifact: SpecArtifact
    stderr_tail: deque[str]
    stderr_reader: asyncio.Task[None]

    @property
    def pid(self) -> int:
        return self.process.pid

    def is_alive(self) -> bool:
        return self.process.is_alive()

    def info(self) -> MockServerInfo:
        return MockServerInfo(port=self.port, url=self.url, pid=self.pid)


@dataclass(kw_only=True)
class MockServerRegistry:
    """Starts, stops and lists mock servers, at most one per port.

    A single lock guards the registered servers and the ports with a start in
    progress. The lock is not held while a new server proves it survives its
    startup window, so slow starts do not block other ports.
    """

    executor: EngineExecutor
    _servers: dict[int, MockServerHandle] = field(default_factory=dict, init=False)
    _starting: set[int] = field(default_factory=set, init=False)
    _watchers: dict[asyncio.Task[None], MockServerHandle] = field(
        default_factory=dict, init=False
    )
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    @property
    def config(self) -> EngineConfig:
        return self.executor.config

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def start(
        self, port: int, spec_content: str, spec_format: SpecFormat = "yaml"
    ) -> MockServerInfo:
        """Start a mock server for the given spec on ``port``.

        Raises:
            PortConflictError: If a server is registered or starting on the
                port; nothing is spawned in that case
            SpawnError: If the engine could not be launched
            MockStartError: If the server exited during its startup window

        """
        async with self._lock:
            if port in self._servers or port in self._starting:
                raise PortConflictError(
                    f"Port {port} is already in use by another mock server"
                )
            self._starting.add(port)

        try:
            handle = await self._launch(port, spec_content, spec_format)
            try:
                async with self._lock:
                    self._servers[port] = handle
                    watcher = asyncio.create_task(self._watch(handle))
                    self._watchers[watcher] = handle
                    watcher.add_done_callback(self._forget_watcher)
            except BaseException:
                # Cancelled before registration; nothing else owns the process.
                await asyncio.shield(self._discard(handle))
                raise
        finally:
            self._starting.discard(port)

        log.info("Mock server started on port %d (pid=%d)", port, handle.pid)
        return handle.info()

    async def stop(self, port: int) -> MockServerInfo:
        """Stop the server on ``port`` and forget it.

        The entry is removed even if signalling the process fails.

        Raises:
            NotRunningError: If no server is registered on the port

        """
        async with self._lock:
            handle = self._servers.pop(port, None)
            if handle is None:
                raise NotRunningError(f"No mock server running on port {port}")

            try:
                handle.process.signal("terminate")
            except ProcessLookupError:
                log.info("Mock server on port %d had already exited", port)
            except OSError as exc:
                log.warning("Failed to signal mock server on port %d: %s", port, exc)

        log.info("Mock server on port %d (pid=%d) stopped", port, handle.pid)
        return handle.info()

    async def list_servers(self) -> Sequence[MockServerInfo]:
        """Snapshot of registered servers ordered by port.

        Does not probe whether the processes are still alive.
        """
        async with self._lock:
            return [self._servers[port].info() for port in sorted(self._servers)]

    async def aclose(self) -> None:
        """Stop every registered server and wait for their cleanup."""
        async with self._lock:
            self._servers.clear()
            # Includes servers already stopped that have not exited yet.
            handles = [
                handle for handle in self._watchers.values() if handle.is_alive()
            ]

        if handles:
            log.info("Stopping %d mock server(s)", len(handles))
        await asyncio.gather(
            *(
                terminate_process(handle.process, grace=self.config.kill_grace)
                for handle in handles
            )
        )
        if self._watchers:
            await asyncio.gather(*self._watchers)

    def _forget_watcher(self, watcher: asyncio.Task[None]) -> None:
        self._watchers.pop(watcher, None)

    async def _discard(self, handle: MockServerHandle) -> None:
        log.warning(
            "Discarding mock server on port %d (pid=%d) that was never registered",
            handle.port,
            handle.pid,
        )
        await terminate_process(handle.process, grace=self.config.kill_grace)
        handle.stderr_reader.cancel()
        handle.artifact.remove()

    async def _launch(
        self, port: int, spec_content: str, spec_format: SpecFormat
    ) -> MockServerHandle:
        artifact = SpecArtifact.create(
            spec_content, spec_format, prefix="specmatic-mock-"
        )
        try:
            process = await self.executor.spawn_server(
                ["stub", str(artifact.path), f"--port={port}"]
            )
        except BaseException:
            artifact.remove()
            raise

        stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        reader = asyncio.create_task(_collect_stderr(process.stderr, stderr_tail))

        try:
            async with asyncio.timeout(self.config.mock_startup_grace):
                exit_code = await process.wait()
        except TimeoutError:
            return MockServerHandle(
                port=port,
                url=f"http://{self.config.mock_host}:{port}",
                process=process,
                artifact=artifact,
                stderr_tail=stderr_tail,
                stderr_reader=reader,
            )
        except BaseException:
            await terminate_process(process, grace=self.config.kill_grace)
            reader.cancel()
            artifact.remove()
            raise

        await _finish_reader(reader)
        artifact.remove()
        details = "\n".join(stderr_tail).strip() or "No error details"
        log.warning(
            "Mock server on port %d exited during startup with code %d",
            port,
            exit_code,
        )
        raise MockStartError(
            f"Mock server exited with code {exit_code} during startup",
            stderr=details,
            exit_code=exit_code,
        )

    async def _watch(self, handle: MockServerHandle) -> None:
        """Clean up after a server process ends, whoever ended it."""
        exit_code = await handle.process.wait()
        await _finish_reader(handle.stderr_reader)
        handle.artifact.remove()

        async with self._lock:
            if self._servers.get(handle.port) is handle:
                del self._servers[handle.port]
                log.warning(
                    "Mock server on port %d exited on its own with code %d: %s",
                    handle.port,
                    exit_code,
                    "\n".join(handle.stderr_tail) or "no stderr output",
                )


async def _collect_stderr(
    stream: asyncio.StreamReader | None, tail: deque[str]
) -> None:
    if stream is None:
        return
    while True:
        try:
            line = await stream.readline()
        except ValueError:
            # Overlong line; the stream has discarded it.
            continue
        if not line:
            return
        text = line.decode("utf-8", errors="replace").rstrip()
        if text and not any(marker in text for marker in IGNORED_STDERR_MARKERS):
            tail.append(text)


async def _finish_reader(reader: asyncio.Task[None], timeout: float = 1.0) -> None:
    """Let a stderr reader reach EOF.

    A helper forked by the engine can hold the pipe open after the server
    itself has exited, so the reader is cancelled after a short wait.
    """
    _, pending = await asyncio.wait({reader}, timeout=timeout)
    for task in pending:
        task.cancel()
