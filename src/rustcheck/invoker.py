"""Subprocess invocation of the Rust toolchain."""

import asyncio
import os
import signal
import threading
import weakref
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from rustcheck.config import LimitsConfig, ToolchainConfig
from rustcheck.exceptions import CapacityError, InvocationError, InvocationTimeoutError
from rustcheck.observability import Timer, emit_counter, emit_timer, get_logger

logger = get_logger(__name__)

VERSION_CHECK_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class ToolOutput:
    """Captured output of one tool run."""

    args: tuple[str, ...]
    stdout: bytes
    stderr: bytes
    exit_code: int
    duration_ms: float

    @property
    def stdout_text(self) -> str:
        """Decoded stdout; invalid UTF-8 is replaced, never fatal."""
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        """Decoded stderr; invalid UTF-8 is replaced, never fatal."""
        return self.stderr.decode("utf-8", errors="replace")


class ToolInvoker:
    """Runs cargo/rustc as child processes.

    Every invocation passes through a semaphore bounding how many child
    processes run at once, and is killed when it exceeds its timeout or when
    the awaiting task is cancelled. The invoker may be shared between event
    loops and threads; each running loop gets its own semaphore of
    `limits.max_concurrent` slots.
    """

    def __init__(
        self,
        toolchain: ToolchainConfig | None = None,
        limits: LimitsConfig | None = None,
    ) -> None:
        """Initialize the invoker.

        Args:
            toolchain: Tool paths and per-invocation timeout
            limits: Concurrency bound and admission wait
        """
        self.toolchain = toolchain or ToolchainConfig()
        self.limits = limits or LimitsConfig()
        # Event loop -> its admission semaphore
        self._semaphores: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()
        self._lock = threading.Lock()
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        """Number of tool processes currently admitted."""
        return self._in_flight

    def _semaphore(self) -> asyncio.Semaphore:
        """Admission semaphore of the running event loop."""
        loop = asyncio.get_running_loop()
        with self._lock:
            semaphore = self._semaphores.get(loop)
            if semaphore is None:
                semaphore = asyncio.Semaphore(self.limits.max_concurrent)
                self._semaphores[loop] = semaphore
        return semaphore

    def project_check_args(self) -> list[str]:
        """Command for a project-level check with JSON diagnostics."""
        return [self.toolchain.cargo, "check", "--message-format=json"]

    def direct_check_args(self, source: Path) -> list[str]:
        """Command for a single-file library check that discards its artifact."""
        return [
            self.toolchain.rustc,
            "--crate-type=lib",
            "--error-format=json",
            str(source),
            "-o",
            os.devnull,
        ]

    async def run_project_check(self, cwd: Path) -> ToolOutput:
        """Run `cargo check` in a sandbox containing a manifest."""
        return await self.run(self.project_check_args(), cwd)

    async def run_direct_check(self, source: Path, cwd: Path) -> ToolOutput:
        """Run `rustc` on a single source file."""
        return await self.run(self.direct_check_args(source), cwd)

    async def run(
        self,
        args: Sequence[str],
        cwd: Path,
        timeout: float | None = None,
    ) -> ToolOutput:
        """Run a tool under admission control.

        Args:
            args: Program and arguments
            cwd: Working directory
            timeout: Seconds before the process is killed (defaults to config)

        Raises:
            CapacityError: If no slot frees up within the admission wait
            InvocationError: If the process cannot be started
            InvocationTimeoutError: If the process runs past its timeout
        """
        semaphore = self._semaphore()
        await self._admit(semaphore)
        with self._lock:
            self._in_flight += 1
        try:
            return await self._spawn(
                args,
                cwd,
                timeout if timeout is not None else self.toolchain.timeout_seconds,
            )
        finally:
            with self._lock:
                self._in_flight -= 1
            semaphore.release()

    async def is_available(self, tool: str) -> bool:
        """Check whether `tool --version` runs and exits with status 0.

        Version checks bypass admission control.
        """
        try:
            output = await self._spawn([tool, "--version"], None, VERSION_CHECK_TIMEOUT_SECONDS)
        except InvocationError:
            return False
        return output.exit_code == 0

    async def _admit(self, semaphore: asyncio.Semaphore) -> None:
        """Acquire an invocation slot or raise CapacityError."""
        if not semaphore.locked():
            await semaphore.acquire()
            return

        wait = self.limits.acquire_timeout_seconds
        emit_counter("invoker.queued")
        try:
            if wait <= 0:
                raise asyncio.TimeoutError
            await asyncio.wait_for(semaphore.acquire(), timeout=wait)
        except asyncio.TimeoutError:
            emit_counter("invoker.rejected")
            logger.warning(
                "Invocation rejected, all slots busy",
                context={"max_concurrent": self.limits.max_concurrent},
            )
            raise CapacityError(
                f"All {self.limits.max_concurrent} toolchain slots are busy",
                retry_after=wait or 1.0,
            ) from None

    async def _spawn(
        self,
        args: Sequence[str],
        cwd: Path | None,
        timeout: float,
    ) -> ToolOutput:
        """Start the process and collect its output."""
        args = tuple(str(a) for a in args)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=os.name == "posix",
            )
        except OSError as e:
            raise InvocationError(f"Failed to start {args[0]}: {e}") from e

        with Timer() as timer:
            try:
                stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
            except asyncio.TimeoutError:
                await _terminate(proc)
                emit_counter("invoker.timeout", {"tool": Path(args[0]).name})
                raise InvocationTimeoutError(
                    f"{args[0]} timed out after {timeout} seconds"
                ) from None
            except asyncio.CancelledError:
                await _terminate(proc)
                raise

        emit_timer("invoker.duration", timer.duration_ms, {"tool": Path(args[0]).name})
        logger.debug(
            "Tool finished",
            context={"args": list(args), "exit_code": proc.returncode},
            duration_ms=timer.duration_ms,
        )
        return ToolOutput(
            args=args,
            stdout=stdout or b"",
            stderr=stderr or b"",
            exit_code=proc.returncode if proc.returncode is not None else -1,
            duration_ms=timer.duration_ms,
        )


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """Kill a child and everything it spawned, then reap it."""
    if proc.returncode is None:
        try:
            if os.name == "posix":
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()
