"""Ephemeral per-check working directories."""

import asyncio
import atexit
import contextvars
import functools
import os
import shutil
from collections.abc import AsyncIterator, Callable
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar
from uuid import uuid4

from rustcheck.exceptions import SetupError
from rustcheck.observability import emit_counter, get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Thread pool for sandbox file I/O - configurable via environment
_max_workers = int(os.environ.get("RUSTCHECK_FILE_WORKERS", "8"))
_executor = ThreadPoolExecutor(max_workers=_max_workers, thread_name_prefix="rustcheck-fs")

# Ensure executor is cleaned up on process exit
atexit.register(_executor.shutdown, wait=False)


async def run_blocking(func: Callable[..., T], *args: Any) -> T:
    """Run blocking file work in the sandbox thread pool.

    The work always runs to completion: if the caller is cancelled, this
    waits for the worker thread before re-raising, so cleanup never races a
    write that is still in progress.
    """
    loop = asyncio.get_running_loop()
    # Keep the check's logging context in the worker thread
    call = functools.partial(contextvars.copy_context().run, func, *args)
    future = loop.run_in_executor(_executor, call)
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        await asyncio.wait([future])
        raise


@dataclass(frozen=True)
class Sandbox:
    """A uniquely named directory used by exactly one check."""

    sandbox_id: str
    path: Path

    def resolve(self, relative_path: str) -> Path:
        """Get the filesystem path for a file inside the sandbox.

        Rejects paths that would land outside the sandbox directory.
        """
        if not relative_path or relative_path.startswith(("/", "\\")):
            raise SetupError(f"Invalid sandbox path: {relative_path!r}")
        if "\x00" in relative_path or ".." in Path(relative_path).parts:
            raise SetupError(f"Invalid sandbox path: {relative_path!r}")

        target = (self.path / relative_path).resolve()
        try:
            target.relative_to(self.path.resolve())
        except ValueError:
            raise SetupError(f"Invalid sandbox path: {relative_path!r}") from None
        return target

    def write(self, relative_path: str, content: str) -> Path:
        """Write a text file into the sandbox, creating parent directories."""
        target = self.resolve(relative_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            raise SetupError(f"Failed to write {relative_path} in sandbox: {e}") from e
        return target


class SandboxManager:
    """Allocates and destroys sandboxes under one shared root.

    Concurrent checks never share a directory: every allocation gets a fresh
    uuid4-based name, so no locking is needed.
    """

    def __init__(self, root: str | Path) -> None:
        """Create the shared root directory.

        Args:
            root: Directory that holds every sandbox

        Raises:
            SetupError: If the root cannot be created
        """
        self.root = Path(root)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SetupError(f"Failed to create sandbox root {self.root}: {e}") from e

    def allocate(self) -> Sandbox:
        """Create a fresh, uniquely named sandbox directory.

        Raises:
            SetupError: If the directory cannot be created
        """
        sandbox_id = f"check_{uuid4().hex}"
        path = self.root / sandbox_id
        try:
            path.mkdir()
        except OSError as e:
            raise SetupError(f"Failed to create sandbox {path}: {e}") from e

        logger.debug("Sandbox allocated", context={"sandbox_id": sandbox_id})
        return Sandbox(sandbox_id=sandbox_id, path=path)

    def destroy(self, sandbox: Sandbox) -> bool:
        """Remove a sandbox directory tree.

        Never raises. Failures are logged and counted instead.

        Returns:
            True if the directory is gone afterwards
        """
        try:
            shutil.rmtree(sandbox.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(
                "Sandbox cleanup failed",
                context={"sandbox_id": sandbox.sandbox_id, "path": str(sandbox.path)},
                error=e,
            )
            emit_counter("sandbox.cleanup.failed")
            return False

        logger.debug("Sandbox destroyed", context={"sandbox_id": sandbox.sandbox_id})
        return True

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Sandbox]:
        """Allocate a sandbox and destroy it on every exit path.

        Removal runs in the thread pool; cargo leaves a `target/` tree behind.

        Example:
            async with manager.session() as sandbox:
                await run_blocking(sandbox.write, "src/main.rs", code)
        """
        sandbox = self.allocate()
        try:
            yield sandbox
        finally:
            await run_blocking(self.destroy, sandbox)
