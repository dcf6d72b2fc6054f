"""Main RustChecker class for rustcheck."""

from collections.abc import Iterable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from rustcheck.config import Config
from rustcheck.diagnostics import DiagnosticParser
from rustcheck.exceptions import InvalidDependencyError
from rustcheck.invoker import ToolInvoker
from rustcheck.models import CheckMode, CheckRequest, CompilationResult, Dependency
from rustcheck.observability import (
    CheckContext,
    Timer,
    emit_counter,
    emit_timer,
    get_logger,
)
from rustcheck.sandbox import SandboxManager
from rustcheck.strategies import STRATEGIES, CheckStrategy

logger = get_logger(__name__)

DependencyLike = Dependency | tuple[str, str]


def coerce_dependencies(dependencies: Iterable[DependencyLike]) -> list[Dependency]:
    """Validate caller-supplied dependencies.

    Accepts `Dependency` models or `(name, version)` pairs.

    Raises:
        InvalidDependencyError: If any name or version is rejected
    """
    result = []
    for dep in dependencies:
        if isinstance(dep, Dependency):
            result.append(dep)
            continue
        try:
            name, version = dep
            result.append(Dependency(name=name, version=version))
        except (TypeError, ValueError) as e:
            # pydantic's ValidationError is a ValueError
            detail = e.errors()[0]["msg"] if isinstance(e, ValidationError) else str(e)
            raise InvalidDependencyError(f"Invalid dependency {dep!r}: {detail}") from e
    return result


class RustChecker:
    """Checks Rust snippets with the local toolchain.

    Example usage:
        checker = RustChecker.from_config("rustcheck.yaml")

        result = await checker.check_code("let x: i32 = 5;")
        result = await checker.check_code_with_deps(code, [("serde", "1.0")])
        result = await checker.quick_check("pub fn f() {}")

        # Start HTTP server
        checker.serve(port=3030)
    """

    def __init__(self, config: Config | None = None) -> None:
        """Initialize the checker with configuration.

        The sandbox root is created on first use.
        """
        self.config = config or Config()
        self.parser = DiagnosticParser()
        self.invoker = ToolInvoker(self.config.toolchain, self.config.limits)
        self._sandboxes: SandboxManager | None = None

    @classmethod
    def from_config(cls, path: str | Path) -> "RustChecker":
        """Create a RustChecker from a YAML or JSON configuration file."""
        return cls(Config.from_file(path))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "RustChecker":
        """Create a RustChecker from a configuration dictionary."""
        return cls(Config.from_dict(config_dict))

    @property
    def sandboxes(self) -> SandboxManager:
        """Sandbox manager, creating the shared root on first access.

        Raises:
            SetupError: If the root cannot be created
        """
        if self._sandboxes is None:
            self._sandboxes = SandboxManager(self.config.sandbox.root)
        return self._sandboxes

    def strategy(self, mode: CheckMode | str) -> CheckStrategy:
        """Instantiate the strategy for a mode."""
        cls = STRATEGIES[CheckMode(mode)]
        return cls(self.config, self.sandboxes, self.invoker, self.parser)

    async def check(
        self,
        code: str,
        mode: CheckMode | str = CheckMode.FULL,
        dependencies: Iterable[DependencyLike] = (),
        wrap: bool | None = None,
    ) -> CompilationResult:
        """Check a snippet.

        Args:
            code: Rust source
            mode: Which strategy to use
            dependencies: Crates for the manifest (with_dependencies mode)
            wrap: Wrap in `fn main` when missing; None for the mode's default

        Returns:
            The result. `success=False` means the code has problems.

        Raises:
            InvalidDependencyError: If a dependency fails validation
            SetupError: If the sandbox cannot be prepared
            InvocationError: If the toolchain cannot be run or times out
            CapacityError: If too many checks are already running
        """
        mode = CheckMode(mode)
        deps = coerce_dependencies(dependencies)

        with CheckContext(mode=mode.value):
            logger.info(
                "Check started",
                context={"code_length": len(code), "dependencies": len(deps)},
            )
            emit_counter("check.started")

            try:
                with Timer() as timer:
                    strategy = self.strategy(mode)
                    result = await strategy.run(code, deps, wrap)
            except Exception as e:
                logger.error("Check failed", error=e)
                emit_counter("check.failed", {"error": type(e).__name__})
                raise

            emit_timer("check.duration", timer.duration_ms)
            emit_counter("check.completed", {"success": result.success})
            logger.info(
                "Check completed",
                context={
                    "success": result.success,
                    "errors": len(result.errors),
                    "warnings": len(result.warnings),
                    "exit_code": result.exit_code,
                },
                duration_ms=timer.duration_ms,
            )
            return result

    async def check_code(self, code: str, wrap: bool | None = None) -> CompilationResult:
        """Full `cargo check`, wrapping the snippet in `fn main` if needed."""
        return await self.check(code, CheckMode.FULL, wrap=wrap)

    async def check_code_with_deps(
        self,
        code: str,
        dependencies: Iterable[DependencyLike],
        wrap: bool | None = None,
    ) -> CompilationResult:
        """`cargo check` with declared crates; the snippet is not wrapped by default."""
        return await self.check(code, CheckMode.WITH_DEPENDENCIES, dependencies, wrap)

    async def quick_check(self, code: str, wrap: bool | None = None) -> CompilationResult:
        """Single-file `rustc` check, blind to dependency resolution."""
        return await self.check(code, CheckMode.QUICK, wrap=wrap)

    async def check_request(self, request: CheckRequest) -> CompilationResult:
        """Run the check a request describes."""
        return await self.check(
            request.code,
            request.mode,
            request.dependencies,
            request.wrap,
        )

    async def is_rust_available(self) -> bool:
        """True if `rustc --version` succeeds."""
        return await self.invoker.is_available(self.config.toolchain.rustc)

    async def is_cargo_available(self) -> bool:
        """True if `cargo --version` succeeds."""
        return await self.invoker.is_available(self.config.toolchain.cargo)

    def serve(
        self,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        """Start the HTTP server.

        Args:
            host: Host to bind to (defaults to config value)
            port: Port to bind to (defaults to config value)
        """
        import uvicorn

        from rustcheck.server.app import create_app

        app = create_app(self)
        uvicorn.run(
            app,
            host=host or self.config.server.host,
            port=port or self.config.server.port,
        )
