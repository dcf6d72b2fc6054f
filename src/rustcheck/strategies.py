"""Check strategies: how a snippet is laid out in a sandbox and checked."""

import re
from abc import ABC, abstractmethod
from collections.abc import Sequence

from rustcheck.config import Config
from rustcheck.diagnostics import DiagnosticParser
from rustcheck.invoker import ToolInvoker, ToolOutput
from rustcheck.manifest import MANIFEST_NAME, render_manifest
from rustcheck.models import CheckMode, CompilationError, CompilationResult, Dependency
from rustcheck.sandbox import Sandbox, SandboxManager, run_blocking

ENTRY_POINT_RE = re.compile(r"\bfn\s+main\s*\(")

MAIN_SOURCE = "src/main.rs"

# Name-resolution failures that mean "this crate is not linked"
UNRESOLVED_CRATE_CODES = frozenset({"E0432", "E0433", "E0463"})

# Path roots that resolve without any external crate
LOCAL_PATH_ROOTS = frozenset({"crate", "self", "super", "std", "core", "alloc"})

QUOTED_PATH_RE = re.compile(r"`([^`]+)`")


def has_entry_point(code: str) -> bool:
    """True if the snippet already defines `fn main(`."""
    return ENTRY_POINT_RE.search(code) is not None


def wrap_in_main(code: str) -> str:
    """Wrap a snippet in a synthetic `fn main`."""
    return f"fn main() {{\n{code}\n}}"


def is_unresolved_crate(diagnostic: CompilationError) -> bool:
    """True for an error that only says an external crate is missing.

    Matches E0432/E0433/E0463 whose quoted path starts outside the local
    crate and the standard library, e.g. "unresolved import `serde`" or
    "can't find crate for `rand`". E0433 also covers undeclared types, so it
    only counts when rustc names a crate.
    """
    if diagnostic.code not in UNRESOLVED_CRATE_CODES:
        return False
    summary = diagnostic.summary
    if diagnostic.code == "E0433" and "crate" not in summary:
        return False
    match = QUOTED_PATH_RE.search(summary)
    if match is None:
        return False
    root = match.group(1).lstrip(":").split("::")[0]
    return root not in LOCAL_PATH_ROOTS


class CheckStrategy(ABC):
    """Base class for the checking strategies.

    `run` owns the sandbox for the whole check and releases it on every
    exit path. Subclasses only decide what goes into the sandbox, which
    command runs, and which output stream carries diagnostics.
    """

    mode: CheckMode
    wraps_by_default: bool = False

    def __init__(
        self,
        config: Config,
        sandboxes: SandboxManager,
        invoker: ToolInvoker,
        parser: DiagnosticParser,
    ) -> None:
        self.config = config
        self.sandboxes = sandboxes
        self.invoker = invoker
        self.parser = parser

    def prepare_source(self, code: str, wrap: bool | None) -> str:
        """Apply the wrapping policy.

        Args:
            code: Caller's snippet
            wrap: None for the strategy default, otherwise forced on or off
        """
        should_wrap = self.wraps_by_default if wrap is None else wrap
        if should_wrap and not has_entry_point(code):
            return wrap_in_main(code)
        return code

    @abstractmethod
    def materialize(
        self,
        sandbox: Sandbox,
        source: str,
        dependencies: Sequence[Dependency],
    ) -> None:
        """Write the files the check needs."""

    @abstractmethod
    async def invoke(self, sandbox: Sandbox) -> ToolOutput:
        """Run the tool against a materialized sandbox."""

    def diagnostic_stream(self, output: ToolOutput) -> str:
        """The stream that carries JSON diagnostics."""
        return output.stdout_text

    def reports(self, diagnostic: CompilationError) -> bool:
        """Whether an error or warning belongs in the result."""
        return True

    async def run(
        self,
        code: str,
        dependencies: Sequence[Dependency] = (),
        wrap: bool | None = None,
    ) -> CompilationResult:
        """Run a complete check.

        Raises:
            SetupError: If the sandbox cannot be prepared
            InvocationError: If the tool cannot be run
            CapacityError: If admission control refuses the invocation
        """
        source = self.prepare_source(code, wrap)

        async with self.sandboxes.session() as sandbox:
            await run_blocking(self.materialize, sandbox, source, dependencies)
            output = await self.invoke(sandbox)

        return self.parser.build_result(
            self.diagnostic_stream(output),
            stdout=output.stdout_text,
            stderr=output.stderr_text,
            exit_code=output.exit_code,
            duration_ms=output.duration_ms,
            keep=self.reports,
        )


class ProjectCheck(CheckStrategy):
    """Shared layout for the cargo-based checks: Cargo.toml plus src/main.rs."""

    def materialize(
        self,
        sandbox: Sandbox,
        source: str,
        dependencies: Sequence[Dependency],
    ) -> None:
        sandbox.write(MANIFEST_NAME, render_manifest(dependencies, self.config.manifest))
        sandbox.write(MAIN_SOURCE, source)

    async def invoke(self, sandbox: Sandbox) -> ToolOutput:
        return await self.invoker.run_project_check(sandbox.path)


class FullCheck(ProjectCheck):
    """`cargo check` on a generated project with no dependencies."""

    mode = CheckMode.FULL
    wraps_by_default = True

    async def run(
        self,
        code: str,
        dependencies: Sequence[Dependency] = (),
        wrap: bool | None = None,
    ) -> CompilationResult:
        # Always an empty [dependencies] table
        return await super().run(code, (), wrap)


class DependencyCheck(ProjectCheck):
    """`cargo check` on a generated project with caller-declared crates.

    The snippet is used as-is unless wrapping is requested; callers supply a
    complete unit.
    """

    mode = CheckMode.WITH_DEPENDENCIES


class QuickCheck(CheckStrategy):
    """`rustc` in library mode on a single file, no project.

    Faster, but blind to dependencies: no crates are linked, so errors that
    only say an external crate is missing are dropped. Syntax and type
    errors are still reported.
    """

    mode = CheckMode.QUICK

    def materialize(
        self,
        sandbox: Sandbox,
        source: str,
        dependencies: Sequence[Dependency],
    ) -> None:
        sandbox.write(self.config.sandbox.source_name, source)

    async def invoke(self, sandbox: Sandbox) -> ToolOutput:
        source = sandbox.resolve(self.config.sandbox.source_name)
        return await self.invoker.run_direct_check(source, sandbox.path)

    def diagnostic_stream(self, output: ToolOutput) -> str:
        # rustc writes --error-format=json diagnostics to stderr
        return output.stderr_text

    def reports(self, diagnostic: CompilationError) -> bool:
        return not is_unresolved_crate(diagnostic)


STRATEGIES: dict[CheckMode, type[CheckStrategy]] = {
    CheckMode.FULL: FullCheck,
    CheckMode.WITH_DEPENDENCIES: DependencyCheck,
    CheckMode.QUICK: QuickCheck,
}
