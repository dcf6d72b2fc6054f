"""Tests for toolchain invocation."""

import asyncio
import time
from pathlib import Path

import pytest

from rustcheck.config import LimitsConfig, ToolchainConfig
from rustcheck.exceptions import CapacityError, InvocationError, InvocationTimeoutError
from rustcheck.invoker import ToolInvoker, ToolOutput


def make_invoker(fake_toolchain: dict[str, str], **limits) -> ToolInvoker:
    return ToolInvoker(
        ToolchainConfig(cargo=fake_toolchain["cargo"], rustc=fake_toolchain["rustc"]),
        LimitsConfig(**limits) if limits else None,
    )


def write_source(directory: Path, code: str) -> Path:
    source = directory / "check.rs"
    source.write_text(code)
    return source


class TestToolOutput:
    """Tests for ToolOutput decoding."""

    def test_invalid_utf8_is_replaced(self) -> None:
        """Undecodable bytes never raise."""
        output = ToolOutput(args=(), stdout=b"ok \xff", stderr=b"\xfe", exit_code=0, duration_ms=1.0)

        assert output.stdout_text == "ok \ufffd"
        assert output.stderr_text == "\ufffd"


class TestCommands:
    """Tests for the command lines the invoker builds."""

    def test_project_check_args(self) -> None:
        """cargo check emits JSON messages."""
        invoker = ToolInvoker(ToolchainConfig(cargo="/opt/cargo"))
        assert invoker.project_check_args() == ["/opt/cargo", "check", "--message-format=json"]

    def test_direct_check_args(self) -> None:
        """rustc checks a library crate and discards the artifact."""
        invoker = ToolInvoker()
        args = invoker.direct_check_args(Path("/tmp/x/check.rs"))

        assert args[:3] == ["rustc", "--crate-type=lib", "--error-format=json"]
        assert args[3] == "/tmp/x/check.rs"
        assert args[4] == "-o"


class TestRun:
    """Tests for running tools."""

    @pytest.mark.asyncio
    async def test_direct_check(self, tmp_path: Path, fake_toolchain) -> None:
        """rustc diagnostics arrive on stderr with a failing status."""
        invoker = make_invoker(fake_toolchain)
        source = write_source(tmp_path, "pub fn f() {\n    let x = 5\n}\n")

        output = await invoker.run_direct_check(source, tmp_path)

        assert output.exit_code == 1
        assert output.stdout == b""
        assert '"level": "error"' in output.stderr_text
        assert output.duration_ms > 0

    @pytest.mark.asyncio
    async def test_project_check(self, tmp_path: Path, fake_toolchain) -> None:
        """cargo runs in the given directory."""
        invoker = make_invoker(fake_toolchain)
        (tmp_path / "src").mkdir()
        (tmp_path / "Cargo.toml").write_text("[package]\nname = \"blockly_check\"\n\n[dependencies]\n")
        (tmp_path / "src" / "main.rs").write_text("fn main() {}\n")

        output = await invoker.run_project_check(tmp_path)

        assert output.exit_code == 0
        assert str(tmp_path) in output.stderr_text
        assert '"reason": "build-finished"' in output.stdout_text

    @pytest.mark.asyncio
    async def test_missing_tool(self, tmp_path: Path) -> None:
        """A tool that cannot be started raises InvocationError."""
        invoker = ToolInvoker(ToolchainConfig(rustc=str(tmp_path / "no-such-rustc")))
        source = write_source(tmp_path, "")

        with pytest.raises(InvocationError):
            await invoker.run_direct_check(source, tmp_path)

        assert invoker.in_flight == 0

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path: Path, fake_toolchain, metrics) -> None:
        """A tool running past its timeout is killed."""
        invoker = make_invoker(fake_toolchain)
        source = write_source(tmp_path, "// HANG\n")

        started = time.monotonic()
        with pytest.raises(InvocationTimeoutError):
            await invoker.run(invoker.direct_check_args(source), tmp_path, timeout=0.5)

        assert time.monotonic() - started < 10
        assert invoker.in_flight == 0
        assert ("invoker.timeout", 1, {"tool": "rustc"}) in metrics

    @pytest.mark.asyncio
    async def test_timeout_is_an_invocation_error(self, tmp_path: Path, fake_toolchain) -> None:
        """Callers catching InvocationError also see timeouts."""
        invoker = make_invoker(fake_toolchain)
        source = write_source(tmp_path, "// HANG\n")

        with pytest.raises(InvocationError):
            await invoker.run(invoker.direct_check_args(source), tmp_path, timeout=0.3)

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self, tmp_path: Path, fake_toolchain) -> None:
        """Cancelling the caller frees the slot."""
        invoker = make_invoker(fake_toolchain, max_concurrent=1, acquire_timeout_seconds=0)
        hanging = write_source(tmp_path, "// HANG\n")

        task = asyncio.create_task(invoker.run_direct_check(hanging, tmp_path))
        await asyncio.sleep(0.3)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert invoker.in_flight == 0
        quick = tmp_path / "ok"
        quick.mkdir()
        output = await invoker.run_direct_check(write_source(quick, "pub fn f() {}\n"), quick)
        assert output.exit_code == 0


class TestAdmission:
    """Tests for the concurrency bound."""

    @pytest.mark.asyncio
    async def test_rejects_when_busy(self, tmp_path: Path, fake_toolchain, metrics) -> None:
        """With no admission wait, a second call is refused while one runs."""
        invoker = make_invoker(fake_toolchain, max_concurrent=1, acquire_timeout_seconds=0)
        slow = write_source(tmp_path, "// SLOW\n")

        running = asyncio.create_task(invoker.run_direct_check(slow, tmp_path))
        await asyncio.sleep(0.05)
        assert invoker.in_flight == 1

        with pytest.raises(CapacityError) as exc_info:
            await invoker.run_direct_check(slow, tmp_path)

        assert exc_info.value.retry_after == 1.0
        assert (await running).exit_code == 0
        assert "invoker.rejected" in [m[0] for m in metrics]

    @pytest.mark.asyncio
    async def test_queues_within_wait(self, tmp_path: Path, fake_toolchain, metrics) -> None:
        """Calls beyond the bound wait for a free slot."""
        invoker = make_invoker(fake_toolchain, max_concurrent=1, acquire_timeout_seconds=10)
        slow = write_source(tmp_path, "// SLOW\n")

        outputs = await asyncio.gather(
            invoker.run_direct_check(slow, tmp_path),
            invoker.run_direct_check(slow, tmp_path),
        )

        assert [o.exit_code for o in outputs] == [0, 0]
        assert "invoker.queued" in [m[0] for m in metrics]
        assert invoker.in_flight == 0


class TestAvailability:
    """Tests for toolchain availability checks."""

    @pytest.mark.asyncio
    async def test_available(self, fake_toolchain) -> None:
        """A tool answering --version is available."""
        invoker = make_invoker(fake_toolchain)

        assert await invoker.is_available(fake_toolchain["rustc"]) is True
        assert await invoker.is_available(fake_toolchain["cargo"]) is True

    @pytest.mark.asyncio
    async def test_missing(self, tmp_path: Path) -> None:
        """A missing tool is unavailable, not an error."""
        assert await ToolInvoker().is_available(str(tmp_path / "absent")) is False

    @pytest.mark.asyncio
    async def test_failing_status(self, tmp_path: Path, install_script) -> None:
        """A tool exiting non-zero is unavailable."""
        broken = install_script(tmp_path / "broken", "import sys\nsys.exit(3)\n")

        assert await ToolInvoker().is_available(str(broken)) is False
