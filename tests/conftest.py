"""Pytest configuration and fixtures."""

import logging
import stat
import sys
from pathlib import Path

import pytest

from rustcheck.checker import RustChecker
from rustcheck.config import Config
from rustcheck.observability import register_metric_callback, unregister_metric_callback

FAKE_TOOLCHAIN = Path(__file__).parent / "fake_toolchain.py"


def install_executable(path: Path, body: str) -> Path:
    """Write a script that runs under the current interpreter."""
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_toolchain(tmp_path: Path) -> dict[str, str]:
    """Install fake `cargo` and `rustc` executables."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    body = FAKE_TOOLCHAIN.read_text()
    return {
        "cargo": str(install_executable(bin_dir / "cargo", body)),
        "rustc": str(install_executable(bin_dir / "rustc", body)),
    }


@pytest.fixture
def sample_config_dict(tmp_path: Path, fake_toolchain: dict[str, str]) -> dict:
    """Configuration dictionary pointing at the fake toolchain."""
    return {
        "toolchain": {
            "cargo": fake_toolchain["cargo"],
            "rustc": fake_toolchain["rustc"],
            "timeout_seconds": 20,
        },
        "sandbox": {"root": str(tmp_path / "sandboxes")},
        "limits": {"max_concurrent": 4, "acquire_timeout_seconds": 10},
        "logging": {"level": "ERROR", "format": "json"},
    }


@pytest.fixture
def config(sample_config_dict: dict) -> Config:
    """Parsed configuration for the fake toolchain."""
    return Config.from_dict(sample_config_dict)


@pytest.fixture
def checker(config: Config) -> RustChecker:
    """Checker wired to the fake toolchain."""
    return RustChecker(config)


@pytest.fixture
def sandbox_root(config: Config) -> Path:
    """Shared sandbox root used by the checker fixture."""
    return Path(config.sandbox.root)


@pytest.fixture
def metrics():
    """Collect emitted metrics as (name, value, labels) tuples."""
    received: list[tuple[str, float, dict]] = []

    def callback(name: str, value: float, labels: dict) -> None:
        received.append((name, value, labels))

    register_metric_callback(callback)
    yield received
    unregister_metric_callback(callback)


@pytest.fixture(autouse=True)
def restore_package_logger():
    """Undo configure_logging calls made by a test."""
    root = logging.getLogger("rustcheck")
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def install_script():
    """Factory installing an executable Python script at a path."""
    return install_executable
