"""Configuration loading with environment variable substitution."""

import os
import re
import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from rustcheck.exceptions import ConfigError

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


def default_sandbox_root() -> str:
    """Shared sandbox root under the system temp directory."""
    return str(Path(tempfile.gettempdir()) / "blockly_rust_check")


class ToolchainConfig(BaseModel):
    """External toolchain settings."""

    cargo: str = "cargo"
    rustc: str = "rustc"
    timeout_seconds: float = Field(default=60, gt=0)


class SandboxConfig(BaseModel):
    """Sandbox directory settings."""

    root: str = Field(default_factory=default_sandbox_root)
    source_name: str = "check.rs"  # Quick-mode source file


class ManifestConfig(BaseModel):
    """Generated Cargo.toml identity."""

    package_name: str = "blockly_check"
    version: str = "0.1.0"
    edition: str = "2021"


class LimitsConfig(BaseModel):
    """Admission control for toolchain invocations."""

    max_concurrent: int = Field(default=4, ge=1)
    acquire_timeout_seconds: float = Field(default=30, ge=0)


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = 3030
    cors_origins: list[str] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"  # json | text


class Config(BaseModel):
    """Main configuration for rustcheck."""

    toolchain: ToolchainConfig = Field(default_factory=ToolchainConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    manifest: ManifestConfig = Field(default_factory=ManifestConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        with path.open() as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                import json
                data = json.load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Load configuration from a dictionary."""
        data = substitute_env_vars(data)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(str(e)) from e
