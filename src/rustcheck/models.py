"""Result and request models.

Everything here is a pydantic model so results travel over the wire as JSON
and validate on the way back in.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from rustcheck.utils.validation import validate_crate_name, validate_version_req


# Severities rustc emits under another name
TOOL_LEVEL_ALIASES = {"failure-note": "note"}


class ErrorLevel(str, Enum):
    """Diagnostic severity."""

    ERROR = "error"
    WARNING = "warning"
    NOTE = "note"
    HELP = "help"

    @classmethod
    def from_tool(cls, value: object) -> "ErrorLevel":
        """Map a toolchain severity string; anything unknown counts as an error."""
        if isinstance(value, str):
            value = TOOL_LEVEL_ALIASES.get(value, value)
        try:
            return cls(value)
        except ValueError:
            return cls.ERROR


class CheckMode(str, Enum):
    """Available checking strategies."""

    FULL = "full"
    WITH_DEPENDENCIES = "with_dependencies"
    QUICK = "quick"


class SourceSpan(BaseModel):
    """One location a diagnostic points at."""

    model_config = ConfigDict(frozen=True)

    file: str | None = None
    line_start: int | None = None
    line_end: int | None = None
    column_start: int | None = None
    column_end: int | None = None
    is_primary: bool = False
    label: str | None = None


class CompilationError(BaseModel):
    """A single diagnostic: error, warning, note or help.

    `line`, `column` and `file` mirror the first entry of `spans`.
    """

    model_config = ConfigDict(frozen=True)

    level: ErrorLevel
    message: str
    code: str | None = None
    line: int | None = Field(default=None, ge=1)
    column: int | None = Field(default=None, ge=1)
    file: str | None = None
    suggestion: str | None = None
    spans: list[SourceSpan] = Field(default_factory=list)
    children: list["CompilationError"] = Field(default_factory=list)

    @property
    def summary(self) -> str:
        """First line of the rendered message."""
        return self.message.splitlines()[0] if self.message else ""


class CompilationResult(BaseModel):
    """Outcome of one check.

    `success` is true exactly when `errors` is empty. A failed result means
    the checked code has problems, not that the check could not run.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    errors: list[CompilationError] = Field(default_factory=list)
    warnings: list[CompilationError] = Field(default_factory=list)
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    duration_ms: float | None = None

    @model_validator(mode="after")
    def _success_matches_errors(self) -> "CompilationResult":
        if self.success != (not self.errors):
            raise ValueError("success must be true exactly when errors is empty")
        return self

    @classmethod
    def from_diagnostics(
        cls,
        errors: list[CompilationError],
        warnings: list[CompilationError],
        stdout: str = "",
        stderr: str = "",
        exit_code: int | None = None,
        duration_ms: float | None = None,
    ) -> "CompilationResult":
        """Build a result, deriving `success` from the error list."""
        return cls(
            success=not errors,
            errors=errors,
            warnings=warnings,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            duration_ms=duration_ms,
        )


class Dependency(BaseModel):
    """A crate dependency declared by the caller."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return validate_crate_name(value)

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        return validate_version_req(value)

    @classmethod
    def parse(cls, value: str) -> "Dependency":
        """Parse a `name=version` string."""
        name, sep, version = value.partition("=")
        if not sep:
            raise ValueError(f"Expected name=version, got {value!r}")
        return cls(name=name.strip(), version=version.strip())


class CheckRequest(BaseModel):
    """Body of a check request."""

    code: str
    dependencies: list[Dependency] = Field(default_factory=list)
    quick_check: bool = False
    wrap: bool | None = None

    @property
    def mode(self) -> CheckMode:
        """Strategy implied by the request."""
        if self.quick_check:
            return CheckMode.QUICK
        if self.dependencies:
            return CheckMode.WITH_DEPENDENCIES
        return CheckMode.FULL


class CheckResponse(BaseModel):
    """Body of a check response."""

    result: CompilationResult
    rust_available: bool
